# backend/studyroom/api/endpoints/sessions.py

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from studyroom.api.deps import get_current_user_id, get_store
from studyroom.core.errors import (
    ActiveSessionExists,
    InvalidSessionState,
    NotParticipant,
    NotSessionHost,
    SessionNotFound,
    UserNotFound,
)
from studyroom.crud import sessions as session_crud
from studyroom.crud import users as users_crud
from studyroom.db.store import DocumentStore
from studyroom.models.session import SessionInDB, SessionStatus
from studyroom.monitor.completion import SessionCompleter
from studyroom.schemas.common import SuccessMessage
from studyroom.schemas.session import (
    SessionCreate,
    SessionCreated,
    SessionJoin,
    SessionRead,
    SessionTerminate,
    ViolationCreate,
    ViolationResult,
)
from studyroom.schemas.user import UserRead

router = APIRouter(prefix="/sessions", tags=["Sessions"])


def to_session_read(session: SessionInDB) -> SessionRead:
    return SessionRead(**session.model_dump(by_alias=False))


async def _load_session(store: DocumentStore, session_id: str) -> SessionInDB:
    session = await session_crud.get_session(store, session_id)
    if session is None:
        raise SessionNotFound("Session not found")
    return session


async def _load_as_host(store: DocumentStore, session_id: str, user_id: str) -> SessionInDB:
    session = await _load_session(store, session_id)
    if not session.is_host(user_id):
        raise NotSessionHost()
    return session


async def _load_as_participant(store: DocumentStore, session_id: str, user_id: str) -> SessionInDB:
    session = await _load_session(store, session_id)
    if not session.has_participant(user_id):
        raise NotParticipant()
    return session


# --------------------------------------------------------------------------
# 생성 / 조회
# --------------------------------------------------------------------------
@router.post("", response_model=SessionCreated, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreate,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    # 유저당 진행 중 세션 1개 (먼저 이어하기/나가기 선택 필요)
    existing = await session_crud.get_user_active_session(store, user_id)
    if existing:
        raise ActiveSessionExists(existing.id)

    session_id = await session_crud.create_session(
        store,
        user_id,
        payload.participant_ids,
        payload.duration,
        payload.is_marathon,
    )
    session = await _load_session(store, session_id)
    return SessionCreated(id=session.id, room_code=session.room_code)


@router.get("", response_model=List[SessionRead])
async def list_my_sessions(
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    sessions = await session_crud.get_user_sessions(store, user_id)
    return [to_session_read(s) for s in sessions]


@router.get("/active", response_model=Optional[SessionRead])
async def read_my_active_session(
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    session = await session_crud.get_user_active_session(store, user_id)
    return to_session_read(session) if session else None


@router.post("/join", response_model=SessionRead)
async def join_session(
    payload: SessionJoin,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    existing = await session_crud.get_user_active_session(store, user_id)
    if existing and existing.room_code != payload.room_code:
        raise ActiveSessionExists(existing.id)

    session_id = await session_crud.join_session_by_code(store, payload.room_code, user_id)
    return to_session_read(await _load_session(store, session_id))


@router.get("/{session_id}", response_model=SessionRead)
async def read_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    return to_session_read(await _load_as_participant(store, session_id, user_id))


# --------------------------------------------------------------------------
# 상태 전이
# --------------------------------------------------------------------------
@router.post("/{session_id}/start", response_model=SessionRead)
async def start_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    await _load_as_host(store, session_id, user_id)
    await session_crud.start_session(store, session_id)
    return to_session_read(await _load_session(store, session_id))


@router.post("/{session_id}/leave", response_model=SuccessMessage)
async def leave_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    await session_crud.leave_session(store, session_id, user_id)
    return SuccessMessage(message="Left session")


@router.delete("/{session_id}", response_model=SuccessMessage)
async def cancel_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    await _load_as_host(store, session_id, user_id)
    await session_crud.cancel_session(store, session_id)
    return SuccessMessage(message="Session cancelled")


@router.post("/{session_id}/end", response_model=SessionRead)
async def end_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    """
    호스트의 수동 종료. outcome은 서버 시간 기준 경과 시간과 위반 누적으로 결정됩니다.
    이미 끝난 세션이면 기존 결과를 그대로 반환합니다.
    """
    await _load_as_host(store, session_id, user_id)
    # 요청마다 새 latch라서 중복 종료는 end_session의 조건부 update(status=active)가 막음
    await SessionCompleter(store, session_id).end_manually()
    return to_session_read(await _load_session(store, session_id))


@router.post("/{session_id}/terminate", response_model=SessionRead)
async def terminate_session(
    session_id: str,
    payload: SessionTerminate,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    await _load_as_participant(store, session_id, user_id)
    await session_crud.terminate_session(store, session_id, payload.reason)
    return to_session_read(await _load_session(store, session_id))


# --------------------------------------------------------------------------
# 위반 / 통계
# --------------------------------------------------------------------------
@router.post("/{session_id}/violations", response_model=ViolationResult)
async def add_violation(
    session_id: str,
    payload: ViolationCreate,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    await _load_as_participant(store, session_id, user_id)
    return await session_crud.add_violation(
        store,
        session_id,
        user_id,
        payload.type,
        payload.duration_seconds,
        only_active=True,
    )


@router.post("/{session_id}/stats", response_model=UserRead)
async def reconcile_my_stats(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    session = await _load_as_participant(store, session_id, user_id)
    if session.status is not SessionStatus.ENDED:
        raise InvalidSessionState("reconcile stats for", session.status.value)

    if await users_crud.get_user(store, user_id) is None:
        raise UserNotFound()

    await users_crud.update_user_stats(store, user_id, session)
    user = await users_crud.get_user(store, user_id)
    return UserRead(**user.model_dump(by_alias=False))
