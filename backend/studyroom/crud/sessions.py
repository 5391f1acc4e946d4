# backend/studyroom/crud/sessions.py

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from studyroom.core.config import settings
from studyroom.core.errors import (
    InvalidSessionState,
    SessionAlreadyStarted,
    SessionEnded,
    SessionNotFound,
)
from studyroom.core.scoring import classify
from studyroom.crud.room_codes import SESSIONS, generate_room_code
from studyroom.db.store import Document, DocumentStore, ErrorCallback, Unsubscribe, server_timestamp
from studyroom.models.session import (
    LIVE_STATUSES,
    SessionInDB,
    SessionOutcome,
    SessionStatus,
    Violation,
    ViolationCategory,
)
from studyroom.schemas.session import ViolationResult

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", -1)]


def serialize_session(doc: Document) -> SessionInDB:
    """
    store document(dict) -> SessionInDB
    """
    return SessionInDB(**doc)


def _strip_or_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    if not isinstance(v, str):
        return v
    s = v.strip()
    return s or None


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _initial_participants(host_id: str, participant_ids: Iterable[str]) -> List[str]:
    # 호스트가 항상 첫 번째, 중복/빈 값 제거
    participants = [host_id]
    for pid in participant_ids:
        pid = _strip_or_none(pid)
        if pid and pid not in participants:
            participants.append(pid)
    return participants


# ---------- READ ----------

async def get_session(store: DocumentStore, session_id: str) -> Optional[SessionInDB]:
    doc = await store.get_document(SESSIONS, session_id)
    return serialize_session(doc) if doc else None


async def _require_session(store: DocumentStore, session_id: str) -> SessionInDB:
    session = await get_session(store, session_id)
    if session is None:
        raise SessionNotFound("Session not found")
    return session


async def get_session_by_room_code(store: DocumentStore, room_code: str) -> Optional[SessionInDB]:
    """
    방 코드로 pending/active 세션 조회 (없으면 None)
    """
    docs = await store.query(
        SESSIONS,
        {"room_code": _strip_or_none(room_code), "status": {"$in": LIVE_STATUSES}},
        sort=NEWEST_FIRST,
        limit=1,
    )
    return serialize_session(docs[0]) if docs else None


async def get_user_sessions(store: DocumentStore, user_id: str, limit: Optional[int] = None) -> List[SessionInDB]:
    docs = await store.query(SESSIONS, {"participants": user_id}, sort=NEWEST_FIRST, limit=limit)
    return [serialize_session(d) for d in docs]


async def get_user_active_session(store: DocumentStore, user_id: str) -> Optional[SessionInDB]:
    """
    유저가 참여 중인 pending/active 세션 (여러 개면 가장 최근 것).

    정책: 유저당 진행 중 세션은 1개. 트랜잭션으로 강제하지 않으므로
    create / join 전에 호출자가 먼저 확인하고 이어하기/나가기를 선택하게 해야 합니다.
    """
    docs = await store.query(
        SESSIONS,
        {"participants": user_id, "status": {"$in": LIVE_STATUSES}},
        sort=NEWEST_FIRST,
        limit=1,
    )
    return serialize_session(docs[0]) if docs else None


def subscribe_to_session(
    store: DocumentStore,
    session_id: str,
    callback: Callable[[Optional[SessionInDB]], None],
    on_error: Optional[ErrorCallback] = None,
) -> Unsubscribe:
    """
    세션 실시간 구독. 삭제(cancel)된 세션은 에러가 아니라 None으로 전달됩니다.
    스토어 연결이 끊겨 구독이 멈추면 on_error로 StoreUnavailable이 전달됩니다.
    """
    def on_change(doc: Optional[Document]):
        return callback(serialize_session(doc) if doc else None)

    return store.subscribe(SESSIONS, session_id, on_change, on_error)


# ---------- CREATE ----------

async def create_session(
    store: DocumentStore,
    host_id: str,
    participant_ids: Iterable[str] = (),
    duration: int = 0,
    is_marathon: bool = False,
) -> str:
    host_id = _strip_or_none(host_id) or host_id
    room_code = await generate_room_code(store, settings.ROOM_CODE_MAX_RETRIES)

    doc = {
        "host_id": host_id,
        "participants": _initial_participants(host_id, participant_ids),
        "status": SessionStatus.PENDING.value,
        "duration": 0 if is_marathon else int(duration),
        "is_marathon": bool(is_marathon),
        "violations": [],
        "created_at": server_timestamp(),
        "start_time": None,
        "end_time": None,
        "room_code": room_code,
        "outcome": None,
        "fail_reason": None,
        "stats_updated_for": [],
    }

    session_id = await store.create_document(SESSIONS, doc)
    logger.info("Session %s created by %s (room %s)", session_id, host_id, room_code)
    return session_id


# ---------- STATE TRANSITIONS ----------

async def start_session(store: DocumentStore, session_id: str) -> None:
    """
    pending -> active. start_time은 클라이언트 시계가 아닌 서버 시간으로 기록.
    """
    started = await store.update_document(
        SESSIONS,
        session_id,
        {"status": SessionStatus.ACTIVE.value, "start_time": server_timestamp()},
        expect={"status": SessionStatus.PENDING.value},
    )
    if not started:
        session = await _require_session(store, session_id)
        raise InvalidSessionState("start", session.status.value)
    logger.info("Session %s started", session_id)


def _raise_if_unjoinable(session: Optional[SessionInDB]) -> None:
    if session is None:
        raise SessionNotFound()
    if session.status is SessionStatus.ACTIVE:
        raise SessionAlreadyStarted()
    if session.status is SessionStatus.ENDED:
        raise SessionEnded()


async def join_session_by_code(store: DocumentStore, room_code: str, user_id: str) -> str:
    """
    방 코드로 참가. 이미 참가자면 아무것도 바꾸지 않고 session_id 반환.
    참가자 추가는 status=pending 조건부 $addToSet 이라 동시 참가끼리 덮어쓰지 않고,
    조회 직후 시작/취소된 세션에는 들어가지 않습니다.
    """
    room_code = _strip_or_none(room_code)
    session = await get_session_by_room_code(store, room_code)
    if session is None:
        ended = await store.query(
            SESSIONS,
            {"room_code": room_code, "status": SessionStatus.ENDED.value},
            limit=1,
        )
        if ended:
            # 코드는 있었지만 이미 끝난 세션만 남아 있음
            raise SessionEnded()
        raise SessionNotFound()

    _raise_if_unjoinable(session)
    if session.has_participant(user_id):
        return session.id

    joined = await store.append_to_array_field(
        SESSIONS,
        session.id,
        "participants",
        user_id,
        unique=True,
        expect={"status": SessionStatus.PENDING.value},
    )
    if not joined:
        # 조회와 추가 사이에 시작/취소되었거나, 동시 요청으로 이미 추가됨
        current = await get_session(store, session.id)
        _raise_if_unjoinable(current)
        return session.id

    logger.info("User %s joined session %s", user_id, session.id)
    return session.id


async def leave_session(store: DocumentStore, session_id: str, user_id: str) -> None:
    """
    참가자 제거 (상태 검사 없음). 세션이 이미 없으면 조용히 성공 처리.
    아무도 남지 않은 pending 세션은 시작할 사람이 없으므로 삭제합니다.
    """
    removed = await store.remove_from_array_field(SESSIONS, session_id, "participants", user_id)
    if not removed:
        return

    logger.info("User %s left session %s", user_id, session_id)

    await store.delete_document(
        SESSIONS,
        session_id,
        expect={"status": SessionStatus.PENDING.value, "participants": []},
    )


async def cancel_session(store: DocumentStore, session_id: str) -> None:
    """
    pending 세션 삭제. 'cancelled' 상태를 남기지 않고 문서 자체가 사라집니다.
    """
    deleted = await store.delete_document(
        SESSIONS,
        session_id,
        expect={"status": SessionStatus.PENDING.value},
    )
    if not deleted:
        session = await _require_session(store, session_id)
        raise InvalidSessionState("cancel", session.status.value)
    logger.info("Session %s cancelled", session_id)


async def end_session(
    store: DocumentStore,
    session_id: str,
    outcome: SessionOutcome = SessionOutcome.SUCCESSFUL,
    fail_reason: Optional[str] = None,
) -> bool:
    """
    active -> ended. status / end_time / outcome / fail_reason 을 한 번의 update로 기록.

    이미 ended면 아무것도 하지 않고 False (먼저 도착한 종료 결과가 유지됨).
    pending 세션은 InvalidSessionState.
    """
    outcome = SessionOutcome(outcome)
    fields = {
        "status": SessionStatus.ENDED.value,
        "end_time": server_timestamp(),
        "outcome": outcome.value,
        "fail_reason": (fail_reason or None) if outcome is SessionOutcome.FAILED else None,
    }

    ended = await store.update_document(
        SESSIONS,
        session_id,
        fields,
        expect={"status": SessionStatus.ACTIVE.value},
    )
    if ended:
        logger.info("Session %s ended: %s %s", session_id, outcome.value, fields["fail_reason"] or "")
        return True

    session = await _require_session(store, session_id)
    if session.status is SessionStatus.ENDED:
        logger.debug("Session %s already ended, ignoring", session_id)
        return False
    raise InvalidSessionState("end", session.status.value)


async def terminate_session(store: DocumentStore, session_id: str, reason: str) -> bool:
    """catastrophic 위반으로 인한 즉시 실패 처리"""
    return await end_session(store, session_id, SessionOutcome.FAILED, reason)


# ---------- VIOLATIONS ----------

async def add_violation(
    store: DocumentStore,
    session_id: str,
    user_id: str,
    type: str,
    duration_seconds: int,
    *,
    only_active: bool = False,
) -> ViolationResult:
    """
    위반 1건 기록 후 분류 결과 반환.
    only_active=True면 active 세션에만 기록하고, 아니면 InvalidSessionState.
    """
    category = classify(duration_seconds)
    violation = Violation(
        user_id=user_id,
        timestamp=_utcnow_iso(),
        type=type,
        duration_seconds=duration_seconds,
        category=category,
    )

    # 전체 배열 덮어쓰기 금지: 다른 참가자의 위반과 동시에 들어와도 둘 다 남아야 함
    appended = await store.append_to_array_field(
        SESSIONS,
        session_id,
        "violations",
        violation.model_dump(),
        expect={"status": SessionStatus.ACTIVE.value} if only_active else None,
    )
    if not appended:
        session = await _require_session(store, session_id)
        raise InvalidSessionState("record a violation on", session.status.value)

    catastrophic = category is ViolationCategory.CATASTROPHIC
    if catastrophic:
        logger.warning("Catastrophic violation by %s in session %s (%ss)", user_id, session_id, duration_seconds)
    return ViolationResult(category=category, is_catastrophic=catastrophic)
