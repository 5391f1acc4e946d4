# backend/studyroom/api/endpoints/live.py

"""
세션 화면용 WebSocket

서버 -> 클라이언트
  {"type": "session", "session": {...} | null}   세션 스냅샷 (null이면 취소/삭제됨)
  {"type": "violation", ...}                     이탈 복귀 시 기록된 위반
  {"type": "error", "code": ..., "detail": ...}   store_unavailable이면 이후 스냅샷이 끊길 수 있음

클라이언트 -> 서버
  {"previous": "active", "state": "background", "timestamp": "..."}
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from studyroom.api.deps import get_store, resolve_user_id
from studyroom.api.endpoints.sessions import to_session_read
from studyroom.core.config import settings
from studyroom.core.errors import StudyRoomError
from studyroom.crud import sessions as session_crud
from studyroom.db.store import DocumentStore
from studyroom.models.session import SessionInDB
from studyroom.monitor.completion import SessionCompleter
from studyroom.monitor.presence import PresenceMonitor, PresenceReport
from studyroom.schemas.session import AppStateEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Live"])


def _snapshot_message(session: Optional[SessionInDB]) -> Dict[str, Any]:
    return {
        "type": "session",
        "session": to_session_read(session).model_dump(mode="json") if session else None,
    }


def _violation_message(report: PresenceReport) -> Dict[str, Any]:
    return {
        "type": "violation",
        "seconds_away": report.seconds_away,
        "category": report.category.value,
        "is_catastrophic": report.is_catastrophic,
        "terminated": report.terminated,
        "reason": report.reason,
        "warn": report.should_warn,
    }


def _error_message(code: str, detail: str) -> Dict[str, Any]:
    return {"type": "error", "code": code, "detail": detail}


async def _forward(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    # 송신은 이 task 하나만 담당 (메시지 순서 유지)
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


def _log_task_failure(name: str, session_id: str):
    def done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Live %s task for session %s failed: %r", name, session_id, exc)
    return done


@router.websocket("/sessions/{session_id}/live")
async def session_live(
    websocket: WebSocket,
    session_id: str,
    token: str = Query(...),
    store: DocumentStore = Depends(get_store),
):
    user_id = resolve_user_id(token)
    if not user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    session = await session_crud.get_session(store, session_id)
    if session is None or not session.has_participant(user_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    outbox: asyncio.Queue = asyncio.Queue()

    def report_error(e: StudyRoomError) -> None:
        outbox.put_nowait(_error_message(e.code, e.message))

    unsubscribe = session_crud.subscribe_to_session(
        store,
        session_id,
        lambda s: outbox.put_nowait(_snapshot_message(s)),
        on_error=report_error,
    )
    monitor = PresenceMonitor(store, session_id, user_id)
    completer = SessionCompleter(store, session_id)

    sender = asyncio.create_task(_forward(websocket, outbox))
    sender.add_done_callback(_log_task_failure("sender", session_id))
    # 목표 시간 도달 시 자동 완료. 연결이 끊기면 반드시 취소
    watcher = asyncio.create_task(completer.watch(settings.COMPLETION_POLL_SECONDS, on_error=report_error))
    watcher.add_done_callback(_log_task_failure("watcher", session_id))

    try:
        while True:
            try:
                payload = await websocket.receive_json()
            except ValueError as e:
                outbox.put_nowait(_error_message("invalid_event", f"Invalid JSON: {e}"))
                continue

            try:
                event = AppStateEvent.model_validate(payload)
            except ValidationError as e:
                outbox.put_nowait(_error_message("invalid_event", str(e)))
                continue

            try:
                report = await monitor.on_app_state_change(event.previous, event.state, event.timestamp)
            except StudyRoomError as e:
                logger.error("Presence event failed for %s in %s: %s", user_id, session_id, e)
                report_error(e)
                continue

            if report is not None:
                outbox.put_nowait(_violation_message(report))
    except WebSocketDisconnect:
        logger.info("User %s disconnected from session %s", user_id, session_id)
    finally:
        unsubscribe()
        watcher.cancel()
        sender.cancel()
