# backend/studyroom/monitor/completion.py

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from studyroom.core.errors import InvalidSessionState, SessionNotFound, StudyRoomError
from studyroom.core.scoring import decide_outcome, elapsed_seconds, is_duration_complete
from studyroom.crud import sessions as session_crud
from studyroom.db.store import DocumentStore
from studyroom.models.session import SessionInDB, SessionStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionCompleter:
    """
    세션 종료 경로(자동 완료 / 수동 종료)를 하나로 묶는 latch.

    어느 한쪽이 종료를 시작하면 다른 쪽은 end를 다시 호출하지 않습니다.
    종료 요청이 실패하면 latch를 풀어서 재시도할 수 있게 합니다.
    """

    def __init__(
        self,
        store: DocumentStore,
        session_id: str,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.session_id = session_id
        self.clock = clock
        self._completing = False

    @property
    def completing(self) -> bool:
        return self._completing

    async def check_auto_complete(self) -> bool:
        """
        목표 시간에 도달한 active 세션을 종료. 마라톤은 자동 완료하지 않음.
        """
        if self._completing:
            return False

        session = await session_crud.get_session(self.store, self.session_id)
        if session is None or session.status is not SessionStatus.ACTIVE:
            return False

        elapsed = elapsed_seconds(session.start_time, self.clock())
        if not is_duration_complete(session, elapsed):
            return False

        return await self._finish(session, elapsed, voluntary=False)

    async def end_manually(self) -> bool:
        """
        호스트의 종료 버튼. 목표 시간 전이면 'Session ended early'로 실패 처리.
        """
        if self._completing:
            return False

        session = await session_crud.get_session(self.store, self.session_id)
        if session is None:
            raise SessionNotFound("Session not found")

        elapsed = elapsed_seconds(session.start_time, self.clock())
        return await self._finish(session, elapsed, voluntary=True)

    async def _finish(self, session: SessionInDB, elapsed: int, *, voluntary: bool) -> bool:
        self._completing = True
        outcome, reason = decide_outcome(session, elapsed, voluntary=voluntary)
        try:
            return await session_crud.end_session(self.store, session.id, outcome, reason)
        except Exception:
            self._completing = False
            raise

    async def watch(
        self,
        interval: float = 1.0,
        on_error: Optional[Callable[[StudyRoomError], Any]] = None,
    ) -> None:
        """
        경과 시간을 주기적으로 확인하는 타이머 루프.
        세션이 끝나거나 사라지면 종료되고, 화면 이탈 시 호출자가 task를 cancel 해야 합니다.

        스토어 오류(StoreUnavailable 등)는 on_error로 넘기고 다음 주기에 다시 확인합니다.
        on_error가 없으면 그대로 raise.
        """
        while True:
            try:
                session: Optional[SessionInDB] = await session_crud.get_session(self.store, self.session_id)
                if session is None or session.status is SessionStatus.ENDED:
                    return
                if await self.check_auto_complete():
                    return
            except InvalidSessionState as e:
                logger.debug("Auto-complete skipped for %s: %s", self.session_id, e)
            except StudyRoomError as e:
                logger.error("Auto-complete check failed for %s: %s", self.session_id, e)
                if on_error is None:
                    raise
                on_error(e)
            await asyncio.sleep(interval)
