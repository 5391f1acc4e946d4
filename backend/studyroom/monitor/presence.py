# backend/studyroom/monitor/presence.py

"""
앱 포그라운드/백그라운드 전환 이벤트 -> 위반 기록

OS 라이프사이클 API에 직접 의존하지 않고, 호스트 환경(모바일 클라이언트)이
(previous, new, timestamp) 이벤트를 넘겨주면 이탈 시간을 계산해서
분류 -> 기록 -> (catastrophic이면) 세션 종료까지 처리합니다.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from studyroom.core.config import settings
from studyroom.core.errors import InvalidSessionState
from studyroom.core.scoring import catastrophic_reason
from studyroom.crud import sessions as session_crud
from studyroom.db.store import DocumentStore
from studyroom.models.session import AppState, SessionStatus, ViolationCategory

logger = logging.getLogger(__name__)

VIOLATION_TYPE = "app-switch"


AWAY_STATES = (AppState.BACKGROUND, AppState.INACTIVE)


@dataclass
class PresenceReport:
    """복귀 시 기록된 위반 결과. 클라이언트 경고 표시에 사용."""
    seconds_away: int
    category: ViolationCategory
    is_catastrophic: bool
    terminated: bool = False
    reason: Optional[str] = None

    @property
    def should_warn(self) -> bool:
        # large 위반은 한 번 더 하면 실패할 수 있다는 경고 대상
        return self.category is ViolationCategory.LARGE


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class PresenceMonitor:
    """
    한 세션 안에서 한 참가자의 이탈을 추적합니다 (클라이언트 연결당 1개).
    """

    def __init__(
        self,
        store: DocumentStore,
        session_id: str,
        user_id: str,
        min_violation_seconds: Optional[int] = None,
    ):
        self.store = store
        self.session_id = session_id
        self.user_id = user_id
        self.min_violation_seconds = (
            settings.MIN_VIOLATION_SECONDS if min_violation_seconds is None else min_violation_seconds
        )
        self._away_since: Optional[datetime] = None

    @property
    def is_away(self) -> bool:
        return self._away_since is not None

    async def on_app_state_change(
        self,
        previous: AppState,
        new: AppState,
        timestamp: datetime,
    ) -> Optional[PresenceReport]:
        previous, new = AppState(previous), AppState(new)
        timestamp = _as_utc(timestamp)

        if previous is AppState.ACTIVE and new in AWAY_STATES:
            self._away_since = timestamp
            return None

        if previous in AWAY_STATES and new is AppState.ACTIVE:
            away_since, self._away_since = self._away_since, None
            if away_since is None:
                return None
            seconds_away = max(0, int((timestamp - away_since).total_seconds()))
            return await self._record_absence(seconds_away)

        return None

    async def _record_absence(self, seconds_away: int) -> Optional[PresenceReport]:
        if seconds_away < self.min_violation_seconds:
            return None

        session = await session_crud.get_session(self.store, self.session_id)
        if session is None or session.status is not SessionStatus.ACTIVE:
            # 로비 대기 중이거나 이미 끝난 세션은 기록하지 않음
            return None

        try:
            result = await session_crud.add_violation(
                self.store,
                self.session_id,
                self.user_id,
                VIOLATION_TYPE,
                seconds_away,
                only_active=True,
            )
        except InvalidSessionState:
            # 조회 직후 다른 경로로 세션이 끝남
            return None
        report = PresenceReport(
            seconds_away=seconds_away,
            category=result.category,
            is_catastrophic=result.is_catastrophic,
        )

        if result.is_catastrophic:
            report.reason = catastrophic_reason(self.user_id, seconds_away)
            # 다른 참가자가 먼저 종료시켰으면 False (먼저 도착한 사유 유지)
            report.terminated = await session_crud.terminate_session(self.store, self.session_id, report.reason)

        return report
