# backend/studyroom/core/scoring.py

"""
위반 분류 + 세션 결과 판정 (순수 함수, I/O 없음)

- classify(): 이탈 시간(초) -> 심각도
- total_violation_seconds(): 유저별 누적 위반 시간
- is_successful(): 모든 참가자의 누적 위반이 5분 미만인지
- decide_outcome(): 세션 종료 시점의 outcome / fail_reason 결정
"""

from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple, Union, Mapping, Any

from studyroom.models.session import SessionInDB, SessionOutcome, Violation, ViolationCategory

MEDIUM_THRESHOLD_SECONDS = 30
LARGE_THRESHOLD_SECONDS = 120
# 단일 이탈 기준(catastrophic)과 유저별 누적 기준 모두 5분
MAX_VIOLATION_SECONDS = 300

ENDED_EARLY_REASON = "Session ended early"
VIOLATION_LIMIT_REASON = "Total violations exceeded 5 minute limit"

ViolationLike = Union[Violation, Mapping[str, Any]]


def classify(duration_seconds: int) -> ViolationCategory:
    if duration_seconds < 0:
        raise ValueError("duration_seconds must be >= 0")
    if duration_seconds < MEDIUM_THRESHOLD_SECONDS:
        return ViolationCategory.MINOR
    if duration_seconds < LARGE_THRESHOLD_SECONDS:
        return ViolationCategory.MEDIUM
    if duration_seconds < MAX_VIOLATION_SECONDS:
        return ViolationCategory.LARGE
    return ViolationCategory.CATASTROPHIC


def is_catastrophic(duration_seconds: int) -> bool:
    return classify(duration_seconds) is ViolationCategory.CATASTROPHIC


def _field(v: ViolationLike, name: str):
    # 스토어에서 읽은 dict와 Violation 모델 둘 다 허용
    if isinstance(v, Mapping):
        return v.get(name)
    return getattr(v, name)


def total_violation_seconds(violations: Iterable[ViolationLike], user_id: str) -> int:
    return sum(
        int(_field(v, "duration_seconds") or 0)
        for v in violations
        if _field(v, "user_id") == user_id
    )


def is_successful(violations: Iterable[ViolationLike], participants: Iterable[str]) -> bool:
    violations = list(violations)
    return all(
        total_violation_seconds(violations, participant_id) < MAX_VIOLATION_SECONDS
        for participant_id in participants
    )


def catastrophic_reason(user_id: str, duration_seconds: int) -> str:
    return f"Catastrophic violation by user {user_id} ({duration_seconds // 60} minutes away)"


def _ensure_aware_utc(dt: datetime) -> datetime:
    """
    Mongo에서 읽은 datetime은 naive(UTC)일 수 있으므로 tzinfo를 붙여서 비교.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def elapsed_seconds(start_time: Optional[datetime], now: datetime) -> int:
    """
    서버가 기록한 start_time 기준 경과 시간(초). 시계 오차로 음수가 나오면 0.
    """
    if start_time is None:
        return 0
    delta = (_ensure_aware_utc(now) - _ensure_aware_utc(start_time)).total_seconds()
    return max(0, int(delta))


def target_seconds(session: SessionInDB) -> int:
    return session.duration * 60


def is_duration_complete(session: SessionInDB, elapsed: int) -> bool:
    if session.is_marathon:
        return False
    return elapsed >= target_seconds(session)


def decide_outcome(
    session: SessionInDB,
    elapsed: int,
    *,
    voluntary: bool,
) -> Tuple[SessionOutcome, Optional[str]]:
    """
    세션 종료 시 outcome 결정.

    - 마라톤 세션을 직접 종료하면 항상 성공
    - 목표 시간 도달: 누적 위반이 모두 5분 미만이면 성공, 아니면 실패
    - 목표 시간 전에 직접 종료: 위반과 무관하게 실패

    catastrophic 종료는 여기서 다루지 않고 terminate 경로로 처리합니다.
    """
    if session.is_marathon:
        return SessionOutcome.SUCCESSFUL, None

    completed = is_duration_complete(session, elapsed)
    if not completed and voluntary:
        return SessionOutcome.FAILED, ENDED_EARLY_REASON

    if is_successful(session.violations, session.participants):
        return SessionOutcome.SUCCESSFUL, None
    return SessionOutcome.FAILED, VIOLATION_LIMIT_REASON
