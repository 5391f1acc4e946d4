# 파일 위치: backend/studyroom/models/session.py

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


# 방 코드가 살아있는(재사용 불가) 상태
LIVE_STATUSES = [SessionStatus.PENDING.value, SessionStatus.ACTIVE.value]


class SessionOutcome(str, Enum):
    SUCCESSFUL = "successful"
    FAILED = "failed"


class ViolationCategory(str, Enum):
    """이탈 시간에 따른 위반 심각도"""
    MINOR = "minor"                # 30초 미만
    MEDIUM = "medium"              # 30초 ~ 2분
    LARGE = "large"                # 2분 ~ 5분
    CATASTROPHIC = "catastrophic"  # 5분 이상, 즉시 세션 실패


class AppState(str, Enum):
    """클라이언트 앱의 포그라운드/백그라운드 상태"""
    ACTIVE = "active"
    BACKGROUND = "background"
    INACTIVE = "inactive"


class Violation(BaseModel):
    """
    세션 중 감지된 이탈 1건. 세션 문서의 violations 배열에 append만 됩니다.
    """
    user_id: str
    timestamp: str  # ISO-8601, 감지 시점의 벽시계 시간
    type: str = "app-switch"
    duration_seconds: int = Field(..., ge=0)
    category: ViolationCategory

    model_config = ConfigDict(use_enum_values=True)


class SessionInDB(BaseModel):
    """
    MongoDB의 'sessions' 컬렉션에 저장되는 스터디 세션 문서입니다.
    created_at / start_time / end_time 은 서버(스토어)가 기록한 시간입니다.
    """
    id: str = Field(..., alias="_id")
    host_id: str
    participants: List[str] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.PENDING
    duration: int = 0  # 분 단위, 마라톤이면 0
    is_marathon: bool = False
    violations: List[Violation] = Field(default_factory=list)

    created_at: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    room_code: str
    outcome: Optional[SessionOutcome] = None
    fail_reason: Optional[str] = None

    # 통계 반영이 끝난 user_id 목록 (중복 반영 방지)
    stats_updated_for: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
    )

    def is_host(self, user_id: str) -> bool:
        return self.host_id == user_id

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants
