# 파일 위치: backend/studyroom/schemas/session.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from studyroom.models.session import AppState, SessionOutcome, SessionStatus, Violation, ViolationCategory
from studyroom.schemas.common import _strip_and_reject_blank, _strip_to_none

# --- API 요청(Request) 스키마 ---

class SessionCreate(BaseModel):
    """
    [요청] POST /sessions
    호스트가 새 스터디 세션(로비)을 만들 때 보내는 데이터입니다.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    participant_ids: List[str] = Field(default_factory=list)
    duration: int = Field(0, ge=0)  # 분 단위
    is_marathon: bool = False

    @field_validator("participant_ids")
    @classmethod
    def drop_blank_ids(cls, v: List[str]) -> List[str]:
        cleaned = [_strip_to_none(x) for x in v]
        return [x for x in cleaned if x]

    @model_validator(mode="after")
    def require_duration_unless_marathon(self):
        if not self.is_marathon and self.duration <= 0:
            raise ValueError("duration must be > 0 unless is_marathon is set")
        return self


class SessionJoin(BaseModel):
    """
    [요청] POST /sessions/join
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    room_code: str = Field(..., pattern=r"^\d{6}$")


class SessionTerminate(BaseModel):
    """
    [요청] POST /sessions/{session_id}/terminate
    catastrophic 위반 감지 시 참가자 클라이언트가 호출합니다.
    """
    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        return _strip_and_reject_blank(v, "reason")


class ViolationCreate(BaseModel):
    """
    [요청] POST /sessions/{session_id}/violations
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: str = "app-switch"
    duration_seconds: int = Field(..., ge=0)


class AppStateEvent(BaseModel):
    """
    [WS 수신] /sessions/{session_id}/live
    클라이언트 앱 상태 전환 이벤트. timestamp는 전환이 일어난 기기 시간입니다.
    """
    previous: AppState
    state: AppState
    timestamp: datetime


# --- API 응답(Response) 스키마 ---

class SessionCreated(BaseModel):
    id: str
    room_code: str


class ViolationResult(BaseModel):
    """
    위반 기록 결과. is_catastrophic이면 호출자가 terminate를 결정합니다.
    """
    category: ViolationCategory
    is_catastrophic: bool


class SessionRead(BaseModel):
    """
    [응답] 세션 정보를 클라이언트에게 반환할 때의 데이터 구조입니다.
    """
    id: str
    host_id: str
    participants: List[str]
    status: SessionStatus
    duration: int
    is_marathon: bool
    violations: List[Violation]
    created_at: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    room_code: str
    outcome: Optional[SessionOutcome] = None
    fail_reason: Optional[str] = None
    stats_updated_for: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
