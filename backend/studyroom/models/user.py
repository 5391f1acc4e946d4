# 파일 위치: backend/studyroom/models/user.py

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserProfileInDB(BaseModel):
    """
    MongoDB의 'users' 컬렉션에 저장되는 누적 프로필입니다.
    _id는 인증 서비스가 발급한 user_id를 그대로 사용합니다.
    """
    id: str = Field(..., alias="_id")
    username: str
    email: EmailStr

    # 성공한 세션만 누적
    total_hours: float = 0.0
    sessions_completed: int = 0
    # 성공/실패와 무관하게 누적되는 위반 시간 (초)
    violations: int = 0

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
    )
