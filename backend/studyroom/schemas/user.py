# backend/studyroom/schemas/user.py

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

from studyroom.schemas.common import _strip_and_reject_blank


class ProfileCreate(BaseModel):
    """
    [요청] POST /users/me
    가입 직후 프로필 생성. 이미 있으면 기존 프로필을 그대로 반환합니다.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str
    email: EmailStr

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return _strip_and_reject_blank(v, "username")

    @field_validator("email", mode="before")
    @classmethod
    def validate_email_strip(cls, v):
        if isinstance(v, str):
            v = v.strip()
        # 빈문자면 EmailStr 검증 전에 명확히 차단
        if isinstance(v, str) and v == "":
            raise ValueError("email must not be blank")
        return v


class UserRead(BaseModel):
    id: str
    username: str
    email: EmailStr
    total_hours: float
    violations: int
    sessions_completed: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
