from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from jose import jwt

from studyroom.core.config import settings


def create_access_token(subject: Union[str, Any], expires_minutes: Optional[int] = None) -> str:
    """
    Access Token 생성. sub 클레임에 user_id를 담습니다.
    """
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    to_encode = {"exp": expire, "sub": str(subject), "type": "access"}
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """
    토큰을 검증하고 user_id(sub)를 반환합니다. access 타입이 아니면 None.
    JWTError는 호출자에게 그대로 전파됩니다.
    """
    payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type", "access") != "access":
        return None
    return payload.get("sub")
