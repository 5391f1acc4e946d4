from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from studyroom.core.security import decode_access_token
from studyroom.db import mongo
from studyroom.db.store import DocumentStore

# 토큰 발급은 인증 서비스 담당. 여기서는 검증만 합니다.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def get_store() -> DocumentStore:
    """
    요청마다 주입되는 DocumentStore. 테스트에서는 dependency_overrides로 교체합니다.
    """
    return mongo.get_store()


def resolve_user_id(token: str) -> Optional[str]:
    """
    JWT 토큰을 검증하고 user_id (sub)를 반환합니다. 실패하면 None.
    """
    try:
        return decode_access_token(token)
    except JWTError:
        return None


async def get_current_user_id(token: str = Depends(oauth2_scheme)) -> str:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = resolve_user_id(token)
    if not user_id:
        raise credentials_exception
    return user_id
