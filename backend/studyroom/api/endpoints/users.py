# backend/studyroom/api/endpoints/users.py

from fastapi import APIRouter, Depends, Query

from studyroom.api.deps import get_current_user_id, get_store
from studyroom.core.errors import UserNotFound
from studyroom.crud import users as users_crud
from studyroom.db.store import DocumentStore
from studyroom.models.user import UserProfileInDB
from studyroom.schemas.common import SuccessMessage
from studyroom.schemas.user import ProfileCreate, UserRead

router = APIRouter(prefix="/users", tags=["Users"])


def _to_user_read(user: UserProfileInDB) -> UserRead:
    return UserRead(**user.model_dump(by_alias=False))


@router.post("/me", response_model=UserRead)
async def create_my_profile(
    payload: ProfileCreate,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    user = await users_crud.create_user_profile(
        store,
        user_id,
        username=payload.username,
        email=payload.email,
    )
    return _to_user_read(user)


@router.get("/me", response_model=UserRead)
async def read_my_profile(
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    user = await users_crud.get_user(store, user_id)
    if user is None:
        raise UserNotFound()
    return _to_user_read(user)


@router.get("/lookup", response_model=UserRead)
async def lookup_user_by_email(
    email: str = Query(..., min_length=3),
    _: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    """친구를 세션에 초대할 때 이메일로 user_id를 찾습니다."""
    user = await users_crud.get_user_by_email(store, email)
    if user is None:
        raise UserNotFound()
    return _to_user_read(user)


@router.delete("/me/history", response_model=SuccessMessage)
async def wipe_my_history(
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    deleted = await users_crud.wipe_user_history(store, user_id)
    return SuccessMessage(message=f"Deleted {deleted} sessions")
