# backend/studyroom/crud/users.py

import logging
from datetime import datetime, timezone
from typing import Optional

from studyroom.core.errors import StoreUnavailable
from studyroom.core.scoring import total_violation_seconds
from studyroom.crud.room_codes import SESSIONS
from studyroom.crud.sessions import get_user_sessions
from studyroom.db.store import DocumentStore
from studyroom.models.session import SessionInDB, SessionOutcome, SessionStatus
from studyroom.models.user import UserProfileInDB

logger = logging.getLogger(__name__)

USERS = "users"


def _strip_or_none(v):
    if v is None:
        return None
    if not isinstance(v, str):
        return v
    s = v.strip()
    return s or None


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------- READ ----------

async def get_user(store: DocumentStore, user_id: str) -> Optional[UserProfileInDB]:
    doc = await store.get_document(USERS, user_id)
    return UserProfileInDB(**doc) if doc else None


async def get_user_by_email(store: DocumentStore, email: str) -> Optional[UserProfileInDB]:
    # ✅ 공백 방지
    email = _strip_or_none(email) or email

    docs = await store.query(USERS, {"email": email}, limit=1)
    return UserProfileInDB(**docs[0]) if docs else None


# ---------- CREATE ----------

async def create_user_profile(
    store: DocumentStore,
    user_id: str,
    *,
    username: str,
    email: str,
) -> UserProfileInDB:
    """
    가입 시 누적 통계 0으로 프로필 생성. 이미 있으면 기존 프로필 반환.
    """
    existing = await get_user(store, user_id)
    if existing:
        return existing

    profile = UserProfileInDB(
        _id=user_id,
        username=_strip_or_none(username) or username,
        email=_strip_or_none(email) or email,
        created_at=_now(),
    )
    await store.create_document(USERS, profile.model_dump(exclude={"id"}), doc_id=user_id)
    logger.info("Profile created for %s", user_id)
    return profile


# ---------- STATS ----------

async def update_user_stats(store: DocumentStore, user_id: str, session: SessionInDB) -> bool:
    """
    종료된 세션 결과를 유저 누적 통계에 1회만 반영합니다.

    - 성공: total_hours, violations, sessions_completed 모두 증가
    - 실패: violations만 증가

    stats_updated_for 에 $addToSet 으로 먼저 자리를 잡은 호출만 통계를 올리므로
    같은 유저에 대한 동시 호출이 겹쳐도 두 번 반영되지 않습니다.
    반영했으면 True, 이미 반영됐거나 대상이 아니면 False.
    """
    if session.status is not SessionStatus.ENDED or session.outcome is None:
        return False
    if user_id in session.stats_updated_for:
        return False

    if await get_user(store, user_id) is None:
        logger.warning("Skipping stats for %s: no profile", user_id)
        return False

    claimed = await store.append_to_array_field(SESSIONS, session.id, "stats_updated_for", user_id, unique=True)
    if not claimed:
        return False

    violation_seconds = total_violation_seconds(session.violations, user_id)
    if session.outcome is SessionOutcome.SUCCESSFUL:
        amounts = {
            "total_hours": session.duration / 60,
            "violations": violation_seconds,
            "sessions_completed": 1,
        }
    else:
        amounts = {"violations": violation_seconds}

    try:
        await store.increment_fields(USERS, user_id, amounts)
    except StoreUnavailable:
        # 통계 반영 실패 시 자리 반납 -> 재시도 가능
        await store.remove_from_array_field(SESSIONS, session.id, "stats_updated_for", user_id)
        raise

    logger.info("Stats updated for %s from session %s (%s)", user_id, session.id, session.outcome.value)
    return True


async def wipe_user_history(store: DocumentStore, user_id: str) -> int:
    """
    유저가 참여한 세션 문서를 모두 삭제하고 누적 통계를 0으로 초기화.
    삭제한 세션 수 반환.
    """
    sessions = await get_user_sessions(store, user_id)
    for s in sessions:
        await store.delete_document(SESSIONS, s.id)

    await store.update_document(
        USERS,
        user_id,
        {"total_hours": 0.0, "violations": 0, "sessions_completed": 0},
    )
    logger.info("Wiped %d sessions for %s", len(sessions), user_id)
    return len(sessions)
