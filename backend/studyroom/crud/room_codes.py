# backend/studyroom/crud/room_codes.py

import logging
import random
from typing import Callable, Optional

from studyroom.core.errors import RoomCodeExhausted
from studyroom.db.store import DocumentStore
from studyroom.models.session import LIVE_STATUSES

logger = logging.getLogger(__name__)

SESSIONS = "sessions"
ROOM_CODE_SPACE = 1_000_000  # 000000 ~ 999999
DEFAULT_MAX_RETRIES = 10

_rng = random.SystemRandom()


def random_room_code(randbelow: Optional[Callable[[int], int]] = None) -> str:
    """
    0으로 시작하는 코드도 허용하는 6자리 숫자 문자열
    """
    n = (randbelow or _rng.randrange)(ROOM_CODE_SPACE)
    return f"{n:06d}"


async def is_room_code_taken(store: DocumentStore, code: str) -> bool:
    # pending / active 세션끼리만 충돌 검사 (ended 세션 코드는 재사용 가능)
    docs = await store.query(
        SESSIONS,
        {"room_code": code, "status": {"$in": LIVE_STATUSES}},
        limit=1,
    )
    return bool(docs)


async def generate_room_code(
    store: DocumentStore,
    max_retries: int = DEFAULT_MAX_RETRIES,
    randbelow: Optional[Callable[[int], int]] = None,
) -> str:
    """
    살아있는 세션과 겹치지 않는 방 코드 생성.
    충돌하면 최대 max_retries 번까지 다시 뽑고, 그래도 실패하면 RoomCodeExhausted.
    """
    for attempt in range(max_retries):
        code = random_room_code(randbelow)
        if not await is_room_code_taken(store, code):
            return code
        logger.debug("Room code collision (attempt %d/%d)", attempt + 1, max_retries)

    logger.warning("Room code generation exhausted after %d attempts", max_retries)
    raise RoomCodeExhausted()
