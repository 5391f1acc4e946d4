import pytest

from studyroom.core.errors import RoomCodeExhausted
from studyroom.crud.room_codes import SESSIONS, generate_room_code, random_room_code

pytestmark = pytest.mark.anyio


def sequence(*values):
    it = iter(values)
    return lambda _upper: next(it)


def test_random_room_code_keeps_leading_zeros():
    assert random_room_code(lambda _upper: 42) == "000042"
    assert random_room_code(lambda _upper: 999_999) == "999999"


def test_random_room_code_is_six_digits():
    for _ in range(200):
        code = random_room_code()
        assert len(code) == 6 and code.isdigit()


async def test_generate_skips_codes_reserved_by_live_sessions(store):
    for n in range(9):
        status = "pending" if n % 2 else "active"
        store.seed(SESSIONS, f"s{n}", {"room_code": f"{n:06d}", "status": status})

    code = await generate_room_code(store, max_retries=10, randbelow=sequence(*range(10)))

    assert code == "000009"


async def test_generate_reuses_codes_of_ended_sessions(store):
    store.seed(SESSIONS, "old", {"room_code": "000007", "status": "ended"})

    code = await generate_room_code(store, randbelow=sequence(7))

    assert code == "000007"


class SaturatedStore:
    """Every code is already taken by a live session."""

    def __init__(self):
        self.queries = 0

    async def query(self, collection, filters, sort=None, limit=None):
        self.queries += 1
        return [{"_id": "taken", "room_code": filters["room_code"], "status": "active"}]


async def test_generate_raises_when_codespace_is_exhausted():
    saturated = SaturatedStore()

    with pytest.raises(RoomCodeExhausted):
        await generate_room_code(saturated, max_retries=10)

    assert saturated.queries == 10
