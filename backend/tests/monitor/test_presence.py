import pytest
from datetime import timedelta

from studyroom.crud import sessions as session_crud
from studyroom.models.session import AppState, SessionOutcome, SessionStatus, ViolationCategory
from studyroom.monitor.presence import PresenceMonitor

pytestmark = pytest.mark.anyio


@pytest.fixture
async def active_session(store):
    session_id = await session_crud.create_session(store, "alice", ["bob"], 25)
    await session_crud.start_session(store, session_id)
    return session_id


async def away_for(monitor, clock, seconds, away_state=AppState.BACKGROUND):
    left = clock.now
    await monitor.on_app_state_change(AppState.ACTIVE, away_state, left)
    return await monitor.on_app_state_change(away_state, AppState.ACTIVE, left + timedelta(seconds=seconds))


async def test_short_absence_is_ignored(store, clock, active_session):
    monitor = PresenceMonitor(store, active_session, "bob", min_violation_seconds=5)

    assert await away_for(monitor, clock, 4) is None
    assert (await session_crud.get_session(store, active_session)).violations == []


async def test_absence_is_recorded_with_category(store, clock, active_session):
    monitor = PresenceMonitor(store, active_session, "bob", min_violation_seconds=5)

    report = await away_for(monitor, clock, 150, AppState.INACTIVE)

    assert report.seconds_away == 150
    assert report.category is ViolationCategory.LARGE
    assert report.should_warn is True
    assert report.terminated is False
    violation = (await session_crud.get_session(store, active_session)).violations[0]
    assert (violation.user_id, violation.duration_seconds, violation.type) == ("bob", 150, "app-switch")


async def test_catastrophic_absence_terminates_session(store, clock, active_session):
    monitor = PresenceMonitor(store, active_session, "bob")

    report = await away_for(monitor, clock, 310)

    assert report.is_catastrophic is True
    assert report.terminated is True
    session = await session_crud.get_session(store, active_session)
    assert session.status is SessionStatus.ENDED
    assert session.outcome is SessionOutcome.FAILED
    assert "bob" in session.fail_reason and "5 minutes" in session.fail_reason


async def test_second_catastrophe_keeps_first_reason(store, clock, active_session):
    alice = PresenceMonitor(store, active_session, "alice")
    bob = PresenceMonitor(store, active_session, "bob")

    await alice.on_app_state_change(AppState.ACTIVE, AppState.BACKGROUND, clock.now)
    await bob.on_app_state_change(AppState.ACTIVE, AppState.BACKGROUND, clock.now)
    first = await alice.on_app_state_change(AppState.BACKGROUND, AppState.ACTIVE, clock.now + timedelta(seconds=400))
    second = await bob.on_app_state_change(AppState.BACKGROUND, AppState.ACTIVE, clock.now + timedelta(seconds=900))

    assert first.terminated is True
    # session already ended, nothing recorded for bob
    assert second is None
    session = await session_crud.get_session(store, active_session)
    assert "alice" in session.fail_reason


async def test_absence_outside_active_session_is_not_recorded(store, clock):
    session_id = await session_crud.create_session(store, "alice", [], 25)
    monitor = PresenceMonitor(store, session_id, "alice")

    assert await away_for(monitor, clock, 60) is None
    assert (await session_crud.get_session(store, session_id)).violations == []


async def test_return_without_leaving_is_ignored(store, clock, active_session):
    monitor = PresenceMonitor(store, active_session, "bob")

    assert await monitor.on_app_state_change(AppState.BACKGROUND, AppState.ACTIVE, clock.now) is None
    assert monitor.is_away is False
