"""Tests for the timer lifecycle service."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from timetrack.errors import ConflictError, NotFoundError, NotRunningError, ValidationError
from timetrack.models import Project, Task, TimeEntry, User
from timetrack.schemas import TimeEntryUpdate
from timetrack.timers import TimerService, elapsed_seconds

T0 = datetime(2024, 3, 4, 9, 0, 0)


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(db_session, notifier, clock):
    return TimerService(db_session, notifier, clock=clock)


@pytest.fixture
def project(db_session, user):
    record = Project(user_id=user.id, name="Website")
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def task(db_session, user, project):
    record = Task(user_id=user.id, project_id=project.id, name="Design", hourly_rate=50.0)
    db_session.add(record)
    db_session.commit()
    return record


def test_elapsed_seconds_floors():
    assert elapsed_seconds(T0, T0 + timedelta(seconds=1, milliseconds=999)) == 1
    assert elapsed_seconds(T0, T0 - timedelta(seconds=5)) == -5


class TestStart:
    """Starting timers."""

    def test_start_snapshots_rate(self, service, user, project, task, notifier) -> None:
        entry = service.start(user, project_id=project.id, task_id=task.id, description="Mockups")

        assert entry.is_running is True
        assert entry.start_time == T0
        assert entry.end_time is None
        assert entry.duration is None
        assert entry.hourly_rate_snapshot == 50.0
        assert notifier.names() == ["time-entry-started"]
        assert notifier.events[0][0] == f"user-{user.id}"

    def test_second_start_conflicts(self, service, user) -> None:
        service.start(user)

        with pytest.raises(ConflictError):
            service.start(user)

    def test_start_after_stop(self, service, user, clock) -> None:
        first = service.start(user)
        clock.advance(60)
        service.stop(user, first.id)

        second = service.start(user)
        assert second.is_running is True

    def test_foreign_project_is_not_found(self, service, db_session, user) -> None:
        other = User(name="Bob", email="bob@example.com", password_hash="x")
        db_session.add(other)
        db_session.commit()
        foreign = Project(user_id=other.id, name="Theirs")
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(NotFoundError):
            service.start(user, project_id=foreign.id)

    def test_database_rejects_two_running_entries(self, db_session, user) -> None:
        db_session.add(TimeEntry(user_id=user.id, start_time=T0, is_running=True))
        db_session.commit()

        db_session.add(TimeEntry(user_id=user.id, start_time=T0, is_running=True))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_racing_start_maps_to_conflict(self, service, db_session, user, clock, monkeypatch) -> None:
        first = service.start(user)
        # Simulate a second request that checked before the first one committed.
        monkeypatch.setattr(service, "current", lambda user: None)

        with pytest.raises(ConflictError):
            service.start(user)

        running = db_session.execute(
            select(TimeEntry).where(TimeEntry.user_id == user.id, TimeEntry.is_running.is_(True))
        ).scalars().all()
        assert [entry.id for entry in running] == [first.id]
        clock.advance(60)
        assert service.stop(user, first.id).duration == 60

    def test_rate_snapshot_survives_rate_changes(self, service, db_session, user, task, clock) -> None:
        entry = service.start(user, task_id=task.id)
        task.hourly_rate = 99.0
        user.default_hourly_rate = 5.0
        db_session.commit()
        clock.advance(60)

        stopped = service.stop(user, entry.id)
        assert stopped.hourly_rate_snapshot == 50.0


class TestStop:
    """Stopping timers."""

    def test_stop_uses_clock(self, service, user, clock, notifier) -> None:
        entry = service.start(user)
        clock.advance(3600)

        stopped = service.stop(user, entry.id)

        assert stopped.is_running is False
        assert stopped.end_time == T0 + timedelta(hours=1)
        assert stopped.duration == 3600
        assert notifier.names() == ["time-entry-started", "time-entry-stopped"]

    def test_stop_with_explicit_end_time(self, service, user) -> None:
        entry = service.start(user)
        end = (T0 + timedelta(seconds=90)).replace(tzinfo=timezone.utc)

        stopped = service.stop(user, entry.id, end_time=end)

        assert stopped.duration == 90
        assert stopped.end_time == T0 + timedelta(seconds=90)

    def test_end_before_start_is_kept(self, service, user) -> None:
        entry = service.start(user)

        stopped = service.stop(user, entry.id, end_time=T0 - timedelta(seconds=30))

        assert stopped.duration == -30

    def test_stop_twice(self, service, user, clock) -> None:
        entry = service.start(user)
        clock.advance(10)
        service.stop(user, entry.id)

        with pytest.raises(NotRunningError):
            service.stop(user, entry.id)

    def test_stop_unknown_entry(self, service, user) -> None:
        with pytest.raises(NotFoundError):
            service.stop(user, "missing")


class TestCreate:
    """Manual entries."""

    def test_create_one_second_entry(self, service, user) -> None:
        entry = service.create(user, start_time=T0, end_time=T0 + timedelta(seconds=1))

        assert entry.duration == 1
        assert entry.is_running is False
        assert entry.hourly_rate_snapshot == 20.0

    @pytest.mark.parametrize("offset", [0, -60])
    def test_create_rejects_empty_window(self, service, user, offset) -> None:
        with pytest.raises(ValidationError):
            service.create(user, start_time=T0, end_time=T0 + timedelta(seconds=offset))

    def test_create_does_not_touch_running_timer(self, service, user) -> None:
        running = service.start(user)
        service.create(user, start_time=T0 - timedelta(hours=2), end_time=T0 - timedelta(hours=1))

        assert service.current(user).id == running.id


class TestUpdate:
    """Editing entries."""

    def test_hours_sets_end_and_duration(self, service, user) -> None:
        entry = service.create(user, start_time=T0, end_time=T0 + timedelta(minutes=5))

        updated = service.update(user, entry.id, TimeEntryUpdate(hours=1.5))

        assert updated.end_time == T0 + timedelta(minutes=90)
        assert updated.duration == 5400

    @pytest.mark.parametrize("hours", [0, -1, 24.5])
    def test_hours_out_of_range(self, service, user, hours) -> None:
        entry = service.create(user, start_time=T0, end_time=T0 + timedelta(minutes=5))

        with pytest.raises(ValidationError):
            service.update(user, entry.id, TimeEntryUpdate(hours=hours))

    def test_hours_on_running_entry(self, service, user) -> None:
        entry = service.start(user)

        with pytest.raises(ValidationError):
            service.update(user, entry.id, TimeEntryUpdate(hours=1))

    def test_end_time_on_running_entry(self, service, db_session, user) -> None:
        entry = service.start(user)

        with pytest.raises(ValidationError):
            service.update(user, entry.id, TimeEntryUpdate(end_time=T0 + timedelta(hours=1)))

        db_session.refresh(entry)
        assert entry.is_running is True
        assert entry.end_time is None
        assert entry.duration is None

    def test_new_times_recompute_duration(self, service, user) -> None:
        entry = service.create(user, start_time=T0, end_time=T0 + timedelta(hours=1))

        updated = service.update(user, entry.id, TimeEntryUpdate(start_time=T0 + timedelta(minutes=30)))

        assert updated.duration == 1800

    def test_end_before_start_rejected(self, service, user) -> None:
        entry = service.create(user, start_time=T0, end_time=T0 + timedelta(hours=1))

        with pytest.raises(ValidationError):
            service.update(user, entry.id, TimeEntryUpdate(end_time=T0 - timedelta(minutes=1)))

    def test_running_entry_start_edit_keeps_null_duration(self, service, user) -> None:
        entry = service.start(user)

        updated = service.update(user, entry.id, TimeEntryUpdate(start_time=T0 - timedelta(minutes=10)))

        assert updated.is_running is True
        assert updated.duration is None
        assert updated.start_time == T0 - timedelta(minutes=10)

    def test_update_keeps_rate_snapshot(self, service, user, project, task) -> None:
        entry = service.create(user, start_time=T0, end_time=T0 + timedelta(hours=1))

        updated = service.update(user, entry.id, TimeEntryUpdate(project_id=project.id, task_id=task.id))

        assert updated.task_id == task.id
        assert updated.hourly_rate_snapshot == 20.0

    def test_description_can_be_cleared(self, service, user, notifier) -> None:
        entry = service.create(user, start_time=T0, end_time=T0 + timedelta(hours=1), description="x")

        updated = service.update(user, entry.id, TimeEntryUpdate(description=None))

        assert updated.description is None
        assert notifier.names()[-1] == "time-entry-updated"


class TestListAndDelete:
    def test_list_paginates_newest_first(self, service, user) -> None:
        for hour in range(3):
            start = T0 + timedelta(hours=hour)
            service.create(user, start_time=start, end_time=start + timedelta(minutes=30))

        entries, pagination = service.list_entries(user, page=1, limit=2)

        assert [e.start_time for e in entries] == [T0 + timedelta(hours=2), T0 + timedelta(hours=1)]
        assert pagination.total == 3
        assert pagination.pages == 2

    def test_delete(self, service, user, notifier) -> None:
        entry = service.create(user, start_time=T0, end_time=T0 + timedelta(hours=1))

        service.delete(user, entry.id)

        assert service.list_entries(user)[1].total == 0
        assert notifier.events[-1][1:] == ("time-entry-deleted", {"id": entry.id})
