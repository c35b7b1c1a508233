from datetime import UTC, datetime, timedelta

import pytest

from uptimewatch.domain.models import PollResult, TargetConfig, TargetUpdate
from uptimewatch.storage.repository import InMemoryRepository, RepositoryNotFoundError

T = datetime(2026, 7, 1, 0, 0, tzinfo=UTC)


def test_created_target_is_pending_and_immediately_due() -> None:
    repository = InMemoryRepository()

    target = repository.create_target(TargetConfig(name='api', url='https://a.example'), now=T)

    assert target.status == 'pending'
    assert target.next_ping_at == T
    assert target.created_at == T
    assert [due.target_id for due in repository.find_due_targets(T)] == [target.target_id]


def test_returned_targets_are_copies_until_persisted() -> None:
    repository = InMemoryRepository()
    target = repository.create_target(TargetConfig(name='api', url='https://a.example'), now=T)

    target.total_pings = 1
    target.history.append(
        PollResult(timestamp=T, outcome='offline', response_time_ms=5, status_code=0, error='x')
    )

    stored = repository.get_target(target.target_id)
    assert stored.total_pings == 0
    assert len(stored.history) == 0

    repository.persist(target)
    assert repository.get_target(target.target_id).total_pings == 1


def test_inactive_target_is_never_due_regardless_of_schedule() -> None:
    repository = InMemoryRepository()
    target = repository.create_target(
        TargetConfig(name='api', url='https://a.example', is_active=False),
        now=T - timedelta(days=30),
    )
    target.next_ping_at = None
    repository.persist(target)

    assert repository.find_due_targets(T) == []


def test_naive_now_is_treated_as_utc() -> None:
    repository = InMemoryRepository()
    repository.create_target(TargetConfig(name='api', url='https://a.example'), now=T)

    assert len(repository.find_due_targets(T.replace(tzinfo=None))) == 1


def test_update_ignores_unset_fields() -> None:
    repository = InMemoryRepository()
    target = repository.create_target(TargetConfig(name='api', url='https://a.example'), now=T)

    updated = repository.update_target(target.target_id, TargetUpdate(url='http://b.example'))

    assert updated.url == 'http://b.example'
    assert updated.name == 'api'
    assert updated.interval == 5


def test_toggle_and_counts() -> None:
    repository = InMemoryRepository()
    first = repository.create_target(TargetConfig(name='one', url='https://a.example'), now=T)
    repository.create_target(TargetConfig(name='two', url='https://b.example'), now=T)

    repository.toggle_active(first.target_id)

    assert repository.count_targets() == 2
    assert repository.count_active_targets() == 1
    assert repository.toggle_active('missing') is None


def test_persist_unknown_target_raises() -> None:
    repository = InMemoryRepository()
    target = repository.create_target(TargetConfig(name='api', url='https://a.example'), now=T)
    repository.delete_target(target.target_id)

    with pytest.raises(RepositoryNotFoundError):
        repository.persist(target)


def test_site_started_at_is_recorded_once() -> None:
    repository = InMemoryRepository()

    assert repository.site_started_at(T.replace(tzinfo=None)) == T
    assert repository.site_started_at(T + timedelta(hours=3)) == T
