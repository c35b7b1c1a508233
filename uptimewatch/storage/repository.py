from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

from uptimewatch.domain.history import HISTORY_LIMIT, HistoryRing
from uptimewatch.domain.models import MonitoredTarget, TargetConfig, TargetUpdate


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryNotFoundError(RepositoryError):
    """Target does not exist."""


class RepositoryUnavailableError(RepositoryError):
    """Repository backend unavailable."""


class Repository(Protocol):
    def create_target(self, config: TargetConfig, now: datetime | None = None) -> MonitoredTarget:
        ...

    def list_targets(self) -> list[MonitoredTarget]:
        ...

    def get_target(self, target_id: str) -> MonitoredTarget | None:
        ...

    def update_target(self, target_id: str, update: TargetUpdate) -> MonitoredTarget | None:
        ...

    def toggle_active(self, target_id: str) -> MonitoredTarget | None:
        ...

    def delete_target(self, target_id: str) -> bool:
        ...

    def find_due_targets(self, now: datetime) -> list[MonitoredTarget]:
        ...

    def persist(self, target: MonitoredTarget) -> None:
        ...

    def count_targets(self) -> int:
        ...

    def count_active_targets(self) -> int:
        ...

    def site_started_at(self, now: datetime) -> datetime:
        ...

    def get_last_error(self) -> str | None:
        ...


def normalize_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def new_target(config: TargetConfig, now: datetime | None = None) -> MonitoredTarget:
    created = normalize_datetime(now) or datetime.now(UTC)
    return MonitoredTarget(
        target_id=uuid4().hex,
        next_ping_at=created,
        created_at=created,
        **config.model_dump(),
    )


def capped_copy(target: MonitoredTarget) -> MonitoredTarget:
    """Deep copy with history re-capped to ``HISTORY_LIMIT`` entries."""
    stored = target.model_copy(deep=True)
    if len(stored.history) > HISTORY_LIMIT or stored.history.capacity != HISTORY_LIMIT:
        stored.history = HistoryRing(stored.history.recent(HISTORY_LIMIT))
    return stored


class InMemoryRepository:
    def __init__(self) -> None:
        self._targets: dict[str, MonitoredTarget] = {}
        self._site_started_at: datetime | None = None

    def create_target(self, config: TargetConfig, now: datetime | None = None) -> MonitoredTarget:
        stored = new_target(config, now)
        self._targets[stored.target_id] = stored
        return stored.model_copy(deep=True)

    def list_targets(self) -> list[MonitoredTarget]:
        ordered = sorted(self._targets.values(), key=lambda item: item.created_at, reverse=True)
        return [target.model_copy(deep=True) for target in ordered]

    def get_target(self, target_id: str) -> MonitoredTarget | None:
        target = self._targets.get(target_id)
        if target is None:
            return None
        return target.model_copy(deep=True)

    def update_target(self, target_id: str, update: TargetUpdate) -> MonitoredTarget | None:
        target = self._targets.get(target_id)
        if target is None:
            return None
        updated = target.model_copy(update=update.changes(), deep=True)
        self._targets[target_id] = updated
        return updated.model_copy(deep=True)

    def toggle_active(self, target_id: str) -> MonitoredTarget | None:
        target = self._targets.get(target_id)
        if target is None:
            return None
        target.is_active = not target.is_active
        return target.model_copy(deep=True)

    def delete_target(self, target_id: str) -> bool:
        return self._targets.pop(target_id, None) is not None

    def find_due_targets(self, now: datetime) -> list[MonitoredTarget]:
        bound = normalize_datetime(now)
        return [
            target.model_copy(deep=True)
            for target in self._targets.values()
            if target.is_due(bound)
        ]

    def persist(self, target: MonitoredTarget) -> None:
        if target.target_id not in self._targets:
            raise RepositoryNotFoundError(f'Target {target.target_id} does not exist')
        self._targets[target.target_id] = capped_copy(target)

    def count_targets(self) -> int:
        return len(self._targets)

    def count_active_targets(self) -> int:
        return sum(1 for target in self._targets.values() if target.is_active)

    def site_started_at(self, now: datetime) -> datetime:
        if self._site_started_at is None:
            self._site_started_at = normalize_datetime(now)
        return self._site_started_at

    def get_last_error(self) -> str | None:
        return None
