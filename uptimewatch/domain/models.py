from datetime import UTC, datetime
from typing import Literal
from urllib.parse import urlsplit

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from uptimewatch.domain.history import HistoryRing

ACCEPTED_SCHEMES = ('http://', 'https://')
MAX_HOST_LABEL_LENGTH = 63

Outcome = Literal['online', 'offline']
TargetStatus = Literal['pending', 'online', 'offline']

# older dashboards post ``pingInterval``
INTERVAL_ALIASES = AliasChoices('interval', 'pingInterval')


def _require_scheme(value: str) -> str:
    if not value.startswith(ACCEPTED_SCHEMES):
        raise ValueError('URL must start with http:// or https://')
    try:
        host = urlsplit(value).hostname
    except ValueError as exc:
        raise ValueError(f'URL is malformed: {exc}') from exc
    if not host:
        raise ValueError('URL must include a host')
    labels = host.rstrip('.').split('.')
    if any(not label or len(label) > MAX_HOST_LABEL_LENGTH for label in labels):
        raise ValueError('URL host has an empty or over-long label')
    return value


class PollResult(BaseModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    outcome: Outcome
    response_time_ms: int = Field(ge=0)
    status_code: int = Field(default=0, ge=0)
    error: str | None = Field(default=None, max_length=512)


class TargetConfig(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=128)
    url: str = Field(min_length=1, max_length=2048)
    interval: int = Field(default=5, ge=1, validation_alias=INTERVAL_ALIASES)
    is_active: bool = True

    @field_validator('url')
    @classmethod
    def check_url_scheme(cls, value: str) -> str:
        return _require_scheme(value)


class TargetUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(default=None, min_length=1, max_length=128)
    url: str | None = Field(default=None, min_length=1, max_length=2048)
    interval: int | None = Field(default=None, ge=1, validation_alias=INTERVAL_ALIASES)
    is_active: bool | None = None

    @field_validator('url')
    @classmethod
    def check_url_scheme(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _require_scheme(value)

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class MonitoredTarget(TargetConfig):
    model_config = ConfigDict(str_strip_whitespace=True, arbitrary_types_allowed=True)

    target_id: str = Field(min_length=1, max_length=64)
    status: TargetStatus = 'pending'
    response_time_ms: int = Field(default=0, ge=0)
    last_ping: datetime | None = None
    next_ping_at: datetime | None = None
    total_pings: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    history: HistoryRing = Field(default_factory=HistoryRing)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator('history', mode='before')
    @classmethod
    def coerce_history(cls, value: object) -> HistoryRing:
        if isinstance(value, HistoryRing):
            return value
        return HistoryRing(PollResult.model_validate(item) for item in value)

    @field_serializer('history')
    def dump_history(self, history: HistoryRing) -> list[PollResult]:
        return history.to_list()

    @model_validator(mode='after')
    def check_counters(self) -> 'MonitoredTarget':
        if self.success_count > self.total_pings:
            raise ValueError('success_count cannot exceed total_pings')
        return self

    def is_due(self, now: datetime) -> bool:
        return self.is_active and (self.next_ping_at is None or self.next_ping_at <= now)


class TargetSummary(BaseModel):
    target_id: str
    name: str
    url: str
    interval: int = Field(ge=1)
    is_active: bool
    status: TargetStatus
    last_ping: datetime | None = None
    next_ping_at: datetime | None = None
    response_time_ms: int = Field(ge=0)
    uptime_percentage: float = Field(ge=0, le=100)
    total_pings: int = Field(ge=0)
    success_count: int = Field(ge=0)
    failed_pings: int = Field(ge=0)
    recent_history: list[PollResult]


class TargetStats(BaseModel):
    uptime_percentage: float = Field(ge=0, le=100)
    total_pings: int = Field(ge=0)
    successful_pings: int = Field(ge=0)
    failed_pings: int = Field(ge=0)
    avg_response_time_ms: int = Field(ge=0)
    recent_history: list[PollResult]


class WindowStats(BaseModel):
    window_hours: float = Field(gt=0)
    uptime_percentage: float = Field(ge=0, le=100)
    total_pings: int = Field(ge=0)
    successful_pings: int = Field(ge=0)
    failed_pings: int = Field(ge=0)
    avg_response_time_ms: int = Field(ge=0)
    history: list[PollResult]
