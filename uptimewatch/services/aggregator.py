import math
from datetime import datetime, timedelta

from uptimewatch.domain.models import (
    MonitoredTarget,
    PollResult,
    TargetStats,
    TargetSummary,
    WindowStats,
)
from uptimewatch.storage.repository import normalize_datetime

RECENT_HISTORY_DEFAULT = 20


def uptime_percentage(success_count: int, total_pings: int) -> float:
    if total_pings <= 0:
        return 0.0
    return round((success_count / total_pings) * 100, 2)


def _mean_response_time(results: list[PollResult]) -> int:
    if not results:
        return 0
    # half-up, not banker's rounding
    return math.floor(sum(result.response_time_ms for result in results) / len(results) + 0.5)


def record_poll(target: MonitoredTarget, result: PollResult, cycle_now: datetime) -> MonitoredTarget:
    """Fold one poll result into the target's live status, counters and history.

    ``next_ping_at`` is anchored to the cycle start, not to ``result.timestamp``,
    so slow probes do not drift the polling cadence.
    """
    target.last_ping = result.timestamp
    target.status = result.outcome
    target.response_time_ms = result.response_time_ms
    target.total_pings += 1
    if result.outcome == 'online':
        target.success_count += 1
    target.history.append(result)
    target.next_ping_at = cycle_now + timedelta(minutes=target.interval)
    return target


def window_stats(target: MonitoredTarget, window_hours: float, now: datetime) -> WindowStats:
    cutoff = normalize_datetime(now) - timedelta(hours=window_hours)
    relevant = [result for result in target.history if result.timestamp > cutoff]
    if not relevant:
        return WindowStats(
            window_hours=window_hours,
            uptime_percentage=uptime_percentage(target.success_count, target.total_pings),
            total_pings=0,
            successful_pings=0,
            failed_pings=0,
            avg_response_time_ms=0,
            history=[],
        )

    successful = sum(1 for result in relevant if result.outcome == 'online')
    return WindowStats(
        window_hours=window_hours,
        uptime_percentage=uptime_percentage(successful, len(relevant)),
        total_pings=len(relevant),
        successful_pings=successful,
        failed_pings=len(relevant) - successful,
        avg_response_time_ms=_mean_response_time(relevant),
        history=relevant,
    )


def target_stats(target: MonitoredTarget, recent: int = RECENT_HISTORY_DEFAULT) -> TargetStats:
    return TargetStats(
        uptime_percentage=uptime_percentage(target.success_count, target.total_pings),
        total_pings=target.total_pings,
        successful_pings=target.success_count,
        failed_pings=target.total_pings - target.success_count,
        avg_response_time_ms=_mean_response_time(target.history.to_list()),
        recent_history=target.history.recent(recent),
    )


def summarize_target(target: MonitoredTarget, recent: int = RECENT_HISTORY_DEFAULT) -> TargetSummary:
    return TargetSummary(
        target_id=target.target_id,
        name=target.name,
        url=target.url,
        interval=target.interval,
        is_active=target.is_active,
        status=target.status,
        last_ping=target.last_ping,
        next_ping_at=target.next_ping_at,
        response_time_ms=target.response_time_ms,
        uptime_percentage=uptime_percentage(target.success_count, target.total_pings),
        total_pings=target.total_pings,
        success_count=target.success_count,
        failed_pings=target.total_pings - target.success_count,
        recent_history=target.history.recent(recent),
    )
