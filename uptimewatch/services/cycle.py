import logging
from collections.abc import Callable
from datetime import UTC, datetime

from uptimewatch.domain.models import MonitoredTarget, PollResult
from uptimewatch.services.aggregator import record_poll, uptime_percentage
from uptimewatch.services.prober import describe_error
from uptimewatch.storage.repository import (
    Repository,
    RepositoryNotFoundError,
    normalize_datetime,
)

ProbeFn = Callable[[str], PollResult]

_logger = logging.getLogger('uptimewatch.cycle')


def _probe_safely(probe: ProbeFn, target: MonitoredTarget) -> PollResult:
    try:
        return probe(target.url)
    except Exception as exc:
        _logger.exception('probe_crashed', extra={'target_id': target.target_id})
        return PollResult(
            timestamp=datetime.now(UTC),
            outcome='offline',
            response_time_ms=0,
            status_code=0,
            error=describe_error(exc),
        )


def run_cycle(now: datetime, repository: Repository, probe: ProbeFn) -> list[MonitoredTarget]:
    """Poll every target due at ``now``, one after another, and persist each.

    Repository errors propagate: a failed due-set query aborts the cycle
    before any probe, and a failed ``persist`` stops the cycle with earlier
    targets already saved. Anything not persisted stays due for the next cycle.
    A target deleted mid-cycle is skipped. A probe that raises is recorded as
    an offline poll so one broken target cannot starve the ones after it.
    """
    now = normalize_datetime(now)
    due = repository.find_due_targets(now)
    if not due:
        _logger.info('cycle_idle')
        return []

    polled: list[MonitoredTarget] = []
    for target in due:
        result = _probe_safely(probe, target)
        record_poll(target, result, now)
        try:
            repository.persist(target)
        except RepositoryNotFoundError:
            # deleted while its probe was in flight
            _logger.warning('target_vanished', extra={'target_id': target.target_id})
            continue
        polled.append(target)
        _logger.info(
            'target_polled',
            extra={
                'target_id': target.target_id,
                'target_name': target.name,
                'url': target.url,
                'outcome': result.outcome,
                'response_time_ms': result.response_time_ms,
                'http_status': result.status_code,
                'uptime_pct': uptime_percentage(target.success_count, target.total_pings),
                'next_ping_at': target.next_ping_at.isoformat(),
                'error': result.error,
            },
        )
    return polled
