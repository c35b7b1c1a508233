from datetime import UTC, datetime

from fastapi import APIRouter, Request

router = APIRouter(prefix='/api', tags=['system'])


@router.get('/metrics')
def metrics(request: Request) -> dict[str, object]:
    app_state = request.app.state
    repository = app_state.repository
    scheduler = app_state.scheduler

    uptime_seconds = (datetime.now(UTC) - app_state.started_at).total_seconds()

    return {
        'service': app_state.service_name,
        'version': app_state.version,
        'uptime_s': round(uptime_seconds, 3),
        'targets_total': repository.count_targets(),
        'targets_active': repository.count_active_targets(),
        'scheduler': {
            'successful_cycles': scheduler.successful_cycles,
            'failed_cycles': scheduler.failed_cycles,
            'skipped_cycles': scheduler.skipped_cycles,
            'consecutive_failures': scheduler.consecutive_failures,
            'last_cycle_duration_ms': scheduler.last_cycle_duration_ms,
            'last_probed_count': scheduler.last_probed_count,
        },
    }
