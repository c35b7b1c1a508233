from fastapi import APIRouter, Request

router = APIRouter(prefix='/api', tags=['scheduler'])


@router.get('/scheduler/status')
def scheduler_status(request: Request) -> dict[str, object]:
    scheduler = request.app.state.scheduler
    return {
        'running': scheduler.running,
        'cycle_in_progress': scheduler.cycle_in_progress,
        'interval_s': scheduler.interval_s,
        'warmup_s': scheduler.warmup_s,
        'last_run': None if scheduler.last_run is None else scheduler.last_run.isoformat(),
        'last_error': scheduler.last_error,
        'last_cycle_duration_ms': scheduler.last_cycle_duration_ms,
        'last_probed_count': scheduler.last_probed_count,
        'successful_cycles': scheduler.successful_cycles,
        'failed_cycles': scheduler.failed_cycles,
        'skipped_cycles': scheduler.skipped_cycles,
        'consecutive_failures': scheduler.consecutive_failures,
    }


@router.post('/scheduler/run-once')
async def scheduler_run_once(request: Request) -> dict[str, object]:
    scheduler = request.app.state.scheduler
    count = await scheduler.run_once()
    return {'probed_count': count}
