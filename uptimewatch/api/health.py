from datetime import UTC, datetime

from fastapi import APIRouter, Request

router = APIRouter(prefix='/api', tags=['system'])


@router.get('/health')
def health(request: Request) -> dict[str, object]:
    app_state = request.app.state
    uptime_seconds = (datetime.now(UTC) - app_state.started_at).total_seconds()

    return {
        'status': 'healthy',
        'service': app_state.service_name,
        'version': app_state.version,
        'timestamp': datetime.now(UTC).isoformat(),
        'uptime_s': round(uptime_seconds, 3),
        'storage': app_state.storage_backend,
        'storage_path': app_state.storage_path_display,
        'last_repository_error': app_state.repository.get_last_error(),
    }


@router.get('/site-uptime')
def site_uptime(request: Request) -> dict[str, object]:
    started_at = request.app.state.site_started_at
    return {
        'uptime_s': int((datetime.now(UTC) - started_at).total_seconds()),
        'started_at': started_at.isoformat(),
    }
