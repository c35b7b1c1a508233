import secrets
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from uptimewatch.domain.models import (
    MonitoredTarget,
    TargetConfig,
    TargetStats,
    TargetSummary,
    TargetUpdate,
    WindowStats,
)
from uptimewatch.services.aggregator import summarize_target, target_stats, window_stats

router = APIRouter(prefix='/api', tags=['services'])

MAX_WINDOW_HOURS = 720


def require_admin_secret(
    request: Request,
    x_admin_secret: str | None = Header(default=None),
) -> None:
    expected = request.app.state.admin_secret
    if not expected:
        return
    if x_admin_secret is None or not secrets.compare_digest(x_admin_secret, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid admin secret')


def _now(request: Request) -> datetime:
    clock = getattr(request.app.state, 'clock', None)
    if clock is None:
        return datetime.now(UTC)
    return clock()


def _get_or_404(request: Request, target_id: str) -> MonitoredTarget:
    target = request.app.state.repository.get_target(target_id)
    if target is None:
        raise HTTPException(status_code=404, detail='Service not found')
    return target


@router.get('/services', response_model=list[TargetSummary])
def list_services(request: Request) -> list[TargetSummary]:
    repository = request.app.state.repository
    return [summarize_target(target) for target in repository.list_targets()]


@router.post('/services', response_model=TargetSummary, status_code=status.HTTP_201_CREATED)
def create_service(payload: TargetConfig, request: Request) -> TargetSummary:
    repository = request.app.state.repository
    return summarize_target(repository.create_target(payload, _now(request)))


@router.get('/services/{target_id}', response_model=TargetSummary)
def get_service(target_id: str, request: Request) -> TargetSummary:
    return summarize_target(_get_or_404(request, target_id))


@router.put('/services/{target_id}', response_model=TargetSummary)
def update_service(target_id: str, payload: TargetUpdate, request: Request) -> TargetSummary:
    updated = request.app.state.repository.update_target(target_id, payload)
    if updated is None:
        raise HTTPException(status_code=404, detail='Service not found')
    return summarize_target(updated)


@router.delete('/services/{target_id}', dependencies=[Depends(require_admin_secret)])
def delete_service(target_id: str, request: Request) -> dict[str, str]:
    if not request.app.state.repository.delete_target(target_id):
        raise HTTPException(status_code=404, detail='Service not found')
    return {'message': 'Service deleted successfully'}


@router.patch('/services/{target_id}/toggle', response_model=TargetSummary)
def toggle_service(target_id: str, request: Request) -> TargetSummary:
    toggled = request.app.state.repository.toggle_active(target_id)
    if toggled is None:
        raise HTTPException(status_code=404, detail='Service not found')
    return summarize_target(toggled)


@router.get('/services/{target_id}/stats', response_model=TargetStats)
def service_stats(
    target_id: str,
    request: Request,
    recent: int = Query(default=20, ge=1, le=100),
) -> TargetStats:
    return target_stats(_get_or_404(request, target_id), recent=recent)


@router.get('/services/{target_id}/stats/window', response_model=WindowStats)
def service_window_stats(
    target_id: str,
    request: Request,
    hours: float = Query(default=24, gt=0, le=MAX_WINDOW_HOURS),
) -> WindowStats:
    return window_stats(_get_or_404(request, target_id), hours, _now(request))
