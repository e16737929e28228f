from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from trade_admin.auth import Principal, Role, require_role
from trade_admin.config import settings
from trade_admin.dependencies import get_tour
from trade_admin.security.csrf import verify_csrf
from trade_admin.services.tour_service import Rect, Tour, resolve_placement

router = APIRouter(prefix='/dashboard/tour', tags=['tour'])
tour_access = require_role(Role.ADMIN, Role.STAFF)


def _safe_path(raw) -> str:
    path = str(raw or '').strip()
    if not path.startswith('/') or path.startswith('//'):
        return '/dashboard'
    return path


async def _current_path(request: Request) -> str:
    form = await request.form()
    return _safe_path(form.get('current_path'))


def _tour_response(tour: Tour, current_path: str) -> RedirectResponse:
    response = RedirectResponse(tour.navigation_target(current_path) or current_path, status_code=303)
    if tour.active:
        response.set_cookie(
            key=settings.tour_cookie_name,
            value=tour.encode(),
            httponly=False,
            secure=settings.session_cookie_secure,
            samesite='lax',
        )
    else:
        response.delete_cookie(settings.tour_cookie_name)
    return response


@router.post('/start')
async def tour_start(
    request: Request,
    _: Principal = Depends(tour_access),
    tour: Tour = Depends(get_tour),
    __: None = Depends(verify_csrf),
):
    tour.start()
    return _tour_response(tour, await _current_path(request))


@router.post('/next')
async def tour_next(
    request: Request,
    _: Principal = Depends(tour_access),
    tour: Tour = Depends(get_tour),
    __: None = Depends(verify_csrf),
):
    tour.next()
    return _tour_response(tour, await _current_path(request))


@router.post('/prev')
async def tour_prev(
    request: Request,
    _: Principal = Depends(tour_access),
    tour: Tour = Depends(get_tour),
    __: None = Depends(verify_csrf),
):
    tour.prev()
    return _tour_response(tour, await _current_path(request))


@router.post('/stop')
async def tour_stop(
    request: Request,
    _: Principal = Depends(tour_access),
    tour: Tour = Depends(get_tour),
    __: None = Depends(verify_csrf),
):
    tour.stop()
    return _tour_response(tour, await _current_path(request))


@router.get('/layout')
def tour_layout(
    top: float = Query(...),
    left: float = Query(...),
    width: float = Query(..., ge=0),
    height: float = Query(..., ge=0),
    viewport_width: float = Query(..., gt=0),
    viewport_height: float | None = Query(None, gt=0),
    _: Principal = Depends(tour_access),
    tour: Tour = Depends(get_tour),
):
    step = tour.current_step
    if step is None:
        raise HTTPException(status_code=404, detail='Tour is not active')
    placement = resolve_placement(
        Rect(top=top, left=left, width=width, height=height),
        viewport_width=viewport_width,
        viewport_height=viewport_height,
        side=step.side,
    )
    return {
        'step_index': tour.step_index,
        'step_count': len(tour.steps),
        'is_last_step': tour.is_last_step,
        'target_id': step.target_id,
        'title': step.title,
        'content': step.content,
        **placement,
    }
