from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse

from trade_admin.config import settings
from trade_admin.services.tour_service import Tour


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_notices(request: Request) -> dict:
    params = request.query_params
    return {
        'notice': params.get('notice') or None,
        'error': params.get('error') or None,
    }


def redirect_with_notice(path: str, *, notice: str | None = None, error: str | None = None) -> RedirectResponse:
    params = {}
    if notice:
        params['notice'] = notice
    if error:
        params['error'] = error
    separator = '&' if '?' in path else '?'
    target = f'{path}{separator}{urlencode(params)}' if params else path
    return RedirectResponse(target, status_code=303)


def get_tour(request: Request) -> Tour:
    return Tour.decode(request.cookies.get(settings.tour_cookie_name))


def render(request: Request, template: str, context: dict, *, tour: Tour | None = None, status_code: int = 200):
    """Render a dashboard page; ``tour`` is optional and the overlay is skipped without it."""
    page = {
        'request': request,
        'principal': getattr(request.state, 'principal', None),
        'tour': tour,
        'tour_poll': {
            'interval_ms': settings.tour_poll_interval_ms,
            'max_attempts': settings.tour_poll_max_attempts,
        },
        **get_notices(request),
    }
    page.update(context)
    return request.app.state.templates.TemplateResponse(request, template, page, status_code=status_code)
