import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from trade_admin.config import settings
from trade_admin.db import SessionLocal
from trade_admin.logging_setup import setup_logging
from trade_admin.routers import auth, dashboard, tour
from trade_admin.security.csrf import install_csrf_cookie_middleware
from trade_admin.security.headers import install_security_headers
from trade_admin.security.sessions import install_auth_session_middleware

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent
TEMPLATE_DIR = PACKAGE_DIR / 'templates'
STATIC_DIR = PACKAGE_DIR / 'static'


def _csrf_token(request: Request) -> str:
    return getattr(request.state, 'csrf_token', '')


def create_app(session_factory=SessionLocal) -> FastAPI:
    setup_logging(settings.log_level)

    app = FastAPI(title='Trade Admin Dashboard')
    app.state.templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    app.state.templates.env.globals['csrf_token'] = _csrf_token
    app.mount('/static', StaticFiles(directory=str(STATIC_DIR)), name='static')

    install_security_headers(app)
    install_auth_session_middleware(app, session_factory)
    install_csrf_cookie_middleware(app)

    app.include_router(auth.router)
    app.include_router(tour.router)
    app.include_router(dashboard.router)

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.exception('Unhandled error on %s %s', request.method, request.url.path)
        return PlainTextResponse('Internal Server Error', status_code=500)

    @app.get('/')
    def root():
        return RedirectResponse('/dashboard', status_code=303)

    @app.get('/robots.txt', response_class=PlainTextResponse)
    def robots_txt() -> str:
        return 'User-agent: *\nDisallow: /\n'

    @app.get('/health')
    def health() -> dict:
        return {'status': 'ok'}

    return app


app = create_app()
