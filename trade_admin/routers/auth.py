from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from trade_admin.config import settings
from trade_admin.db import get_db
from trade_admin.dependencies import get_client_ip, render
from trade_admin.models import Principal as PrincipalModel
from trade_admin.security.csrf import verify_csrf
from trade_admin.security.passwords import verify_password
from trade_admin.security.sessions import create_web_session, revoke_web_session
from trade_admin.services.audit_service import log_audit, log_auth_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=['auth'])

LOGIN_ERROR = 'Invalid username or password'


def _login_failed(request: Request, db: Session, *, username: str, reason: str, principal_id: int | None):
    log_auth_event(
        db,
        attempted_username=username,
        success=False,
        failure_reason=reason,
        principal_id=principal_id,
        ip=get_client_ip(request),
        user_agent=request.headers.get('user-agent'),
    )
    db.commit()
    return render(request, 'login.html', {'error': LOGIN_ERROR, 'username': username}, status_code=401)


@router.get('/login')
def login_page(request: Request):
    if getattr(request.state, 'principal', None):
        return RedirectResponse('/dashboard', status_code=303)
    return render(request, 'login.html', {'error': None, 'username': ''})


@router.post('/login')
async def login_submit(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    username = str(form.get('username', '')).strip()
    password = str(form.get('password', ''))
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    principal = db.execute(select(PrincipalModel).where(PrincipalModel.username == username)).scalar_one_or_none()
    if not principal:
        return _login_failed(request, db, username=username, reason='UNKNOWN_USERNAME', principal_id=None)
    if not principal.active:
        return _login_failed(request, db, username=username, reason='INACTIVE_PRINCIPAL', principal_id=principal.id)

    valid, new_hash = verify_password(password, principal.password_hash)
    if not valid:
        return _login_failed(request, db, username=username, reason='BAD_PASSWORD', principal_id=principal.id)
    if new_hash:
        principal.password_hash = new_hash
        logger.info('Rehashed password for principal %s', principal.id)

    token = create_web_session(db, principal.id, ip=ip, user_agent=user_agent)
    log_auth_event(
        db,
        attempted_username=username,
        success=True,
        failure_reason=None,
        principal_id=principal.id,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='AUTH_LOGIN',
        ip=ip,
        metadata={'username': username},
    )
    db.commit()

    response = RedirectResponse('/dashboard', status_code=303)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db), _: None = Depends(verify_csrf)):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_principal_id=principal.id if principal else None,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
        metadata={},
    )
    db.commit()

    response = RedirectResponse('/login', status_code=303)
    response.delete_cookie(settings.session_cookie_name)
    response.delete_cookie(settings.tour_cookie_name)
    return response
