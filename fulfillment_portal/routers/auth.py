from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_portal.config import settings
from fulfillment_portal.db import get_db
from fulfillment_portal.dependencies import get_client_ip
from fulfillment_portal.models import Principal as PrincipalModel
from fulfillment_portal.security.passwords import verify_password
from fulfillment_portal.security.sessions import create_web_session, revoke_web_session
from fulfillment_portal.services.history_service import log_auth_event

router = APIRouter(tags=['auth'])

INVALID_LOGIN = {'detail': 'Invalid username or password', 'code': 'invalid_login'}


@router.post('/login')
async def login_submit(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    username = str(form.get('username', '')).strip()
    password = str(form.get('password', ''))
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    principal = db.execute(select(PrincipalModel).where(PrincipalModel.username == username)).scalar_one_or_none()
    failure_reason = None
    if not principal:
        failure_reason = 'UNKNOWN_USERNAME'
    elif not principal.active:
        failure_reason = 'INACTIVE_PRINCIPAL'
    elif not verify_password(password, principal.password_hash):
        failure_reason = 'BAD_PASSWORD'

    if failure_reason:
        log_auth_event(
            db,
            attempted_username=username,
            success=False,
            failure_reason=failure_reason,
            principal_id=principal.id if principal else None,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        return JSONResponse(INVALID_LOGIN, status_code=401)

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
    db.commit()

    response = JSONResponse({'username': principal.username, 'role': principal.role.value})
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
def logout(request: Request, db: Session = Depends(get_db)):
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)
    db.commit()

    response = JSONResponse({'status': 'logged_out'})
    response.delete_cookie(settings.session_cookie_name)
    return response
