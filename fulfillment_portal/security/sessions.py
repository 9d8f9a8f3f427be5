from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select

from fulfillment_portal.auth import Principal, Role
from fulfillment_portal.config import settings
from fulfillment_portal.models import Principal as PrincipalModel
from fulfillment_portal.models import WebSession
from fulfillment_portal.services.token_service import LINK_PATHS


AUTH_EXEMPT_PATHS = {'/login', '/robots.txt', '/healthz'}
# Token-gated deep links carry their own credential.
PUBLIC_PATH_PREFIXES = tuple(f'/{path}/' for path in LINK_PATHS.values())


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def is_public_path(path: str) -> bool:
    return path in AUTH_EXEMPT_PATHS or path.startswith(PUBLIC_PATH_PREFIXES)


def create_web_session(db, principal_id: int, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(48)
    web_session = WebSession(
        session_token=token,
        principal_id=principal_id,
        ip=ip,
        user_agent=user_agent,
        expires_at=_session_expiry(),
    )
    db.add(web_session)
    db.flush()
    return token


def revoke_web_session(db, token: str) -> None:
    session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def load_principal_from_token(db, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, PrincipalModel)
        .join(PrincipalModel, PrincipalModel.id == WebSession.principal_id)
        .where(WebSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    web_session, principal = row
    now = _now()
    if web_session.revoked_at is not None or web_session.expires_at <= now:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry()
    return Principal(
        id=principal.id,
        username=principal.username,
        role=Role(principal.role.value),
        active=principal.active,
    )


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        request.state.principal = None
        token = request.cookies.get(settings.session_cookie_name)
        if token:
            with request.app.state.session_factory() as db:
                request.state.principal = load_principal_from_token(db, token)
                db.commit()

        if not is_public_path(request.url.path) and request.state.principal is None:
            return JSONResponse({'detail': 'Not authenticated', 'code': 'not_authenticated'}, status_code=401)

        response = await call_next(request)
        return response
