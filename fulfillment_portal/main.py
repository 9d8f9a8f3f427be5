import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from fulfillment_portal.config import settings
from fulfillment_portal.db import SessionLocal
from fulfillment_portal.routers import auth, public, staff
from fulfillment_portal.security.errors import install_error_handlers
from fulfillment_portal.security.headers import install_security_headers
from fulfillment_portal.security.sessions import install_auth_session_middleware

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='Order Fulfillment Portal')
app.state.session_factory = SessionLocal

install_auth_session_middleware(app)
install_security_headers(app)
install_error_handlers(app)

app.include_router(auth.router)
app.include_router(public.router)
app.include_router(staff.router)


@app.get('/healthz')
def healthz() -> dict:
    return {'status': 'ok'}


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
