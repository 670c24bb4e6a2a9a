"""FastAPI application entrypoint and HTTP controllers.

All endpoints live under the `/api` prefix (the service worker routes
anything containing `/api/` network-first). Controllers are intentionally
thin: they accept requests, delegate to services, and return JSON.
Every error response has the shape `{"error": "<message>"}` so clients
handle a single failure shape.

Endpoints implemented:
- /auth/register, /auth/login, /auth/me, /auth/logout
- /auth/change-password, /auth/forgot-password, /auth/reset-password
- /profile (GET/PUT)
- /service-requests (GET/POST)
- /admin/service-requests (GET), /admin/service-requests/{id}/status (PUT),
  /admin/service-requests/{id} (DELETE)
- /admin/users (GET/POST), /admin/users/{id} (DELETE),
  /admin/users/{id}/password (PUT), /admin/users/{id}/send-reset (POST)
- /config, /config/vonage, /config/smtp, /config/test-vonage, /config/test-smtp
- /sms/send, /sms/confirm-service, /sms/complete-service
- /email/confirm-service, /email/complete-service
- /health
"""

import json
import logging
import time
import uuid
from typing import Iterator

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models, repositories, services
from .auth import get_current_admin, get_current_user
from .config import SmtpConfig, VonageConfig, provider_store, settings
from .database import create_db_and_tables, get_session
from .schemas import (
    AdminCreateUserIn,
    AdminPasswordIn,
    ChangePasswordIn,
    CompleteServiceIn,
    ConfirmServiceIn,
    ForgotPasswordIn,
    LoginIn,
    ProfileIn,
    RegisterIn,
    ResetPasswordIn,
    ServiceRequestIn,
    SmsSendIn,
    SmtpConfigIn,
    StatusUpdateIn,
    VonageConfigIn,
)
from .utils import messages
from .utils.providers import ProviderError, ProviderNotConfigured, SmtpMailer, VonageGateway
from .utils.rate_limit import SlidingWindowLimiter

app = FastAPI(title="DroneGarden API")
router = APIRouter(prefix="/api")
logger = logging.getLogger("dronegarden.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)
_forgot_limiter = SlidingWindowLimiter(settings.FORGOT_PASSWORD_RATE_LIMIT, 3600)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

create_db_and_tables()

_LOGGED_PREFIXES = ("/api/sms", "/api/email", "/api/config")


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {"request_id": req_id, "path": request.url.path, "method": request.method, "duration_ms": elapsed_ms},
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    if request.url.path.startswith(_LOGGED_PREFIXES):
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg', 'invalid request')}" if field else first.get("msg", "invalid request")
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(ProviderNotConfigured)
async def provider_not_configured_handler(request: Request, exc: ProviderNotConfigured):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    return JSONResponse(status_code=400 if exc.rejected else 500, content={"error": str(exc)})


def get_sms_gateway() -> Iterator[VonageGateway]:
    """Vonage gateway for one request (400 if unconfigured); closed afterwards."""
    with VonageGateway(provider_store.load().vonage) as gateway:
        yield gateway


def get_mailer() -> SmtpMailer:
    return SmtpMailer(provider_store.load().smtp)


def _reload(db: Session, user: models.User) -> models.User:
    """Re-read the authenticated user inside the request session."""
    fresh = repositories.UserRepository(db).get(user.id)
    if not fresh:
        raise HTTPException(status_code=401, detail="user not found")
    return fresh


def _require(*pairs) -> None:
    if not all(value for value in pairs):
        raise HTTPException(status_code=400, detail="Missing required fields")


# ============ AUTH ============

@router.post('/auth/register', status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Create a client account and return it with a session token."""
    auth = services.AuthService(db)
    try:
        user = auth.register(payload.email, payload.password, name=payload.name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("user registered id=%s role=%s", user.id, user.role)
    return {'user': services.user_to_dict(user), 'token': auth.issue_token(user)}


@router.post('/auth/login')
def login(payload: LoginIn, db: Session = Depends(get_session)):
    """Authenticate and return the user with a signed JWT."""
    try:
        user, token = services.AuthService(db).authenticate(payload.email, payload.password)
    except PermissionError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return {'user': services.user_to_dict(user), 'token': token}


@router.get('/auth/me')
def me(user: models.User = Depends(get_current_user)):
    out = services.user_to_dict(user)
    out['is_admin'] = services.is_admin(user)
    return {'user': out}


@router.post('/auth/logout')
def logout():
    """Tokens are stateless; logout only exists so clients can drop theirs."""
    return {'success': True}


@router.post('/auth/change-password')
def change_password(payload: ChangePasswordIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    try:
        services.AuthService(db).change_password(_reload(db, user), payload.current_password, payload.new_password)
    except (PermissionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'success': True, 'message': 'Password updated'}


def _send_reset_email(db: Session, user: models.User) -> bool:
    """Issue a reset token for `user` and email the link; False if SMTP is unusable."""
    reset = services.PasswordResetService(db)
    token = reset.issue(user)
    subject, html = messages.password_reset_email(user.language, reset.reset_link(token))
    try:
        get_mailer().send(user.email, subject, html)
    except (ProviderNotConfigured, ProviderError) as exc:
        logger.warning("password reset email for user %s not sent: %s", user.id, exc)
        return False
    return True


@router.post('/auth/forgot-password')
def forgot_password(payload: ForgotPasswordIn, request: Request, db: Session = Depends(get_session)):
    """Email a reset link. The answer is identical whether or not the email exists."""
    client = request.client.host if request.client else "unknown"
    retry_after = _forgot_limiter.hit(f"{client}:{payload.email.strip().lower()}")
    if retry_after is not None:
        raise HTTPException(
            status_code=429,
            detail=f"too many reset requests; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )
    user = repositories.UserRepository(db).get_by_email(payload.email)
    if user:
        _send_reset_email(db, user)
    return {'success': True, 'message': 'If the account exists, a reset link has been sent'}


@router.post('/auth/reset-password')
def reset_password(payload: ResetPasswordIn, db: Session = Depends(get_session)):
    try:
        services.PasswordResetService(db).redeem(payload.token, payload.new_password)
    except (ValueError, LookupError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'success': True, 'message': 'Password has been reset'}


# ============ PROFILE ============

@router.get('/profile')
def get_profile(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.profile_to_dict(_reload(db, user))


@router.put('/profile')
def update_profile(payload: ProfileIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    updated = services.ProfileService(db).update(_reload(db, user), payload.model_dump())
    return {'success': True, 'profile': services.profile_to_dict(updated)}


# ============ SERVICE REQUESTS ============

@router.get('/service-requests')
def my_requests(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Requests booked by the authenticated client, newest first."""
    reqs = services.ServiceRequestService(db).list_for_user(user)
    return [services.request_to_dict(r) for r in reqs]


@router.post('/service-requests', status_code=201)
def create_request(payload: ServiceRequestIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    try:
        req = services.ServiceRequestService(db).create(user, payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("service request %s created by user %s (%s)", req.id, user.id, req.service)
    return {**services.request_to_dict(req), 'message': 'Service request created'}


@router.get('/admin/service-requests')
def all_requests(db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    return [services.request_to_dict(r) for r in services.ServiceRequestService(db).list_all()]


@router.put('/admin/service-requests/{request_id}/status')
def update_request_status(request_id: int, payload: StatusUpdateIn, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    try:
        req = services.ServiceRequestService(db).update_status(request_id, payload.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    logger.info("service request %s -> %s by admin %s", request_id, req.status, admin.id)
    return {'success': True, 'request': services.request_to_dict(req)}


@router.delete('/admin/service-requests/{request_id}')
def delete_request(request_id: int, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    try:
        services.ServiceRequestService(db).delete(request_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {'success': True, 'message': 'Service request deleted'}


# ============ ADMIN USERS ============

@router.get('/admin/users')
def list_users(db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    return [services.user_to_dict(u) for u in services.AdminUserService(db).list_users()]


@router.post('/admin/users', status_code=201)
def create_user(payload: AdminCreateUserIn, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    try:
        user = services.AdminUserService(db).create_user(payload.email, payload.password, payload.name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'success': True, 'user': services.user_to_dict(user), 'message': 'User created'}


@router.delete('/admin/users/{user_id}')
def delete_user(user_id: int, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    try:
        services.AdminUserService(db).delete_user(admin, user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {'success': True, 'message': 'User deleted'}


@router.put('/admin/users/{user_id}/password')
def admin_change_password(user_id: int, payload: AdminPasswordIn, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    try:
        services.AdminUserService(db).change_password(user_id, payload.new_password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {'success': True, 'message': 'Password updated'}


@router.post('/admin/users/{user_id}/send-reset')
def admin_send_reset(user_id: int, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    try:
        user = services.AdminUserService(db).get(user_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not _send_reset_email(db, user):
        raise HTTPException(status_code=500, detail='could not send the reset email')
    return {'success': True, 'message': f'Reset link sent to {user.email}'}


# ============ PROVIDER CONFIG ============

def _mask(value: str) -> str:
    return value[:4] + '****' if value else ''


@router.get('/config')
def get_config(admin: models.User = Depends(get_current_admin)):
    """Current provider config without secrets."""
    cfg = provider_store.load()
    return {
        'vonage': {'apiKey': _mask(cfg.vonage.api_key), 'fromNumber': cfg.vonage.from_number},
        'smtp': {'host': cfg.smtp.host, 'port': cfg.smtp.port, 'user': cfg.smtp.user, 'fromEmail': cfg.smtp.from_email},
        'status': {'vonage': cfg.vonage.configured, 'smtp': cfg.smtp.configured},
    }


@router.api_route('/config/vonage', methods=['POST', 'PUT'])
def save_vonage_config(payload: VonageConfigIn, admin: models.User = Depends(get_current_admin)):
    if not payload.api_key or not payload.api_secret:
        raise HTTPException(status_code=400, detail='API Key and API Secret are required')
    provider_store.update_vonage(VonageConfig(
        api_key=payload.api_key,
        api_secret=payload.api_secret,
        from_number=payload.from_number or 'DroneGarden',
    ))
    logger.info("vonage configuration updated by admin %s", admin.id)
    return {'success': True, 'message': 'Vonage configuration saved'}


@router.api_route('/config/smtp', methods=['POST', 'PUT'])
def save_smtp_config(payload: SmtpConfigIn, admin: models.User = Depends(get_current_admin)):
    if not payload.user or not payload.password:
        raise HTTPException(status_code=400, detail='SMTP user and password are required')
    provider_store.update_smtp(SmtpConfig(
        host=payload.host or 'smtp.gmail.com',
        port=payload.port or 587,
        user=payload.user,
        password=payload.password,
        from_email=payload.from_email or payload.user,
    ))
    logger.info("smtp configuration updated by admin %s", admin.id)
    return {'success': True, 'message': 'SMTP configuration saved'}


@router.post('/config/test-vonage')
def test_vonage(admin: models.User = Depends(get_current_admin), gateway: VonageGateway = Depends(get_sms_gateway)):
    return {'success': True, 'balance': gateway.get_balance()}


@router.post('/config/test-smtp')
def test_smtp(admin: models.User = Depends(get_current_admin), mailer: SmtpMailer = Depends(get_mailer)):
    mailer.verify()
    return {'success': True, 'message': 'SMTP connection successful'}


# ============ SMS / EMAIL ============

@router.post('/sms/send')
def send_sms(payload: SmsSendIn, admin: models.User = Depends(get_current_admin), gateway: VonageGateway = Depends(get_sms_gateway)):
    if not payload.to or not payload.message:
        raise HTTPException(status_code=400, detail='Missing required fields: to, message')
    message_id = gateway.send_sms(payload.to, payload.message)
    return {'success': True, 'messageId': message_id, 'to': payload.to}


@router.post('/sms/confirm-service')
def sms_confirm_service(payload: ConfirmServiceIn, admin: models.User = Depends(get_current_admin), gateway: VonageGateway = Depends(get_sms_gateway)):
    _require(payload.phone, payload.client_name, payload.service, payload.date, payload.time)
    text = messages.confirmation_sms(payload.language, payload.client_name, payload.service, payload.date, payload.time, payload.location)
    message_id = gateway.send_sms(payload.phone, text)
    logger.info("confirmation sms sent for %s", payload.client_name)
    return {'success': True, 'messageId': message_id}


@router.post('/sms/complete-service')
def sms_complete_service(payload: CompleteServiceIn, admin: models.User = Depends(get_current_admin), gateway: VonageGateway = Depends(get_sms_gateway)):
    _require(payload.phone, payload.client_name, payload.service)
    text = messages.completion_sms(payload.language, payload.client_name, payload.service)
    message_id = gateway.send_sms(payload.phone, text)
    logger.info("completion sms sent for %s", payload.client_name)
    return {'success': True, 'messageId': message_id}


@router.post('/email/confirm-service')
def email_confirm_service(payload: ConfirmServiceIn, admin: models.User = Depends(get_current_admin), mailer: SmtpMailer = Depends(get_mailer)):
    _require(payload.email, payload.client_name, payload.service, payload.date, payload.time)
    subject, html = messages.confirmation_email(
        payload.language, payload.client_name, payload.service, payload.date, payload.time, payload.location, payload.area
    )
    message_id = mailer.send(payload.email, subject, html)
    return {'success': True, 'messageId': message_id}


@router.post('/email/complete-service')
def email_complete_service(payload: CompleteServiceIn, admin: models.User = Depends(get_current_admin), mailer: SmtpMailer = Depends(get_mailer)):
    _require(payload.email, payload.client_name, payload.service)
    subject, html = messages.completion_email(payload.language, payload.client_name, payload.service)
    message_id = mailer.send(payload.email, subject, html)
    return {'success': True, 'messageId': message_id}


@router.get('/health')
def health():
    """Lightweight health check for uptime monitoring and connectivity probes."""
    return {'status': 'ok', 'service': 'DroneGarden API'}


app.include_router(router)
