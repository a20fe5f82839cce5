"""HTTP route definitions for the TryLog identity service."""

from __future__ import annotations

import logging

import jwt
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from prometheus_client import Counter
from pydantic import BaseModel, EmailStr, Field

from ..domain.account import Account
from ..domain.contracts import CallerSession, ProfileUpdateInput
from ..domain.exceptions import (
    AccountStateError,
    AccountValidationError,
    NotAuthenticatedError,
    NotificationError,
)
from ..domain.service import AccountLifecycleService
from ..security.tokens import decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/users")

ACCOUNT_EVENTS = Counter(
    "trylog_identity_account_events_total",
    "Account lifecycle operations by outcome.",
    ["operation", "outcome"],
)


class AccountResponse(BaseModel):
    """Serialised representation of an `Account` aggregate."""

    account_id: str
    email: EmailStr
    full_name: str
    email_confirmed: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            account_id=account.account_id,
            email=account.email,
            full_name=account.full_name,
            email_confirmed=account.email_confirmed,
            created_at=account.created_at.isoformat(),
            updated_at=account.updated_at.isoformat(),
        )


class RegisterRequest(BaseModel):
    """Payload accepted when registering an account."""

    email: EmailStr
    password: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1, max_length=200)


class MessageResponse(BaseModel):
    status: int
    message: str


class CredentialsRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    result: str
    message: str


class ProfileUpdateRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ChangePasswordResponse(BaseModel):
    code: int
    description: str


class PasswordRequest(BaseModel):
    password: str


class ResetRequest(BaseModel):
    email: EmailStr


class DeactivateResponse(BaseModel):
    result: str


def get_service(request: Request) -> AccountLifecycleService:
    """Resolve the `AccountLifecycleService` stored on the FastAPI application state."""
    service: AccountLifecycleService = request.app.state.account_service
    return service


def get_session(authorization: str | None = Header(default=None)) -> CallerSession:
    """Build the caller session from an optional ``Authorization: Bearer`` header."""
    if not authorization:
        return CallerSession()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return CallerSession()
    try:
        claims = decode_access_token(token.strip())
    except jwt.PyJWTError as exc:
        logger.info("ignoring invalid bearer token: %s", exc)
        return CallerSession()
    return CallerSession(email=claims["sub"])


def require_session(session: CallerSession = Depends(get_session)) -> CallerSession:
    if not session.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


@router.post("", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    response: Response,
    payload: RegisterRequest,
    service: AccountLifecycleService = Depends(get_service),
) -> MessageResponse:
    """Register an account and send its activation email."""
    callback = str(request.url_for("activate_account"))
    try:
        result = service.register(payload.email, payload.password, payload.full_name, callback)
    except NotificationError as exc:
        raise _notification_unavailable(exc) from exc
    response.status_code = result.status
    ACCOUNT_EVENTS.labels("register", str(result.status)).inc()
    return MessageResponse(status=result.status, message=result.message)


@router.get("/activate", name="activate_account")
def activate_account(
    email: str = Query(...),
    code: str = Query(...),
    service: AccountLifecycleService = Depends(get_service),
) -> dict[str, bool]:
    """Confirm an account with the code sent by email."""
    activated = service.activate(email, code)
    ACCOUNT_EVENTS.labels("activate", "ok" if activated else "rejected").inc()
    if not activated:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="activation failed")
    return {"activated": True}


@router.post("/reactivate", status_code=status.HTTP_202_ACCEPTED)
def reactivate_account(
    request: Request,
    payload: CredentialsRequest,
    session: CallerSession = Depends(get_session),
    service: AccountLifecycleService = Depends(get_service),
) -> dict[str, bool]:
    """Resend the activation link to a deactivated account."""
    callback = str(request.url_for("activate_account"))
    try:
        accepted = service.send_reactivation_email(
            payload.email, payload.password, callback, session
        )
    except NotificationError as exc:
        raise _notification_unavailable(exc) from exc
    ACCOUNT_EVENTS.labels("reactivate", "ok" if accepted else "rejected").inc()
    return {"accepted": accepted}


@router.post("/login", response_model=LoginResponse)
def login(
    payload: CredentialsRequest,
    session: CallerSession = Depends(get_session),
    service: AccountLifecycleService = Depends(get_service),
) -> LoginResponse:
    """Exchange email and password for a bearer token."""
    result = service.login(payload.email, payload.password, session)
    ACCOUNT_EVENTS.labels("login", "ok" if result.succeeded else "failed").inc()
    if not result.succeeded:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=result.message)
    return LoginResponse(result=result.result, message=result.message)


@router.get("/me", response_model=AccountResponse)
def get_profile(
    session: CallerSession = Depends(require_session),
    service: AccountLifecycleService = Depends(get_service),
) -> AccountResponse:
    try:
        account = service.get(session)
    except (NotAuthenticatedError, AccountStateError) as exc:
        raise _unauthorized(exc) from exc
    return AccountResponse.from_domain(account)


@router.put("/me", status_code=status.HTTP_204_NO_CONTENT)
def update_profile(
    payload: ProfileUpdateRequest,
    session: CallerSession = Depends(require_session),
    service: AccountLifecycleService = Depends(get_service),
) -> Response:
    """Update the caller's profile."""
    try:
        updated = service.update(ProfileUpdateInput(full_name=payload.full_name), session)
    except (NotAuthenticatedError, AccountStateError) as exc:
        raise _unauthorized(exc) from exc
    except AccountValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if not updated:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="profile not updated")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/me/password", response_model=ChangePasswordResponse)
def change_password(
    response: Response,
    payload: ChangePasswordRequest,
    session: CallerSession = Depends(require_session),
    service: AccountLifecycleService = Depends(get_service),
) -> ChangePasswordResponse:
    """Change the caller's password."""
    try:
        result = service.change_password(payload.current_password, payload.new_password, session)
    except (NotAuthenticatedError, AccountStateError) as exc:
        raise _unauthorized(exc) from exc
    response.status_code = result.code
    ACCOUNT_EVENTS.labels("change_password", str(result.code)).inc()
    return ChangePasswordResponse(code=result.code, description=result.description)


@router.post("/me/deactivate", response_model=DeactivateResponse)
def deactivate_account(
    response: Response,
    payload: PasswordRequest,
    session: CallerSession = Depends(require_session),
    service: AccountLifecycleService = Depends(get_service),
) -> DeactivateResponse:
    """Soft-delete the caller's account; the client must discard its bearer token."""
    try:
        result = service.delete(payload.password, session)
    except (NotAuthenticatedError, AccountStateError) as exc:
        raise _unauthorized(exc) from exc
    if result is None:
        ACCOUNT_EVENTS.labels("deactivate", "rejected").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="wrong password")
    ACCOUNT_EVENTS.labels("deactivate", "ok").inc()
    if session.ended:
        response.headers["Clear-Site-Data"] = '"cookies", "storage"'
    return DeactivateResponse(result=result)


@router.post("/password-reset", status_code=status.HTTP_202_ACCEPTED)
def request_password_reset(
    request: Request,
    payload: ResetRequest,
    service: AccountLifecycleService = Depends(get_service),
) -> dict[str, str]:
    """Send a password reset link; the response does not reveal whether the email exists."""
    callback = str(request.url_for("confirm_password_reset"))
    try:
        sent = service.reset_password(payload.email, callback)
    except NotificationError as exc:
        raise _notification_unavailable(exc) from exc
    ACCOUNT_EVENTS.labels("password_reset", "sent" if sent else "unknown").inc()
    return {"status": "If the account exists a reset link has been sent."}


@router.get("/password-reset/confirm", name="confirm_password_reset")
def confirm_password_reset(
    account_id: str = Query(..., alias="id"),
    code: str = Query(...),
    service: AccountLifecycleService = Depends(get_service),
) -> dict[str, bool]:
    """Apply a password reset; the new password is sent by email."""
    try:
        confirmed = service.confirm_token_password_reset(account_id, code)
    except NotificationError as exc:
        raise _notification_unavailable(exc) from exc
    ACCOUNT_EVENTS.labels("password_reset_confirm", "ok" if confirmed else "rejected").inc()
    if not confirmed:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="reset failed")
    return {"reset": True}


def _unauthorized(exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=str(exc),
        headers={"WWW-Authenticate": "Bearer"},
    )


def _notification_unavailable(exc: NotificationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
