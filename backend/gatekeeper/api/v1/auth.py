"""Authentication endpoints: registration, login and session lifecycle.

Endpoints:
- POST /auth/register: create an unverified account, email a verification link
- POST /auth/login: exchange email + password for a session token
- GET /auth/check: validate the bearer session (and extend its idle window)
- DELETE /auth/logout: revoke the bearer session

Security considerations:
- login: unknown email and wrong password both answer 401 after the same
  amount of hashing work; 403 is only revealed to a caller who knows the
  password
- logout: answers 204 whether or not the token was ever valid
"""

from fastapi import APIRouter, BackgroundTasks, Response, status
from pydantic import BaseModel, ConfigDict

from gatekeeper.api.deps import (
    Accounts,
    BearerToken,
    CurrentUserId,
    DbSession,
    Sessions,
    SettingsDep,
)
from gatekeeper.core.email import deliver_notification
from gatekeeper.core.responses import DataResponse

router = APIRouter()


# ===================================================================
# Request / response models
# ===================================================================


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: str
    password: str


class RegisteredUser(BaseModel):
    """Public view of a newly registered account.

    ``id`` is a string: 63-bit ids exceed the exact integer range of
    JavaScript clients.
    """

    id: str
    name: str
    email: str


class SessionToken(BaseModel):
    """Login result. The token is shown once and never again."""

    token: str


# ===================================================================
# POST /auth/register
# ===================================================================


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: DbSession,
    settings: SettingsDep,
    accounts: Accounts,
) -> DataResponse[RegisteredUser]:
    """Register a new account and send the verification email.

    The account cannot log in until the link in that email is opened.
    """
    account = await accounts.register(
        db, name=body.name, email=body.email, password=body.password
    )
    await db.commit()

    if account.notification is not None:
        background_tasks.add_task(
            deliver_notification, settings, account.notification
        )

    return DataResponse(
        data=RegisteredUser(
            id=str(account.user_id), name=account.name, email=account.email
        )
    )


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
async def login(
    body: LoginRequest,
    db: DbSession,
    accounts: Accounts,
) -> DataResponse[SessionToken]:
    """Authenticate with email and password.

    Returns 401 for unknown email or wrong password, 403 if the password is
    correct but the email address has not been verified.
    """
    token = await accounts.login(db, email=body.email, password=body.password)
    # The session row must be durable before its token is handed out
    await db.commit()
    return DataResponse(data=SessionToken(token=token))


# ===================================================================
# GET /auth/check
# ===================================================================


@router.get(
    "/check", status_code=status.HTTP_204_NO_CONTENT, response_class=Response
)
async def check(user_id: CurrentUserId) -> None:  # noqa: ARG001
    """Confirm the bearer session is live. Each call restarts its idle window."""


# ===================================================================
# DELETE /auth/logout
# ===================================================================


@router.delete(
    "/logout", status_code=status.HTTP_204_NO_CONTENT, response_class=Response
)
async def logout(token: BearerToken, db: DbSession, sessions: Sessions) -> None:
    """Revoke the bearer session. Idempotent."""
    await sessions.revoke(db, token)
