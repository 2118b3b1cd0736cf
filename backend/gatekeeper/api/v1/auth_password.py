"""Password endpoints: reset by email link and authenticated change.

Endpoints:
- POST /auth/forgot: email a reset link (enumeration-safe, always 204)
- PUT /auth/password/{token}: set a new password with a reset token
- PUT /auth/password: change the password of the authenticated account

Both ways of replacing a password revoke every session of the account in
the same transaction as the password write.
"""

from fastapi import APIRouter, BackgroundTasks, Response, status
from pydantic import BaseModel, ConfigDict

from gatekeeper.api.deps import (
    Accounts,
    CurrentUserId,
    DbSession,
    Mutator,
    SettingsDep,
)
from gatekeeper.core.email import deliver_notification
from gatekeeper.core.validation import validate_password_length

router = APIRouter()


# ===================================================================
# Request models
# ===================================================================


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /auth/forgot."""

    model_config = ConfigDict(extra="forbid")

    email: str


class ResetPasswordRequest(BaseModel):
    """Request body for PUT /auth/password/{token}."""

    model_config = ConfigDict(extra="forbid")

    password: str


class ChangePasswordRequest(BaseModel):
    """Request body for PUT /auth/password."""

    model_config = ConfigDict(extra="forbid")

    password: str
    new_password: str


# ===================================================================
# POST /auth/forgot
# ===================================================================


@router.post(
    "/forgot", status_code=status.HTTP_204_NO_CONTENT, response_class=Response
)
async def forgot_password(
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: DbSession,
    settings: SettingsDep,
    accounts: Accounts,
) -> None:
    """Request a password reset email.

    Security: the response is the same empty 204 whether the account exists,
    is unverified, or already received a link within the last hour.
    """
    notification = await accounts.request_password_reset(db, body.email)
    await db.commit()

    if notification is not None:
        background_tasks.add_task(deliver_notification, settings, notification)


# ===================================================================
# PUT /auth/password/{token}
# ===================================================================


@router.put(
    "/password/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    db: DbSession,
    settings: SettingsDep,
    mutator: Mutator,
) -> None:
    """Set a new password using the token from a reset email.

    Returns 404 for an unknown or used token and 410 for one older than
    24 hours. All sessions of the account are revoked.
    """
    validate_password_length(body.password, settings.password_min_length)
    await mutator.reset_password(db, token, body.password)
    await db.commit()


# ===================================================================
# PUT /auth/password
# ===================================================================


@router.put(
    "/password", status_code=status.HTTP_204_NO_CONTENT, response_class=Response
)
async def change_password(
    body: ChangePasswordRequest,
    user_id: CurrentUserId,
    db: DbSession,
    settings: SettingsDep,
    mutator: Mutator,
) -> None:
    """Change the password of the authenticated account.

    Returns 401 if the current password is wrong. All sessions, including
    the one used for this request, are revoked.
    """
    validate_password_length(body.password, settings.password_min_length)
    validate_password_length(body.new_password, settings.password_min_length)
    await mutator.change_password(db, user_id, body.password, body.new_password)
    await db.commit()
