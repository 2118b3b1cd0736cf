"""Profile endpoints for the authenticated account.

Endpoints:
- GET /profile: current account details
- PATCH /profile: change the display name
- POST /profile/email: request a move to a new address (link sent there)
- PUT /profile/email/{token}: confirm the move with the emailed token

The confirmation endpoint is unauthenticated: possession of the token is
the proof, and it is only ever sent to the new address.
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
from gatekeeper.core.responses import DataResponse

router = APIRouter()


# ===================================================================
# Request / response models
# ===================================================================


class ProfileResponse(BaseModel):
    """Account details visible to their owner."""

    id: str
    name: str
    email: str
    email_verified: bool


class UpdateProfileRequest(BaseModel):
    """Request body for PATCH /profile."""

    model_config = ConfigDict(extra="forbid")

    name: str


class ChangeEmailRequest(BaseModel):
    """Request body for POST /profile/email."""

    model_config = ConfigDict(extra="forbid")

    email: str


# ===================================================================
# GET /profile, PATCH /profile
# ===================================================================


@router.get("")
async def get_profile(
    user_id: CurrentUserId,
    db: DbSession,
    accounts: Accounts,
) -> DataResponse[ProfileResponse]:
    """Return the authenticated account."""
    user = await accounts.get_profile(db, user_id)
    return DataResponse(
        data=ProfileResponse(
            id=str(user.id),
            name=user.name,
            email=user.email,
            email_verified=user.email_verified,
        )
    )


@router.patch("", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def update_profile(
    body: UpdateProfileRequest,
    user_id: CurrentUserId,
    db: DbSession,
    accounts: Accounts,
) -> None:
    """Change the display name (1 to 64 characters)."""
    await accounts.rename(db, user_id, body.name)


# ===================================================================
# POST /profile/email, PUT /profile/email/{token}
# ===================================================================


@router.post(
    "/email", status_code=status.HTTP_204_NO_CONTENT, response_class=Response
)
async def request_email_change(
    body: ChangeEmailRequest,
    user_id: CurrentUserId,
    background_tasks: BackgroundTasks,
    db: DbSession,
    settings: SettingsDep,
    accounts: Accounts,
) -> None:
    """Send a confirmation link to a new email address.

    Returns 409 if the address is the current one, belongs to another
    account, or is the target of another account's pending change.
    """
    notification = await accounts.request_email_change(db, user_id, body.email)
    await db.commit()

    if notification is not None:
        background_tasks.add_task(deliver_notification, settings, notification)


@router.put(
    "/email/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def confirm_email_change(token: str, db: DbSession, mutator: Mutator) -> None:
    """Move the account to the address the token was issued for.

    Returns 404 for an unknown or used token, 410 for one older than 24
    hours, 409 if another account took the address in the meantime.
    """
    await mutator.change_email(db, token)
    await db.commit()
