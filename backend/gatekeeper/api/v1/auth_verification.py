"""Email verification endpoints.

Endpoints:
- PUT /auth/verifications/{token}: confirm the address of a new account
- POST /auth/verifications: resend the verification email (enumeration-safe)
"""

from fastapi import APIRouter, BackgroundTasks, Response, status
from pydantic import BaseModel, ConfigDict

from gatekeeper.api.deps import Accounts, DbSession, Mutator, SettingsDep
from gatekeeper.core.email import deliver_notification

router = APIRouter()


class ResendVerificationRequest(BaseModel):
    """Request body for POST /auth/verifications."""

    model_config = ConfigDict(extra="forbid")

    email: str


@router.put(
    "/verifications/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def verify_email(token: str, db: DbSession, mutator: Mutator) -> None:
    """Mark the account verified using the token from the verification email.

    Returns 404 for an unknown or used token. Verification links do not
    expire unless VERIFICATION_TOKEN_TTL_HOURS is set, in which case an old
    link answers 410.
    """
    await mutator.verify_email(db, token)
    await db.commit()


@router.post(
    "/verifications",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def resend_verification(
    body: ResendVerificationRequest,
    background_tasks: BackgroundTasks,
    db: DbSession,
    settings: SettingsDep,
    accounts: Accounts,
) -> None:
    """Resend the verification email.

    Security: the response is the same empty 204 whether the account exists,
    is already verified, or already received a link within the last hour.
    """
    notification = await accounts.resend_verification(db, body.email)
    await db.commit()

    if notification is not None:
        background_tasks.add_task(deliver_notification, settings, notification)
