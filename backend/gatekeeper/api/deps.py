"""Shared dependencies for API endpoints.

Builds the credential and token components from the (immutable) settings
and authenticates bearer session tokens.

Tests override ``get_settings`` and ``get_db`` through
``app.dependency_overrides``; everything else is derived from those two.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core.config import Settings, get_settings
from gatekeeper.core.database import get_db
from gatekeeper.core.errors import UnauthorizedError
from gatekeeper.core.passwords import PasswordHasher
from gatekeeper.services.account_mutator import AccountMutator
from gatekeeper.services.account_service import AccountService
from gatekeeper.services.purpose_tokens import (
    PurposePolicy,
    PurposeTokenManager,
    TokenPurpose,
)
from gatekeeper.services.session_manager import SessionManager

# auto_error=False: a missing header must produce our 401 envelope,
# not FastAPI's 403.
_bearer_scheme = HTTPBearer(auto_error=False)

SettingsDep = Annotated[Settings, Depends(get_settings)]
DbSession = Annotated[AsyncSession, Depends(get_db)]


@lru_cache
def get_password_hasher() -> PasswordHasher:
    """Process-wide password hasher with default Argon2id parameters."""
    return PasswordHasher()


def _token_manager(purpose: TokenPurpose, settings: Settings) -> PurposeTokenManager:
    return PurposeTokenManager(PurposePolicy.from_settings(purpose, settings), settings)


def get_session_manager(settings: SettingsDep) -> SessionManager:
    """Session manager bound to the current settings."""
    return SessionManager(settings)


def get_account_mutator(
    settings: SettingsDep,
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> AccountMutator:
    """Account mutator wired with all three token managers."""
    return AccountMutator(
        hasher=hasher,
        sessions=sessions,
        verify_tokens=_token_manager(TokenPurpose.VERIFY_EMAIL, settings),
        reset_tokens=_token_manager(TokenPurpose.RESET_PASSWORD, settings),
        change_tokens=_token_manager(TokenPurpose.CHANGE_EMAIL, settings),
    )


def get_account_service(
    settings: SettingsDep,
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> AccountService:
    """Account service wired with all three token managers."""
    return AccountService(
        settings,
        hasher=hasher,
        sessions=sessions,
        verify_tokens=_token_manager(TokenPurpose.VERIFY_EMAIL, settings),
        reset_tokens=_token_manager(TokenPurpose.RESET_PASSWORD, settings),
        change_tokens=_token_manager(TokenPurpose.CHANGE_EMAIL, settings),
    )


Sessions = Annotated[SessionManager, Depends(get_session_manager)]
Mutator = Annotated[AccountMutator, Depends(get_account_mutator)]
Accounts = Annotated[AccountService, Depends(get_account_service)]


def get_bearer_token(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)
    ],
) -> str:
    """Extract the raw session token from ``Authorization: Bearer <token>``.

    Raises:
        UnauthorizedError: If the header is missing or not a bearer credential.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()
    return credentials.credentials


BearerToken = Annotated[str, Depends(get_bearer_token)]


async def get_current_user_id(
    token: BearerToken,
    db: DbSession,
    sessions: Sessions,
) -> int:
    """Authenticate the caller's session and extend its idle window.

    The refreshed ``last_used_at`` is committed with the request.

    Args:
        token: Raw bearer token (injected).
        db: Database session (injected).
        sessions: Session manager (injected).

    Returns:
        Account id of the authenticated caller.

    Raises:
        UnauthorizedError: If no live session matches the token.
    """
    return await sessions.validate(db, token)


CurrentUserId = Annotated[int, Depends(get_current_user_id)]
