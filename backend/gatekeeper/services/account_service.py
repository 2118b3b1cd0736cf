"""Account flows that sit in front of the credential and token components.

Registration, login, the two enumeration-safe token requests (password
reset, resend verification), email-change requests and the profile.
Flows that lead to an email return a ``Notification`` instead of sending
it; the request handler commits and then schedules delivery.

Security: ``request_password_reset`` and ``resend_verification`` return
None for an unknown account, an already verified account and an active
cooldown alike, and generate a token on every path. Callers answer all of
them identically.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core.clock import Clock, utcnow
from gatekeeper.core.config import Settings
from gatekeeper.core.email import Notification
from gatekeeper.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    UnauthorizedError,
    store_errors,
)
from gatekeeper.core.ids import IdGenerator, IdGeneratorError, get_id_generator
from gatekeeper.core.passwords import PasswordHasher
from gatekeeper.core.validation import (
    normalize_email,
    validate_name,
    validate_password_length,
)
from gatekeeper.models.user import User
from gatekeeper.repositories.purpose_token_repository import PurposeTokenRepository
from gatekeeper.repositories.user_repository import UserRepository
from gatekeeper.services.purpose_tokens import PurposeTokenManager
from gatekeeper.services.session_manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredAccount:
    """Result of a registration.

    Attributes:
        user_id: New account id.
        name: Stored display name.
        email: Stored (normalized) email.
        notification: Verification email to send after commit.
    """

    user_id: int
    name: str
    email: str
    notification: Notification | None


class AccountService:
    """Account-level flows.

    Args:
        settings: Application settings.
        hasher: Password hasher.
        sessions: Session manager.
        verify_tokens: Email-verification token manager.
        reset_tokens: Password-reset token manager.
        change_tokens: Email-change token manager.
        ids: Identifier generator. Defaults to the process-wide one.
        clock: Time source.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        hasher: PasswordHasher,
        sessions: SessionManager,
        verify_tokens: PurposeTokenManager,
        reset_tokens: PurposeTokenManager,
        change_tokens: PurposeTokenManager,
        ids: IdGenerator | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._settings = settings
        self._hasher = hasher
        self._sessions = sessions
        self._verify_tokens = verify_tokens
        self._reset_tokens = reset_tokens
        self._change_tokens = change_tokens
        self._ids = ids or get_id_generator()
        self._clock = clock

    # =========================================================================
    # Registration and login
    # =========================================================================

    async def register(
        self, db: AsyncSession, *, name: str, email: str, password: str
    ) -> RegisteredAccount:
        """Create an unverified account and issue its verification token.

        Args:
            db: Async database session.
            name: Display name (at most 64 characters).
            email: Email address (normalized before storage).
            password: Plain password (at least ``password_min_length``).

        Returns:
            RegisteredAccount with the verification notification.

        Raises:
            UnprocessableError: If a field fails validation.
            ConflictError: If the email is already registered.
            InternalError: If hashing, id generation or the store fails.
        """
        name = validate_name(name)
        email = normalize_email(email)
        validate_password_length(password, self._settings.password_min_length)

        password_hash = await self._hasher.hash(password)
        try:
            user_id = self._ids.next_id()
        except IdGeneratorError as exc:
            raise InternalError(
                "Could not allocate user id", operation="account.register"
            ) from exc

        with store_errors("account.register"):
            created = await UserRepository.create(
                db,
                user_id=user_id,
                name=name,
                email=email,
                password_hash=password_hash,
            )
        if not created:
            raise ConflictError("EMAIL_TAKEN", "Email address is already registered")

        raw = await self._verify_tokens.request(db, user_id)
        notification = None
        if raw is not None:
            notification = Notification(
                kind=self._verify_tokens.policy.notification,
                address=email,
                link=self._verify_tokens.link(raw),
                user_id=user_id,
            )
        logger.info("Registered user %d", user_id)
        return RegisteredAccount(
            user_id=user_id, name=name, email=email, notification=notification
        )

    async def login(self, db: AsyncSession, *, email: str, password: str) -> str:
        """Authenticate with email and password and open a session.

        Args:
            db: Async database session.
            email: Email address.
            password: Plain password.

        Returns:
            Raw session token.

        Raises:
            UnprocessableError: If a field fails validation.
            UnauthorizedError: If the account is unknown or the password is
                wrong (the two are indistinguishable).
            ForbiddenError: If the password is right but the email is not
                verified.
            InternalError: If hashing or the store fails.
        """
        email = normalize_email(email)
        validate_password_length(password, self._settings.password_min_length)

        with store_errors("account.login"):
            user = await UserRepository.get_by_email(db, email)
        if user is None:
            await self._hasher.verify_dummy(password)
            raise UnauthorizedError("Invalid credentials")

        if not await self._hasher.verify(password, user.password_hash):
            raise UnauthorizedError("Invalid credentials")

        if not user.email_verified:
            raise ForbiddenError(
                "Email address not verified", code="EMAIL_NOT_VERIFIED"
            )

        if self._hasher.needs_rehash(user.password_hash):
            upgraded = await self._hasher.hash(password)
            with store_errors("account.login", user_id=user.id):
                await UserRepository.set_password_hash(db, user.id, upgraded)

        issued = await self._sessions.create(db, user.id)
        return issued.token

    # =========================================================================
    # Enumeration-safe token requests
    # =========================================================================

    async def request_password_reset(
        self, db: AsyncSession, email: str
    ) -> Notification | None:
        """Issue a reset token if the account exists and is not throttled.

        Args:
            db: Async database session.
            email: Email address.

        Returns:
            Notification to send, or None (unknown account or throttled).

        Raises:
            UnprocessableError: If the email is not syntactically valid.
            InternalError: If the store fails.
        """
        email = normalize_email(email)
        with store_errors("reset_password.request"):
            user = await UserRepository.get_by_email(db, email)
        if user is None:
            self._reset_tokens.burn()
            return None

        raw = await self._reset_tokens.request(db, user.id)
        if raw is None:
            return None
        return Notification(
            kind=self._reset_tokens.policy.notification,
            address=user.email,
            link=self._reset_tokens.link(raw),
            user_id=user.id,
        )

    async def resend_verification(
        self, db: AsyncSession, email: str
    ) -> Notification | None:
        """Re-issue a verification token for an unverified account.

        Args:
            db: Async database session.
            email: Email address.

        Returns:
            Notification to send, or None (unknown account, already
            verified or throttled).

        Raises:
            UnprocessableError: If the email is not syntactically valid.
            InternalError: If the store fails.
        """
        email = normalize_email(email)
        with store_errors("verify_email.request"):
            user = await UserRepository.get_by_email(db, email)
        if user is None or user.email_verified:
            self._verify_tokens.burn()
            return None

        raw = await self._verify_tokens.request(db, user.id)
        if raw is None:
            return None
        return Notification(
            kind=self._verify_tokens.policy.notification,
            address=user.email,
            link=self._verify_tokens.link(raw),
            user_id=user.id,
        )

    # =========================================================================
    # Profile
    # =========================================================================

    async def get_profile(self, db: AsyncSession, user_id: int) -> User:
        """Load the authenticated account.

        Raises:
            UnauthorizedError: If the account no longer exists.
            InternalError: If the store fails.
        """
        with store_errors("profile.get", user_id=user_id):
            user = await UserRepository.get_by_id(db, user_id)
        if user is None:
            raise UnauthorizedError()
        return user

    async def rename(self, db: AsyncSession, user_id: int, name: str) -> None:
        """Change the display name.

        Raises:
            UnprocessableError: If the name fails validation.
            InternalError: If the store fails.
        """
        name = validate_name(name)
        with store_errors("profile.rename", user_id=user_id):
            await UserRepository.set_name(db, user_id, name)

    async def request_email_change(
        self, db: AsyncSession, user_id: int, email: str
    ) -> Notification | None:
        """Issue an email-change token for a new, unclaimed address.

        An address counts as claimed if another account uses it or another
        account has a non-expired change request for it.

        Args:
            db: Async database session.
            user_id: Authenticated account.
            email: Proposed new address.

        Returns:
            Notification to the new address, or None if throttled.

        Raises:
            UnprocessableError: If the email is not syntactically valid.
            ConflictError: If the address is the current one or is claimed.
            InternalError: If the store fails.
        """
        email = normalize_email(email)
        user = await self.get_profile(db, user_id)
        if email == user.email:
            raise ConflictError("EMAIL_UNCHANGED", "New email matches the current one")

        policy = self._change_tokens.policy
        not_before = self._clock() - (policy.ttl or policy.cooldown)
        with store_errors("change_email.request", user_id=user_id):
            claimed = await UserRepository.email_registered(
                db, email, exclude_user_id=user_id
            ) or await PurposeTokenRepository.pending_email_claimed(
                db, email=email, exclude_user_id=user_id, not_before=not_before
            )
        if claimed:
            raise ConflictError("EMAIL_TAKEN", "Email address is already in use")

        raw = await self._change_tokens.request(db, user_id, new_email=email)
        if raw is None:
            return None
        return Notification(
            kind=policy.notification,
            address=email,
            link=self._change_tokens.link(raw),
            user_id=user_id,
        )
