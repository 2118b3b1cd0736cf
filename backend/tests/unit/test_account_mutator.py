"""Tests for AccountMutator with patched repositories.

The ordering guarantees matter here: a reset redeems the token before it
spends any hashing work, and every password change revokes all sessions
of the account.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from gatekeeper.core.errors import (
    ConflictError,
    GoneError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from gatekeeper.repositories.purpose_token_repository import ConsumedRow
from gatekeeper.services.account_mutator import AccountMutator
from gatekeeper.services.purpose_tokens import (
    PurposePolicy,
    PurposeTokenManager,
    TokenPurpose,
)
from gatekeeper.services.session_manager import SessionManager
from tests.conftest import FIXED_NOW, TEST_SETTINGS, fast_hasher

_USERS = "gatekeeper.services.account_mutator.UserRepository"
_TOKENS = "gatekeeper.services.purpose_tokens.PurposeTokenRepository"
_SESSIONS = "gatekeeper.services.session_manager.SessionRepository"

_USER_ID = 31
_OLD_PASSWORD = "password1"  # nosec B105  # gitleaks:allow
_NEW_PASSWORD = "password2"  # nosec B105  # gitleaks:allow


@pytest.fixture
def hasher():
    return fast_hasher()


@pytest.fixture
def mutator(clock, hasher) -> AccountMutator:
    def tokens(purpose):
        return PurposeTokenManager(
            PurposePolicy.from_settings(purpose, TEST_SETTINGS),
            TEST_SETTINGS,
            clock=clock,
        )

    return AccountMutator(
        hasher=hasher,
        sessions=SessionManager(TEST_SETTINGS, ids=MagicMock(), clock=clock),
        verify_tokens=tokens(TokenPurpose.VERIFY_EMAIL),
        reset_tokens=tokens(TokenPurpose.RESET_PASSWORD),
        change_tokens=tokens(TokenPurpose.CHANGE_EMAIL),
    )


def _row(**kwargs) -> ConsumedRow:
    return ConsumedRow(user_id=_USER_ID, created_at=FIXED_NOW, **kwargs)


class TestVerifyEmail:
    """Tests for AccountMutator.verify_email."""

    @pytest.mark.asyncio
    async def test_marks_account_verified(self, mutator):
        with (
            patch(f"{_TOKENS}.consume", new_callable=AsyncMock, return_value=_row()),
            patch(f"{_USERS}.mark_verified", new_callable=AsyncMock) as mock_mark,
        ):
            assert await mutator.verify_email(MagicMock(), "raw") == _USER_ID
        assert mock_mark.await_args.args[1] == _USER_ID

    @pytest.mark.asyncio
    async def test_unknown_token_is_404(self, mutator):
        with (
            patch(f"{_TOKENS}.consume", new_callable=AsyncMock, return_value=None),
            patch(f"{_USERS}.mark_verified", new_callable=AsyncMock) as mock_mark,
            pytest.raises(NotFoundError),
        ):
            await mutator.verify_email(MagicMock(), "raw")
        mock_mark.assert_not_awaited()


class TestResetPassword:
    """Tests for AccountMutator.reset_password."""

    @pytest.mark.asyncio
    async def test_replaces_digest_and_revokes_sessions(self, mutator, hasher):
        with (
            patch(f"{_TOKENS}.consume", new_callable=AsyncMock, return_value=_row()),
            patch(f"{_USERS}.set_password_hash", new_callable=AsyncMock) as mock_set,
            patch(
                f"{_SESSIONS}.delete_for_user", new_callable=AsyncMock, return_value=2
            ) as mock_revoke,
        ):
            assert await mutator.reset_password(MagicMock(), "raw", _NEW_PASSWORD) == (
                _USER_ID
            )

        _, user_id, digest = mock_set.await_args.args
        assert user_id == _USER_ID
        assert await hasher.verify(_NEW_PASSWORD, digest)
        assert mock_revoke.await_args.args[1] == _USER_ID

    @pytest.mark.asyncio
    async def test_expired_token_is_410_and_nothing_changes(
        self, mutator, hasher, clock
    ):
        clock.advance(hours=24, minutes=1)
        with (
            patch(f"{_TOKENS}.consume", new_callable=AsyncMock, return_value=_row()),
            patch.object(hasher, "hash", new_callable=AsyncMock) as mock_hash,
            patch(f"{_USERS}.set_password_hash", new_callable=AsyncMock) as mock_set,
            patch(f"{_SESSIONS}.delete_for_user", new_callable=AsyncMock) as mock_rev,
            pytest.raises(GoneError),
        ):
            await mutator.reset_password(AsyncMock(), "raw", _NEW_PASSWORD)
        mock_set.assert_not_awaited()
        mock_hash.assert_not_awaited()
        mock_rev.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_token_is_404_without_hashing(self, mutator, hasher):
        with (
            patch(f"{_TOKENS}.consume", new_callable=AsyncMock, return_value=None),
            patch.object(hasher, "hash", new_callable=AsyncMock) as mock_hash,
            pytest.raises(NotFoundError),
        ):
            await mutator.reset_password(MagicMock(), "garbage", _NEW_PASSWORD)
        mock_hash.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_hash_failure_writes_nothing(self, mutator, hasher):
        with (
            patch(f"{_TOKENS}.consume", new_callable=AsyncMock, return_value=_row()),
            patch.object(
                hasher,
                "hash",
                new_callable=AsyncMock,
                side_effect=InternalError(operation="password.hash"),
            ),
            patch(f"{_USERS}.set_password_hash", new_callable=AsyncMock) as mock_set,
            patch(f"{_SESSIONS}.delete_for_user", new_callable=AsyncMock) as mock_rev,
            pytest.raises(InternalError),
        ):
            await mutator.reset_password(MagicMock(), "raw", _NEW_PASSWORD)
        mock_set.assert_not_awaited()
        mock_rev.assert_not_awaited()


class TestChangeEmail:
    """Tests for AccountMutator.change_email."""

    @pytest.mark.asyncio
    async def test_moves_account_to_new_address(self, mutator):
        row = _row(new_email="new@example.com")
        with (
            patch(f"{_TOKENS}.consume", new_callable=AsyncMock, return_value=row),
            patch(
                f"{_USERS}.email_registered", new_callable=AsyncMock, return_value=False
            ),
            patch(f"{_USERS}.set_email", new_callable=AsyncMock) as mock_set,
        ):
            assert await mutator.change_email(MagicMock(), "raw") == _USER_ID
        assert mock_set.await_args.args[1:] == (_USER_ID, "new@example.com")

    @pytest.mark.asyncio
    async def test_address_taken_meanwhile_is_409(self, mutator):
        row = _row(new_email="new@example.com")
        with (
            patch(f"{_TOKENS}.consume", new_callable=AsyncMock, return_value=row),
            patch(
                f"{_USERS}.email_registered", new_callable=AsyncMock, return_value=True
            ),
            patch(f"{_USERS}.set_email", new_callable=AsyncMock) as mock_set,
            pytest.raises(ConflictError) as exc_info,
        ):
            await mutator.change_email(MagicMock(), "raw")
        assert exc_info.value.code == "EMAIL_TAKEN"
        mock_set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unique_violation_on_update_is_409(self, mutator):
        row = _row(new_email="new@example.com")
        with (
            patch(f"{_TOKENS}.consume", new_callable=AsyncMock, return_value=row),
            patch(
                f"{_USERS}.email_registered", new_callable=AsyncMock, return_value=False
            ),
            patch(
                f"{_USERS}.set_email",
                new_callable=AsyncMock,
                side_effect=IntegrityError("UPDATE users", {}, Exception("dup")),
            ),
            pytest.raises(ConflictError),
        ):
            await mutator.change_email(MagicMock(), "raw")

    @pytest.mark.asyncio
    async def test_other_store_failure_is_internal(self, mutator):
        row = _row(new_email="new@example.com")
        with (
            patch(f"{_TOKENS}.consume", new_callable=AsyncMock, return_value=row),
            patch(
                f"{_USERS}.email_registered", new_callable=AsyncMock, return_value=False
            ),
            patch(
                f"{_USERS}.set_email",
                new_callable=AsyncMock,
                side_effect=OperationalError("UPDATE users", {}, Exception("down")),
            ),
            pytest.raises(InternalError) as exc_info,
        ):
            await mutator.change_email(MagicMock(), "raw")
        assert exc_info.value.operation == "account.change_email"
        assert exc_info.value.user_id == _USER_ID


class TestChangePassword:
    """Tests for AccountMutator.change_password."""

    @pytest.fixture
    async def user(self, hasher):
        return SimpleNamespace(
            id=_USER_ID, password_hash=await hasher.hash(_OLD_PASSWORD)
        )

    @pytest.mark.asyncio
    async def test_replaces_digest_and_revokes_all_sessions(
        self, mutator, hasher, user
    ):
        with (
            patch(f"{_USERS}.get_by_id", new_callable=AsyncMock, return_value=user),
            patch(f"{_USERS}.set_password_hash", new_callable=AsyncMock) as mock_set,
            patch(
                f"{_SESSIONS}.delete_for_user", new_callable=AsyncMock, return_value=1
            ) as mock_revoke,
        ):
            await mutator.change_password(
                MagicMock(), _USER_ID, _OLD_PASSWORD, _NEW_PASSWORD
            )

        assert await hasher.verify(_NEW_PASSWORD, mock_set.await_args.args[2])
        mock_revoke.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_wrong_current_password_is_401(self, mutator, user):
        with (
            patch(f"{_USERS}.get_by_id", new_callable=AsyncMock, return_value=user),
            patch(f"{_USERS}.set_password_hash", new_callable=AsyncMock) as mock_set,
            patch(f"{_SESSIONS}.delete_for_user", new_callable=AsyncMock) as mock_rev,
            pytest.raises(UnauthorizedError),
        ):
            await mutator.change_password(
                MagicMock(), _USER_ID, "not-the-password", _NEW_PASSWORD
            )
        mock_set.assert_not_awaited()
        mock_rev.assert_not_awaited()
