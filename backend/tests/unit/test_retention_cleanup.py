"""Tests for retention cleanup.

Repository calls are patched to check the cutoffs each job computes and
the error translation.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from gatekeeper.core.config import Settings
from gatekeeper.models.purpose_token import (
    EmailChangeToken,
    PasswordResetToken,
    VerificationToken,
)
from gatekeeper.services.retention_cleanup import (
    AllCleanupResult,
    CleanupError,
    TokenCleanupResult,
    cleanup_expired_tokens,
    cleanup_idle_sessions,
    run_all_cleanups,
)
from tests.conftest import FIXED_NOW, TEST_SETTINGS

_MODULE = "gatekeeper.services.retention_cleanup"


class TestCleanupIdleSessions:
    """Tests for cleanup_idle_sessions."""

    @pytest.mark.asyncio
    async def test_deletes_sessions_idle_past_window(self):
        with patch(
            f"{_MODULE}.SessionRepository.delete_idle",
            new_callable=AsyncMock,
            return_value=4,
        ) as mock_delete:
            count = await cleanup_idle_sessions(MagicMock(), TEST_SETTINGS, FIXED_NOW)
        assert count == 4
        assert mock_delete.await_args.args[1] == FIXED_NOW - timedelta(days=7)

    @pytest.mark.asyncio
    async def test_store_failure_raises_cleanup_error(self):
        with (
            patch(
                f"{_MODULE}.SessionRepository.delete_idle",
                new_callable=AsyncMock,
                side_effect=OperationalError("DELETE", {}, Exception("down")),
            ),
            pytest.raises(CleanupError) as exc_info,
        ):
            await cleanup_idle_sessions(MagicMock(), TEST_SETTINGS, FIXED_NOW)
        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "CLEANUP_ERROR"


class TestCleanupExpiredTokens:
    """Tests for cleanup_expired_tokens."""

    @pytest.mark.asyncio
    async def test_skips_verification_tokens_without_ttl(self):
        with patch(
            f"{_MODULE}.PurposeTokenRepository.delete_created_before",
            new_callable=AsyncMock,
            return_value=2,
        ) as mock_delete:
            result = await cleanup_expired_tokens(
                MagicMock(), TEST_SETTINGS, FIXED_NOW
            )

        assert result == TokenCleanupResult(
            verification_tokens=0, reset_tokens=2, email_change_tokens=2
        )
        calls = {call.args[1]: call.args[2] for call in mock_delete.await_args_list}
        assert calls == {
            PasswordResetToken: FIXED_NOW - timedelta(hours=24),
            EmailChangeToken: FIXED_NOW - timedelta(hours=24),
        }

    @pytest.mark.asyncio
    async def test_includes_verification_tokens_with_ttl(self):
        settings = Settings(verification_token_ttl_hours=72)
        with patch(
            f"{_MODULE}.PurposeTokenRepository.delete_created_before",
            new_callable=AsyncMock,
            return_value=1,
        ) as mock_delete:
            result = await cleanup_expired_tokens(MagicMock(), settings, FIXED_NOW)

        assert result.verification_tokens == 1
        calls = {call.args[1]: call.args[2] for call in mock_delete.await_args_list}
        assert calls[VerificationToken] == FIXED_NOW - timedelta(hours=72)


class TestRunAllCleanups:
    """Tests for run_all_cleanups."""

    @pytest.mark.asyncio
    async def test_aggregates_results(self):
        with (
            patch(
                f"{_MODULE}.SessionRepository.delete_idle",
                new_callable=AsyncMock,
                return_value=3,
            ),
            patch(
                f"{_MODULE}.PurposeTokenRepository.delete_created_before",
                new_callable=AsyncMock,
                return_value=0,
            ),
        ):
            result = await run_all_cleanups(MagicMock(), TEST_SETTINGS, FIXED_NOW)

        assert result == AllCleanupResult(
            idle_sessions=3,
            tokens=TokenCleanupResult(
                verification_tokens=0, reset_tokens=0, email_change_tokens=0
            ),
        )
