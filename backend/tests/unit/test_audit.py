"""Tests for the audit sink (log_error).

The sink writes one error_log row in its own session and must never raise,
since its callers are already handling a failure.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from gatekeeper.core.audit import log_error
from gatekeeper.core.errors import InternalError
from gatekeeper.core.ids import IdGenerator, IdGeneratorError
from gatekeeper.models.error_log import ErrorLog
from tests.conftest import FakeClock


@pytest.fixture
def fake_session() -> MagicMock:
    session = MagicMock()
    session.commit = AsyncMock()
    return session


@pytest.fixture
def session_factory(fake_session):
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=fake_session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    with patch("gatekeeper.core.audit.async_session_factory", factory):
        yield factory


@pytest.fixture
def generator():
    gen = IdGenerator(0x2A, clock=FakeClock())
    with patch("gatekeeper.core.audit.get_id_generator", return_value=gen):
        yield gen


def _raised_internal_error() -> InternalError:
    try:
        try:
            raise OperationalError("UPDATE sessions", {}, Exception("db down"))
        except OperationalError as exc:
            raise InternalError(
                "Database failure in session.validate",
                operation="session.validate",
            ) from exc
    except InternalError as err:
        return err


class TestLogError:
    """Tests for log_error."""

    @pytest.mark.asyncio
    async def test_persists_record(self, fake_session, session_factory, generator):
        err = _raised_internal_error()
        await log_error(
            "session.validate",
            "Database failure in session.validate",
            err,
            {"path": "/api/v1/auth/check"},
            7,
        )

        record = fake_session.add.call_args.args[0]
        assert isinstance(record, ErrorLog)
        assert record.machine_id == 0x2A
        assert record.name == "session.validate"
        assert record.message == "Database failure in session.validate"
        assert "OperationalError" in record.error
        assert "Traceback" in record.stack_trace
        assert record.context == {"path": "/api/v1/auth/check"}
        assert record.user_id == 7
        fake_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unauthenticated_user_is_stored_as_null(
        self, fake_session, session_factory, generator
    ):
        await log_error("unhandled", "boom")

        record = fake_session.add.call_args.args[0]
        assert record.user_id is None
        assert record.error == ""
        assert record.stack_trace is None
        assert record.context == {}

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(
        self, fake_session, session_factory, generator
    ):
        fake_session.commit.side_effect = OperationalError(
            "INSERT", {}, Exception("db down")
        )
        # Must not raise
        await log_error("email.send", "Notification delivery failed")

    @pytest.mark.asyncio
    async def test_id_generator_failure_is_swallowed(
        self, fake_session, session_factory
    ):
        broken = MagicMock()
        broken.next_id.side_effect = IdGeneratorError("clock is set before epoch")
        with patch("gatekeeper.core.audit.get_id_generator", return_value=broken):
            await log_error("session.create", "Could not allocate session id")
        fake_session.add.assert_not_called()
