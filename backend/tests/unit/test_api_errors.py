"""Tests for API error classes and their HTTP mapping.

Covers the status codes and codes of each error class, the database error
translation helper, and the exception handlers in gatekeeper.main.
"""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel
from sqlalchemy.exc import OperationalError

from gatekeeper.core.errors import (
    APIError,
    ConflictError,
    ForbiddenError,
    GoneError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
    UnprocessableError,
    ValidationError,
    store_errors,
)
from gatekeeper.main import create_app


class TestErrorClasses:
    """Each error class carries its status code and machine-readable code."""

    @pytest.mark.parametrize(
        ("error", "status_code", "code"),
        [
            (ValidationError("bad"), 400, "VALIDATION_ERROR"),
            (UnauthorizedError(), 401, "UNAUTHORIZED"),
            (ForbiddenError(), 403, "FORBIDDEN"),
            (NotFoundError("Reset token"), 404, "NOT_FOUND"),
            (ConflictError("EMAIL_TAKEN", "taken"), 409, "EMAIL_TAKEN"),
            (GoneError("Reset token"), 410, "EXPIRED"),
            (UnprocessableError("bad"), 422, "UNPROCESSABLE"),
            (InternalError(), 500, "INTERNAL_ERROR"),
        ],
    )
    def test_status_and_code(self, error, status_code, code):
        assert isinstance(error, APIError)
        assert error.status_code == status_code
        assert error.code == code

    def test_api_error_defaults_to_500(self):
        assert APIError(code="TEST", message="Test").status_code == 500

    def test_forbidden_accepts_custom_code(self):
        error = ForbiddenError("Email address not verified", code="EMAIL_NOT_VERIFIED")
        assert error.code == "EMAIL_NOT_VERIFIED"

    def test_not_found_message_names_resource(self):
        assert NotFoundError("Reset token").message == "Reset token not found"
        assert (
            NotFoundError("User", "42").message == "User with id '42' not found"
        )

    def test_gone_message_names_resource(self):
        assert GoneError("Reset token").message == "Reset token has expired"

    def test_internal_error_carries_audit_fields(self):
        error = InternalError(
            "boom", operation="session.validate", context={"k": 1}, user_id=9
        )
        assert error.operation == "session.validate"
        assert error.context == {"k": 1}
        assert error.user_id == 9

    def test_internal_error_context_defaults_to_empty(self):
        assert InternalError().context == {}


class TestStoreErrors:
    """store_errors translates SQLAlchemy failures."""

    def test_wraps_sqlalchemy_error(self):
        cause = OperationalError("SELECT 1", {}, Exception("down"))
        with (
            pytest.raises(InternalError) as exc_info,
            store_errors("session.create", user_id=5, context={"a": "b"}),
        ):
            raise cause
        assert exc_info.value.operation == "session.create"
        assert exc_info.value.user_id == 5
        assert exc_info.value.context == {"a": "b"}
        assert exc_info.value.__cause__ is cause

    def test_passes_other_errors_through(self):
        with pytest.raises(NotFoundError), store_errors("x"):
            raise NotFoundError("Thing")


# =============================================================================
# Exception handlers
# =============================================================================


class _Body(BaseModel):
    name: str


@pytest.fixture
def app() -> FastAPI:
    app = create_app()

    @app.get("/test/not-found")
    async def raise_not_found():
        raise NotFoundError("Reset token")

    @app.get("/test/internal")
    async def raise_internal():
        raise InternalError(
            "Database failure in session.validate",
            operation="session.validate",
            context={"stage": "touch"},
            user_id=3,
        )

    @app.get("/test/crash")
    async def crash():
        raise RuntimeError("unexpected")

    @app.post("/test/body")
    async def echo(body: _Body):
        return body

    return app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def mock_log_error():
    with patch("gatekeeper.main.log_error", new_callable=AsyncMock) as mock:
        yield mock


class TestExceptionHandlers:
    """Errors map to the JSON error envelope."""

    @pytest.mark.asyncio
    async def test_client_error_returned_as_raised(self, client, mock_log_error):
        response = await client.get("/test/not-found")
        assert response.status_code == 404
        assert response.json() == {
            "error": {
                "code": "NOT_FOUND",
                "message": "Reset token not found",
                "details": None,
            }
        }
        mock_log_error.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_internal_error_is_generic_and_audited(
        self, client, mock_log_error
    ):
        response = await client.get("/test/internal")
        assert response.status_code == 500
        body = response.json()["error"]
        assert body["code"] == "INTERNAL_ERROR"
        assert body["message"] == "An unexpected error occurred"

        mock_log_error.assert_awaited_once()
        name, message, err, context, user_id = mock_log_error.await_args.args
        assert name == "session.validate"
        assert message == "Database failure in session.validate"
        assert isinstance(err, InternalError)
        assert context == {
            "stage": "touch",
            "method": "GET",
            "path": "/test/internal",
        }
        assert user_id == 3

    @pytest.mark.asyncio
    async def test_unhandled_exception_is_generic_and_audited(
        self, client, mock_log_error
    ):
        response = await client.get("/test/crash")
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"
        assert "unexpected" not in response.text
        mock_log_error.assert_awaited_once()
        assert mock_log_error.await_args.args[0] == "unhandled"

    @pytest.mark.asyncio
    async def test_malformed_json_is_400(self, client):
        response = await client.post(
            "/test/body",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_wrong_type_is_400_with_details(self, client):
        response = await client.post("/test/body", json={"name": 5})
        assert response.status_code == 400
        details = response.json()["error"]["details"]
        assert details[0]["loc"] == ["body", "name"]

    @pytest.mark.asyncio
    async def test_missing_field_is_400(self, client):
        response = await client.post("/test/body", json={})
        assert response.status_code == 400
