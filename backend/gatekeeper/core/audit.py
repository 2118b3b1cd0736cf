"""Audit sink for internal failures.

``log_error`` is the single place internal (500-class) failures are
recorded: a structured log line through structlog plus an ``error_log``
row written in its own database session, so the record survives the
rollback of the request that failed.

Expected outcomes (bad password, unknown token, expired token, conflicts)
are never sent here.
"""

import traceback
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from gatekeeper.core.database import async_session_factory
from gatekeeper.core.ids import IdGeneratorError, get_id_generator
from gatekeeper.models.error_log import ErrorLog

logger = structlog.get_logger()


def _format_stack(err: BaseException | None) -> str | None:
    if err is None or err.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(err))


def _describe(err: BaseException | None) -> str:
    if err is None:
        return ""
    cause = err.__cause__
    if cause is not None:
        return f"{err}: {type(cause).__name__}: {cause}"
    return str(err)


async def log_error(
    name: str,
    message: str,
    err: BaseException | None = None,
    context: dict[str, Any] | None = None,
    user_id: int = 0,
) -> None:
    """Record an internal failure.

    Never raises: a failure to persist the record is itself logged and
    swallowed, since the caller is already on an error path.

    Args:
        name: Operation name (e.g., "session.validate").
        message: Human-readable summary.
        err: Underlying exception, if any.
        context: Structured context. Must not contain raw passwords or tokens.
        user_id: Acting account id, 0 when unauthenticated.
    """
    context = context or {}
    logger.error(
        message,
        operation=name,
        error=_describe(err),
        user_id=user_id or None,
        **{f"ctx_{key}": value for key, value in context.items()},
    )

    generator = get_id_generator()
    try:
        record = ErrorLog(
            id=generator.next_id(),
            machine_id=generator.machine_id,
            name=name,
            message=message,
            error=_describe(err),
            stack_trace=_format_stack(err),
            context=context,
            user_id=user_id or None,
        )
        async with async_session_factory() as session:
            session.add(record)
            await session.commit()
    except (SQLAlchemyError, IdGeneratorError, OSError):
        logger.exception("Failed to persist error record", operation=name)
