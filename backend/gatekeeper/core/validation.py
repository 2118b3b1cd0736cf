"""Semantic validation of account fields.

Shape problems (wrong types, unknown fields, unparseable JSON) are caught by
the request models and answered with 400. The checks here run on
well-formed input and answer 422.
"""

from email_validator import EmailNotValidError, validate_email

from gatekeeper.core.errors import UnprocessableError
from gatekeeper.models.user import EMAIL_MAX_LENGTH, NAME_MAX_LENGTH


def normalize_email(raw: str) -> str:
    """Lower-case, trim and validate an email address.

    Args:
        raw: Address as submitted.

    Returns:
        Normalized address used for storage and lookup.

    Raises:
        UnprocessableError: If the address is too long or not syntactically
            valid.
    """
    email = raw.strip().lower()
    if len(email) > EMAIL_MAX_LENGTH:
        raise UnprocessableError(
            f"Email must be at most {EMAIL_MAX_LENGTH} characters",
            details=[{"field": "email", "error": "TOO_LONG"}],
        )
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise UnprocessableError(
            "Invalid email address",
            details=[{"field": "email", "error": "INVALID_FORMAT"}],
        ) from exc
    return email


def validate_name(name: str) -> str:
    """Check a display name.

    Args:
        name: Name as submitted.

    Returns:
        The name with surrounding whitespace removed.

    Raises:
        UnprocessableError: If the name is empty or longer than 64 characters.
    """
    name = name.strip()
    if not name:
        raise UnprocessableError(
            "Name must not be empty",
            details=[{"field": "name", "error": "EMPTY"}],
        )
    if len(name) > NAME_MAX_LENGTH:
        raise UnprocessableError(
            f"Name must be at most {NAME_MAX_LENGTH} characters",
            details=[{"field": "name", "error": "TOO_LONG"}],
        )
    return name


def validate_password_length(password: str, min_length: int) -> None:
    """Enforce the minimum password length.

    No maximum applies beyond the request body cap.

    Args:
        password: Plain password to check.
        min_length: Minimum number of characters.

    Raises:
        UnprocessableError: If the password is too short.
    """
    if len(password) < min_length:
        raise UnprocessableError(
            f"Password must be at least {min_length} characters",
            details=[{"field": "password", "error": "TOO_SHORT"}],
        )
