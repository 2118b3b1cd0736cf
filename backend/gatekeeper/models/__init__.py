"""SQLAlchemy ORM models for Gatekeeper.

All models are exported from this module for convenient imports:
    from gatekeeper.models import User, Session, ...

Models are organized by domain:
- user.py: User
- session.py: Session (sliding-expiry login sessions)
- purpose_token.py: VerificationToken, PasswordResetToken, EmailChangeToken
- error_log.py: ErrorLog (audit sink storage)
"""

from gatekeeper.models.base import Base, PurposeTokenMixin
from gatekeeper.models.error_log import ErrorLog
from gatekeeper.models.purpose_token import (
    EmailChangeToken,
    PasswordResetToken,
    VerificationToken,
)
from gatekeeper.models.session import Session
from gatekeeper.models.user import User

__all__ = [
    "Base",
    "EmailChangeToken",
    "ErrorLog",
    "PasswordResetToken",
    "PurposeTokenMixin",
    "Session",
    "User",
    "VerificationToken",
]
