"""Repository for User operations.

Provides database access for the users table. Emails are stored
lower-cased, so lookups compare against the normalized value directly.
"""

from sqlalchemy import exists, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.models.user import User


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; there is no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: int,
        name: str,
        email: str,
        password_hash: str,
    ) -> bool:
        """Insert a new account unless the email is already registered.

        Uses ``ON CONFLICT (email) DO NOTHING`` so two concurrent
        registrations for one address cannot both succeed.

        Args:
            db: Async database session.
            user_id: Generator-assigned id.
            name: Display name.
            email: Normalized (lower-cased) email.
            password_hash: Argon2id digest.

        Returns:
            True if the row was inserted, False if the email was taken.
        """
        stmt = (
            pg_insert(User)
            .values(
                id=user_id,
                name=name,
                email=email,
                password_hash=password_hash,
                email_verified=False,
            )
            .on_conflict_do_nothing(index_elements=["email"])
            .returning(User.id)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: int) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: Primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by normalized email address.

        Args:
            db: Async database session.
            email: Lower-cased email address.

        Returns:
            User if found, None otherwise.
        """
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    @staticmethod
    async def email_registered(
        db: AsyncSession, email: str, *, exclude_user_id: int | None = None
    ) -> bool:
        """Check whether an account already uses an email.

        Args:
            db: Async database session.
            email: Lower-cased email address.
            exclude_user_id: Account to ignore (the caller itself).

        Returns:
            True if another account holds the address.
        """
        condition = User.email == email
        if exclude_user_id is not None:
            condition = condition & (User.id != exclude_user_id)
        result = await db.execute(select(exists().where(condition)))
        return bool(result.scalar())

    @staticmethod
    async def mark_verified(db: AsyncSession, user_id: int) -> bool:
        """Set the verified flag. Idempotent.

        Args:
            db: Async database session.
            user_id: Account to verify.

        Returns:
            True if the account exists.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(email_verified=True)
            .returning(User.id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def set_password_hash(
        db: AsyncSession, user_id: int, password_hash: str
    ) -> bool:
        """Overwrite the stored password digest.

        Args:
            db: Async database session.
            user_id: Account to update.
            password_hash: New Argon2id digest.

        Returns:
            True if the account exists.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(password_hash=password_hash)
            .returning(User.id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def set_email(db: AsyncSession, user_id: int, email: str) -> bool:
        """Overwrite the account's email.

        Raises IntegrityError (from the unique constraint) if another account
        claimed the address concurrently; callers map that to a conflict.

        Args:
            db: Async database session.
            user_id: Account to update.
            email: New lower-cased email.

        Returns:
            True if the account exists.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(email=email)
            .returning(User.id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def set_name(db: AsyncSession, user_id: int, name: str) -> bool:
        """Overwrite the display name.

        Args:
            db: Async database session.
            user_id: Account to update.
            name: New display name.

        Returns:
            True if the account exists.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(name=name)
            .returning(User.id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None
