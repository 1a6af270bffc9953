"""
Authentication service — signup and login business logic.

The router calls these functions and translates the results into HTTP
responses, so the logic can be tested without a web server.

Signup flow:
  1. Check if email is already registered
  2. Hash the password with Argon2id
  3. Create User + UserProfile in a single database transaction
     (the profile carries the member's total_offset counter, starting at 0)
  4. Return a JWT token so the member is immediately logged in

Login flow:
  1. Look up user by email
  2. Verify password against stored hash
  3. Return a JWT token

Login returns the same error for "wrong password" and "email not found"
to prevent user enumeration.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.exceptions import DuplicateEmailError, InvalidCredentialsError
from carbon_market.models.user import User, UserType
from carbon_market.models.user_profile import UserProfile
from carbon_market.security import hash_password, verify_password, create_access_token


async def signup(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
) -> tuple[User, str]:
    """
    Register a new member and create their profile.

    Both rows are created in a single transaction; if either fails,
    neither is persisted.

    Returns:
        Tuple of (User instance, JWT token string).

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise DuplicateEmailError(email)

    user = User(
        email=email,
        hashed_password=hash_password(password),
        user_type=UserType.MEMBER,
    )
    db.add(user)
    # Flush to get user.id for the profile FK
    await db.flush()

    db.add(
        UserProfile(
            user_id=user.id,
            first_name=first_name,
            last_name=last_name,
            total_offset=0,
        )
    )
    await db.flush()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a JWT token.

    Raises:
        InvalidCredentialsError: If email doesn't exist, the password is
            wrong, or the account is deactivated.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    # Same error for every case
    if not user:
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    if not user.is_active:
        raise InvalidCredentialsError()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token
