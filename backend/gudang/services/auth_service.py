# Overview: Password hashing and user bootstrap for the actors recorded in the ledger.

"""
WHY: Every ledger row and approval must be attributable to an authenticated
actor. Passwords are hashed with bcrypt; sessions are handled in
session_service.

Account administration (listing, editing, deactivating users) is outside
this service. Users are seeded through `flask users create`.
"""

import bcrypt
from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_STAFF


MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash password using bcrypt (cost factor 12 unless told otherwise)."""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes simply fail."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    display_name: str | None = None,
    role: str = ROLE_STAFF,
    rounds: int = 12,
) -> User:
    """
    Create a user. Raises ValueError on a duplicate username or unknown role,
    PasswordValidationError on a weak password.
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    if db.session.query(User).filter_by(username=username).first():
        raise ValueError(f"Username {username} already exists")

    user = User(
        username=username,
        display_name=display_name or username,
        password_hash=hash_password(password, rounds=rounds),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    user = db.session.query(User).filter_by(username=username).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
