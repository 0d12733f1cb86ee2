"""
Local login and actor resolution.

``authenticate`` verifies email + password (bcrypt) and returns the user.
``load_actor`` turns the user id from a verified token into the explicit
``Actor`` every service operation takes.
"""

import logging
from datetime import datetime, timezone

from ppmp.core.exceptions import AuthenticationError
from ppmp.models import db
from ppmp.models.auth import User
from ppmp.services.permission import Actor
from ppmp.utils.crypto import verify_password

logger = logging.getLogger(__name__)


def authenticate(email: str | None, password: str | None) -> User:
    """Return the active user matching the credentials or raise AuthenticationError."""
    email = (email or "").strip().lower()
    if not email or not password:
        raise AuthenticationError("Email and password are required")

    user = User.query.filter(db.func.lower(User.email) == email).first()
    if user is None or not user.is_active or not verify_password(password, user.password_hash):
        logger.warning("Failed login", extra={"event_type": "login_failed"})
        raise AuthenticationError("Invalid email or password")

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    logger.info("User %s logged in", user.id, extra={"user_id": user.id, "event_type": "login"})
    return user


def load_user(user_id) -> User:
    try:
        user = db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        user = None
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")
    return user


def load_actor(user_id) -> Actor:
    return Actor.from_user(load_user(user_id))
