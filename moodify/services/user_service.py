"""
moodify.services.user_service — Identity
=========================================

Users pick a nickname on first launch and get an opaque, permanent id.
Everything that earns or reads XP is keyed on that id; the nickname is a
display string that can change at any time without touching claim history.

Identity is always handed in explicitly (:class:`Identity`) instead of
being read from ambient session state, so tests can use fake identities.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from moodify.database.engine import get_session, insert_if_absent
from moodify.database.models import User
from moodify.exceptions import InvalidUserError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MAX_NICKNAME_LENGTH = 100


@dataclass(frozen=True, slots=True)
class Identity:
    """The signed-in user, as supplied by the session layer."""

    user_id: str | None
    nickname: str = ""

    def validate(self) -> None:
        """Raise :class:`InvalidUserError` unless a user id is present."""
        if not self.user_id or not str(self.user_id).strip():
            raise InvalidUserError("No user identity available for this action.")


def _clean_nickname(nickname: str) -> str:
    nickname = (nickname or "").strip()
    if not nickname:
        raise ValueError("Nickname cannot be blank.")
    if len(nickname) > MAX_NICKNAME_LENGTH:
        raise ValueError(f"Nickname is longer than {MAX_NICKNAME_LENGTH} characters.")
    return nickname


def ensure_user(session: Session, identity: Identity) -> bool:
    """Create the User row for *identity* unless it already exists.

    The token's nickname is only used for a brand-new row; an existing
    nickname is changed solely through :func:`rename_user`, so a client
    holding a pre-rename token cannot revert it.  Returns True if created.
    """
    identity.validate()
    created = insert_if_absent(
        session, User,
        {"id": identity.user_id, "nickname": identity.nickname or identity.user_id},
        [User.id],
    )
    if created:
        logger.info("Created user %s on first award", identity.user_id)
    return created


def register_user(engine: Engine, nickname: str) -> User:
    """Create a new user with a fresh opaque id."""
    nickname = _clean_nickname(nickname)
    with get_session(engine) as session:
        user = User(
            id=uuid.uuid4().hex,
            nickname=nickname,
            last_login=datetime.now(UTC),
        )
        session.add(user)
    logger.info("Registered user %s (%s)", user.id, nickname)
    return user


def get_user(engine: Engine, user_id: str) -> User | None:
    with get_session(engine) as session:
        return session.get(User, user_id)


def rename_user(engine: Engine, user_id: str, nickname: str) -> User:
    """Change the display nickname.  Claims and XP are untouched.

    Raises
    ------
    InvalidUserError
        If *user_id* is unknown.
    """
    nickname = _clean_nickname(nickname)
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise InvalidUserError(f"Unknown user: {user_id}", user_id=user_id)
        old = user.nickname
        user.nickname = nickname
    logger.info("User %s renamed %r → %r", user_id, old, nickname)
    return user


def touch_login(engine: Engine, user_id: str) -> bool:
    """Stamp ``last_login``.  Returns False for unknown users."""
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return False
        user.last_login = datetime.now(UTC)
        return True
