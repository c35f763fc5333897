"""User credential model and its detached snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column  # type: ignore[attr-defined]  # SQLAlchemy 2.0 features

from .base import Base


class User(Base):
    """One end-user's linkage to a Spotify account.

    ``user_id`` is the caller-supplied external id, not the Spotify id.
    ``updated_at`` doubles as the issued-at time of the current access token.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_in: Mapped[int | None] = mapped_column(Integer, nullable=True)
    api_token: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    def to_credential(self) -> UserCredential:
        return UserCredential(
            external_id=self.user_id,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            issued_at=self.updated_at,
            api_token=self.api_token,
            expires_in=self.expires_in,
        )

    def __repr__(self) -> str:
        """String representation of User."""
        return f"<User(id={self.id}, user_id='{self.user_id}')>"


@dataclass(frozen=True)
class UserCredential:
    """Read-only view of a stored credential, borrowed for one gateway call."""

    external_id: str
    access_token: str
    refresh_token: str
    issued_at: datetime
    api_token: str | None = None
    expires_in: int | None = None

    def is_expired(self, window_seconds: int, now: datetime | None = None) -> bool:
        """Check whether the access token is past the fixed expiry window.

        Args:
            window_seconds: Lifetime of an access token in seconds
            now: Reference time, defaults to the current UTC time

        Returns:
            True when ``now >= issued_at + window_seconds``
        """
        now = now or datetime.now(UTC)
        issued_at = self.issued_at
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=UTC)
        return now >= issued_at + timedelta(seconds=window_seconds)
