"""
models.py — SQLAlchemy ORM models for users, profiles and encrypted profile blobs.

Tables:
    users                   external user record (id, email); read-only here
    user_profiles           one row per user; profile_text is the legacy plaintext mirror
    encrypted_profile_data  zero or one per profile, joined on profile_hash

A profile without an encrypted_profile_data row is in legacy plaintext state.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserORM(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)


class UserProfileORM(Base):
    """
    One profile per user.

    profile_hash: opaque identifier minted at creation, used as the join key
                  to the encrypted blob. Not derived from content.
    email:        legacy lookup key only; a reassigned email may appear on
                  more than one linked row.
    version:      optimistic-lock counter; a write based on a stale read
                  raises StaleDataError instead of silently winning.
    """
    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    email: Mapped[str] = mapped_column(String(320), index=True, nullable=False)
    profile_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="SET NULL"),
        unique=True,
        nullable=True,
    )
    profile_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    conversation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False,
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    encrypted_data: Mapped[Optional["EncryptedProfileDataORM"]] = relationship(
        back_populates="profile",
        uselist=False,
        lazy="joined",
    )

    __mapper_args__ = {"version_id_col": version}


class EncryptedProfileDataORM(Base):
    """Ciphertext of one profile. All binary columns hold base64 text."""
    __tablename__ = "encrypted_profile_data"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    profile_hash: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("user_profiles.profile_hash", onupdate="CASCADE"),
        unique=True,
        nullable=False,
    )
    encrypted_data: Mapped[str] = mapped_column(Text, nullable=False)
    iv: Mapped[str] = mapped_column(String(64), nullable=False)
    tag: Mapped[str] = mapped_column(String(64), nullable=False)
    key_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    algorithm: Mapped[str] = mapped_column(String(32), default="aes-256-gcm", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False,
    )

    profile: Mapped[UserProfileORM] = relationship(back_populates="encrypted_data")
