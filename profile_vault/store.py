"""
store.py — persistence layer for profiles and their encrypted blobs.

The profile manager talks to the database only through ProfileStore. Reads
return frozen snapshots (StoredProfile, StoredBlob) instead of live ORM rows,
so nothing outside this module holds a session.

Lookup order is always user_id first, then email. The email fallback only
recovers rows created before user_id linkage existed (user_id IS NULL).
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .models import EncryptedProfileDataORM, UserORM, UserProfileORM

if TYPE_CHECKING:
    from .profile.schema import EncryptedPayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredUser:
    id: str
    email: str


@dataclass(frozen=True)
class StoredBlob:
    profile_hash: str
    encrypted_data: str
    iv: str
    tag: str
    key_version: int
    algorithm: str
    updated_at: datetime


@dataclass(frozen=True)
class StoredProfile:
    id: str
    user_id: Optional[str]
    email: str
    profile_hash: str
    profile_text: str
    is_active: bool
    conversation_count: int
    created_at: datetime
    last_updated: datetime
    version: int
    blob: Optional[StoredBlob] = None

    @property
    def is_encrypted(self) -> bool:
        return self.blob is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def mint_profile_hash(user_id: str) -> str:
    """Opaque join key for a new profile. Not derived from profile content."""
    return f"profile_{user_id}_{int(time.time() * 1000)}"


def _blob_snapshot(row: EncryptedProfileDataORM) -> StoredBlob:
    return StoredBlob(
        profile_hash=row.profile_hash,
        encrypted_data=row.encrypted_data,
        iv=row.iv,
        tag=row.tag,
        key_version=row.key_version,
        algorithm=row.algorithm,
        updated_at=row.updated_at,
    )


def _profile_snapshot(row: UserProfileORM) -> StoredProfile:
    return StoredProfile(
        id=row.id,
        user_id=row.user_id,
        email=row.email,
        profile_hash=row.profile_hash,
        profile_text=row.profile_text or "",
        is_active=row.is_active,
        conversation_count=row.conversation_count,
        created_at=row.created_at,
        last_updated=row.last_updated,
        version=row.version,
        blob=_blob_snapshot(row.encrypted_data) if row.encrypted_data else None,
    )


class ProfileStore:
    """Find/create/update profiles by user id, email and profile hash."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # -- internal helpers (caller owns the session) ------------------------

    @staticmethod
    def _find(session: Session, user_id: str, email: str | None) -> UserProfileORM | None:
        profile = session.scalars(
            select(UserProfileORM).where(UserProfileORM.user_id == user_id)
        ).first()
        if profile is None and email:
            profile = session.scalars(
                select(UserProfileORM).where(
                    UserProfileORM.email == email,
                    UserProfileORM.user_id.is_(None),
                )
            ).first()
        return profile

    @staticmethod
    def _create(session: Session, user_id: str, email: str) -> UserProfileORM:
        profile = UserProfileORM(
            email=email,
            profile_hash=mint_profile_hash(user_id),
            user_id=user_id,
            profile_text="",
            is_active=True,
            conversation_count=0,
        )
        session.add(profile)
        session.flush()
        logger.info("Created profile row for user %s", user_id)
        return profile

    # -- reads -------------------------------------------------------------

    def get_user(self, user_id: str) -> StoredUser | None:
        with self._session_factory() as session:
            user = session.get(UserORM, user_id)
            return StoredUser(id=user.id, email=user.email) if user else None

    def find_profile(self, user_id: str, email: str | None = None) -> StoredProfile | None:
        with self._session_factory() as session:
            profile = self._find(session, user_id, email)
            return _profile_snapshot(profile) if profile else None

    def find_by_hash(self, profile_hash: str) -> StoredProfile | None:
        with self._session_factory() as session:
            profile = session.scalars(
                select(UserProfileORM).where(UserProfileORM.profile_hash == profile_hash)
            ).first()
            return _profile_snapshot(profile) if profile else None

    def list_blobs(self) -> list[StoredBlob]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(EncryptedProfileDataORM).order_by(EncryptedProfileDataORM.profile_hash)
            ).all()
            return [_blob_snapshot(row) for row in rows]

    # -- writes ------------------------------------------------------------

    def find_or_create_profile(self, user_id: str, email: str) -> StoredProfile:
        with self._session_factory.begin() as session:
            profile = self._find(session, user_id, email) or self._create(session, user_id, email)
            return _profile_snapshot(profile)

    def save_encrypted(
        self,
        user_id: str,
        email: str,
        payload: "EncryptedPayload",
        algorithm: str,
    ) -> StoredProfile:
        """Find-or-create the profile row and upsert its blob in one transaction."""
        with self._session_factory.begin() as session:
            profile = self._find(session, user_id, email) or self._create(session, user_id, email)
            if profile.user_id is None:
                profile.user_id = user_id
            # migrated rows drop their plaintext mirror
            profile.profile_text = ""

            now = _utcnow()
            blob = profile.encrypted_data
            if blob is None:
                blob = EncryptedProfileDataORM(
                    id=profile.profile_hash,
                    profile_hash=profile.profile_hash,
                    created_at=now,
                )
                profile.encrypted_data = blob
                session.add(blob)

            blob.encrypted_data = payload.encrypted_data
            blob.iv = payload.iv
            blob.tag = payload.tag
            blob.key_version = payload.key_version
            blob.algorithm = algorithm
            blob.updated_at = now
            profile.last_updated = now

            session.flush()
            return _profile_snapshot(profile)

    def replace_blob(self, profile_hash: str, payload: "EncryptedPayload", algorithm: str) -> bool:
        """Overwrite the ciphertext of an existing blob. Returns False if none exists."""
        with self._session_factory.begin() as session:
            blob = session.scalars(
                select(EncryptedProfileDataORM).where(
                    EncryptedProfileDataORM.profile_hash == profile_hash
                )
            ).first()
            if blob is None:
                return False
            blob.encrypted_data = payload.encrypted_data
            blob.iv = payload.iv
            blob.tag = payload.tag
            blob.key_version = payload.key_version
            blob.algorithm = algorithm
            blob.updated_at = _utcnow()
            return True
