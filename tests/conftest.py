"""Shared test fixtures."""
import base64

import pytest

from profile_vault.database import create_db_engine, init_db, make_session_factory
from profile_vault.models import EncryptedProfileDataORM, UserORM, UserProfileORM
from profile_vault.profile.crypto import ProfileEncryptionService
from profile_vault.profile.manager import ProfileManager
from profile_vault.profile.schema import Conversation
from profile_vault.store import ProfileStore

TEST_KEY = base64.b64encode(b"k" * 32).decode()
OTHER_KEY = base64.b64encode(b"z" * 32).decode()


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return ProfileStore(session_factory)


@pytest.fixture
def encryption():
    return ProfileEncryptionService(TEST_KEY)


@pytest.fixture
def manager(store, encryption):
    return ProfileManager(store, encryption, session_id="test-session")


@pytest.fixture
def seed_user(session_factory):
    """Insert an external user record."""
    def _seed(user_id="user-1", email="jane@example.com"):
        with session_factory.begin() as session:
            session.add(UserORM(id=user_id, email=email))
        return user_id
    return _seed


@pytest.fixture
def seed_legacy_profile(session_factory):
    """Insert a pre-encryption profile row holding only plaintext."""
    def _seed(user_id, email, text, linked=True):
        with session_factory.begin() as session:
            session.add(UserProfileORM(
                email=email,
                profile_hash=f"legacy_{user_id}",
                user_id=user_id if linked else None,
                profile_text=text,
            ))
        return f"legacy_{user_id}"
    return _seed


@pytest.fixture
def seed_foreign_blob(session_factory):
    """Attach a blob encrypted under a different key to an existing profile."""
    def _seed(profile_hash, text="unreadable"):
        payload = ProfileEncryptionService(OTHER_KEY).encrypt(text)
        with session_factory.begin() as session:
            session.add(EncryptedProfileDataORM(
                id=profile_hash,
                profile_hash=profile_hash,
                encrypted_data=payload.encrypted_data,
                iv=payload.iv,
                tag=payload.tag,
                key_version=payload.key_version,
                algorithm="aes-256-gcm",
            ))
    return _seed


@pytest.fixture
def sample_conversation():
    return Conversation(
        id="conv-1",
        question="I'm 34 and just moved to Denver, CO. Should I pay off my car loan first?",
        answer="With a 7% rate, paying down the car loan is a reasonable priority.",
    )
