"""Profile manager — encrypted storage, anonymized AI view, original user view."""
import logging
from dataclasses import dataclass, field

from ..config import Settings
from ..errors import DecryptionFailed, UserNotFound
from ..output_sanitizer import contains_anonymized_tokens, deanonymize
from ..store import ProfileStore, StoredProfile, StoredUser
from .anonymizer import ProfileAnonymizer
from .crypto import ALGORITHM, ProfileEncryptionService
from .extractor import ProfileExtractor
from .schema import Conversation, EncryptedPayload

logger = logging.getLogger(__name__)

RECOVERY_DELIMITER = "--- RECOVERED DATA ---"


class ProfileManager:
    """Owns the profile read/write lifecycle. Never hands raw PII to the AI path.

    AI-context builders call only get_or_create_profile and
    update_profile_from_conversation. The user's own profile display calls
    only get_original_profile.
    """

    def __init__(
        self,
        store: ProfileStore,
        encryption: ProfileEncryptionService,
        extractor: ProfileExtractor | None = None,
        session_id: str = "default-session",
    ):
        self._store = store
        self._encryption = encryption
        self._extractor = extractor
        self._session_id = session_id

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: ProfileStore | None = None,
        extractor: ProfileExtractor | None = None,
    ) -> "ProfileManager":
        """Wire a manager from process settings. Raises InvalidKey on bad key material."""
        encryption = ProfileEncryptionService(settings.encryption_key.get_secret_value())

        if store is None:
            from ..database import create_db_engine, init_db, make_session_factory

            engine = create_db_engine(settings.database_url)
            init_db(engine)
            store = ProfileStore(make_session_factory(engine))

        if extractor is None and settings.extraction_enabled:
            from ..llm import get_provider

            provider = get_provider(
                model=settings.llm_model,
                api_key=settings.llm_api_key.get_secret_value(),
                base_url=settings.llm_base_url,
            )
            extractor = ProfileExtractor(provider)

        return cls(store, encryption, extractor=extractor, session_id=settings.session_id)

    # -- internals ---------------------------------------------------------

    def _require_user(self, user_id: str) -> StoredUser:
        user = self._store.get_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def _read_text(self, profile: StoredProfile) -> str:
        """Decrypt the profile blob, falling back to the legacy plaintext mirror."""
        if profile.blob is None:
            return profile.profile_text

        try:
            return self._encryption.decrypt(
                profile.blob.encrypted_data,
                profile.blob.iv,
                profile.blob.tag,
            )
        except DecryptionFailed:
            logger.warning(
                "Failed to decrypt profile %s, falling back to legacy plaintext",
                profile.profile_hash,
            )
            return profile.profile_text

    # -- AI path -----------------------------------------------------------

    def get_or_create_profile(self, user_id: str) -> str:
        """Return the anonymized profile for AI context, creating the row if needed.

        Returns "" for an unknown user without creating anything.
        """
        try:
            user = self._require_user(user_id)
        except UserNotFound:
            logger.info("User not found, cannot create profile for user %s", user_id)
            return ""

        profile = self._store.find_or_create_profile(user.id, user.email)
        original = self._read_text(profile)

        result = ProfileAnonymizer(self._session_id).anonymize(original)
        logger.info(
            "Profile anonymized for user %s: %d tokens, original length %d, anonymized length %d",
            user_id, len(result.tokenization_map), len(original), len(result.anonymized_text),
        )
        return result.anonymized_text

    async def update_profile_from_conversation(self, user_id: str, conversation: Conversation) -> None:
        """Merge facts from a conversation turn into the profile, writing only on change."""
        if self._extractor is None:
            logger.debug("No extractor configured, skipping profile update for user %s", user_id)
            return

        if self._store.get_user(user_id) is None:
            logger.info("User not found, skipping conversation extraction for user %s", user_id)
            return

        current = self.get_original_profile(user_id)
        updated = await self._extractor.extract_and_update_profile(user_id, conversation, current)

        if updated != current:
            self.update_profile(user_id, updated)
            logger.info("Profile updated from conversation for user %s", user_id)
        else:
            logger.info("No new profile information found for user %s", user_id)

    # -- user display path -------------------------------------------------

    def get_original_profile(self, user_id: str) -> str:
        """Return the decrypted, non-anonymized profile for the user's own display."""
        try:
            user = self._require_user(user_id)
        except UserNotFound:
            return ""

        profile = self._store.find_profile(user.id, user.email)
        if profile is None:
            return ""

        text = self._read_text(profile)
        if contains_anonymized_tokens(text):
            logger.warning("Stored profile for user %s contains anonymization tokens, sanitizing", user_id)
            return deanonymize(text)
        return text

    # -- writes ------------------------------------------------------------

    def update_profile(self, user_id: str, new_profile_text: str) -> None:
        """Encrypt and persist new profile text. Migrates legacy plaintext rows."""
        try:
            user = self._require_user(user_id)
        except UserNotFound:
            logger.info("User not found, cannot update profile for user %s", user_id)
            return

        payload = self._encryption.encrypt(new_profile_text)
        saved = self._store.save_encrypted(user.id, user.email, payload, ALGORITHM)
        logger.debug("Profile %s written, version %d", saved.profile_hash, saved.version)

    def recover_profile(self, user_id: str, backup_profile_text: str) -> None:
        """Restore a profile from backup text without discarding current content."""
        logger.info("Attempting to recover profile for user %s", user_id)
        current = self.get_original_profile(user_id)

        if current.strip() and current != backup_profile_text:
            self.update_profile(
                user_id, f"{current}\n\n{RECOVERY_DELIMITER}\n{backup_profile_text}"
            )
            logger.info("Profile recovered and appended for user %s", user_id)
        elif not current.strip():
            self.update_profile(user_id, backup_profile_text)
            logger.info("Profile fully restored from backup for user %s", user_id)
        else:
            logger.info("Profile recovery not needed for user %s", user_id)

    def get_profile_history(self, user_id: str) -> list[str]:
        """Current profile as a one-item history. No past versions are retained."""
        current = self.get_original_profile(user_id)
        return [current] if current else []


@dataclass
class RotationReport:
    """Outcome of a key-rotation pass."""
    rotated: int = 0
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.rotated + len(self.failed)


def rotate_profile_keys(
    store: ProfileStore,
    old_key: str | bytes,
    new_key: str | bytes,
) -> RotationReport:
    """Re-encrypt every stored profile blob from old_key to new_key.

    Blobs that do not decrypt under old_key are left untouched and reported
    by profile hash.
    """
    ProfileEncryptionService(new_key)  # fail fast on bad new key material
    report = RotationReport()

    for blob in store.list_blobs():
        try:
            payload: EncryptedPayload = ProfileEncryptionService.rotate_key(
                old_key, new_key, blob.encrypted_data, blob.iv, blob.tag,
            )
        except DecryptionFailed:
            logger.error("Key rotation failed for profile %s", blob.profile_hash)
            report.failed.append(blob.profile_hash)
            continue

        store.replace_blob(blob.profile_hash, payload, ALGORITHM)
        report.rotated += 1

    logger.info("Key rotation complete: %d rotated, %d failed", report.rotated, len(report.failed))
    return report
