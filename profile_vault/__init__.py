"""Per-user financial profiles: encrypted at rest, anonymized for AI, original for display."""
from .config import Settings, load_settings
from .errors import DecryptionFailed, ExtractionFailed, InvalidKey, ProfileVaultError, UserNotFound
from .profile import Conversation, ProfileManager

__all__ = [
    "Settings",
    "load_settings",
    "ProfileManager",
    "Conversation",
    "ProfileVaultError",
    "InvalidKey",
    "DecryptionFailed",
    "UserNotFound",
    "ExtractionFailed",
]
