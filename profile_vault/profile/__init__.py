"""Encrypted, anonymizable user financial profiles."""
from .anonymizer import ProfileAnonymizer
from .crypto import ProfileEncryptionService
from .enhancer import ProfileEnhancer
from .extractor import ProfileExtractor
from .manager import ProfileManager, RotationReport, rotate_profile_keys
from .schema import AnonymizationResult, Conversation, EncryptedPayload

__all__ = [
    "ProfileManager",
    "ProfileAnonymizer",
    "ProfileEncryptionService",
    "ProfileEnhancer",
    "ProfileExtractor",
    "RotationReport",
    "rotate_profile_keys",
    "AnonymizationResult",
    "Conversation",
    "EncryptedPayload",
]
