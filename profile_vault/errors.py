"""Error taxonomy for profile storage, anonymization and extraction."""


class ProfileVaultError(Exception):
    """Base class for all profile-vault errors."""


class InvalidKey(ProfileVaultError):
    """Encryption key is missing or shorter than 256 bits. Fatal at startup."""


class DecryptionFailed(ProfileVaultError):
    """Ciphertext could not be authenticated or decoded.

    Raised for a wrong key, corrupted ciphertext, tampered tag or nonce, or
    mismatched associated data. The message is fixed and never carries
    plaintext, key bytes or ciphertext.
    """

    def __init__(self, message: str = "Failed to decrypt profile data"):
        super().__init__(message)


class UserNotFound(ProfileVaultError):
    """No user record exists for the given id."""


class ExtractionFailed(ProfileVaultError):
    """The language model could not produce an updated profile."""
