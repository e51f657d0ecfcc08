"""Pydantic models and result types for profile data."""
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import BaseModel, Field


class Conversation(BaseModel):
    """A question/answer exchange. Read-only input to the extractor."""
    id: str | None = None
    question: str
    answer: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_answer(self) -> bool:
        return bool(self.answer and self.answer.strip())


class EncryptedPayload(BaseModel):
    """Output of a single encryption — all binary fields base64-encoded."""
    encrypted_data: str
    iv: str
    tag: str
    key_version: int = 1


@dataclass
class AnonymizationResult:
    """Anonymized profile text plus the token map used to build it."""
    anonymized_text: str
    tokenization_map: dict[str, str] = field(default_factory=dict)
    original_text: str = ""
