"""Profile extractor — ask a language model to fold new facts from a conversation into the profile."""
import logging

from ..errors import ExtractionFailed
from ..llm.base import LLMProvider
from .schema import Conversation

logger = logging.getLogger(__name__)

EXTRACTION_TEMPERATURE = 0.1

_PROMPT_TEMPLATE = """\
Analyze this financial conversation and update the user's profile.

Current conversation:
Q: {question}
{answer_line}

{profile_line}

Extract any new information about the user from the {sources} and update the profile text.
Include details like:
- Age or age range
- Occupation or employer
- Education level
- Family status and children
- Location or city
- Income level or financial situation
- Financial goals and priorities
- Investment style or risk tolerance
- Debt situation
- Any other relevant personal or financial information

IMPORTANT: Only return the updated profile text in natural language format.
Do NOT include the original question or answer in the profile.
Focus on extracting factual information about the user's personal and financial situation.

If no new information is found, return the existing profile unchanged.
"""


def build_extraction_prompt(conversation: Conversation, existing_profile: str) -> str:
    """Render the extraction prompt for one conversation turn."""
    if conversation.has_answer:
        answer_line = f"A: {conversation.answer}"
        sources = "question and answer"
    else:
        answer_line = "A: (No answer yet - extracting from question only)"
        sources = "question"

    profile_line = (
        f"Current profile: {existing_profile}" if existing_profile
        else "No existing profile."
    )
    return _PROMPT_TEMPLATE.format(
        question=conversation.question,
        answer_line=answer_line,
        profile_line=profile_line,
        sources=sources,
    )


class ProfileExtractor:
    """Extracts personal and financial facts from conversations.

    Failures never escape: any provider error leaves the profile unchanged.
    """

    def __init__(self, provider: LLMProvider, model: str | None = None):
        self._provider = provider
        self._model = model

    async def _complete(self, prompt: str) -> str:
        kwargs = {"temperature": EXTRACTION_TEMPERATURE}
        if self._model:
            kwargs["model"] = self._model
        try:
            response = await self._provider.run(prompt, **kwargs)
        except Exception as e:
            raise ExtractionFailed(type(e).__name__) from e
        return response.content.strip()

    async def extract_and_update_profile(
        self,
        user_id: str,
        conversation: Conversation,
        existing_profile: str = "",
    ) -> str:
        """Return the profile text with any new facts from the conversation merged in."""
        existing_profile = existing_profile or ""
        prompt = build_extraction_prompt(conversation, existing_profile)

        try:
            extracted = await self._complete(prompt)
        except ExtractionFailed as e:
            logger.error("Profile extraction failed for user %s: %s", user_id, e)
            return existing_profile

        if not extracted:
            return existing_profile

        if extracted in (conversation.question.strip(), conversation.answer.strip()):
            logger.warning(
                "Extracted profile for user %s echoes the raw conversation, keeping existing profile",
                user_id,
            )
            return existing_profile

        return extracted
