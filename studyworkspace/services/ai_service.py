"""
AI content generation: summaries, flashcards, quizzes and grounded chat.

Every call truncates its input to ``ai_input_max_chars``. Flashcard and quiz
generation ask the model for a bare JSON array and validate it; anything that
does not parse raises AIGenerationError. Only transport-level failures
(connection drops, rate limits, overload) are retried.
"""

import asyncio
import logging

from anthropic import APIConnectionError, APIError, APIStatusError, AsyncAnthropic, RateLimitError
from pydantic import TypeAdapter, ValidationError

from studyworkspace.config import get_settings
from studyworkspace.schemas.flashcards import Flashcard
from studyworkspace.schemas.quizzes import QuizQuestion

logger = logging.getLogger(__name__)
settings = get_settings()

# Transient error types that warrant retrying
_RETRYABLE_ERRORS = (APIConnectionError, RateLimitError)

_flashcards_adapter = TypeAdapter(list[Flashcard])
_questions_adapter = TypeAdapter(list[QuizQuestion])


class AIGenerationError(Exception):
    """Raised when the model call fails or its output cannot be used."""


async def _retry_anthropic(coro_factory, *, max_attempts: int = 3, base_delay: float = 1.0):
    """
    Retry an Anthropic API call with exponential backoff.

    Args:
        coro_factory: Callable that returns a new coroutine each invocation.
        max_attempts: Maximum number of attempts.
        base_delay: Base delay in seconds (doubles each retry).

    Returns:
        The result of the coroutine.
    """
    for attempt in range(max_attempts):
        try:
            return await coro_factory()
        except _RETRYABLE_ERRORS as e:
            if attempt == max_attempts - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "Anthropic API transient error (attempt %d/%d), retrying in %.1fs: %s",
                attempt + 1, max_attempts, delay, str(e),
            )
            await asyncio.sleep(delay)
        except APIStatusError as e:
            # 529 = overloaded; every other status is final
            if e.status_code != 529 or attempt == max_attempts - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "Anthropic API overloaded (attempt %d/%d), retrying in %.1fs",
                attempt + 1, max_attempts, delay,
            )
            await asyncio.sleep(delay)


def _truncate(text: str, limit: int | None = None) -> str:
    limit = limit or settings.ai_input_max_chars
    return text[:limit]


def _strip_code_fence(raw: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    text = raw.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


SUMMARY_PROMPT = """Summarize the study material below for a student.

Respond in exactly this markdown format and nothing else:

## Key Points
- <point>
- <point>
(5 to 8 bullet points)

## Conclusion
<two or three sentences tying the points together>

Material:
{text}"""

FLASHCARDS_PROMPT = """You are a strict teacher. Create {count} flashcards from the provided text.
Return ONLY a JSON array, with no prose and no code fences, in this format:
[{{"front": "question", "back": "answer"}}]

Text:
{text}"""

QUIZ_PROMPT = """Create a multiple-choice quiz of exactly {count} questions from the provided text.
Each question must have exactly 4 options, a zero-based correctIndex and a short explanation.
Return ONLY a JSON array, with no prose and no code fences, in this format:
[{{"questionText": "...", "options": ["A", "B", "C", "D"], "correctIndex": 0, "explanation": "..."}}]

Text:
{text}"""

CHAT_SYSTEM_PROMPT = (
    "You are a helpful study assistant. Answer the user's question based strictly on the "
    "provided context. If the context does not contain the answer, say so."
)


class AIService:
    """Prompt/response wrapper around the hosted model."""

    def __init__(self):
        """Initialize Anthropic client."""
        self.client = AsyncAnthropic(api_key=settings.anthropic_api_key)

    async def _complete(self, prompt: str, *, system: str | None = None) -> str:
        kwargs = {
            "model": settings.llm_model,
            "max_tokens": settings.llm_max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        try:
            message = await _retry_anthropic(lambda: self.client.messages.create(**kwargs))
        except APIError as e:
            logger.error("Anthropic call failed: %s", e)
            raise AIGenerationError("Generation failed") from e
        return "".join(block.text for block in message.content if block.type == "text")

    async def summarize(self, text: str) -> str:
        """Bullet-point summary with a conclusion."""
        summary = await self._complete(SUMMARY_PROMPT.format(text=_truncate(text)))
        if not summary.strip():
            raise AIGenerationError("Generation failed: empty summary")
        return summary.strip()

    async def generate_flashcards(self, text: str) -> list[Flashcard]:
        raw = await self._complete(
            FLASHCARDS_PROMPT.format(count=settings.flashcard_count, text=_truncate(text))
        )
        try:
            cards = _flashcards_adapter.validate_json(_strip_code_fence(raw))
        except ValidationError as e:
            logger.error("Flashcard output did not parse: %s", e)
            raise AIGenerationError("Generation failed: invalid flashcard JSON") from e
        if not cards:
            raise AIGenerationError("Generation failed: no flashcards returned")
        return cards

    async def generate_quiz(self, text: str) -> list[QuizQuestion]:
        count = settings.quiz_question_count
        raw = await self._complete(QUIZ_PROMPT.format(count=count, text=_truncate(text)))
        try:
            questions = _questions_adapter.validate_json(_strip_code_fence(raw))
        except ValidationError as e:
            logger.error("Quiz output did not parse: %s", e)
            raise AIGenerationError("Generation failed: invalid quiz JSON") from e
        if not questions:
            raise AIGenerationError("Generation failed: no questions returned")
        return questions[:count]

    async def chat(self, query: str, context: str) -> str:
        """Answer query using only the supplied context."""
        prompt = f"Context:\n{_truncate(context)}\n\nUser Question:\n{query}"
        return (await self._complete(prompt, system=CHAT_SYSTEM_PROMPT)).strip()


# Singleton instance
ai_service = AIService()
