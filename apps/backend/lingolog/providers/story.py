"""Short-story generation for vocabulary practice (OpenAI Responses API).

学習中の単語を織り込んだ短い物語と、4問の読解クイズを LLM に JSON で
生成させる。モデルが ```json フェンス付きで返すことがあるため、解析前に
取り除く。
"""

from __future__ import annotations

import json
from typing import Any, Protocol

import openai
from openai import OpenAI
from pydantic import ValidationError as PydanticValidationError

from ..config import settings
from ..errors import StoryGenerationError
from ..logging import logger
from ..models.item import ReviewItem
from ..models.story import StoryResponse


class StoryProvider(Protocol):
    def generate_story(
        self, items: list[ReviewItem], language: str, language_name: str
    ) -> StoryResponse:  # pragma: no cover - interface definition
        ...


def format_word_list(items: list[ReviewItem]) -> str:
    """`term (translation)` をカンマ区切りで並べる。訳語のない語は除外する。"""

    return ", ".join(f"{it.term} ({it.translation})" for it in items if it.translation)


def build_story_prompt(word_list: str, language_name: str) -> str:
    return f"""You are a creative language learning assistant. Write a short, engaging story for language learners.

TASK: Write a short story (200-300 words) in {language_name} that naturally incorporates the following vocabulary words. The story should be simple enough for intermediate learners but interesting to read.

VOCABULARY WORDS TO INCLUDE:
{word_list}

REQUIREMENTS:
1. The story should be written entirely in {language_name}
2. Use all the vocabulary words naturally within the story
3. Keep sentences relatively simple but varied
4. Create an engaging narrative with a clear beginning, middle, and end
5. After the story, create 4 multiple-choice comprehension questions about the story content and vocabulary usage

RESPONSE FORMAT (strict JSON):
{{
    "title": "Story title in {language_name}",
    "story": "The full story text in {language_name}...",
    "questions": [
        {{
            "question": "Question text in {language_name}?",
            "options": ["Option A", "Option B", "Option C", "Option D"],
            "correctIndex": 0
        }}
    ]
}}

Make sure correctIndex is 0-based (0 for first option, 1 for second, etc.).
Return ONLY the JSON object, no additional text.
"""


def strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json"):]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_story_response(text: str) -> StoryResponse:
    cleaned = strip_code_fence(text)
    try:
        payload = json.loads(cleaned)
        return StoryResponse.model_validate(payload)
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        logger.warning(
            "story_decode_failed",
            error_type=type(exc).__name__,
            preview=cleaned[:120],
        )
        raise StoryGenerationError("decoding_error", f"failed to parse story response: {exc}") from exc


def _extract_text(resp: Any) -> str:
    """Responses API / Chat Completions いずれの形でも本文を取り出す。"""

    text = getattr(resp, "output_text", None)
    if isinstance(text, str) and text.strip():
        return text.strip()
    choices = getattr(resp, "choices", None)
    if isinstance(choices, list) and choices:
        content = getattr(getattr(choices[0], "message", None), "content", None)
        if isinstance(content, str):
            return content.strip()
    return ""


class OpenAIStoryProvider:
    """Generate stories with an OpenAI model."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        client: Any | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.openai_api_key
        self._model = model or settings.llm_model
        self._temperature = settings.story_temperature if temperature is None else float(temperature)
        self._max_output_tokens = max_output_tokens or settings.story_max_tokens
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self._api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise StoryGenerationError(
                    "missing_api_key", "story generation is unavailable; set OPENAI_API_KEY"
                )
            self._client = OpenAI(
                api_key=self._api_key,
                timeout=settings.llm_timeout_ms / 1000.0,
            )
        return self._client

    def generate_story(
        self, items: list[ReviewItem], language: str, language_name: str
    ) -> StoryResponse:
        client = self._get_client()
        prompt = build_story_prompt(format_word_list(items), language_name or language)
        logger.info(
            "story_generate_call",
            model=self._model,
            language=language,
            words=len(items),
            prompt_chars=len(prompt),
        )
        try:
            resp = client.responses.create(
                model=self._model,
                input=prompt,
                temperature=self._temperature,
                max_output_tokens=self._max_output_tokens,
            )
        except openai.OpenAIError as exc:
            logger.error(
                "story_generate_failed",
                model=self._model,
                error_type=type(exc).__name__,
                error=str(exc)[:200],
            )
            raise StoryGenerationError("api_error", f"story generation failed: {exc}") from exc

        content = _extract_text(resp)
        if not content:
            raise StoryGenerationError("api_error", "empty response from model")
        story = parse_story_response(content)
        logger.info(
            "story_generate_result",
            model=self._model,
            language=language,
            questions=len(story.questions),
            content_chars=len(content),
        )
        return story
