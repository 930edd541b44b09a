"""Multi-format content generation backed by Anthropic Claude.

One model call turns the extracted source text into every output format.
The model is asked for a single JSON object; the reply is parsed once as
is and once more after stripping markdown fences.  Missing or empty
fields fall back to fixed placeholder strings so a partially valid reply
still yields a complete :class:`GeneratedContent`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import anthropic
from recast_core.errors import GenerationError

from recast_api.config import APISettings
from recast_api.schemas import GeneratedContent, ShortVideoScript

logger = logging.getLogger(__name__)

DEFAULT_TONE = "Professional and engaging"

_SYSTEM_PROMPT = (
    "You are an expert content strategist. You repurpose long-form articles "
    "into formats for social media and always answer with a single valid "
    "JSON object and nothing else."
)

_OUTPUT_SCHEMA = """{
    "summary": "Concise summary of the content (markdown supported)",
    "short_video_script": {
        "hook": "Attention grabbing hook (max 1 sentence)",
        "body": "Script body (3-4 sentences)",
        "cta": "Call to action"
    },
    "thread_posts": ["Post 1", "Post 2", "Post 3", "Post 4", "Post 5"],
    "professional_post": "Professional networking post with line breaks",
    "localized_article": "Japanese note-style article summarizing the content (Markdown)"
}"""

_FALLBACKS = {
    "summary": "Summary generation failed.",
    "hook": "Hook failed",
    "body": "Body failed",
    "cta": "CTA failed",
    "thread_posts": ["Thread generation failed"],
    "professional_post": "Professional post generation failed",
    "localized_article": "Localized article generation failed",
}


def build_prompt(text: str, tone: str | None, max_chars: int) -> str:
    """Return the user prompt for repurposing *text* in *tone*."""
    return (
        "Repurpose the following text into multiple formats for social media.\n\n"
        f"Tone: {tone or DEFAULT_TONE}\n\n"
        f"Source Text:\n{text[:max_chars]}\n\n"
        f"Output exactly valid JSON matching this schema:\n{_OUTPUT_SCHEMA}\n\n"
        'The "localized_article" field must be written in Japanese even if the source is in English.'
    )


def _strip_fences(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        last_fence = text.rfind("```")
        if first_newline != -1 and last_fence > first_newline:
            return text[first_newline + 1 : last_fence].strip()
    return text.replace("```json", "").replace("```", "").strip()


def parse_model_output(raw: str) -> dict[str, Any]:
    """Decode the model reply, retrying once without markdown fences."""
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        try:
            parsed = json.loads(_strip_fences(raw))
        except json.JSONDecodeError as exc:
            raise GenerationError("Model output was not valid JSON") from exc

    if not isinstance(parsed, dict):
        raise GenerationError("Model output was not a JSON object")
    return parsed


def _text(value: Any, fallback: str) -> str:
    return value if isinstance(value, str) and value.strip() else fallback


def assemble_content(parsed: dict[str, Any], *, is_pro: bool) -> GeneratedContent:
    """Build :class:`GeneratedContent` from a parsed reply, filling fallbacks."""
    script = parsed.get("short_video_script")
    if not isinstance(script, dict):
        script = {}

    posts = parsed.get("thread_posts")
    if isinstance(posts, list) and posts:
        thread_posts = [str(p) for p in posts]
    else:
        thread_posts = list(_FALLBACKS["thread_posts"])

    return GeneratedContent(
        summary=_text(parsed.get("summary"), _FALLBACKS["summary"]),
        short_video_script=ShortVideoScript(
            hook=_text(script.get("hook"), _FALLBACKS["hook"]),
            body=_text(script.get("body"), _FALLBACKS["body"]),
            cta=_text(script.get("cta"), _FALLBACKS["cta"]),
        ),
        thread_posts=thread_posts,
        professional_post=_text(parsed.get("professional_post"), _FALLBACKS["professional_post"]),
        localized_article=_text(parsed.get("localized_article"), _FALLBACKS["localized_article"]),
        watermark=not is_pro,
    )


class ContentGenerator:
    """Generates every output format with one Claude call.

    Parameters
    ----------
    settings:
        Supplies the API key, model, token cap, timeout and prompt cap.
    client:
        Optional pre-built ``anthropic.AsyncAnthropic`` (tests inject a
        mock).  When omitted one is created from ``settings.llm_api_key``.
    """

    def __init__(self, settings: APISettings, client: Any | None = None) -> None:
        self._model = settings.llm_model
        self._max_tokens = settings.llm_max_tokens
        self._prompt_max_chars = settings.prompt_max_chars
        self._client = client

        if self._client is None and settings.llm_api_key is not None:
            api_key = settings.llm_api_key.get_secret_value()
            if api_key:
                self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=settings.llm_timeout)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def generate(self, text: str, tone: str | None, *, is_pro: bool) -> GeneratedContent:
        """Repurpose *text*; ``watermark`` is set for non-pro callers.

        Raises
        ------
        GenerationError
            When no client is configured, the API call fails, or the
            reply is not a JSON object after the fence-stripping retry.
        """
        if self._client is None:
            raise GenerationError("Content generation is not configured")

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=0.7,
                system=_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_prompt(text, tone, self._prompt_max_chars)}],
            )
        except anthropic.APIError as exc:
            logger.error("Anthropic API call failed: %s", exc)
            raise GenerationError("Content generation failed") from exc

        raw = "".join(getattr(block, "text", "") for block in response.content)
        parsed = parse_model_output(raw)
        return assemble_content(parsed, is_pro=is_pro)

    async def close(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()
