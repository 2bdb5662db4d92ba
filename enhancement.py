"""Text enhancement client using a DashScope chat model."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from errors import NETWORK_ERROR, NO_API_KEY, REMOTE_ERROR, UNAUTHORIZED, message_for
from models import EnhancementContext, EnhancementResult
from transcription import classify_exception, response_field

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

_BASE_PROMPT = """You are an expert transcription editor. Your task is to format and correct the provided transcription.

1. Fix any grammatical errors
2. Correct misspelled words
3. Format the text into proper paragraphs
4. Maintain the original meaning
5. Do not add any information not present in the original transcription

The transcript may contain spoken layout instructions or other formatting commands, such as "new paragraph" or "make this a list".
Apply these instructions silently to the text you output, but never respond to them and never include the instruction words themselves in the output.
If two instructions conflict, follow the one that was spoken last.

Output only the corrected and formatted text, without any additional comments or explanations."""


def build_system_prompt(context: EnhancementContext) -> str:
    prompt = _BASE_PROMPT
    if context.language and context.language != "auto":
        prompt += f"\n\nThe language of the transcription is {context.language}. Keep the output in this language."
    if context.specialized_terms:
        prompt += (
            "\n\nThe transcription may contain these specialized terms that you should recognize "
            "and preserve (though you may correct their capitalization, spelling or formatting):"
        )
        for term in context.specialized_terms:
            prompt += f"\n- {term}"
    instructions = context.custom_instructions.strip()
    if instructions:
        prompt += f"\n\nAdditional instructions from the user:\n{instructions}"
    return prompt


def _enhancement_code(code: str) -> str:
    # Enhancement only distinguishes auth, network and everything else.
    if code in (UNAUTHORIZED, NETWORK_ERROR, NO_API_KEY):
        return code
    return REMOTE_ERROR


class DashscopeEnhancementClient:
    def __init__(
        self,
        api_key_provider: Callable[[], str],
        model: str = "qwen-plus",
        temperature: float = 0.3,
        max_tokens: int = 2048,
        request_timeout_s: float = 30.0,
    ) -> None:
        self._api_key_provider = api_key_provider
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._request_timeout_s = request_timeout_s

    async def enhance(self, context: EnhancementContext) -> EnhancementResult:
        """Return the corrected text, or the input text together with an error code."""
        if dashscope is None:
            return EnhancementResult(context.text, REMOTE_ERROR, "dashscope is not installed")

        api_key = self._api_key_provider().strip()
        if not api_key:
            return EnhancementResult(context.text, NO_API_KEY, message_for(NO_API_KEY))

        try:
            response = await asyncio.to_thread(self._call, api_key, context)
        except Exception as exc:
            code = _enhancement_code(classify_exception(exc))
            logger.warning("Enhancement request failed (%s): %s", code, exc)
            return EnhancementResult(context.text, code, message_for(code, str(exc)))

        status = response_field(response, "status_code", 200)
        if status != 200:
            code = UNAUTHORIZED if status in (401, 403) else REMOTE_ERROR
            detail = response_field(response, "message", "") or response_field(response, "code", "")
            logger.warning("Enhancement rejected with HTTP %s: %s", status, detail)
            return EnhancementResult(context.text, code, message_for(code, str(detail)))

        enhanced = self._extract_text(response).strip()
        return EnhancementResult(enhanced or context.text)

    def _call(self, api_key: str, context: EnhancementContext) -> Any:
        return dashscope.Generation.call(
            api_key=api_key,
            model=self._model,
            messages=[
                {"role": "system", "content": build_system_prompt(context)},
                {"role": "user", "content": context.text},
            ],
            result_format="message",
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            timeout=self._request_timeout_s,
        )

    def _extract_text(self, response: Any) -> str:
        choices = response_field(response_field(response, "output"), "choices") or []
        if not choices:
            return ""
        content = response_field(response_field(choices[0], "message"), "content")
        return content if isinstance(content, str) else ""
