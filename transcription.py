"""Transcription client using DashScope qwen3-asr-flash.

The model accepts a complete audio clip as a base64 data URI and returns the
recognised text in one response. The blocking SDK call runs in a worker
thread so the pipeline coroutine suspends while it is in flight.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Callable

from errors import (
    NETWORK_ERROR,
    NO_API_KEY,
    PAYLOAD_TOO_LARGE,
    RATE_LIMITED,
    REMOTE_ERROR,
    UNAUTHORIZED,
    message_for,
)
from models import SealedAudio, TranscriptionResult

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    401: UNAUTHORIZED,
    403: UNAUTHORIZED,
    413: PAYLOAD_TOO_LARGE,
    429: RATE_LIMITED,
}


def audio_data_uri(audio: SealedAudio) -> str:
    encoded = base64.b64encode(audio.data).decode("ascii")
    return f"data:{audio.mime_type};base64,{encoded}"


def classify_status(status_code: int) -> str:
    return _STATUS_CODES.get(status_code, REMOTE_ERROR)


def classify_exception(exc: Exception) -> str:
    """Map an SDK/network exception to an error code."""
    low = str(exc).lower()
    if "401" in low or "unauthorized" in low or "invalid api" in low or "api key" in low:
        return UNAUTHORIZED
    if "429" in low or "rate limit" in low or "throttl" in low:
        return RATE_LIMITED
    if "413" in low or "too large" in low:
        return PAYLOAD_TOO_LARGE
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return NETWORK_ERROR
    if "timeout" in low or "timed out" in low or "network" in low or "connection" in low:
        return NETWORK_ERROR
    return REMOTE_ERROR


def response_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from an SDK response object or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class DashscopeTranscriptionClient:
    def __init__(
        self,
        api_key_provider: Callable[[], str],
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 30.0,
    ) -> None:
        self._api_key_provider = api_key_provider
        self._model = model
        self._request_timeout_s = request_timeout_s

    async def transcribe(self, audio: SealedAudio) -> TranscriptionResult:
        if dashscope is None:
            return TranscriptionResult(error=REMOTE_ERROR, message="dashscope is not installed")

        api_key = self._api_key_provider().strip()
        if not api_key:
            return TranscriptionResult(error=NO_API_KEY, message=message_for(NO_API_KEY))

        logger.debug("Transcribing %d bytes with %s", audio.size, self._model)
        try:
            response = await asyncio.to_thread(self._call, api_key, audio)
        except Exception as exc:
            code = classify_exception(exc)
            logger.warning("Transcription request failed (%s): %s", code, exc)
            return TranscriptionResult(error=code, message=message_for(code, str(exc)))

        status = response_field(response, "status_code", 200)
        if status != 200:
            code = classify_status(int(status))
            detail = response_field(response, "message", "") or response_field(response, "code", "")
            logger.warning("Transcription rejected with HTTP %s (%s): %s", status, code, detail)
            return TranscriptionResult(error=code, message=message_for(code, str(detail)))

        text = self._extract_text(response)
        logger.debug("Transcribed %d characters", len(text))
        return TranscriptionResult(text=text)

    def _call(self, api_key: str, audio: SealedAudio) -> Any:
        return dashscope.MultiModalConversation.call(
            api_key=api_key,
            model=self._model,
            messages=[
                {"role": "system", "content": [{"text": ""}]},
                {"role": "user", "content": [{"audio": audio_data_uri(audio)}]},
            ],
            result_format="message",
            asr_options={"enable_itn": True},
            timeout=self._request_timeout_s,
        )

    def _extract_text(self, response: Any) -> str:
        choices = response_field(response_field(response, "output"), "choices") or []
        if not choices:
            return ""
        content = response_field(response_field(choices[0], "message"), "content") or []
        if isinstance(content, str):
            return content
        parts = [str(response_field(item, "text", "")) for item in content if isinstance(item, dict)]
        return "".join(parts)
