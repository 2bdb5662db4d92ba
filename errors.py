"""Shared error codes and user-facing messages."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
NO_API_KEY = "NO_API_KEY"
EMPTY_AUDIO = "EMPTY_AUDIO"
NO_SPEECH_DETECTED = "NO_SPEECH_DETECTED"
UNAUTHORIZED = "UNAUTHORIZED"
RATE_LIMITED = "RATE_LIMITED"
PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
NETWORK_ERROR = "NETWORK_ERROR"
REMOTE_ERROR = "REMOTE_ERROR"
PROCESSING_ERROR = "PROCESSING_ERROR"
ENHANCEMENT_DEGRADED = "ENHANCEMENT_DEGRADED"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Could not access microphone. Please check your permissions.",
    DEVICE_UNAVAILABLE: "No microphone found. Connect an input device and try again.",
    NO_API_KEY: "No DashScope API key found. Please add your API key in settings.",
    EMPTY_AUDIO: "No audio recorded. Please try again.",
    NO_SPEECH_DETECTED: "No speech detected. Please try again.",
    UNAUTHORIZED: "Invalid API key. Please check your DashScope API key in settings.",
    RATE_LIMITED: "Rate limit exceeded. Please try again later.",
    PAYLOAD_TOO_LARGE: "Audio file too large. Record a shorter clip.",
    NETWORK_ERROR: "Network error. Please check your internet connection.",
    REMOTE_ERROR: "The transcription service returned an error.",
    PROCESSING_ERROR: "Error processing audio.",
    ENHANCEMENT_DEGRADED: "Enhancement failed, inserted the raw transcription.",
}

# Codes after which the user has to visit settings before retrying.
SETTINGS_REQUIRED = frozenset({NO_API_KEY, UNAUTHORIZED})


def message_for(code: str, detail: str = "") -> str:
    base = ERROR_MESSAGES.get(code, code)
    if detail and detail != base:
        return f"{base} ({detail})"
    return base


class DictationError(Exception):
    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(code, code))
        self.code = code
        self.message = str(self)


class RecorderError(DictationError):
    """Raised when the input device cannot be opened."""
