"""Microphone recording session."""

from __future__ import annotations

import asyncio
import io
import logging
import threading
import time
import wave
from typing import Any, Optional

from errors import DEVICE_UNAVAILABLE, PERMISSION_DENIED, RecorderError
from models import AudioFrame, SealedAudio

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

WAV_MIME_TYPE = "audio/wav"

_PERMISSION_MARKERS = ("permission", "denied", "not authorized", "not permitted")


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


def classify_device_error(exc: Exception) -> str:
    low = str(exc).lower()
    if any(marker in low for marker in _PERMISSION_MARKERS):
        return PERMISSION_DENIED
    return DEVICE_UNAVAILABLE


class RecordingSession:
    """Owns the input stream for exactly one recording at a time.

    Chunks arrive on the PortAudio callback thread and are appended under
    ``_chunks_lock``; ``_lock`` guards opening and closing the stream.
    The stream is never stopped while ``_chunks_lock`` is held since
    ``stream.stop()`` waits for the last callbacks to drain.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._chunks_lock = threading.Lock()
        self._frames: list[AudioFrame] = []

    @property
    def is_recording(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        await asyncio.to_thread(self._open)

    async def stop(self) -> Optional[SealedAudio]:
        """Flush, seal and release. Returns ``None`` when not recording."""
        if not self._running:
            return None
        try:
            await asyncio.to_thread(self._close)
        finally:
            self._force_release()
        audio = self._seal()
        logger.debug("Sealed %d bytes of %s", audio.size, audio.mime_type)
        return audio

    async def release(self) -> None:
        """Drop the device and any captured audio without sealing."""
        if self._stream is None and not self._running:
            return
        try:
            await asyncio.to_thread(self._close)
        finally:
            self._force_release()
            with self._chunks_lock:
                self._frames = []

    def _open(self) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RecorderError(DEVICE_UNAVAILABLE, "sounddevice is not installed")
            try:
                sd.query_devices(kind="input")
            except Exception as exc:
                raise RecorderError(DEVICE_UNAVAILABLE, str(exc)) from exc

            with self._chunks_lock:
                self._frames = []
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            stream = None
            try:
                stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    blocksize=blocksize,
                    callback=self._on_audio,
                )
                self._running = True
                stream.start()
            except Exception as exc:
                self._running = False
                if stream is not None:
                    _close_quietly(stream)
                raise RecorderError(classify_device_error(exc), str(exc)) from exc
            self._stream = stream
            logger.info("Recording started (%d Hz, %d ch)", self.sample_rate, self.channels)

    def _close(self) -> None:
        with self._lock:
            stream = self._stream
            if stream is None:
                self._running = False
                return
            # stop() blocks until queued blocks have gone through _on_audio
            stream.stop()
            self._running = False
            stream.close()
            self._stream = None
            logger.info("Recording stopped, device released")

    def _force_release(self) -> None:
        with self._lock:
            self._running = False
            stream = self._stream
            self._stream = None
        if stream is not None:
            _close_quietly(stream)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or np is None:
            return
        if status:
            logger.debug("Input stream status: %s", status)
        payload = np.asarray(indata, dtype=np.int16).tobytes()
        frame = AudioFrame(
            pcm16_bytes=payload,
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        with self._chunks_lock:
            self._frames.append(frame)

    def _seal(self) -> SealedAudio:
        with self._chunks_lock:
            frames, self._frames = self._frames, []
        pcm = b"".join(f.pcm16_bytes for f in frames)
        if not pcm:
            return SealedAudio(b"", WAV_MIME_TYPE, self.sample_rate, self.channels)
        return SealedAudio(
            pcm_to_wav(pcm, self.sample_rate, self.channels),
            WAV_MIME_TYPE,
            self.sample_rate,
            self.channels,
        )


def _close_quietly(stream: Any) -> None:
    for action in (stream.stop, stream.close):
        try:
            action()
        except Exception:
            logger.debug("Ignoring error while releasing input stream", exc_info=True)
