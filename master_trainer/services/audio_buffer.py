# master_trainer/services/audio_buffer.py
"""
Microphone capture buffered into fixed-interval PCM chunks.

The input device delivers float frames on its own thread; they are marshalled
onto the event loop, encoded to 16-bit little-endian PCM and accumulated. A
chunk loop flushes the accumulator every `chunk_interval_ms` into the chunk
callback, and an independent meter loop publishes a [0, 1] volume level.

Everything a recording owns (device stream, both loop tasks, accumulator and
meter window) lives on one `_Recording` record, so stop() can release it in
one place. Use `async with AudioChunkBuffer(...)` to guarantee cleanup.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

import numpy as np

from master_trainer.config.settings import settings

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[bytes], Any]
ErrorCallback = Callable[[Exception], Any]
LevelCallback = Callable[[float], Any]
FrameCallback = Callable[[np.ndarray], None]

_STOP_WAIT_STEPS = 50
_STOP_WAIT_SECONDS = 0.01


def encode_pcm16(frames: np.ndarray) -> bytes:
    """Float samples in [-1, 1] (or int16 samples) to little-endian PCM16 bytes."""
    frames = np.asarray(frames)
    if frames.dtype == np.int16:
        return frames.astype("<i2").tobytes()
    clipped = np.clip(frames.astype(np.float32), -1.0, 1.0)
    return (clipped * 32767).astype("<i2").tobytes()


def mean_amplitude(frames: Optional[np.ndarray]) -> float:
    if frames is None or frames.size == 0:
        return 0.0
    samples = np.asarray(frames)
    if samples.dtype == np.int16:
        samples = samples.astype(np.float32) / 32768.0
    return float(np.clip(np.mean(np.abs(samples)), 0.0, 1.0))


class SoundDeviceStream:
    """Adapter exposing start/stop/close/ready_state over a sounddevice stream."""

    def __init__(self, stream):
        self._stream = stream
        self._stopped = False

    @property
    def ready_state(self) -> str:
        if self._stopped and not self._stream.active:
            return "ended"
        return "live"

    def start(self) -> None:
        self._stream.start()

    def stop(self) -> None:
        self._stopped = True
        self._stream.stop()

    def close(self) -> None:
        self._stopped = True
        self._stream.close()


class SoundDeviceInput:
    """Default input device backed by `sounddevice.InputStream`."""

    def __init__(self, device: Optional[Any] = None, blocksize: int = 0):
        self.device = device
        self.blocksize = blocksize

    def open(self, sample_rate: int, channels: int, on_frames: FrameCallback) -> SoundDeviceStream:
        # imported lazily so PortAudio is only required when recording for real
        import sounddevice as sd

        def _callback(indata, frames, time_info, status):
            if status:
                logger.debug("Input stream status: %s", status)
            on_frames(indata.copy())

        stream = sd.InputStream(
            samplerate=sample_rate,
            channels=channels,
            dtype="float32",
            device=self.device,
            blocksize=self.blocksize,
            callback=_callback,
        )
        return SoundDeviceStream(stream)


@dataclass
class _Recording:
    stream: Any
    pending: List[bytes] = field(default_factory=list)
    window: Optional[np.ndarray] = None
    chunk_task: Optional[asyncio.Task] = None
    meter_task: Optional[asyncio.Task] = None


class AudioChunkBuffer:

    def __init__(
        self,
        on_chunk: ChunkCallback,
        on_error: Optional[ErrorCallback] = None,
        on_level: Optional[LevelCallback] = None,
        device: Optional[Any] = None,
        sample_rate: Optional[int] = None,
        channels: Optional[int] = None,
        chunk_interval_ms: Optional[int] = None,
        meter_interval_ms: Optional[int] = None,
    ) -> None:
        self.on_chunk = on_chunk
        self.on_error = on_error
        self.on_level = on_level
        self.device = device or SoundDeviceInput()
        self.sample_rate = sample_rate or settings.audio_sample_rate
        self.channels = channels or settings.audio_channels
        self.chunk_interval = (chunk_interval_ms or settings.audio_chunk_interval_ms) / 1000.0
        self.meter_interval = (meter_interval_ms or settings.audio_meter_interval_ms) / 1000.0

        self.is_recording = False
        self.is_muted = False
        self.level = 0.0
        self.error: Optional[Exception] = None
        self._recording: Optional[_Recording] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stopping: Optional[asyncio.Future] = None

    async def __aenter__(self) -> "AudioChunkBuffer":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # -----------------------
    # Start / stop
    # -----------------------
    async def start(self) -> bool:
        """Open the device and begin chunking. Returns False if the device failed."""
        if self._stopping is not None:
            await asyncio.shield(self._stopping)
        if self.is_recording:
            return True
        self.error = None
        self._loop = asyncio.get_running_loop()
        stream = None
        try:
            stream = self.device.open(self.sample_rate, self.channels, self._from_device)
            recording = _Recording(stream=stream)
            self._recording = recording
            stream.start()
        except Exception as exc:
            logger.error("Failed to access audio input: %s", exc)
            self._recording = None
            if stream is not None:
                try:
                    stream.close()
                except Exception as close_exc:
                    logger.debug("Error closing half-opened stream: %s", close_exc)
            self.error = exc
            if self.on_error is not None:
                await self._invoke(self.on_error, exc)
            return False

        self.is_recording = True
        recording.chunk_task = asyncio.create_task(self._chunk_loop(recording))
        recording.meter_task = asyncio.create_task(self._meter_loop(recording))
        logger.info(
            "Recording started rate=%s channels=%s chunk=%.0fms",
            self.sample_rate,
            self.channels,
            self.chunk_interval * 1000,
        )
        return True

    async def stop(self) -> None:
        """
        Stop capture, flush what is buffered and release the device. No-op when
        idle. Concurrent callers all wait for the same release to finish.
        """
        if self._stopping is None:
            recording = self._recording
            if recording is None or not self.is_recording:
                return
            self.is_recording = False
            self._stopping = asyncio.ensure_future(self._release(recording))
        await asyncio.shield(self._stopping)

    async def _release(self, recording: _Recording) -> None:
        try:
            try:
                recording.stream.stop()
            except Exception as exc:
                logger.warning("Error stopping audio stream: %s", exc)

            # frames marshalled before stop() are still queued on the loop
            await asyncio.sleep(0)
            self._recording = None
            await self._flush(recording)

            for task in (recording.chunk_task, recording.meter_task):
                if task is not None and not task.done():
                    task.cancel()
            for task in (recording.chunk_task, recording.meter_task):
                if task is not None:
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass

            try:
                recording.stream.close()
            except Exception as exc:
                logger.warning("Error closing audio stream: %s", exc)

            for _ in range(_STOP_WAIT_STEPS):
                if getattr(recording.stream, "ready_state", "ended") == "ended":
                    break
                await asyncio.sleep(_STOP_WAIT_SECONDS)
            else:
                exc = RuntimeError("Audio device did not report ended after stop")
                logger.warning("%s", exc)
                self.error = exc
                if self.on_error is not None:
                    try:
                        await self._invoke(self.on_error, exc)
                    except Exception as cb_exc:
                        logger.debug("Error callback failed: %s", cb_exc)

            self.level = 0.0
            logger.info("Recording stopped")
        finally:
            self._stopping = None

    def toggle_mute(self) -> bool:
        self.is_muted = not self.is_muted
        return self.is_muted

    # -----------------------
    # Internals
    # -----------------------
    def _from_device(self, frames: np.ndarray) -> None:
        # called on the device thread
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._accept_frames, frames)

    def _accept_frames(self, frames: np.ndarray) -> None:
        recording = self._recording
        if recording is None:
            return
        if self.is_muted:
            frames = np.zeros_like(frames)
        recording.window = frames
        recording.pending.append(encode_pcm16(frames))

    async def _flush(self, recording: _Recording) -> None:
        if not recording.pending:
            return
        chunk = b"".join(recording.pending)
        recording.pending.clear()
        try:
            await self._invoke(self.on_chunk, chunk)
        except Exception as exc:
            logger.exception("Chunk callback failed: %s", exc)

    async def _chunk_loop(self, recording: _Recording) -> None:
        while self._recording is recording:
            await asyncio.sleep(self.chunk_interval)
            if self._recording is not recording:
                break
            await self._flush(recording)

    async def _meter_loop(self, recording: _Recording) -> None:
        while self._recording is recording:
            self.level = mean_amplitude(recording.window)
            if self.on_level is not None:
                try:
                    await self._invoke(self.on_level, self.level)
                except Exception as exc:
                    logger.debug("Level callback failed: %s", exc)
            await asyncio.sleep(self.meter_interval)

    @staticmethod
    async def _invoke(callback: Callable[..., Any], *args: Any) -> None:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
