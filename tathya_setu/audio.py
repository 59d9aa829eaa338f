"""
Decoding and gapless scheduling of streamed text-to-speech audio.

The model streams base64 PCM (16-bit signed little-endian, 24 kHz mono).
Chunks are decoded to float samples in [-1, 1] and scheduled back to back on
an AudioSink. Playback is an owned handle: `AudioPlayer.start()` hands one out
(stopping any previous one first) and `PlaybackHandle.stop()` releases it.
"""

import abc
import base64
import binascii
import io
import logging
import wave
from typing import AsyncIterator, Callable, Dict, List, Optional

import numpy as np

from . import config

logger = logging.getLogger(__name__)

PCM_DTYPE = np.dtype("<i2")


def decode_pcm_chunk(chunk: str) -> np.ndarray:
    """Decode one base64 PCM chunk into float32 samples in [-1, 1]."""
    try:
        raw = base64.b64decode(chunk, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Audio chunk is not valid base64: {e}") from e
    if len(raw) % PCM_DTYPE.itemsize:
        # A dangling half sample cannot be played; drop it.
        raw = raw[:-(len(raw) % PCM_DTYPE.itemsize)]
    samples = np.frombuffer(raw, dtype=PCM_DTYPE)
    return samples.astype(np.float32) / 32768.0


class AudioSink(abc.ABC):
    """An audio output resource that plays buffers at absolute times (seconds)."""

    sample_rate: int = config.TTS_SAMPLE_RATE

    @abc.abstractmethod
    def current_time(self) -> float:
        """Current position of the output clock."""

    @abc.abstractmethod
    def schedule(self, samples: np.ndarray, start_time: float) -> int:
        """Queue samples to start at start_time; returns a node id."""

    @abc.abstractmethod
    def cancel(self, node_id: int) -> None:
        """Stop a scheduled node immediately."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the output resource."""


class PlaybackHandle:
    """One active playback stream and its running start-time cursor."""

    def __init__(self, sink: AudioSink, sample_rate: int = config.TTS_SAMPLE_RATE):
        self._sink = sink
        self.sample_rate = sample_rate
        self.next_start_time = 0.0
        self._nodes: List[int] = []
        self.active = True

    @property
    def scheduled_count(self) -> int:
        return len(self._nodes)

    def enqueue(self, samples: np.ndarray) -> float:
        """Schedule samples right after the previous buffer; returns their start time."""
        if not self.active:
            raise RuntimeError("Playback has been stopped")
        if samples.size == 0:
            return self.next_start_time
        start = max(self.next_start_time, self._sink.current_time())
        self._nodes.append(self._sink.schedule(samples, start))
        self.next_start_time = start + samples.size / float(self.sample_rate)
        return start

    def stop(self) -> None:
        """Halt everything scheduled and release the sink. Safe to call twice."""
        if not self.active:
            return
        self.active = False
        nodes, self._nodes = self._nodes, []
        for node in nodes:
            self._sink.cancel(node)
        self.next_start_time = 0.0
        self._sink.close()
        logger.debug(f"Playback stopped, {len(nodes)} buffers cancelled")

    def __enter__(self) -> "PlaybackHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


class AudioPlayer:
    """Keeps at most one playback stream alive for the result it belongs to."""

    def __init__(self, sink_factory: Callable[[], AudioSink], sample_rate: int = config.TTS_SAMPLE_RATE):
        self._sink_factory = sink_factory
        self.sample_rate = sample_rate
        self._current: Optional[PlaybackHandle] = None

    @property
    def current(self) -> Optional[PlaybackHandle]:
        if self._current is not None and not self._current.active:
            self._current = None
        return self._current

    def start(self) -> PlaybackHandle:
        self.stop()
        self._current = PlaybackHandle(self._sink_factory(), self.sample_rate)
        return self._current

    def stop(self) -> None:
        if self._current is not None:
            self._current.stop()
            self._current = None

    async def play(self, chunks: AsyncIterator[str]) -> PlaybackHandle:
        """Decode and schedule each chunk as it arrives; stops early if the handle is stopped."""
        handle = self.start()
        try:
            async for chunk in chunks:
                if not handle.active:
                    break
                handle.enqueue(decode_pcm_chunk(chunk))
        except BaseException:
            handle.stop()
            raise
        return handle


class WavRenderSink(AudioSink):
    """Renders scheduled buffers offline into a single WAV file."""

    def __init__(self, sample_rate: int = config.TTS_SAMPLE_RATE):
        self.sample_rate = sample_rate
        self._buffers: Dict[int, tuple] = {}
        self._next_id = 0
        self.closed = False

    def current_time(self) -> float:
        return 0.0

    def schedule(self, samples: np.ndarray, start_time: float) -> int:
        node_id = self._next_id
        self._next_id += 1
        self._buffers[node_id] = (start_time, samples)
        return node_id

    def cancel(self, node_id: int) -> None:
        self._buffers.pop(node_id, None)

    def close(self) -> None:
        self.closed = True

    def render(self) -> np.ndarray:
        if not self._buffers:
            return np.zeros(0, dtype=np.float32)
        end = max(int(round(start * self.sample_rate)) + len(s) for start, s in self._buffers.values())
        out = np.zeros(end, dtype=np.float32)
        for start, samples in self._buffers.values():
            offset = int(round(start * self.sample_rate))
            out[offset:offset + len(samples)] += samples
        return out

    def to_wav_bytes(self) -> bytes:
        pcm = np.clip(self.render() * 32768.0, -32768, 32767).astype(PCM_DTYPE)
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav:
            wav.setnchannels(config.TTS_CHANNELS)
            wav.setsampwidth(PCM_DTYPE.itemsize)
            wav.setframerate(self.sample_rate)
            wav.writeframes(pcm.tobytes())
        return buffer.getvalue()
