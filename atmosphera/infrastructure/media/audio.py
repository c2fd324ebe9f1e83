"""PCM audio helpers and gapless playback scheduling."""

import base64
import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

OUTPUT_SAMPLE_RATE = 24000
INPUT_SAMPLE_RATE = 24000
CHANNELS = 1


@dataclass(frozen=True)
class AudioClip:
    """Raw little-endian 16-bit PCM."""

    pcm: bytes
    sample_rate: int = OUTPUT_SAMPLE_RATE
    channels: int = CHANNELS

    @property
    def frame_count(self) -> int:
        return len(self.pcm) // (2 * self.channels)

    @property
    def duration(self) -> float:
        return self.frame_count / self.sample_rate

    def to_float32(self) -> np.ndarray:
        """Samples scaled to ``[-1, 1)``, shaped ``(frames, channels)``."""
        usable = self.frame_count * self.channels * 2
        samples = np.frombuffer(self.pcm[:usable], dtype="<i2").astype(np.float32) / 32768.0
        return samples.reshape(-1, self.channels)

    @classmethod
    def from_base64(cls, data: str, sample_rate: int = OUTPUT_SAMPLE_RATE) -> "AudioClip":
        return cls(pcm=base64.b64decode(data), sample_rate=sample_rate)


def encode_pcm16(samples: np.ndarray) -> bytes:
    """Convert float samples in ``[-1, 1]`` to 16-bit PCM bytes."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def encode_frame(pcm16: bytes) -> str:
    return base64.b64encode(pcm16).decode("ascii")


@dataclass(frozen=True)
class ScheduledAudio:
    clip: AudioClip
    start: float

    @property
    def end(self) -> float:
        return self.start + self.clip.duration


class PlaybackScheduler:
    """Running "next start time" cursor for back-to-back audio chunks.

    Each chunk starts at ``max(cursor, now)`` and pushes the cursor to its
    own end, so consecutive chunks neither overlap nor leave a gap while the
    cursor stays ahead of the clock.
    """

    def __init__(self, now: float = 0.0):
        self.next_start_time = now

    def schedule(self, clip: AudioClip, now: float) -> ScheduledAudio:
        start = max(self.next_start_time, now)
        self.next_start_time = start + clip.duration
        return ScheduledAudio(clip=clip, start=start)

    def reset(self, now: float) -> None:
        """Drop queued playback, e.g. when the user interrupts the model."""
        self.next_start_time = now
