"""Decode a source recording once and cut sample-accurate per-line clips."""

import asyncio
import io
import logging
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from script_aligner.constants import ASSET_FORMAT
from script_aligner.exceptions import DecodeError, InputError
from script_aligner.models import SegmentSpan

logger = logging.getLogger(__name__)


@dataclass
class DecodedRecording:
    samples: np.ndarray    # shape (channels, frames)
    sample_rate: int
    sample_width: int      # bytes per sample

    @property
    def channels(self) -> int:
        return self.samples.shape[0]

    @property
    def frame_count(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        return self.frame_count / self.sample_rate

    def release(self) -> None:
        """Drop the sample buffer."""
        self.samples = np.zeros((self.channels, 0), dtype=self.samples.dtype)


def _guess_format(data: bytes) -> str | None:
    """RIFF/WAVE is read natively by pydub; anything else goes through ffmpeg."""
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    return None


def to_array(audio: AudioSegment) -> np.ndarray:
    """pydub AudioSegment → (channels, frames) numpy array of raw samples."""
    samples = np.array(audio.get_array_of_samples())
    if audio.channels > 1:
        return samples.reshape((-1, audio.channels)).T
    return samples.reshape((1, -1))


def from_array(samples: np.ndarray, sample_rate: int, sample_width: int) -> AudioSegment:
    """(channels, frames) numpy array → pydub AudioSegment."""
    channels = samples.shape[0]
    interleaved = samples.T.flatten() if channels > 1 else samples.flatten()
    return AudioSegment(
        data=interleaved.tobytes(),
        sample_width=sample_width,
        frame_rate=sample_rate,
        channels=channels,
    )


def decode_recording(data: bytes, format: str | None = None) -> DecodedRecording:
    """Decode audio bytes. Raises InputError on empty input, DecodeError otherwise."""
    if not data:
        raise InputError("Source recording is empty")
    try:
        audio = AudioSegment.from_file(io.BytesIO(data), format=format or _guess_format(data))
    except (CouldntDecodeError, EOFError, ValueError, IndexError, KeyError, OSError) as e:
        raise DecodeError(f"Could not decode source recording: {e}") from e

    samples = to_array(audio)
    if samples.shape[1] == 0:
        raise InputError("Source recording has no audio frames")

    logger.debug("Decoded %d frames x %d channels at %d Hz",
                 samples.shape[1], samples.shape[0], audio.frame_rate)
    return DecodedRecording(samples=samples, sample_rate=audio.frame_rate, sample_width=audio.sample_width)


@asynccontextmanager
async def open_recording(data: bytes, format: str | None = None):
    """Decode off the event loop; the buffer is released on every exit path."""
    recording = await asyncio.to_thread(decode_recording, data, format)
    try:
        yield recording
    finally:
        recording.release()


def sample_range(span: SegmentSpan, sample_rate: int) -> tuple[int, int]:
    return math.floor(span.start * sample_rate), math.floor(span.end * sample_rate)


def cut_samples(recording: DecodedRecording, span: SegmentSpan) -> np.ndarray | None:
    """Copy every channel's [start_sample, end_sample) into a fresh buffer.

    Returns None for an empty range.
    """
    start, end = sample_range(span, recording.sample_rate)
    # floor(duration * rate) can land one frame short of the true end
    if span.end >= recording.duration:
        end = recording.frame_count
    end = min(end, recording.frame_count)
    if end <= start:
        return None
    return recording.samples[:, start:end].copy()


def encode_clip(samples: np.ndarray, sample_rate: int, sample_width: int) -> bytes:
    buf = io.BytesIO()
    from_array(samples, sample_rate, sample_width).export(buf, format=ASSET_FORMAT)
    return buf.getvalue()


def slice_span(recording: DecodedRecording, span: SegmentSpan) -> bytes | None:
    clip = cut_samples(recording, span)
    if clip is None:
        logger.debug("Skipping empty span %.3f-%.3f", span.start, span.end)
        return None
    return encode_clip(clip, recording.sample_rate, recording.sample_width)


async def slice_segments(
    recording: DecodedRecording,
    spans: list[SegmentSpan],
) -> list[tuple[SegmentSpan, bytes]]:
    """Slice spans one at a time so only one clip buffer is alive at once."""
    clips = []
    for span in spans:
        data = await asyncio.to_thread(slice_span, recording, span)
        if data is not None:
            clips.append((span, data))
    return clips


def clip_duration(data: bytes) -> float:
    """Duration in seconds of an encoded clip."""
    recording = decode_recording(data)
    return recording.duration
