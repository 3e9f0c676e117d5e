from __future__ import annotations

import logging
import math
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import cv2
import numpy as np

from storyintel.base.description import SampledFrame
from storyintel.base.exceptions import (
    DecodeError,
    PipelineCancelledError,
    PipelineTimeoutError,
    SeekError,
    ValidationError,
)
from storyintel.base.frames import encode_thumbnail
from storyintel.base.progress import progress_iter

logger = logging.getLogger(__name__)

SUPPORTED_VIDEO_TYPES: tuple[str, ...] = ("video/mp4", "video/quicktime", "video/x-msvideo", "video/webm")
SUPPORTED_EXTENSIONS: tuple[str, ...] = ("mp4", "mov", "avi", "webm")
MAX_VIDEO_SIZE_MB = 200
ANALYSIS_WIDTH = 320
ASSUMED_FPS = 30.0


@dataclass(frozen=True)
class VideoUpload:
    """An uploaded video file as declared by the caller.

    Exactly one of `path` or `data` must be provided.
    """

    file_name: str
    mime_type: str
    size_bytes: int
    path: Path | None = None
    data: bytes | None = None

    def __post_init__(self) -> None:
        if (self.path is None) == (self.data is None):
            raise ValueError("Exactly one of `path` or `data` must be provided")
        if self.size_bytes < 0:
            raise ValueError("size_bytes must be non-negative")

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str = "") -> VideoUpload:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Video file not found: {path}")
        return cls(file_name=path.name, mime_type=mime_type, size_bytes=path.stat().st_size, path=path)

    @classmethod
    def from_bytes(cls, data: bytes, file_name: str, mime_type: str = "") -> VideoUpload:
        return cls(file_name=file_name, mime_type=mime_type, size_bytes=len(data), data=data)

    @property
    def extension(self) -> str:
        return Path(self.file_name).suffix.lstrip(".").lower()

    @property
    def size_mb(self) -> float:
        return self.size_bytes / 1024 / 1024

    @contextmanager
    def local_path(self) -> Iterator[Path]:
        """Yield a filesystem path for the upload, spilling raw bytes to a temp file."""
        if self.path is not None:
            yield self.path
            return

        fd, name = tempfile.mkstemp(suffix=f".{self.extension or 'bin'}")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(self.data or b"")
            yield Path(name)
        finally:
            Path(name).unlink(missing_ok=True)


def validate_upload(upload: VideoUpload, max_size_mb: float = MAX_VIDEO_SIZE_MB) -> None:
    """Reject oversized files and unsupported formats before any decoding.

    Raises:
        ValidationError: With code ``FILE_TOO_LARGE`` or ``UNSUPPORTED_FORMAT``.
    """
    if upload.size_bytes > max_size_mb * 1024 * 1024:
        raise ValidationError(
            "FILE_TOO_LARGE",
            f"Video exceeds {max_size_mb:g} MB limit ({upload.size_mb:.1f} MB).",
        )
    if upload.mime_type not in SUPPORTED_VIDEO_TYPES and upload.extension not in SUPPORTED_EXTENSIONS:
        raise ValidationError(
            "UNSUPPORTED_FORMAT",
            f"Unsupported format \"{upload.extension}\". Accepted: {', '.join(SUPPORTED_EXTENSIONS)}.",
        )


@dataclass(frozen=True)
class VideoMetadata:
    """Metadata derived once from the input file."""

    file_name: str
    duration_seconds: float
    width: int
    height: int
    fps: float
    total_frames: int
    file_size_mb: float

    def __str__(self) -> str:
        return f"{self.file_name}: {self.width}x{self.height}, {self.duration_seconds:.2f} seconds"

    @classmethod
    def from_decoder(cls, decoder: VideoDecoder, file_name: str, size_bytes: int) -> VideoMetadata:
        """Probe an opened decoder.

        Decoders rarely report a reliable frame rate, so a fixed rate is
        assumed and the frame count is derived from the duration.
        """
        duration, width, height = decoder.probe()
        return cls(
            file_name=file_name,
            duration_seconds=duration,
            width=width,
            height=height,
            fps=ASSUMED_FPS,
            total_frames=math.ceil(duration * ASSUMED_FPS),
            file_size_mb=round(size_bytes / 1024 / 1024, 2),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "duration_seconds": self.duration_seconds,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "total_frames": self.total_frames,
            "file_size_mb": self.file_size_mb,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VideoMetadata:
        return cls(
            file_name=data["file_name"],
            duration_seconds=float(data["duration_seconds"]),
            width=int(data["width"]),
            height=int(data["height"]),
            fps=float(data.get("fps", ASSUMED_FPS)),
            total_frames=int(data["total_frames"]),
            file_size_mb=float(data.get("file_size_mb", 0.0)),
        )


class VideoDecoder(ABC):
    """Seekable source of decoded frames.

    Used as a context manager: the container is opened on enter and released
    on exit.
    """

    def __enter__(self) -> VideoDecoder:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @abstractmethod
    def open(self) -> None:
        """Open the container. Raises `DecodeError` if it cannot be decoded."""

    @abstractmethod
    def close(self) -> None:
        """Release decoder resources."""

    @abstractmethod
    def probe(self) -> tuple[float, int, int]:
        """Return ``(duration_seconds, width, height)`` of the video stream."""

    @abstractmethod
    def read_at(self, timestamp: float) -> np.ndarray:
        """Seek to `timestamp` and return the RGB frame (H, W, 3) shown there.

        Raises:
            SeekError: If the decoder could not land on the timestamp.
        """


class OpenCVDecoder(VideoDecoder):
    """Decoder backed by `cv2.VideoCapture`."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._capture: cv2.VideoCapture | None = None

    def open(self) -> None:
        capture = cv2.VideoCapture(str(self.path))
        if not capture.isOpened():
            capture.release()
            raise DecodeError(f"Could not open video file: {self.path}")
        self._capture = capture

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    def _require_capture(self) -> cv2.VideoCapture:
        if self._capture is None:
            raise RuntimeError("Decoder is not open")
        return self._capture

    def probe(self) -> tuple[float, int, int]:
        capture = self._require_capture()
        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        native_fps = capture.get(cv2.CAP_PROP_FPS)
        frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT)

        if width <= 0 or height <= 0:
            raise DecodeError(f"Failed to load video metadata: {self.path}")
        if not native_fps or native_fps <= 0 or math.isnan(native_fps):
            raise DecodeError(f"Invalid frame rate reported for {self.path}")

        duration = max(0.0, float(frame_count) / native_fps)
        return duration, width, height

    def read_at(self, timestamp: float) -> np.ndarray:
        capture = self._require_capture()
        if not capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0):
            raise SeekError(f"Failed to seek to {timestamp}s", timestamp=timestamp)
        ok, frame = capture.read()
        if not ok or frame is None:
            raise SeekError(f"Failed to seek to {timestamp}s", timestamp=timestamp)
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)


class CancellationToken:
    """Shared flag a caller sets to abort a run between two sampled frames."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PipelineCancelledError("Pipeline was cancelled")


def sampling_timestamps(duration: float, target_fps: float) -> list[float]:
    """Strictly increasing instants ``0, dt, 2*dt, ...`` below `duration`."""
    if target_fps <= 0:
        raise ValueError("target_fps must be positive")
    interval = 1.0 / target_fps
    timestamps: list[float] = []
    i = 0
    while i * interval < duration:
        timestamps.append(round(i * interval, 3))
        i += 1
    return timestamps


def downscale(frame: np.ndarray, width: int = ANALYSIS_WIDTH) -> np.ndarray:
    """Resize to a fixed width, preserving aspect ratio."""
    src_h, src_w = frame.shape[:2]
    height = max(1, round(src_h * width / src_w))
    return cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)


class FrameSampler:
    """Pull-based, single-pass sequence of frames sampled at a fixed rate.

    Each pull seeks the decoder to the next instant, decodes and downscales
    the frame and encodes its thumbnail. Cancellation and the optional
    deadline are checked before every seek. Seeks that keep failing after
    `seek_retries` extra attempts skip the instant; once more than
    `max_skipped_frames` instants were skipped the run fails with `SeekError`.

    Example:
        >>> with OpenCVDecoder("clip.mp4") as decoder:
        ...     metadata = VideoMetadata.from_decoder(decoder, "clip.mp4", size_bytes=0)
        ...     for frame in FrameSampler(decoder, metadata, target_fps=1.0):
        ...         print(frame.frame_index, frame.timestamp)
    """

    def __init__(
        self,
        decoder: VideoDecoder,
        metadata: VideoMetadata,
        target_fps: float = 1.0,
        analysis_width: int = ANALYSIS_WIDTH,
        seek_retries: int = 2,
        max_skipped_frames: int = 3,
        cancel_token: CancellationToken | None = None,
        deadline: float | None = None,
        on_progress: Callable[[int], None] | None = None,
    ):
        if target_fps <= 0:
            raise ValueError("target_fps must be positive")
        if analysis_width < 1:
            raise ValueError("analysis_width must be >= 1")
        if seek_retries < 0:
            raise ValueError("seek_retries must be non-negative")
        if max_skipped_frames < 0:
            raise ValueError("max_skipped_frames must be non-negative")

        self.decoder = decoder
        self.metadata = metadata
        self.target_fps = target_fps
        self.analysis_width = analysis_width
        self.seek_retries = seek_retries
        self.max_skipped_frames = max_skipped_frames
        self.cancel_token = cancel_token
        self.deadline = deadline
        self.on_progress = on_progress
        self.skipped_timestamps: list[float] = []
        self._consumed = False

    @property
    def timestamps(self) -> list[float]:
        return sampling_timestamps(self.metadata.duration_seconds, self.target_fps)

    def __iter__(self) -> Iterator[SampledFrame]:
        if self._consumed:
            raise RuntimeError("FrameSampler is single-pass and cannot be restarted")
        self._consumed = True
        return self._generate()

    def _check_abort(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled()
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise PipelineTimeoutError("Pipeline timed out while sampling frames")

    def _read_with_retries(self, timestamp: float) -> np.ndarray | None:
        for attempt in range(self.seek_retries + 1):
            try:
                return self.decoder.read_at(timestamp)
            except SeekError:
                logger.debug("Seek to %.3fs failed (attempt %d)", timestamp, attempt + 1)
        return None

    def _generate(self) -> Iterator[SampledFrame]:
        timestamps = self.timestamps
        frame_index = 0

        for i, timestamp in progress_iter(enumerate(timestamps), desc="Sampling frames", total=len(timestamps)):
            self._check_abort()

            raw = self._read_with_retries(timestamp)
            if raw is None:
                self.skipped_timestamps.append(timestamp)
                logger.warning("Skipping frame at %.3fs after %d failed seeks", timestamp, self.seek_retries + 1)
                if len(self.skipped_timestamps) > self.max_skipped_frames:
                    raise SeekError(
                        f"Failed to seek to {timestamp}s; {len(self.skipped_timestamps)} frames could not be decoded",
                        timestamp=timestamp,
                    )
            else:
                pixels = downscale(raw, self.analysis_width)
                pixels.setflags(write=False)
                yield SampledFrame(
                    frame_index=frame_index,
                    timestamp=timestamp,
                    pixels=pixels,
                    thumbnail=encode_thumbnail(pixels),
                )
                frame_index += 1

            if self.on_progress is not None:
                self.on_progress(round((i + 1) / len(timestamps) * 100))
