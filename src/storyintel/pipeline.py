from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Sequence

from storyintel.base.description import KeyMoment, SampledFrame, Scene, TrackedCharacter
from storyintel.base.frames import compute_all_differences
from storyintel.base.progress import PipelineStage, ProgressCallback, ProgressReporter
from storyintel.base.scene import DifferenceSceneDetector, SceneDetector
from storyintel.base.video import (
    ANALYSIS_WIDTH,
    MAX_VIDEO_SIZE_MB,
    CancellationToken,
    FrameSampler,
    OpenCVDecoder,
    VideoDecoder,
    VideoMetadata,
    VideoUpload,
    validate_upload,
)
from storyintel.understanding.characters import CharacterTracker, GridCharacterTracker
from storyintel.understanding.moments import KeyMomentDetector

__all__ = ["PipelineConfig", "StoryIntelligenceResult", "StoryPipeline", "analyze_video"]

logger = logging.getLogger(__name__)

DecoderFactory = Callable[[Path], VideoDecoder]


@dataclass
class PipelineConfig:
    """Tunable constants of a pipeline run."""

    target_fps: float = 1.0
    analysis_width: int = ANALYSIS_WIDTH
    max_file_size_mb: float = MAX_VIDEO_SIZE_MB
    seek_retries: int = 2
    max_skipped_frames: int = 3
    timeout_seconds: float | None = None
    cut_threshold: float = 28.0
    min_scene_duration: float = 1.0
    high_activity_threshold: int = 50
    negligible_motion_floor: int = 5
    minimum_drama: float = 20.0
    abrupt_change_threshold: float = 35.0
    max_moments: int = 30

    def __post_init__(self) -> None:
        if self.target_fps <= 0:
            raise ValueError("target_fps must be positive")
        if self.analysis_width < 1:
            raise ValueError("analysis_width must be >= 1")
        if self.max_file_size_mb <= 0:
            raise ValueError("max_file_size_mb must be positive")
        if self.seek_retries < 0:
            raise ValueError("seek_retries must be non-negative")
        if self.max_skipped_frames < 0:
            raise ValueError("max_skipped_frames must be non-negative")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive or None")
        if not 0.0 <= self.cut_threshold <= 255.0:
            raise ValueError("cut_threshold must be between 0.0 and 255.0")
        if self.min_scene_duration < 0:
            raise ValueError("min_scene_duration must be non-negative")
        if not 0 <= self.high_activity_threshold <= 100:
            raise ValueError("high_activity_threshold must be between 0 and 100")
        if self.negligible_motion_floor < 0:
            raise ValueError("negligible_motion_floor must be non-negative")
        if self.minimum_drama < 0:
            raise ValueError("minimum_drama must be non-negative")
        if self.abrupt_change_threshold < 0:
            raise ValueError("abrupt_change_threshold must be non-negative")
        if self.max_moments < 1:
            raise ValueError("max_moments must be >= 1")

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineConfig:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown pipeline config keys: {unknown}")
        return cls(**data)


@dataclass(frozen=True)
class StoryIntelligenceResult:
    """Everything one pipeline run produces.

    Attributes:
        metadata: Metadata of the analyzed video
        scenes: Contiguous scenes covering every sampled frame
        characters: Tracked characters ordered by first appearance
        key_moments: Moments ranked by importance
        frame_differences: Difference of each sampled frame against its predecessor
        processing_duration_ms: Wall-clock duration of the run
    """

    metadata: VideoMetadata
    scenes: tuple[Scene, ...] = ()
    characters: tuple[TrackedCharacter, ...] = ()
    key_moments: tuple[KeyMoment, ...] = ()
    frame_differences: tuple[float, ...] = field(default=(), repr=False)
    processing_duration_ms: float = 0.0

    def get_scene(self, scene_id: str) -> Scene:
        for scene in self.scenes:
            if scene.scene_id == scene_id:
                return scene
        raise KeyError(f"Unknown scene: {scene_id}")

    def characters_in_scene(self, scene_id: str) -> list[TrackedCharacter]:
        return [c for c in self.characters if c.appears_in(scene_id)]

    def moments_for_scene(self, scene_id: str) -> list[KeyMoment]:
        """Moments of a scene in chronological order."""
        return sorted((m for m in self.key_moments if m.scene_id == scene_id), key=lambda m: m.time_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "scenes": [s.to_dict() for s in self.scenes],
            "characters": [c.to_dict() for c in self.characters],
            "key_moments": [m.to_dict() for m in self.key_moments],
            "frame_differences": list(self.frame_differences),
            "processing_duration_ms": self.processing_duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoryIntelligenceResult:
        return cls(
            metadata=VideoMetadata.from_dict(data["metadata"]),
            scenes=tuple(Scene.from_dict(s) for s in data.get("scenes", [])),
            characters=tuple(TrackedCharacter.from_dict(c) for c in data.get("characters", [])),
            key_moments=tuple(KeyMoment.from_dict(m) for m in data.get("key_moments", [])),
            frame_differences=tuple(float(d) for d in data.get("frame_differences", [])),
            processing_duration_ms=float(data.get("processing_duration_ms", 0.0)),
        )

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> StoryIntelligenceResult:
        return cls.from_dict(json.loads(text))


class StoryPipeline:
    """Runs frame sampling, scene segmentation, character tracking and key
    moment detection, strictly in that order, once per uploaded video.

    Example:
        >>> pipeline = StoryPipeline()
        >>> upload = VideoUpload.from_path("trailer.mp4", mime_type="video/mp4")
        >>> result = pipeline.analyze(upload, on_progress=print)
        >>> for scene in result.scenes:
        ...     print(scene.scene_id, scene.start_time, scene.end_time)
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        scene_detector: SceneDetector | None = None,
        character_tracker: CharacterTracker | None = None,
        moment_detector: KeyMomentDetector | None = None,
        decoder_factory: DecoderFactory = OpenCVDecoder,
    ):
        self.config = config or PipelineConfig()
        self.scene_detector = scene_detector or DifferenceSceneDetector(
            cut_threshold=self.config.cut_threshold,
            min_scene_duration=self.config.min_scene_duration,
        )
        self.character_tracker = character_tracker or GridCharacterTracker(
            high_activity_threshold=self.config.high_activity_threshold,
            negligible_motion_floor=self.config.negligible_motion_floor,
        )
        self.moment_detector = moment_detector or KeyMomentDetector(
            minimum_drama=self.config.minimum_drama,
            abrupt_change_threshold=self.config.abrupt_change_threshold,
            max_moments=self.config.max_moments,
        )
        self.decoder_factory = decoder_factory

    def analyze(
        self,
        upload: VideoUpload,
        *,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> StoryIntelligenceResult:
        """Analyze an uploaded video.

        Raises:
            ValidationError: The upload is too large or not a supported format.
            DecodeError: The container cannot be decoded.
            SeekError: Too many sampling instants could not be decoded.
            PipelineCancelledError: `cancel_token` fired during sampling.
            PipelineTimeoutError: `timeout_seconds` elapsed during sampling.
        """
        started = time.perf_counter()
        reporter = ProgressReporter(on_progress)

        try:
            validate_upload(upload, self.config.max_file_size_mb)

            deadline = None
            if self.config.timeout_seconds is not None:
                deadline = time.monotonic() + self.config.timeout_seconds

            reporter.report(PipelineStage.SAMPLING_FRAMES, 0, "Loading video metadata...")
            with upload.local_path() as path, self.decoder_factory(path) as decoder:
                metadata = VideoMetadata.from_decoder(decoder, upload.file_name, upload.size_bytes)
                logger.info("Sampling %s at %.2f fps", metadata, self.config.target_fps)
                frames = self._sample(decoder, metadata, reporter, cancel_token, deadline)

            result = self._run_stages(frames, metadata, reporter, started)
        except Exception as exc:
            reporter.error(str(exc) or exc.__class__.__name__)
            raise

        reporter.done()
        return result

    def analyze_frames(
        self,
        frames: Sequence[SampledFrame],
        metadata: VideoMetadata,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> StoryIntelligenceResult:
        """Run segmentation, tracking and moment detection on already sampled frames."""
        started = time.perf_counter()
        reporter = ProgressReporter(on_progress)
        result = self._run_stages(list(frames), metadata, reporter, started)
        reporter.done()
        return result

    def _sample(
        self,
        decoder: VideoDecoder,
        metadata: VideoMetadata,
        reporter: ProgressReporter,
        cancel_token: CancellationToken | None,
        deadline: float | None,
    ) -> list[SampledFrame]:
        def on_sampled(pct: int) -> None:
            reporter.report(
                PipelineStage.SAMPLING_FRAMES,
                pct,
                f"Extracted {round(pct / 100 * metadata.total_frames)} frames...",
            )

        sampler = FrameSampler(
            decoder,
            metadata,
            target_fps=self.config.target_fps,
            analysis_width=self.config.analysis_width,
            seek_retries=self.config.seek_retries,
            max_skipped_frames=self.config.max_skipped_frames,
            cancel_token=cancel_token,
            deadline=deadline,
            on_progress=on_sampled,
        )
        frames = list(sampler)
        logger.info("Sampled %d frames (%d skipped)", len(frames), len(sampler.skipped_timestamps))
        return frames

    def _run_stages(
        self,
        frames: list[SampledFrame],
        metadata: VideoMetadata,
        reporter: ProgressReporter,
        started: float,
    ) -> StoryIntelligenceResult:
        diffs = compute_all_differences(frames)

        reporter.report(PipelineStage.SEGMENTING_SCENES, 50, "Detecting scene boundaries...")
        scenes = self.scene_detector.detect(frames, diffs)

        reporter.report(PipelineStage.TRACKING_CHARACTERS, 50, "Identifying characters across scenes...")
        characters = self.character_tracker.track(frames, scenes)

        reporter.report(PipelineStage.DETECTING_MOMENTS, 50, "Scoring narrative moments...")
        moments = self.moment_detector.detect(frames, scenes, characters, diffs)

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Analysis finished in %.0f ms: %d scenes, %d characters, %d moments",
            duration_ms,
            len(scenes),
            len(characters),
            len(moments),
        )
        return StoryIntelligenceResult(
            metadata=metadata,
            scenes=tuple(scenes),
            characters=tuple(characters),
            key_moments=tuple(moments),
            frame_differences=tuple(diffs),
            processing_duration_ms=duration_ms,
        )


def analyze_video(
    path: str | Path,
    *,
    mime_type: str = "",
    config: PipelineConfig | None = None,
    on_progress: ProgressCallback | None = None,
) -> StoryIntelligenceResult:
    """One-shot analysis of a video file on disk."""
    pipeline = StoryPipeline(config or PipelineConfig())
    return pipeline.analyze(VideoUpload.from_path(path, mime_type=mime_type), on_progress=on_progress)
