"""Key moment detection.

Scores narratively significant timestamps per scene from frame motion,
scene boundaries and character presence:

- entrance: first frame of a scene with at least one character
- climax: the frame with the strongest intra-scene change
- focus: a still frame late in the scene, the camera holding on its subject
- transformation: the first abrupt change well after the scene opens
- exit: last frame of a multi-frame scene with at least one character
"""

from __future__ import annotations

import logging
from typing import Sequence

from storyintel.base.description import KeyMoment, MomentType, SampledFrame, Scene, TrackedCharacter
from storyintel.base.frames import compute_all_differences
from storyintel.base.scene import intra_scene_differences, scene_span

logger = logging.getLogger(__name__)

__all__ = ["KeyMomentDetector", "format_time", "describe_moment"]

MINIMUM_DRAMA = 20.0
ABRUPT_CHANGE_THRESHOLD = 35.0
TRANSFORMATION_DELAY_S = 1.5
MAX_MOMENTS = 30
CLIMAX_CEILING = 80.0

_DESCRIPTIONS: dict[MomentType, str] = {
    MomentType.ENTRANCE: "{label} enters the scene at {time}, peak visual impact.",
    MomentType.EXIT: "{label} exits frame at {time}.",
    MomentType.CLIMAX: "Narrative peak at {time}: highest dramatic tension in the scene.",
    MomentType.TRANSFORMATION: "{label} undergoes a style transformation at {time}.",
    MomentType.FOCUS: "Camera holds on {label} at {time}, a critical narrative focus moment.",
}


def format_time(seconds: float) -> str:
    """Format seconds as ``MM:SS``."""
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes:02d}:{secs:02d}"


def describe_moment(moment_type: MomentType, label: str, seconds: float) -> str:
    return _DESCRIPTIONS[moment_type].format(label=label, time=format_time(seconds))


class KeyMomentDetector:
    """Detects and ranks key moments.

    Example:
        >>> detector = KeyMomentDetector()
        >>> moments = detector.detect(frames, scenes, characters)
        >>> print([(m.type.value, m.time_code, m.importance_score) for m in moments[:5]])
    """

    def __init__(
        self,
        minimum_drama: float = MINIMUM_DRAMA,
        abrupt_change_threshold: float = ABRUPT_CHANGE_THRESHOLD,
        transformation_delay: float = TRANSFORMATION_DELAY_S,
        max_moments: int = MAX_MOMENTS,
    ):
        """Initialize the detector.

        Args:
            minimum_drama: Peak difference a climax must exceed. Default: 20
            abrupt_change_threshold: Difference a transformation must exceed. Default: 35
            transformation_delay: Seconds after scene start before a
                transformation can be detected. Default: 1.5
            max_moments: Number of top-ranked moments kept. Default: 30
        """
        if minimum_drama < 0:
            raise ValueError("minimum_drama must be non-negative")
        if abrupt_change_threshold < 0:
            raise ValueError("abrupt_change_threshold must be non-negative")
        if transformation_delay < 0:
            raise ValueError("transformation_delay must be non-negative")
        if max_moments < 1:
            raise ValueError("max_moments must be >= 1")

        self.minimum_drama = minimum_drama
        self.abrupt_change_threshold = abrupt_change_threshold
        self.transformation_delay = transformation_delay
        self.max_moments = max_moments

    def detect(
        self,
        frames: Sequence[SampledFrame],
        scenes: Sequence[Scene],
        characters: Sequence[TrackedCharacter],
        diffs: Sequence[float] | None = None,
    ) -> list[KeyMoment]:
        """Detect key moments.

        Args:
            frames: Chronological sampled frames
            scenes: Scenes over `frames`
            characters: Tracked characters over `scenes`
            diffs: Optional precomputed `compute_all_differences(frames)`

        Returns:
            Moments ranked by importance (descending), ties by timestamp,
            truncated to `max_moments`
        """
        if not frames or not scenes:
            return []
        if diffs is None:
            diffs = compute_all_differences(frames)

        moments: list[KeyMoment] = []

        def emit(
            scene: Scene,
            frame: SampledFrame,
            moment_type: MomentType,
            importance: float,
            primary: TrackedCharacter | None,
        ) -> None:
            moments.append(
                KeyMoment(
                    moment_id=f"moment_{len(moments) + 1}",
                    scene_id=scene.scene_id,
                    character_id=primary.character_id if primary else None,
                    time_code=frame.timestamp,
                    type=moment_type,
                    importance_score=importance,
                    description=describe_moment(moment_type, primary.label if primary else "Subject", frame.timestamp),
                    thumbnail=frame.thumbnail,
                )
            )

        for scene in scenes:
            span = scene_span(frames, scene)
            in_scene = list(frames[span])
            if not in_scene:
                continue

            scene_chars = [c for c in characters if c.appears_in(scene.scene_id)]
            primary = scene_chars[0] if scene_chars else None
            motions = intra_scene_differences(diffs, span)
            inner = motions[1:]
            avg_motion = sum(inner) / len(inner) if inner else 0.0

            if scene_chars:
                emit(scene, in_scene[0], MomentType.ENTRANCE, min(100.0, 50 + scene.motion_intensity * 0.4), primary)

            if len(in_scene) > 1:
                peak = max(inner)
                if peak > self.minimum_drama:
                    peak_frame = in_scene[1 + inner.index(peak)]
                    importance = min(100, round(55 + peak / CLIMAX_CEILING * 40))
                    emit(scene, peak_frame, MomentType.CLIMAX, float(importance), primary)

            if len(in_scene) >= 3:
                start = len(in_scene) // 3
                later = motions[start:]
                lowest = min(later)
                if lowest < avg_motion * 0.5:
                    focus_frame = in_scene[start + later.index(lowest)]
                    emit(scene, focus_frame, MomentType.FOCUS, float(min(100, 60 + len(scene_chars) * 8)), primary)

            if len(in_scene) >= 4:
                for i in range(1, len(in_scene) - 1):
                    diff = motions[i]
                    if (
                        diff > self.abrupt_change_threshold
                        and in_scene[i].timestamp > scene.start_time + self.transformation_delay
                    ):
                        importance = min(100, round(65 + diff * 0.3))
                        emit(scene, in_scene[i], MomentType.TRANSFORMATION, float(importance), primary)
                        break

            if scene_chars and len(in_scene) > 1:
                emit(scene, in_scene[-1], MomentType.EXIT, max(20.0, scene.motion_intensity * 0.4), primary)

        ranked = sorted(moments, key=lambda m: (-m.importance_score, m.time_code))[: self.max_moments]
        logger.info("Detected %d key moments, kept %d", len(moments), len(ranked))
        return ranked
