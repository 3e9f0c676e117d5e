"""Character tracking from region motion.

Each frame is split into a 3x3 grid. Within every scene the grid cell with
the most accumulated motion becomes a "seed"; seeds that share a cell across
scenes are merged into one persistent character. The grid is coarse: two different
subjects that occupy the same part of the frame in different scenes end up
as the same character.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence

from storyintel.base.description import Region, SampledFrame, Scene, TrackedCharacter
from storyintel.base.frames import GRID_CELLS, GRID_COLS, GRID_ROWS, compute_region_motion
from storyintel.base.scene import scene_frames

logger = logging.getLogger(__name__)

__all__ = ["CharacterTracker", "GridCharacterTracker", "cell_region"]

CENTER_CELL = 4
HIGH_ACTIVITY_THRESHOLD = 50
NEGLIGIBLE_MOTION_FLOOR = 5
SINGLE_FRAME_CONFIDENCE = 60
BASE_SEED_CONFIDENCE = 40


def cell_region(cell: int) -> Region:
    """Normalized rectangle covered by a grid cell (row-major numbering)."""
    col = cell % GRID_COLS
    row = cell // GRID_COLS
    return Region(x=col / GRID_COLS, y=row / GRID_ROWS, w=1 / GRID_COLS, h=1 / GRID_ROWS)


@dataclass
class _CharacterSeed:
    cell: int
    appearances: list[str]
    thumbnail: bytes
    timestamp: float
    confidence: int


@dataclass
class _SceneMotion:
    peak_frame: SampledFrame
    cell_totals: list[int] = field(default_factory=lambda: [0] * GRID_CELLS)


class CharacterTracker(ABC):
    """Builds persistent characters from frames and their scenes."""

    @abstractmethod
    def track(self, frames: Sequence[SampledFrame], scenes: Sequence[Scene]) -> list[TrackedCharacter]:
        """Track characters across scenes.

        Returns:
            Characters ordered by first representative appearance
        """


class GridCharacterTracker(CharacterTracker):
    """Tracks subjects as recurring high-motion cells of a 3x3 grid."""

    def __init__(
        self,
        high_activity_threshold: int = HIGH_ACTIVITY_THRESHOLD,
        negligible_motion_floor: int = NEGLIGIBLE_MOTION_FLOOR,
        single_frame_confidence: int = SINGLE_FRAME_CONFIDENCE,
    ):
        """Initialize the tracker.

        Args:
            high_activity_threshold: Scene motion intensity above which two
                subjects are assumed. Default: 50
            negligible_motion_floor: Accumulated cell motion below which a
                candidate seed is discarded. Default: 5
            single_frame_confidence: Confidence given to the center-cell seed
                of a scene with a single frame. Default: 60
        """
        if not 0 <= high_activity_threshold <= 100:
            raise ValueError("high_activity_threshold must be between 0 and 100")
        if negligible_motion_floor < 0:
            raise ValueError("negligible_motion_floor must be non-negative")
        if not 0 <= single_frame_confidence <= 100:
            raise ValueError("single_frame_confidence must be between 0 and 100")

        self.high_activity_threshold = high_activity_threshold
        self.negligible_motion_floor = negligible_motion_floor
        self.single_frame_confidence = single_frame_confidence

    def _scene_motion(self, frames: Sequence[SampledFrame]) -> _SceneMotion:
        motion = _SceneMotion(peak_frame=frames[0])
        highest = 0
        for i in range(1, len(frames)):
            scores = compute_region_motion(frames[i - 1].pixels, frames[i].pixels)
            frame_total = sum(scores)
            if frame_total > highest:
                highest = frame_total
                motion.peak_frame = frames[i]
            for cell, score in enumerate(scores):
                motion.cell_totals[cell] += score
        return motion

    def _scene_seeds(self, scene: Scene, frames: Sequence[SampledFrame]) -> list[_CharacterSeed]:
        if len(frames) < 2:
            return [
                _CharacterSeed(
                    cell=CENTER_CELL,
                    appearances=[scene.scene_id],
                    thumbnail=frames[0].thumbnail if frames else scene.thumbnail,
                    timestamp=frames[0].timestamp if frames else scene.start_time,
                    confidence=self.single_frame_confidence,
                )
            ]

        motion = self._scene_motion(frames)
        # Stable sort keeps lower cell numbers first on equal motion.
        ranked = sorted(range(GRID_CELLS), key=lambda c: motion.cell_totals[c], reverse=True)
        num_subjects = 2 if scene.motion_intensity > self.high_activity_threshold else 1

        seeds = []
        for cell in ranked[:num_subjects]:
            score = motion.cell_totals[cell]
            if score < self.negligible_motion_floor:
                continue
            seeds.append(
                _CharacterSeed(
                    cell=cell,
                    appearances=[scene.scene_id],
                    thumbnail=motion.peak_frame.thumbnail,
                    timestamp=motion.peak_frame.timestamp,
                    confidence=min(100, round(BASE_SEED_CONFIDENCE + score)),
                )
            )
        return seeds

    def _merge(self, seeds: list[_CharacterSeed]) -> list[_CharacterSeed]:
        slots: list[_CharacterSeed | None] = [None] * GRID_CELLS
        order: list[int] = []

        for seed in seeds:
            existing = slots[seed.cell]
            if existing is None:
                slots[seed.cell] = _CharacterSeed(
                    cell=seed.cell,
                    appearances=list(seed.appearances),
                    thumbnail=seed.thumbnail,
                    timestamp=seed.timestamp,
                    confidence=seed.confidence,
                )
                order.append(seed.cell)
                continue

            for scene_id in seed.appearances:
                if scene_id not in existing.appearances:
                    existing.appearances.append(scene_id)
            if seed.confidence > existing.confidence:
                existing.confidence = seed.confidence
                existing.thumbnail = seed.thumbnail
                existing.timestamp = seed.timestamp

        return [slot for slot in (slots[c] for c in order) if slot is not None]

    def track(self, frames: Sequence[SampledFrame], scenes: Sequence[Scene]) -> list[TrackedCharacter]:
        if len(frames) < 2 or not scenes:
            return []

        seeds: list[_CharacterSeed] = []
        for scene in scenes:
            scene_seeds = self._scene_seeds(scene, scene_frames(frames, scene))
            for seed in scene_seeds:
                logger.debug("Seed in %s: cell %d, confidence %d", scene.scene_id, seed.cell, seed.confidence)
            seeds.extend(scene_seeds)

        merged = sorted(self._merge(seeds), key=lambda s: s.timestamp)
        scenes_by_id = {scene.scene_id: scene for scene in scenes}

        characters = []
        for index, seed in enumerate(merged, start=1):
            appearing = [scenes_by_id[scene_id] for scene_id in seed.appearances]
            characters.append(
                TrackedCharacter(
                    character_id=f"char_{index:02d}",
                    label=f"Character {index}",
                    first_seen=min(s.start_time for s in appearing),
                    last_seen=max(s.end_time for s in appearing),
                    scene_appearances=tuple(seed.appearances),
                    dominant_region=cell_region(seed.cell),
                    tracking_confidence=seed.confidence,
                    thumbnail=seed.thumbnail,
                )
            )

        logger.info("Tracked %d characters across %d scenes", len(characters), len(scenes))
        return characters
