from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

_DATA_URL_PREFIX = "data:image/jpeg;base64,"


def to_data_url(thumbnail: bytes) -> str:
    """Encode JPEG bytes as a data URL suitable for display."""
    if not thumbnail:
        return ""
    return _DATA_URL_PREFIX + base64.b64encode(thumbnail).decode("ascii")


def from_data_url(data_url: str) -> bytes:
    """Decode a data URL produced by `to_data_url` back into JPEG bytes."""
    if not data_url:
        return b""
    if not data_url.startswith(_DATA_URL_PREFIX):
        raise ValueError("Thumbnail must be a base64 JPEG data URL")
    return base64.b64decode(data_url[len(_DATA_URL_PREFIX) :])


@dataclass(frozen=True)
class SampledFrame:
    """A single decoded frame taken at a sampling instant.

    Attributes:
        frame_index: Position of the frame in the sampled sequence (0-based)
        timestamp: Time in seconds at which the frame was sampled
        pixels: Read-only RGB buffer (H, W, 3) at analysis resolution
        thumbnail: JPEG encoded display thumbnail
    """

    frame_index: int
    timestamp: float
    pixels: np.ndarray = field(repr=False, compare=False)
    thumbnail: bytes = field(default=b"", repr=False, compare=False)

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def data_url(self) -> str:
        return to_data_url(self.thumbnail)


@dataclass(frozen=True)
class Scene:
    """A contiguous span of sampled frames between two detected cuts.

    Attributes:
        scene_id: Sequential identifier, e.g. ``scene_01``
        start_time: Timestamp of the first frame in seconds
        end_time: Timestamp of the last frame in seconds
        start_frame: Index of the first frame in this scene
        end_frame: Index of the last frame in this scene (inclusive)
        thumbnail: Thumbnail of the temporal-midpoint frame
        motion_intensity: Average intra-scene motion (0-100)
    """

    scene_id: str
    start_time: float
    end_time: float
    start_frame: int
    end_frame: int
    thumbnail: bytes = field(default=b"", repr=False)
    motion_intensity: int = 0

    @property
    def duration(self) -> float:
        """Duration of the scene in seconds."""
        return self.end_time - self.start_time

    @property
    def frame_count(self) -> int:
        """Number of sampled frames in this scene."""
        return self.end_frame - self.start_frame + 1

    def contains_time(self, timestamp: float) -> bool:
        return self.start_time <= timestamp <= self.end_time

    def to_dict(self) -> dict[str, Any]:
        return {
            "scene_id": self.scene_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "start_frame": self.start_frame,
            "end_frame": self.end_frame,
            "thumbnail": to_data_url(self.thumbnail),
            "motion_intensity": self.motion_intensity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Scene:
        return cls(
            scene_id=data["scene_id"],
            start_time=float(data["start_time"]),
            end_time=float(data["end_time"]),
            start_frame=int(data["start_frame"]),
            end_frame=int(data["end_frame"]),
            thumbnail=from_data_url(data.get("thumbnail", "")),
            motion_intensity=int(data.get("motion_intensity", 0)),
        )


@dataclass(frozen=True)
class Region:
    """Rectangle in normalized (0-1) frame coordinates."""

    x: float
    y: float
    w: float
    h: float

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Region:
        return cls(x=float(data["x"]), y=float(data["y"]), w=float(data["w"]), h=float(data["h"]))


@dataclass(frozen=True)
class TrackedCharacter:
    """A subject that persists or recurs across scenes.

    Attributes:
        character_id: Sequential identifier, e.g. ``char_01``
        label: Human-facing label, e.g. ``Character 1``
        first_seen: Earliest start time over all scenes it appears in
        last_seen: Latest end time over all scenes it appears in
        scene_appearances: Identifiers of the scenes it appears in
        thumbnail: Thumbnail of the highest-confidence representative frame
        dominant_region: Grid cell the subject occupies, normalized
        tracking_confidence: Rough confidence score (0-100)
    """

    character_id: str
    label: str
    first_seen: float
    last_seen: float
    scene_appearances: tuple[str, ...]
    dominant_region: Region
    tracking_confidence: int
    thumbnail: bytes = field(default=b"", repr=False)

    def appears_in(self, scene_id: str) -> bool:
        return scene_id in self.scene_appearances

    def to_dict(self) -> dict[str, Any]:
        return {
            "character_id": self.character_id,
            "label": self.label,
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
            "scene_appearances": list(self.scene_appearances),
            "dominant_region": self.dominant_region.to_dict(),
            "tracking_confidence": self.tracking_confidence,
            "thumbnail": to_data_url(self.thumbnail),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackedCharacter:
        return cls(
            character_id=data["character_id"],
            label=data["label"],
            first_seen=float(data["first_seen"]),
            last_seen=float(data["last_seen"]),
            scene_appearances=tuple(data.get("scene_appearances", [])),
            dominant_region=Region.from_dict(data["dominant_region"]),
            tracking_confidence=int(data["tracking_confidence"]),
            thumbnail=from_data_url(data.get("thumbnail", "")),
        )


class MomentType(str, Enum):
    ENTRANCE = "entrance"
    EXIT = "exit"
    CLIMAX = "climax"
    TRANSFORMATION = "transformation"
    FOCUS = "focus"


@dataclass(frozen=True)
class KeyMoment:
    """A narratively significant timestamp inside a scene.

    Attributes:
        moment_id: Identifier in detection order, e.g. ``moment_3``
        scene_id: Scene the moment belongs to
        character_id: Primary character of that scene, if any
        time_code: Timestamp in seconds, inside the scene's range
        type: Kind of moment
        importance_score: Narrative importance (0-100)
        description: Generated human-readable description
        thumbnail: Thumbnail of the frame at `time_code`
    """

    moment_id: str
    scene_id: str
    character_id: str | None
    time_code: float
    type: MomentType
    importance_score: float
    description: str
    thumbnail: bytes = field(default=b"", repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "moment_id": self.moment_id,
            "scene_id": self.scene_id,
            "character_id": self.character_id,
            "time_code": self.time_code,
            "type": self.type.value,
            "importance_score": self.importance_score,
            "description": self.description,
            "thumbnail": to_data_url(self.thumbnail),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyMoment:
        return cls(
            moment_id=data["moment_id"],
            scene_id=data["scene_id"],
            character_id=data.get("character_id"),
            time_code=float(data["time_code"]),
            type=MomentType(data["type"]),
            importance_score=float(data["importance_score"]),
            description=data.get("description", ""),
            thumbnail=from_data_url(data.get("thumbnail", "")),
        )
