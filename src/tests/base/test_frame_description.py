"""Tests for result data types."""

import numpy as np
import pytest

from storyintel.base.description import (
    KeyMoment,
    MomentType,
    Region,
    SampledFrame,
    Scene,
    TrackedCharacter,
    from_data_url,
    to_data_url,
)


class TestDataUrl:
    def test_roundtrip(self):
        data = b"\xff\xd8\xff\xe0jpeg"
        url = to_data_url(data)
        assert url.startswith("data:image/jpeg;base64,")
        assert from_data_url(url) == data

    def test_empty(self):
        assert to_data_url(b"") == ""
        assert from_data_url("") == b""

    def test_rejects_other_urls(self):
        with pytest.raises(ValueError, match="data URL"):
            from_data_url("https://example.com/thumb.jpg")


class TestSampledFrame:
    def test_equality_ignores_pixels(self):
        a = SampledFrame(0, 0.0, np.zeros((2, 2, 3), dtype=np.uint8))
        b = SampledFrame(0, 0.0, np.ones((2, 2, 3), dtype=np.uint8))
        assert a == b

    def test_immutable(self):
        frame = SampledFrame(0, 0.0, np.zeros((2, 2, 3), dtype=np.uint8))
        with pytest.raises(AttributeError):
            frame.timestamp = 1.0


class TestSerialization:
    def test_scene_roundtrip(self):
        scene = Scene("scene_01", 0.0, 4.0, 0, 4, thumbnail=b"jpeg", motion_intensity=12)
        data = scene.to_dict()
        assert data["thumbnail"] == to_data_url(b"jpeg")
        assert Scene.from_dict(data) == scene

    def test_character_roundtrip(self):
        character = TrackedCharacter(
            character_id="char_01",
            label="Character 1",
            first_seen=5.0,
            last_seen=9.0,
            scene_appearances=("scene_02", "scene_04"),
            dominant_region=Region(0.0, 0.0, 1 / 3, 1 / 3),
            tracking_confidence=88,
            thumbnail=b"jpeg",
        )
        data = character.to_dict()
        assert data["scene_appearances"] == ["scene_02", "scene_04"]
        assert TrackedCharacter.from_dict(data) == character

    def test_moment_roundtrip(self):
        moment = KeyMoment(
            moment_id="moment_1",
            scene_id="scene_01",
            character_id=None,
            time_code=2.0,
            type=MomentType.CLIMAX,
            importance_score=67.0,
            description="Narrative peak at 00:02: highest dramatic tension in the scene.",
        )
        data = moment.to_dict()
        assert data["type"] == "climax"
        assert data["character_id"] is None
        assert KeyMoment.from_dict(data) == moment
