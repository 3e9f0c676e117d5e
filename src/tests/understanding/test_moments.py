"""Tests for key moment detection."""

import pytest

from storyintel.base.description import MomentType, Scene, TrackedCharacter
from storyintel.understanding.characters import cell_region
from storyintel.understanding.moments import KeyMomentDetector, describe_moment, format_time
from tests.test_config import make_frames, solid_frame


def _frames(values: list[int]):
    return make_frames([solid_frame(v) for v in values])


def _scene(number: int, start: int, end: int, intensity: int = 0) -> Scene:
    return Scene(
        scene_id=f"scene_{number:02d}",
        start_time=float(start),
        end_time=float(end),
        start_frame=start,
        end_frame=end,
        motion_intensity=intensity,
    )


def _character(number: int, *scene_ids: str) -> TrackedCharacter:
    return TrackedCharacter(
        character_id=f"char_{number:02d}",
        label=f"Character {number}",
        first_seen=0.0,
        last_seen=0.0,
        scene_appearances=scene_ids,
        dominant_region=cell_region(4),
        tracking_confidence=80,
    )


class TestFormatting:
    def test_format_time(self):
        assert format_time(0) == "00:00"
        assert format_time(75.9) == "01:15"
        assert format_time(600) == "10:00"

    def test_describe_moment(self):
        assert describe_moment(MomentType.ENTRANCE, "Character 1", 5.0) == (
            "Character 1 enters the scene at 00:05, peak visual impact."
        )
        assert describe_moment(MomentType.EXIT, "Subject", 65.0) == "Subject exits frame at 01:05."


class TestKeyMomentDetectorInit:
    def test_invalid_values(self):
        with pytest.raises(ValueError, match="minimum_drama"):
            KeyMomentDetector(minimum_drama=-1)
        with pytest.raises(ValueError, match="max_moments"):
            KeyMomentDetector(max_moments=0)


class TestKeyMomentDetector:
    """Tests for moment rules and ranking."""

    def test_no_input(self):
        detector = KeyMomentDetector()
        assert detector.detect([], [], []) == []
        assert detector.detect(_frames([0, 0]), [], []) == []

    def test_static_scene_without_characters(self):
        assert KeyMomentDetector().detect(_frames([0] * 6), [_scene(1, 0, 5)], []) == []

    def test_climax_and_focus(self):
        frames = _frames([0, 0, 24, 24, 24])
        moments = KeyMomentDetector().detect(frames, [_scene(1, 0, 4, intensity=8)], [])

        assert [(m.type, m.time_code, m.importance_score) for m in moments] == [
            (MomentType.CLIMAX, 2.0, 67.0),
            (MomentType.FOCUS, 1.0, 60.0),
        ]
        assert [m.moment_id for m in moments] == ["moment_1", "moment_2"]
        assert all(m.character_id is None for m in moments)
        assert moments[0].thumbnail == b"thumb-2"

    def test_climax_requires_drama(self):
        frames = _frames([0, 0, 20, 20])
        moments = KeyMomentDetector().detect(frames, [_scene(1, 0, 3)], [])
        assert MomentType.CLIMAX not in [m.type for m in moments]

    def test_transformation_after_delay(self):
        frames = _frames([0, 0, 0, 50, 50, 50])
        moments = KeyMomentDetector().detect(frames, [_scene(1, 0, 5)], [])

        assert [(m.type, m.time_code, m.importance_score) for m in moments] == [
            (MomentType.CLIMAX, 3.0, 80.0),
            (MomentType.TRANSFORMATION, 3.0, 80.0),
            (MomentType.FOCUS, 2.0, 60.0),
        ]

    def test_no_transformation_near_scene_start(self):
        frames = _frames([0, 50, 50, 50, 50])
        moments = KeyMomentDetector().detect(frames, [_scene(1, 0, 4)], [])
        assert MomentType.TRANSFORMATION not in [m.type for m in moments]

    def test_no_transformation_on_last_frame(self):
        frames = _frames([0, 0, 0, 0, 50])
        moments = KeyMomentDetector().detect(frames, [_scene(1, 0, 4)], [])
        assert MomentType.TRANSFORMATION not in [m.type for m in moments]

    def test_opening_cut_is_not_a_climax(self):
        frames = _frames([0, 0, 200, 200, 200])
        scenes = [_scene(1, 0, 1), _scene(2, 2, 4)]
        assert KeyMomentDetector().detect(frames, scenes, []) == []

    def test_entrance_and_exit_with_character(self):
        frames = _frames([0] * 4)
        character = _character(1, "scene_01")
        moments = KeyMomentDetector().detect(frames, [_scene(1, 0, 3, intensity=30)], [character])

        assert [(m.type, m.time_code, m.importance_score) for m in moments] == [
            (MomentType.ENTRANCE, 0.0, 62.0),
            (MomentType.EXIT, 3.0, 20.0),
        ]
        assert all(m.character_id == "char_01" for m in moments)
        assert moments[0].description == "Character 1 enters the scene at 00:00, peak visual impact."

    def test_exit_importance_follows_intensity(self):
        moments = KeyMomentDetector().detect(
            _frames([0] * 4), [_scene(1, 0, 3, intensity=90)], [_character(1, "scene_01")]
        )
        exit_moment = next(m for m in moments if m.type == MomentType.EXIT)
        assert exit_moment.importance_score == pytest.approx(36.0)

    def test_single_frame_scene_has_no_exit(self):
        frames = _frames([0, 200])
        scenes = [_scene(1, 0, 0), _scene(2, 1, 1)]
        moments = KeyMomentDetector().detect(frames, scenes, [_character(1, "scene_02")])
        assert [m.type for m in moments] == [MomentType.ENTRANCE]

    def test_focus_counts_characters(self):
        frames = _frames([0, 0, 24, 24, 24])
        characters = [_character(1, "scene_01"), _character(2, "scene_01")]
        moments = KeyMomentDetector().detect(frames, [_scene(1, 0, 4)], characters)

        focus = next(m for m in moments if m.type == MomentType.FOCUS)
        assert focus.importance_score == 76.0
        assert focus.character_id == "char_01"

    def test_truncated_to_max_moments(self):
        frames = _frames([0, 0, 0, 50, 50, 50])
        moments = KeyMomentDetector(max_moments=2).detect(frames, [_scene(1, 0, 5)], [])
        assert [m.type for m in moments] == [MomentType.CLIMAX, MomentType.TRANSFORMATION]

    def test_ties_broken_by_time(self):
        frames = _frames([0] * 8)
        scenes = [_scene(1, 0, 3), _scene(2, 4, 7)]
        characters = [_character(1, "scene_01", "scene_02")]
        moments = KeyMomentDetector().detect(frames, scenes, characters)

        assert [(m.type, m.time_code) for m in moments] == [
            (MomentType.ENTRANCE, 0.0),
            (MomentType.ENTRANCE, 4.0),
            (MomentType.EXIT, 3.0),
            (MomentType.EXIT, 7.0),
        ]

    def test_moments_inside_their_scene(self):
        frames = _frames([0, 0, 24, 24, 24, 150, 150, 190, 190, 190])
        scenes = [_scene(1, 0, 4), _scene(2, 5, 9, intensity=60)]
        characters = [_character(1, "scene_01", "scene_02")]
        by_id = {s.scene_id: s for s in scenes}

        moments = KeyMomentDetector().detect(frames, scenes, characters)
        assert moments
        for moment in moments:
            assert by_id[moment.scene_id].contains_time(moment.time_code)
            assert 0 <= moment.importance_score <= 100
        scores = [m.importance_score for m in moments]
        assert scores == sorted(scores, reverse=True)
