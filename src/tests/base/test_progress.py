"""Tests for progress reporting."""

import logging

import pytest

from storyintel.base import progress
from storyintel.base.progress import PipelineProgress, PipelineStage, ProgressReporter


@pytest.fixture
def events():
    return []


@pytest.fixture
def reporter(events):
    return ProgressReporter(events.append)


@pytest.fixture
def restore_progress_config():
    saved = (progress.get_config().verbose, progress.get_config().progress)
    yield
    progress.configure(verbose=saved[0], progress=saved[1])


class TestProgressReporter:
    """Tests for ProgressReporter ordering rules."""

    def test_forward_events_delivered(self, reporter, events):
        reporter.report(PipelineStage.SAMPLING_FRAMES, 0, "start")
        reporter.report(PipelineStage.SAMPLING_FRAMES, 50, "half")
        reporter.report(PipelineStage.SEGMENTING_SCENES, 0, "segment")
        reporter.done()

        assert [(e.stage, e.stage_progress) for e in events] == [
            (PipelineStage.SAMPLING_FRAMES, 0),
            (PipelineStage.SAMPLING_FRAMES, 50),
            (PipelineStage.SEGMENTING_SCENES, 0),
            (PipelineStage.DONE, 100),
        ]
        assert events[-1].message == "Analysis complete!"

    def test_regressions_dropped(self, reporter, events):
        reporter.report(PipelineStage.TRACKING_CHARACTERS, 50, "tracking")
        reporter.report(PipelineStage.TRACKING_CHARACTERS, 20, "back")
        reporter.report(PipelineStage.SAMPLING_FRAMES, 100, "earlier stage")

        assert [e.message for e in events] == ["tracking"]

    def test_repeated_percentage_delivered(self, reporter, events):
        reporter.report(PipelineStage.SAMPLING_FRAMES, 40, "a")
        reporter.report(PipelineStage.SAMPLING_FRAMES, 40, "b")
        assert [e.message for e in events] == ["a", "b"]

    def test_stage_index_and_total(self, reporter, events):
        reporter.report(PipelineStage.DETECTING_MOMENTS, 50, "moments")
        assert events[0].stage_index == 3
        assert events[0].total_stages == 4

    def test_percentage_clamped(self, reporter, events):
        reporter.report(PipelineStage.SAMPLING_FRAMES, 140, "over")
        assert events[0].stage_progress == 100

    def test_error_is_terminal(self, reporter, events):
        reporter.report(PipelineStage.SEGMENTING_SCENES, 50, "segment")
        reporter.error("boom")
        reporter.report(PipelineStage.DETECTING_MOMENTS, 50, "late")
        reporter.done()

        assert [e.stage for e in events] == [PipelineStage.SEGMENTING_SCENES, PipelineStage.ERROR]
        assert events[-1].message == "boom"
        assert events[-1].stage_index == 1

    def test_error_before_any_progress(self, reporter, events):
        reporter.error("rejected")
        assert events[0].stage == PipelineStage.ERROR
        assert events[0].stage_index == 0

    def test_nothing_after_done(self, reporter, events):
        reporter.done()
        reporter.report(PipelineStage.DETECTING_MOMENTS, 100, "late")
        assert len(events) == 1
        assert reporter.last.stage == PipelineStage.DONE

    def test_without_callback(self):
        reporter = ProgressReporter()
        reporter.report(PipelineStage.SAMPLING_FRAMES, 10, "quiet")
        assert reporter.last.stage_progress == 10

    def test_verbose_logs_events(self, caplog, restore_progress_config):
        progress.set_verbose(True)
        reporter = ProgressReporter()
        with caplog.at_level(logging.INFO, logger="storyintel.base.progress"):
            reporter.report(PipelineStage.SAMPLING_FRAMES, 30, "Extracted 3 frames...")
        assert "[sampling-frames 30%] Extracted 3 frames..." in caplog.text


class TestPipelineProgress:
    def test_overall_progress(self):
        event = PipelineProgress(PipelineStage.TRACKING_CHARACTERS, 2, 4, 50, "tracking")
        assert event.overall_progress == pytest.approx(62.5)

    def test_overall_progress_done(self):
        event = PipelineProgress(PipelineStage.DONE, 4, 4, 100, "done")
        assert event.overall_progress == 100.0

    def test_stage_values(self):
        assert [s.value for s in PipelineStage] == [
            "sampling-frames",
            "segmenting-scenes",
            "tracking-characters",
            "detecting-moments",
            "done",
            "error",
        ]


class TestProgressConfig:
    def test_configure(self, restore_progress_config):
        progress.configure(verbose=True, progress=True)
        assert progress.get_config().verbose is True
        assert progress.get_config().progress is True

        progress.configure(progress=False)
        assert progress.get_config().verbose is True
        assert progress.get_config().progress is False

    def test_progress_iter_passthrough(self, restore_progress_config):
        progress.set_progress(False)
        items = [1, 2, 3]
        assert progress.progress_iter(items) is items

    def test_progress_iter_bar(self, restore_progress_config):
        progress.set_progress(True)
        assert list(progress.progress_iter([1, 2, 3], desc="Test")) == [1, 2, 3]
