"""Exception hierarchy for storyintel."""


class StoryIntelError(Exception):
    """Base exception for all storyintel errors."""

    pass


class ValidationError(StoryIntelError):
    """Raised when an uploaded file is rejected before any decoding starts."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class DecodeError(StoryIntelError):
    """Raised when the video container or codec cannot be decoded."""

    pass


class SeekError(DecodeError):
    """Raised when too many sampling instants could not be seeked to."""

    def __init__(self, message: str, timestamp: float | None = None):
        super().__init__(message)
        self.timestamp = timestamp


class PipelineAbortedError(StoryIntelError):
    """Base exception for runs stopped by the caller before completion."""

    pass


class PipelineCancelledError(PipelineAbortedError):
    """Raised when the cancellation token fires between two sampled frames."""

    pass


class PipelineTimeoutError(PipelineAbortedError):
    """Raised when the pipeline-level wall clock budget is exceeded."""

    pass
