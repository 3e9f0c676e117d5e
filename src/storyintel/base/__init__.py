from .description import KeyMoment, MomentType, Region, SampledFrame, Scene, TrackedCharacter
from .exceptions import (
    DecodeError,
    PipelineAbortedError,
    PipelineCancelledError,
    PipelineTimeoutError,
    SeekError,
    StoryIntelError,
    ValidationError,
)
from .frames import compute_all_differences, compute_frame_difference, compute_region_motion
from .progress import PipelineProgress, PipelineStage, ProgressReporter, configure, set_progress, set_verbose
from .scene import DifferenceSceneDetector, SceneDetector
from .video import (
    CancellationToken,
    FrameSampler,
    OpenCVDecoder,
    VideoDecoder,
    VideoMetadata,
    VideoUpload,
    validate_upload,
)

__all__ = [
    # Core
    "VideoMetadata",
    "VideoUpload",
    "VideoDecoder",
    "OpenCVDecoder",
    "FrameSampler",
    "CancellationToken",
    "validate_upload",
    # Data model
    "SampledFrame",
    "Scene",
    "Region",
    "TrackedCharacter",
    "MomentType",
    "KeyMoment",
    # Exceptions
    "StoryIntelError",
    "ValidationError",
    "DecodeError",
    "SeekError",
    "PipelineAbortedError",
    "PipelineCancelledError",
    "PipelineTimeoutError",
    # Frame differences
    "compute_frame_difference",
    "compute_all_differences",
    "compute_region_motion",
    # Scene Detection
    "SceneDetector",
    "DifferenceSceneDetector",
    # Progress
    "PipelineStage",
    "PipelineProgress",
    "ProgressReporter",
    # Configuration
    "configure",
    "set_verbose",
    "set_progress",
]
