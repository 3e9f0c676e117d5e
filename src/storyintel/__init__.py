from .base import (
    CancellationToken,
    DecodeError,
    KeyMoment,
    MomentType,
    PipelineCancelledError,
    PipelineProgress,
    PipelineStage,
    PipelineTimeoutError,
    Scene,
    SeekError,
    StoryIntelError,
    TrackedCharacter,
    ValidationError,
    VideoMetadata,
    VideoUpload,
)
from .pipeline import PipelineConfig, StoryIntelligenceResult, StoryPipeline, analyze_video

__all__ = [
    "StoryPipeline",
    "PipelineConfig",
    "StoryIntelligenceResult",
    "analyze_video",
    "VideoUpload",
    "VideoMetadata",
    "Scene",
    "TrackedCharacter",
    "KeyMoment",
    "MomentType",
    "PipelineStage",
    "PipelineProgress",
    "CancellationToken",
    "StoryIntelError",
    "ValidationError",
    "DecodeError",
    "SeekError",
    "PipelineCancelledError",
    "PipelineTimeoutError",
]
