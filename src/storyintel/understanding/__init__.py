from .characters import CharacterTracker, GridCharacterTracker
from .moments import KeyMomentDetector, format_time

__all__ = [
    "CharacterTracker",
    "GridCharacterTracker",
    "KeyMomentDetector",
    "format_time",
]
