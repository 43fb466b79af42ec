"""Trajectory analysis and reflection."""

from .reflector import ReflectionAnalyzer
from .suggestions import dedupe_suggestions, parse_suggestions, rank_suggestions
from .trajectory import FailureKind, TrajectoryInsights, TrajectoryInspector

__all__ = [
    "ReflectionAnalyzer",
    "TrajectoryInspector",
    "TrajectoryInsights",
    "FailureKind",
    "parse_suggestions",
    "dedupe_suggestions",
    "rank_suggestions",
]
