"""Perception-side helpers: coordinate mapping, classification and sources."""

from combat_agent.perception.classifier import ClassifiedFrame, TargetClassifier
from combat_agent.perception.coordinates import CoordinateMapper, FrameMetrics
from combat_agent.perception.sources import JsonlDetectionSource, QueueDetectionSource

__all__ = [
    "ClassifiedFrame",
    "CoordinateMapper",
    "FrameMetrics",
    "JsonlDetectionSource",
    "QueueDetectionSource",
    "TargetClassifier",
]
