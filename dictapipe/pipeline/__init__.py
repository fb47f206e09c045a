"""Segment boundary detection and preparation."""

from .scheduler import SegmentScheduler, SegmentationSettings, SchedulerState
from .preparation import SegmentPreparer

__all__ = [
    "SegmentScheduler",
    "SegmentationSettings",
    "SchedulerState",
    "SegmentPreparer",
]
