"""Presentation-side pipeline: detect, batch, apply, reorder."""

from feed_shield.pipeline.batch_scheduler import BatchScheduler, Placement
from feed_shield.pipeline.detector import Detector
from feed_shield.pipeline.gate import ObservationGate
from feed_shield.pipeline.reorderer import Reorderer
from feed_shield.pipeline.session import ShieldSession
from feed_shield.pipeline.state_machine import VerdictStateMachine

__all__ = [
    "BatchScheduler",
    "Detector",
    "ObservationGate",
    "Placement",
    "Reorderer",
    "ShieldSession",
    "VerdictStateMachine",
]
