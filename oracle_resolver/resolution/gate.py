"""Confidence gate: admit a candidate for submission iff it is confident enough."""

from __future__ import annotations

from dataclasses import dataclass

from .base import ResolutionCandidate

DEFAULT_CONFIDENCE_THRESHOLD = 0.7


@dataclass(frozen=True)
class ConfidenceGate:
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD

    def __post_init__(self) -> None:
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError(f"confidence threshold must be in [0, 1], got {self.threshold}")

    def admits(self, candidate: ResolutionCandidate) -> bool:
        return candidate.confidence >= self.threshold
