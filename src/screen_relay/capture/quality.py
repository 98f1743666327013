"""
Adaptive Quality Control
========================

Size-driven JPEG quality policy for the presenter's capture loop.

Policy:
    size > ceiling        -> propose q * 0.9 (floor min_quality); DROP frame
    size < ceiling * 0.5  -> propose q * 1.1 (cap max_quality)
    otherwise             -> keep q

Hysteresis:
    A proposal is applied only when it differs from the current quality
    by strictly more than `hysteresis`. Applied values are rounded to two
    decimals. Near the bounds this means quality can settle short of
    min/max (e.g. decreasing from 0.7 stops at 0.46) because the next
    10% step is no longer larger than the band.

Design Rules:
    - Owned only by the capture component
    - Quality always stays within [min_quality, max_quality]
    - An oversize frame is dropped whether or not quality changes
"""

import logging
from dataclasses import dataclass
from typing import Optional


logger = logging.getLogger(__name__)


DECREASE_FACTOR = 0.9
INCREASE_FACTOR = 1.1
HEADROOM_RATIO = 0.5

# Decimal places used when comparing a proposed change with the band
_COMPARE_PRECISION = 9


@dataclass
class AdaptiveQualityState:
    """
    Current encoding quality and the bounds it moves within.

    Attributes:
        quality: Quality currently applied to the encoder
        ceiling: Maximum encoded frame size in bytes
        min_quality: Lower bound for quality
        max_quality: Upper bound for quality
        hysteresis: Minimum change that is applied
    """

    quality: float = 0.7
    ceiling: int = int(1.5 * 1024 * 1024)
    min_quality: float = 0.1
    max_quality: float = 0.9
    hysteresis: float = 0.05

    def clamp(self, value: float) -> float:
        return max(self.min_quality, min(self.max_quality, value))


@dataclass
class QualityDecision:
    """Outcome of evaluating one encoded frame size."""

    drop: bool
    previous_quality: float
    quality: float

    @property
    def adjusted(self) -> bool:
        return self.quality != self.previous_quality

    def __repr__(self) -> str:
        return (
            f"QualityDecision(drop={self.drop}, "
            f"{self.previous_quality:.2f} -> {self.quality:.2f})"
        )


class AdaptiveQualityController:
    """
    Applies the size-driven quality policy to an AdaptiveQualityState.

    Example:
        controller = AdaptiveQualityController(AdaptiveQualityState(quality=0.7))
        decision = controller.evaluate(len(jpeg_bytes))
        if decision.drop:
            return
    """

    def __init__(
        self,
        state: Optional[AdaptiveQualityState] = None,
        auto_adjust: bool = True,
    ) -> None:
        self.state = state or AdaptiveQualityState()
        self.state.quality = self.state.clamp(self.state.quality)
        self.auto_adjust = auto_adjust

    @property
    def quality(self) -> float:
        return self.state.quality

    def set_quality(self, quality: float) -> float:
        """Set quality directly, clamped to the configured bounds."""
        self.state.quality = round(self.state.clamp(quality), 2)
        return self.state.quality

    def propose(self, size: int) -> float:
        """Quality the policy would move to for a frame of `size` bytes."""
        q = self.state.quality
        if size > self.state.ceiling:
            return max(self.state.min_quality, q * DECREASE_FACTOR)
        if size < self.state.ceiling * HEADROOM_RATIO:
            return min(self.state.max_quality, q * INCREASE_FACTOR)
        return q

    def evaluate(self, size: int) -> QualityDecision:
        """
        Evaluate an encoded frame size and adjust quality if warranted.

        Args:
            size: Encoded frame size in bytes

        Returns:
            QualityDecision with drop flag and the quality now in force
        """
        previous = self.state.quality
        drop = size > self.state.ceiling

        if self.auto_adjust:
            proposed = self.propose(size)
            delta = round(abs(proposed - previous), _COMPARE_PRECISION)
            if delta > self.state.hysteresis:
                self.state.quality = round(proposed, 2)
                logger.info(
                    f"Quality adjusted: {previous:.2f} -> {self.state.quality:.2f} "
                    f"(frame {size} bytes, ceiling {self.state.ceiling})"
                )

        return QualityDecision(
            drop=drop,
            previous_quality=previous,
            quality=self.state.quality,
        )
