"""
Frame Pacing
============

Gate that turns a fast tick stream (display refresh rate) into the
target capture frame rate without accumulating drift.
"""


class FramePacer:
    """
    Accepts ticks at most once per frame interval.

    After an accepted tick the reference time advances by the elapsed
    time rounded down to a whole number of intervals, so the remainder
    carries into the next frame instead of being lost.

    Example:
        pacer = FramePacer(target_fps=10)
        if pacer.should_capture(now_ms):
            capture()
    """

    def __init__(self, target_fps: int) -> None:
        self._last_accepted: float = 0.0
        self._primed: bool = False
        self.set_fps(target_fps)

    @property
    def target_fps(self) -> int:
        return self._target_fps

    @property
    def frame_interval_ms(self) -> float:
        return self._interval_ms

    def set_fps(self, target_fps: int) -> None:
        """Change the target rate; the next tick is accepted immediately."""
        if target_fps < 1:
            raise ValueError("target_fps must be >= 1")
        self._target_fps = target_fps
        self._interval_ms = 1000.0 / target_fps
        self.reset()

    def reset(self) -> None:
        self._primed = False

    def should_capture(self, now_ms: float) -> bool:
        if not self._primed:
            self._primed = True
            self._last_accepted = now_ms
            return True

        elapsed = now_ms - self._last_accepted
        if elapsed < self._interval_ms:
            return False

        self._last_accepted += elapsed - (elapsed % self._interval_ms)
        return True
