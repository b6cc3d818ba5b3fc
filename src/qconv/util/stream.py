"""
Stream endpoints for driving the behavioral model.

StreamSource presents a list of beats with a valid/ready handshake and
StreamSink collects beats. Both take an optional pattern callable
``pattern(cycle) -> bool`` that gates valid (source) or ready (sink), which
is how tests inject bubbles and backpressure.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from .packing import Beat


def always(_cycle: int) -> bool:
    return True


@dataclass
class StreamSource:
    """Producer side of a beat stream."""

    beats: list[Beat] = field(default_factory=list)
    pattern: Callable[[int], bool] = always

    position: int = 0
    cycle: int = 0

    @property
    def valid(self) -> bool:
        return self.position < len(self.beats) and self.pattern(self.cycle)

    @property
    def beat(self) -> Beat | None:
        return self.beats[self.position] if self.valid else None

    @property
    def exhausted(self) -> bool:
        return self.position >= len(self.beats)

    def tick(self, fire: bool) -> None:
        """Advance past the current beat if it was accepted."""
        if fire:
            self.position += 1
        self.cycle += 1


@dataclass
class StreamSink:
    """Consumer side of a beat stream."""

    pattern: Callable[[int], bool] = always

    beats: list[Beat] = field(default_factory=list)
    cycle: int = 0
    stall_cycles: int = 0

    @property
    def ready(self) -> bool:
        return self.pattern(self.cycle)

    @property
    def saw_last(self) -> bool:
        return bool(self.beats) and self.beats[-1].last

    def tick(self, beat: Beat | None) -> None:
        """Record an accepted beat (None when nothing transferred)."""
        if beat is not None:
            self.beats.append(beat)
        elif not self.ready:
            self.stall_cycles += 1
        self.cycle += 1
