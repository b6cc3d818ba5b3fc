"""
Output packer.

Buffers signed output elements and flushes them as fixed-width beats:
a beat is formed when it holds beat_bits / out_bits elements or when the
final element of the layer arrives (partial beat, zero padded, ``last``
set). While a formed beat waits for the sink no new element is accepted.
"""

from dataclasses import dataclass, field
from typing import Any

from ..config import EngineConfig
from ..util.packing import Beat


@dataclass
class OutputPackerSim:
    """Buffer-and-flush packer for the output stream."""

    config: EngineConfig

    pending: list[int] = field(default_factory=list)
    beat: Beat | None = None

    beats_sent: int = 0
    elements: int = 0

    @property
    def in_ready(self) -> bool:
        return self.beat is None

    @property
    def out_valid(self) -> bool:
        return self.beat is not None

    @property
    def idle(self) -> bool:
        return self.beat is None and not self.pending

    def reset(self) -> None:
        self.pending = []
        self.beat = None
        self.beats_sent = 0
        self.elements = 0

    def _form_beat(self, last: bool) -> None:
        bits = self.config.out_bits
        mask = (1 << bits) - 1
        word = 0
        for j, value in enumerate(self.pending):
            word |= (value & mask) << (j * bits)
        self.beat = Beat(word, last=last)
        self.pending = []

    def tick(self, element: tuple[int, bool] | None, out_ready: bool) -> None:
        """
        Advance one cycle.

        Args:
            element: (value, last) transferred in this cycle, or None
            out_ready: Sink accepts the held beat this cycle
        """
        if self.beat is not None and out_ready:
            self.beat = None
            self.beats_sent += 1

        if element is not None:
            value, last = element
            self.pending.append(value)
            self.elements += 1
            if last or len(self.pending) == self.config.outputs_per_beat:
                self._form_beat(last)

    def get_statistics(self) -> dict[str, Any]:
        return {"elements": self.elements, "beats_sent": self.beats_sent}
