"""
Post-process stage.

Sits between the sequencer and the output packer. It is a one-entry
register slice with a valid/ready handshake. Elements pass through
transform() unless the layer selects raw output, in which case the
accumulator value is forwarded untouched. transform() is the identity;
bias, normalization and activation would be applied there.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class PostProcessSim:
    """One-entry pipeline register applying transform() to each element."""

    raw_out: bool = False

    full: bool = False
    value: int = 0
    last: bool = False

    elements: int = 0

    @property
    def in_ready(self) -> bool:
        return not self.full

    @property
    def out_valid(self) -> bool:
        return self.full

    @property
    def idle(self) -> bool:
        return not self.full

    @staticmethod
    def transform(value: int) -> int:
        return value

    def reset(self, raw_out: bool = False) -> None:
        self.raw_out = raw_out
        self.full = False
        self.value = 0
        self.last = False
        self.elements = 0

    def tick(self, element: tuple[int, bool] | None, out_ready: bool) -> None:
        """
        Advance one cycle.

        Args:
            element: (value, last) transferred in this cycle, or None
            out_ready: Downstream accepts the held element this cycle
        """
        if self.full and out_ready:
            self.full = False
        if element is not None:
            value, last = element
            self.value = value if self.raw_out else self.transform(value)
            self.last = last
            self.full = True
            self.elements += 1

    def get_statistics(self) -> dict[str, Any]:
        return {"elements": self.elements, "raw_out": self.raw_out}
