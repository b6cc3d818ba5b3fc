"""
Slice Multiply-Add Primitive.

The leaf of the datapath. Takes two (activation, weight) pairs of 2-bit
codes and returns their product sum as an unsigned value:

    pair_sum = decode(a0) * decode(w0) + decode(a1) * decode(w1)   in [-18, 18]
    out      = (pair_sum + 18) >> 1                                  in [0, 18]

Each product of two odd values is odd and the sum of two odd values is
even, so the halving is exact. Keeping the output unsigned means the
reduction tree above it only needs unsigned adders; the offset is removed
once per tree (see LaneReducer).

The hardware form is a 256-entry lookup on the concatenated 8-bit input:

    index = a0[7:6] | w0[5:4] | a1[3:2] | w1[1:0]
"""

import numpy as np
from amaranth import Cat, Module, unsigned
from amaranth.lib.wiring import Component, In, Out

from ..util.coding import decode

SLICE_MAC_OFFSET = 18
"""Bias added to the signed pair sum before halving."""

SLICE_MAC_MAX = 18
"""Largest primitive output; the output port is 5 bits wide."""


def slice_mac(a0: int, w0: int, a1: int, w1: int) -> int:
    """Offset, halved product sum of two coded pairs."""
    pair_sum = decode(a0) * decode(w0) + decode(a1) * decode(w1)
    return (pair_sum + SLICE_MAC_OFFSET) >> 1


def lut_index(a0, w0, a1, w1):
    """Lookup index of a pair of coded pairs (works on ints and numpy arrays)."""
    return (a0 << 6) | (w0 << 4) | (a1 << 2) | w1


SLICE_MAC_LUT = np.array(
    [slice_mac((i >> 6) & 3, (i >> 4) & 3, (i >> 2) & 3, i & 3) for i in range(256)],
    dtype=np.int64,
)
"""Primitive output for every 8-bit input, indexed by lut_index()."""


class SliceMac(Component):
    """
    Lookup-based pairwise multiply-add.

    Purely combinational.

    Ports:
        a0, w0: First activation/weight code pair
        a1, w1: Second activation/weight code pair
        out: (decode(a0)*decode(w0) + decode(a1)*decode(w1) + 18) >> 1
    """

    def __init__(self):
        super().__init__(
            {
                "a0": In(unsigned(2)),
                "w0": In(unsigned(2)),
                "a1": In(unsigned(2)),
                "w1": In(unsigned(2)),
                "out": Out(unsigned(5)),
            }
        )

    def elaborate(self, _platform):
        m = Module()

        # Cat is LSB first: w1 occupies the low bits, a0 the high bits
        index = Cat(self.w1, self.a1, self.w0, self.a0)

        with m.Switch(index):
            for i, value in enumerate(SLICE_MAC_LUT):
                with m.Case(i):
                    m.d.comb += self.out.eq(int(value))

        return m
