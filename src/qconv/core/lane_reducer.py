"""
Lane Reducer: one output lane of the dot-product engine.

Instantiates ``n_pairs`` SliceMac primitives (9 kernel positions x
lanes/2 input pairs), sums their unsigned outputs and removes the
accumulated offset once:

    sum = sum(primitive outputs) - n_pairs * 9
        = sum(decode(a) * decode(w)) >> 1

Architecture:
    act/wgt codes ──▶ [SliceMac 0] ─┐
                      [SliceMac 1] ─┼──▶ unsigned adder ──▶ - n_pairs*9 ──▶ sum
                      ...           │
                      [SliceMac N] ─┘
"""

from amaranth import Module, Signal, signed, unsigned
from amaranth.lib.wiring import Component, In, Out

from .slice_mac import SLICE_MAC_MAX, SLICE_MAC_OFFSET, SliceMac

PAIR_OFFSET = SLICE_MAC_OFFSET // 2
"""Offset contributed by each primitive output after halving."""


def pack_pairs(codes: list[int]) -> int:
    """Pack a flat list of 2-bit codes (pair k = codes[2k], codes[2k+1]) LSB first."""
    word = 0
    for i, code in enumerate(codes):
        word |= (int(code) & 0x3) << (2 * i)
    return word


class LaneReducer(Component):
    """
    Reduction tree for one (output lane, activation slice).

    Purely combinational.

    Ports:
        act: 2*n_pairs activation codes; pair k is bits [4k, 4k+4)
        wgt: 2*n_pairs weight codes, same layout
        sum: Signed halved product sum
    """

    def __init__(self, n_pairs: int = 72):
        assert n_pairs > 0, "n_pairs must be positive"
        self.n_pairs = n_pairs
        self.sum_bits = (PAIR_OFFSET * n_pairs).bit_length() + 1

        super().__init__(
            {
                "act": In(unsigned(4 * n_pairs)),
                "wgt": In(unsigned(4 * n_pairs)),
                "sum": Out(signed(self.sum_bits)),
            }
        )

    def elaborate(self, _platform):
        m = Module()

        macs = [SliceMac() for _ in range(self.n_pairs)]
        for k, mac in enumerate(macs):
            m.submodules[f"mac_{k}"] = mac
            base = 4 * k
            m.d.comb += [
                mac.a0.eq(self.act[base : base + 2]),
                mac.a1.eq(self.act[base + 2 : base + 4]),
                mac.w0.eq(self.wgt[base : base + 2]),
                mac.w1.eq(self.wgt[base + 2 : base + 4]),
            ]

        # Unsigned reduction, held in a signed signal one bit wider
        total = Signal(signed((SLICE_MAC_MAX * self.n_pairs).bit_length() + 1), name="total")
        m.d.comb += total.eq(sum(mac.out for mac in macs))

        m.d.comb += self.sum.eq(total - PAIR_OFFSET * self.n_pairs)

        return m
