"""
Quantized Dot-Product Engine.

Consumes one activation window and one weight block and produces the
partial sum of one input-channel group for every physical output channel
of the current output-channel group.

Lane layout (lanes = 16, cpc = channels per cycle = lanes / slices):

    window[kh, kw, s*cpc_a + p]        slice s of input channel p
    block[kh, kw, g*cpc_w + p, q]      weight slice g of output channel p,
                                       input channel q

Per (output lane, activation slice):
    1. pair adjacent input lanes and evaluate the SliceMac primitive at
       all 9 kernel positions: N_PAIRS = 9 * cpc_a / 2 lookups
    2. sum - N_PAIRS * 9 = sum(a * w) >> 1 for that slice pairing

Bit-slice reconstruction (only one side can be wide):
    activation wide: lane_sum  = sum_s slice_sum_s << 2s
    weight wide:     result[p] = sum_g lane_sum[g*cpc_w + p] << 2g

The reduction uses exact int64 sums, so the result is independent of the
order in which lanes are visited.
"""

import numpy as np

from ..config import KERNEL_SIZE, EngineConfig
from .lane_reducer import PAIR_OFFSET
from .slice_mac import SLICE_MAC_LUT, lut_index


class DotProductEngine:
    """
    Behavioral model of the dot-product datapath.

    Stateless: compute() is a pure function of its arguments.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self.lanes = config.lanes

    def n_pairs(self, act_bits: int) -> int:
        """Primitive evaluations per (output lane, activation slice)."""
        return KERNEL_SIZE * KERNEL_SIZE * self.config.channels_per_cycle(act_bits) // 2

    def slice_sums(self, window: np.ndarray, block: np.ndarray, act_bits: int) -> np.ndarray:
        """
        Signed halved product sums before reconstruction.

        Returns:
            int64 array of shape (act_slices, lanes): entry [s, o] is the
            contribution of activation slice s to output lane o.
        """
        cpc_a = self.config.channels_per_cycle(act_bits)
        n_pairs = self.n_pairs(act_bits)

        win = np.asarray(window, dtype=np.int64).reshape(KERNEL_SIZE * KERNEL_SIZE, self.lanes)
        blk = np.asarray(block, dtype=np.int64).reshape(
            KERNEL_SIZE * KERNEL_SIZE, self.lanes, self.lanes
        )

        # Weight codes of the physical input channels: (9, out_lanes, cpc_a)
        wgt = blk[:, :, :cpc_a]
        w0 = wgt[:, :, 0::2]
        w1 = wgt[:, :, 1::2]

        sums = np.zeros((act_bits // 2, self.lanes), dtype=np.int64)
        for s in range(act_bits // 2):
            act = win[:, s * cpc_a : (s + 1) * cpc_a]
            a0 = act[:, None, 0::2]
            a1 = act[:, None, 1::2]
            prim = SLICE_MAC_LUT[lut_index(a0, w0, a1, w1)]
            sums[s] = prim.sum(axis=(0, 2)) - n_pairs * PAIR_OFFSET
        return sums

    def compute(
        self, window: np.ndarray, block: np.ndarray, act_bits: int, wgt_bits: int
    ) -> np.ndarray:
        """
        Partial sums of one input-channel group.

        Args:
            window: Activation window, shape (3, 3, lanes)
            block: Weight block, shape (3, 3, lanes, lanes)
            act_bits: Activation width (2, 4, 8 or 16)
            wgt_bits: Weight width (2, 4, 8 or 16)

        Returns:
            int64 array with one signed value per physical output channel
            of the group (length lanes / (wgt_bits / 2)).
        """
        slice_sums = self.slice_sums(window, block, act_bits)

        lane_sums = np.zeros(self.lanes, dtype=np.int64)
        for s in range(act_bits // 2):
            lane_sums += slice_sums[s] << (2 * s)

        cpc_w = self.config.channels_per_cycle(wgt_bits)
        result = np.zeros(cpc_w, dtype=np.int64)
        for g in range(wgt_bits // 2):
            result += lane_sums[g * cpc_w : (g + 1) * cpc_w] << (2 * g)
        return result
