"""
Golden reference convolution.

Direct summation over decoded operands, independent of the lane/slice
datapath. The engine's output for every (row, col, channel) must equal

    sum_{ic, kh, kw} decode(act) * decode(wgt) >> 1

where the full product sum is always even, so the halving is exact.
"""

import numpy as np

from ..config import KERNEL_SIZE, LayerConfig
from .coding import decode_tensor


def conv3x3_reference(act_codes: np.ndarray, wgt_codes: np.ndarray, layer: LayerConfig) -> np.ndarray:
    """
    Reference 3x3 valid convolution of raw coded tensors.

    Args:
        act_codes: Activation codes, shape (height, width, in_channels)
        wgt_codes: Weight codes, shape (3, 3, out_channels, in_channels)
        layer: Layer configuration (bit widths and stride)

    Returns:
        int64 array of shape (out_height, out_width, out_channels) holding the
        halved dot products.
    """
    act = decode_tensor(act_codes, layer.act_bits)
    wgt = decode_tensor(wgt_codes, layer.wgt_bits)
    s = layer.stride

    out = np.zeros((layer.out_height, layer.out_width, layer.out_channels), dtype=np.int64)
    for kh in range(KERNEL_SIZE):
        for kw in range(KERNEL_SIZE):
            rows = act[kh : kh + s * (layer.out_height - 1) + 1 : s]
            patch = rows[:, kw : kw + s * (layer.out_width - 1) + 1 : s, :]
            # (OH, OW, IC) x (OC, IC) -> (OH, OW, OC)
            out += np.einsum("hwi,oi->hwo", patch, wgt[kh, kw])
    return out >> 1


def full_dot_products(act_codes: np.ndarray, wgt_codes: np.ndarray, layer: LayerConfig) -> np.ndarray:
    """Unhalved product sums, for the evenness checks."""
    act = decode_tensor(act_codes, layer.act_bits)
    wgt = decode_tensor(wgt_codes, layer.wgt_bits)
    s = layer.stride

    out = np.zeros((layer.out_height, layer.out_width, layer.out_channels), dtype=np.int64)
    for oy in range(layer.out_height):
        for ox in range(layer.out_width):
            patch = act[oy * s : oy * s + KERNEL_SIZE, ox * s : ox * s + KERNEL_SIZE, :]
            out[oy, ox] = np.einsum("hwi,hwoi->o", patch, wgt)
    return out
