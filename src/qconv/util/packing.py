"""
Transfer beat packing.

The activation, weight and output streams carry fixed-width beats.
Elements are packed little-endian in arrival order: element ``i`` of a
beat occupies bits ``[i*bits, (i+1)*bits)``. This gives 4 elements per
byte at 2 bits, 2 per byte at 4 bits, 1 per byte at 8 bits and two
little-endian bytes per element at 16 bits. The final beat carries the
``last`` marker and is zero padded.

Tensor layouts on the streams:
    activations: index = (row * width + col) * in_channels + channel
    weights:     index = ((kh * 3 + kw) * out_channels + oc) * in_channels + ic
    outputs:     index = (out_row * out_width + out_col) * out_channels + oc
"""

from dataclasses import dataclass

import numpy as np

from ..config import KERNEL_SIZE, EngineConfig, LayerConfig


@dataclass(frozen=True)
class Beat:
    """One transfer beat: packed data plus the final-beat marker."""

    data: int
    last: bool = False


def elements_per_beat(beat_bits: int, bits: int) -> int:
    return beat_bits // bits


def pack_elements(values, bits: int, beat_bits: int = 128) -> list[Beat]:
    """
    Pack a flat sequence of elements into beats.

    Values are masked to ``bits`` (negative values become two's complement).

    Example:
        >>> beats = pack_elements([1, 2, 3], bits=8, beat_bits=32)
        >>> hex(beats[0].data)
        '0x30201'
    """
    if bits <= 0 or beat_bits % bits != 0:
        raise ValueError(f"Element width {bits} does not divide beat width {beat_bits}")
    flat = [int(v) for v in np.asarray(values).reshape(-1)]
    per_beat = elements_per_beat(beat_bits, bits)
    mask = (1 << bits) - 1

    beats = []
    for start in range(0, len(flat), per_beat):
        word = 0
        for j, value in enumerate(flat[start : start + per_beat]):
            word |= (value & mask) << (j * bits)
        beats.append(Beat(word, last=start + per_beat >= len(flat)))
    return beats


def unpack_beat(data: int, bits: int, count: int, signed: bool = False) -> list[int]:
    """Extract ``count`` elements from one beat word."""
    mask = (1 << bits) - 1
    values = []
    for j in range(count):
        value = (data >> (j * bits)) & mask
        if signed and value >> (bits - 1):
            value -= 1 << bits
        values.append(value)
    return values


def unpack_elements(
    beats: list[Beat], bits: int, count: int, beat_bits: int = 128, signed: bool = False
) -> list[int]:
    """Unpack the first ``count`` elements of a beat stream."""
    per_beat = elements_per_beat(beat_bits, bits)
    values = []
    for beat in beats:
        take = min(per_beat, count - len(values))
        if take <= 0:
            break
        values.extend(unpack_beat(beat.data, bits, take, signed=signed))
    return values


def pack_activations(codes: np.ndarray, layer: LayerConfig, engine: EngineConfig) -> list[Beat]:
    """Pack an activation tensor of raw codes, shape (height, width, in_channels)."""
    expected = (layer.height, layer.width, layer.in_channels)
    if tuple(codes.shape) != expected:
        raise ValueError(f"Activation shape {codes.shape} does not match layer {expected}")
    return pack_elements(codes, layer.act_bits, engine.beat_bits)


def pack_weights(codes: np.ndarray, layer: LayerConfig, engine: EngineConfig) -> list[Beat]:
    """Pack a weight tensor of raw codes, shape (3, 3, out_channels, in_channels)."""
    expected = (KERNEL_SIZE, KERNEL_SIZE, layer.out_channels, layer.in_channels)
    if tuple(codes.shape) != expected:
        raise ValueError(f"Weight shape {codes.shape} does not match layer {expected}")
    return pack_elements(codes, layer.wgt_bits, engine.beat_bits)


def unpack_outputs(beats: list[Beat], layer: LayerConfig, engine: EngineConfig) -> np.ndarray:
    """Unpack the output stream into shape (out_height, out_width, out_channels)."""
    values = unpack_elements(
        beats, engine.out_bits, layer.out_elements, engine.beat_bits, signed=True
    )
    return np.array(values, dtype=np.int64).reshape(
        layer.out_height, layer.out_width, layer.out_channels
    )
