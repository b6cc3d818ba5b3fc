"""
Coded value helpers.

Every operand is built from 2-bit codes ("slices") that map onto the odd
values {-3, -1, +1, +3}:

    code:   00  01  10  11
    value:  -3  -1  +1  +3

A wider operand (4, 8 or 16 bits) is a little-endian sequence of
bits/2 slices and represents

    value = sum(decode(slice_s) << (2 * s))

These helpers are the software view of that encoding, used by the golden
reference, the stream packers and the tests.
"""

import numpy as np

from ..config import SUPPORTED_BITS

DECODE_TABLE = (-3, -1, 1, 3)
"""Signed value of each 2-bit code."""


def decode(code: int) -> int:
    """Decode one 2-bit code."""
    return DECODE_TABLE[code & 0x3]


def slice_code(code: int, index: int) -> int:
    """Extract 2-bit slice ``index`` (0 = least significant) of a raw code."""
    return (code >> (2 * index)) & 0x3


def decode_value(code: int, bits: int) -> int:
    """Decode a raw ``bits``-wide code into the integer it represents."""
    if bits not in SUPPORTED_BITS:
        raise ValueError(f"Unsupported operand width: {bits}")
    return sum(decode(slice_code(code, s)) << (2 * s) for s in range(bits // 2))


def encode_digits(digits: list[int]) -> int:
    """
    Build a raw code from signed digits, least significant first.

    Inverse of decode_value: each digit must be one of -3, -1, 1, 3.
    """
    code = 0
    for s, digit in enumerate(digits):
        if digit not in DECODE_TABLE:
            raise ValueError(f"Digit {digit} is not a coded value")
        code |= DECODE_TABLE.index(digit) << (2 * s)
    return code


def decode_tensor(codes: np.ndarray, bits: int) -> np.ndarray:
    """Vectorized decode_value over an array of raw codes (returns int64)."""
    if bits not in SUPPORTED_BITS:
        raise ValueError(f"Unsupported operand width: {bits}")
    codes = np.asarray(codes, dtype=np.int64)
    values = np.zeros(codes.shape, dtype=np.int64)
    for s in range(bits // 2):
        values += (2 * ((codes >> (2 * s)) & 0x3) - 3) << (2 * s)
    return values


def random_codes(shape: tuple[int, ...], bits: int, rng: np.random.Generator) -> np.ndarray:
    """Uniformly random raw codes of the given width."""
    if bits not in SUPPORTED_BITS:
        raise ValueError(f"Unsupported operand width: {bits}")
    return rng.integers(0, 1 << bits, size=shape, dtype=np.int64)
