"""
Unit tests for coded values and beat packing.

These tests verify:
1. The 2-bit decode table is a bijection onto {-3, -1, 1, 3}
2. Slice reconstruction of wide operands
3. Vectorized decoding
4. Little-endian beat packing at every operand width
5. Tensor packers reject mismatched shapes
"""

import itertools

import numpy as np
import pytest

from qconv.config import DEFAULT_ENGINE_CONFIG, LayerConfig
from qconv.util.coding import (
    DECODE_TABLE,
    decode,
    decode_tensor,
    decode_value,
    encode_digits,
    random_codes,
    slice_code,
)
from qconv.util.packing import (
    Beat,
    pack_activations,
    pack_elements,
    pack_weights,
    unpack_beat,
    unpack_elements,
)


class TestDecode:
    """Test suite for 2-bit code decoding."""

    def test_decode_table(self):
        assert decode(0b00) == -3
        assert decode(0b01) == -1
        assert decode(0b10) == 1
        assert decode(0b11) == 3

    def test_decode_is_bijection(self):
        values = [decode(code) for code in range(4)]
        assert sorted(values) == [-3, -1, 1, 3]
        assert len(set(values)) == 4

    def test_decode_is_affine(self):
        """decode(c) == 2c - 3 for every code."""
        for code in range(4):
            assert decode(code) == 2 * code - 3

    def test_slice_code(self):
        code = 0b11_10_01_00
        assert [slice_code(code, s) for s in range(4)] == [0, 1, 2, 3]


class TestReconstruction:
    """Test suite for multi-slice values."""

    @pytest.mark.parametrize("bits", [2, 4, 8, 16])
    def test_digit_round_trip(self, bits):
        """Any integer built from signed 2-bit digits decodes back to itself."""
        rng = np.random.default_rng(bits)
        for _ in range(50):
            digits = [int(d) for d in rng.choice(DECODE_TABLE, size=bits // 2)]
            expected = sum(d << (2 * s) for s, d in enumerate(digits))
            assert decode_value(encode_digits(digits), bits) == expected

    def test_four_bit_values(self):
        # slice 0 = 01 (-1), slice 1 = 11 (+3): -1 + 3*4 = 11
        assert decode_value(0b1101, 4) == 11
        # all zeros: -3 + -3*4 = -15
        assert decode_value(0b0000, 4) == -15
        # all ones: 3 + 3*4 = 15
        assert decode_value(0b1111, 4) == 15

    def test_four_bit_values_are_distinct_odds(self):
        values = sorted(decode_value(code, 4) for code in range(16))
        assert values == list(range(-15, 16, 2))

    def test_encode_rejects_bad_digit(self):
        with pytest.raises(ValueError):
            encode_digits([2])

    def test_decode_value_rejects_bad_width(self):
        with pytest.raises(ValueError):
            decode_value(0, 3)

    @pytest.mark.parametrize("bits", [2, 4, 8, 16])
    def test_decode_tensor_matches_scalar(self, bits):
        rng = np.random.default_rng(7)
        codes = random_codes((5, 7), bits, rng)
        values = decode_tensor(codes, bits)
        for idx in itertools.product(range(5), range(7)):
            assert values[idx] == decode_value(int(codes[idx]), bits)


class TestPacking:
    """Test suite for beat packing."""

    def test_pack_bytes(self):
        beats = pack_elements([1, 2, 3], bits=8, beat_bits=32)
        assert beats == [Beat(0x030201, last=True)]

    def test_two_bit_elements_per_byte(self):
        beats = pack_elements([0, 1, 2, 3], bits=2, beat_bits=128)
        assert beats[0].data == 0b11_10_01_00

    def test_sixteen_bit_little_endian(self):
        beats = pack_elements([0x1234, 0xABCD], bits=16, beat_bits=32)
        assert beats[0].data.to_bytes(4, "little") == bytes([0x34, 0x12, 0xCD, 0xAB])

    def test_last_marker_on_final_beat(self):
        beats = pack_elements(list(range(10)), bits=8, beat_bits=32)
        assert len(beats) == 3
        assert [b.last for b in beats] == [False, False, True]

    def test_negative_values_are_twos_complement(self):
        beats = pack_elements([-1, -2], bits=32, beat_bits=64)
        assert unpack_beat(beats[0].data, 32, 2, signed=True) == [-1, -2]

    @pytest.mark.parametrize("bits", [2, 4, 8, 16])
    def test_unpack_elements(self, bits):
        rng = np.random.default_rng(bits)
        values = list(rng.integers(0, 1 << bits, size=77))
        beats = pack_elements(values, bits=bits, beat_bits=128)
        assert unpack_elements(beats, bits, len(values), beat_bits=128) == values

    def test_bad_width_rejected(self):
        with pytest.raises(ValueError):
            pack_elements([1], bits=3, beat_bits=128)

    def test_activation_shape_checked(self):
        layer = LayerConfig(width=4, height=4, in_channels=16, out_channels=16)
        with pytest.raises(ValueError):
            pack_activations(np.zeros((4, 4, 8), dtype=np.int64), layer, DEFAULT_ENGINE_CONFIG)

    def test_weight_shape_checked(self):
        layer = LayerConfig(width=4, height=4, in_channels=16, out_channels=16)
        with pytest.raises(ValueError):
            pack_weights(np.zeros((16, 16, 3, 3), dtype=np.int64), layer, DEFAULT_ENGINE_CONFIG)

    def test_activation_layout_channel_innermost(self):
        layer = LayerConfig(width=3, height=3, in_channels=16, out_channels=16, act_bits=8)
        codes = np.arange(3 * 3 * 16).reshape(3, 3, 16) % 256
        beats = pack_activations(codes, layer, DEFAULT_ENGINE_CONFIG)
        flat = unpack_elements(beats, 8, layer.act_elements)
        # element index = (row * width + col) * in_channels + channel
        assert flat[(1 * 3 + 2) * 16 + 5] == codes[1, 2, 5]
