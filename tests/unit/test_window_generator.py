"""
Unit tests for the Sliding Window Generator.

These tests verify:
1. Window count and emission order
2. Window contents for stride 1 and stride 2
3. Slice lane layout for wide activations
4. Input is consumed completely, including rows no window reads
5. Output stalls hold the window stable
"""

import numpy as np
import pytest

from qconv.config import DEFAULT_ENGINE_CONFIG, LayerConfig
from qconv.stencil import GenState, WindowGeneratorSim
from qconv.util.coding import random_codes
from qconv.util.packing import pack_activations
from qconv.util.stream import StreamSource, always


def _expected_window(codes, layer, row, col, ic_group):
    cpc = DEFAULT_ENGINE_CONFIG.channels_per_cycle(layer.act_bits)
    y0, x0, c0 = row * layer.stride, col * layer.stride, ic_group * cpc
    patch = codes[y0 : y0 + 3, x0 : x0 + 3, c0 : c0 + cpc]
    win = np.zeros((3, 3, DEFAULT_ENGINE_CONFIG.lanes), dtype=np.int64)
    for s in range(layer.act_slices):
        win[:, :, s * cpc : (s + 1) * cpc] = (patch >> (2 * s)) & 3
    return win


def _run_generator(layer, codes, out_ready=always, in_valid=always, max_cycles=200_000):
    """Drive the generator alone; returns the accepted windows and the model."""
    gen = WindowGeneratorSim(DEFAULT_ENGINE_CONFIG)
    gen.start(layer)
    source = StreamSource(pack_activations(codes, layer, DEFAULT_ENGINE_CONFIG), in_valid)

    windows = []
    for cycle in range(max_cycles):
        if gen.done:
            break
        ready = out_ready(cycle)
        fire = source.valid and gen.in_ready(ready)
        beat = source.beat if fire else None
        if gen.out_valid and ready:
            windows.append(gen.window())
        source.tick(fire)
        gen.tick(beat, ready)
    return windows, gen, source


class TestWindowGenerator:
    """Test suite for WindowGeneratorSim."""

    def test_idle_until_started(self):
        gen = WindowGeneratorSim(DEFAULT_ENGINE_CONFIG)
        assert gen.state == GenState.IDLE
        assert not gen.out_valid
        assert not gen.done

    def test_window_count_and_order(self):
        layer = LayerConfig(width=6, height=5, in_channels=32, out_channels=32)
        codes = random_codes((5, 6, 32), 2, np.random.default_rng(0))
        windows, gen, source = _run_generator(layer, codes)

        # 3 rows x 4 cols x 2 oc groups x 2 ic groups
        assert len(windows) == 3 * 4 * 2 * 2
        assert gen.done
        assert source.exhausted

        i = 0
        for row in range(3):
            for col in range(4):
                for _oc in range(2):
                    for ic in range(2):
                        np.testing.assert_array_equal(
                            windows[i], _expected_window(codes, layer, row, col, ic)
                        )
                        i += 1

    def test_stride_2(self):
        layer = LayerConfig(width=9, height=7, in_channels=16, out_channels=16, stride=2)
        codes = random_codes((7, 9, 16), 2, np.random.default_rng(1))
        windows, gen, _ = _run_generator(layer, codes)

        assert len(windows) == 3 * 4
        for i, win in enumerate(windows):
            np.testing.assert_array_equal(win, _expected_window(codes, layer, i // 4, i % 4, 0))
        assert gen.done

    def test_stride_2_even_height_skips_tail(self):
        """The last input row is read by no window but must still be consumed."""
        layer = LayerConfig(width=5, height=6, in_channels=16, out_channels=16, stride=2)
        codes = random_codes((6, 5, 16), 2, np.random.default_rng(2))
        windows, gen, source = _run_generator(layer, codes)

        assert len(windows) == 2 * 2
        assert gen.done
        assert source.exhausted
        assert gen.written == layer.act_elements

    @pytest.mark.parametrize("act_bits", [4, 8, 16])
    def test_wide_activation_lanes(self, act_bits):
        cpc = DEFAULT_ENGINE_CONFIG.channels_per_cycle(act_bits)
        layer = LayerConfig(
            width=4, height=4, in_channels=2 * cpc, out_channels=16, act_bits=act_bits
        )
        codes = random_codes((4, 4, 2 * cpc), act_bits, np.random.default_rng(act_bits))
        windows, _, _ = _run_generator(layer, codes)

        assert len(windows) == 2 * 2 * 2
        for i, win in enumerate(windows):
            row, col, ic = i // 4, (i // 2) % 2, i % 2
            np.testing.assert_array_equal(win, _expected_window(codes, layer, row, col, ic))

    def test_minimum_size(self):
        layer = LayerConfig(width=3, height=3, in_channels=16, out_channels=16)
        codes = random_codes((3, 3, 16), 2, np.random.default_rng(3))
        windows, gen, _ = _run_generator(layer, codes)
        assert len(windows) == 1
        np.testing.assert_array_equal(windows[0], _expected_window(codes, layer, 0, 0, 0))
        assert gen.done

    def test_backpressure_and_bubbles(self):
        """Random consumer stalls and source bubbles do not change the windows."""
        layer = LayerConfig(width=7, height=6, in_channels=16, out_channels=32)
        codes = random_codes((6, 7, 16), 2, np.random.default_rng(4))
        reference, _, _ = _run_generator(layer, codes)

        rng = np.random.default_rng(99)
        ready = rng.random(200_000) < 0.4
        valid = rng.random(200_000) < 0.6
        windows, gen, _ = _run_generator(
            layer, codes, out_ready=lambda c: bool(ready[c]), in_valid=lambda c: bool(valid[c])
        )

        assert len(windows) == len(reference)
        for got, want in zip(windows, reference, strict=True):
            np.testing.assert_array_equal(got, want)
        assert gen.get_statistics()["stall_cycles"] > 0

    def test_window_held_while_stalled(self):
        layer = LayerConfig(width=4, height=4, in_channels=16, out_channels=16)
        codes = random_codes((4, 4, 16), 2, np.random.default_rng(5))
        gen = WindowGeneratorSim(DEFAULT_ENGINE_CONFIG)
        gen.start(layer)
        source = StreamSource(pack_activations(codes, layer, DEFAULT_ENGINE_CONFIG))

        # Feed with the consumer never ready until a window appears
        while not gen.out_valid:
            fire = source.valid and gen.in_ready(False)
            beat = source.beat if fire else None
            source.tick(fire)
            gen.tick(beat, False)

        first = gen.window()
        for _ in range(20):
            assert not gen.in_ready(False)
            gen.tick(None, False)
            assert gen.out_valid
            np.testing.assert_array_equal(gen.window(), first)

    def test_statistics(self):
        layer = LayerConfig(width=4, height=4, in_channels=16, out_channels=16)
        codes = random_codes((4, 4, 16), 2, np.random.default_rng(6))
        _, gen, source = _run_generator(layer, codes)
        stats = gen.get_statistics()
        assert stats["state"] == "DONE"
        assert stats["windows_emitted"] == 4
        assert stats["beats_accepted"] == len(source.beats)
        assert stats["elements_written"] == layer.act_elements
