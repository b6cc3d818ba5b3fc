"""
Unit tests for the Sequencer / Accumulator.

These tests verify:
1. Rejected configurations go straight to DONE with the error code
2. The state walk of a valid layer
3. Accumulation across input-channel groups
4. Element serialization, the last marker and output stalls
"""

import numpy as np
import pytest

from qconv.config import DEFAULT_ENGINE_CONFIG, ConfigError, EngineConfig, LayerConfig
from qconv.controller import SeqPhase, SeqState, SequencerSim, wrap_signed
from qconv.core import DotProductEngine


def _operands(rng, cpc_a=16):
    window = rng.integers(0, 4, size=(3, 3, 16))
    block = np.zeros((3, 3, 16, 16), dtype=np.int64)
    block[:, :, :, :cpc_a] = rng.integers(0, 4, size=(3, 3, 16, cpc_a))
    return window, block


def _feed_unit(seq, window, block):
    """Deliver one window/block pair and run the accumulate cycle."""
    assert seq.window_ready
    assert seq.req_valid
    seq.tick(window=window, req_fire=True)
    assert seq.resp_ready
    seq.tick(block=block)
    assert seq.phase == SeqPhase.FETCH
    seq.tick()


class TestSequencer:
    """Test suite for SequencerSim."""

    @pytest.fixture
    def seq(self):
        return SequencerSim(DEFAULT_ENGINE_CONFIG)

    def test_idle_without_config(self, seq):
        seq.tick()
        assert seq.state == SeqState.IDLE
        assert not seq.busy
        assert not seq.done

    def test_config_error(self, seq):
        seq.configure(LayerConfig(width=8, height=8, in_channels=16, out_channels=16, stride=3))
        seq.tick()
        assert seq.state == SeqState.CONFIG_ERROR
        assert not seq.started
        assert seq.error_code == ConfigError.INVALID_STRIDE
        seq.tick()
        assert seq.state == SeqState.DONE
        assert seq.done
        assert not seq.out_valid

    def test_accept_and_load(self, seq):
        layer = LayerConfig(width=3, height=3, in_channels=16, out_channels=16)
        seq.configure(layer)
        seq.tick()
        assert seq.started
        assert seq.state == SeqState.LOAD_WEIGHTS
        assert seq.error_code == ConfigError.NONE

        seq.tick(weights_loaded=False)
        assert not seq.started
        assert seq.state == SeqState.LOAD_WEIGHTS
        assert not seq.window_ready

        seq.tick(weights_loaded=True)
        assert seq.state == SeqState.STREAM_COMPUTE
        assert seq.window_ready

    def test_single_unit(self, seq):
        layer = LayerConfig(width=3, height=3, in_channels=16, out_channels=16)
        seq.configure(layer)
        seq.tick()
        seq.tick(weights_loaded=True)

        rng = np.random.default_rng(0)
        window, block = _operands(rng)
        _feed_unit(seq, window, block)

        expected = DotProductEngine(DEFAULT_ENGINE_CONFIG).compute(window, block, 2, 2)
        emitted = []
        while seq.out_valid:
            emitted.append(seq.out_element)
            seq.tick(out_fire=True)

        assert [v for v, _ in emitted] == list(expected)
        assert [last for _, last in emitted] == [False] * 15 + [True]
        assert seq.state == SeqState.DRAIN

        seq.tick(gen_done=True, output_idle=False)
        assert seq.state == SeqState.DRAIN
        seq.tick(gen_done=True, output_idle=True)
        assert seq.done
        seq.tick()
        assert seq.state == SeqState.IDLE

    def test_accumulates_input_groups(self, seq):
        layer = LayerConfig(width=3, height=3, in_channels=48, out_channels=16)
        seq.configure(layer)
        seq.tick()
        seq.tick(weights_loaded=True)

        engine = DotProductEngine(DEFAULT_ENGINE_CONFIG)
        rng = np.random.default_rng(1)
        expected = np.zeros(16, dtype=np.int64)
        for ic_group in range(3):
            assert seq.request == (0, ic_group)
            window, block = _operands(rng)
            expected += engine.compute(window, block, 2, 2)
            _feed_unit(seq, window, block)

        assert seq.out_valid
        np.testing.assert_array_equal(seq.acc, expected)
        assert seq.get_statistics()["compute_steps"] == 3

    def test_emit_stall(self, seq):
        layer = LayerConfig(width=3, height=3, in_channels=16, out_channels=16)
        seq.configure(layer)
        seq.tick()
        seq.tick(weights_loaded=True)
        window, block = _operands(np.random.default_rng(2))
        _feed_unit(seq, window, block)

        first = seq.out_element
        for _ in range(4):
            seq.tick(out_fire=False)
            assert seq.out_element == first
        assert seq.get_statistics()["emit_stall_cycles"] == 4

    def test_unit_order(self, seq):
        """Requests walk (row, col, oc_group) with ic_group innermost."""
        layer = LayerConfig(width=4, height=3, in_channels=16, out_channels=16, wgt_bits=4)
        seq.configure(layer)
        seq.tick()
        seq.tick(weights_loaded=True)

        rng = np.random.default_rng(3)
        requests = []
        # out 1 x 2, two oc groups of 8
        for _ in range(4):
            requests.append((seq.out_row, seq.out_col, *seq.request))
            window, block = _operands(rng)
            _feed_unit(seq, window, block)
            for _ in range(8):
                seq.tick(out_fire=True)

        assert requests == [(0, 0, 0, 0), (0, 0, 1, 0), (0, 1, 0, 0), (0, 1, 1, 0)]
        assert seq.state == SeqState.DRAIN

    def test_reconfigure_after_done(self, seq):
        seq.configure(LayerConfig(width=2, height=2, in_channels=16, out_channels=16))
        seq.tick()
        seq.tick()
        assert seq.done
        assert seq.error_code == ConfigError.SIZE_LIMIT

        seq.configure(LayerConfig(width=3, height=3, in_channels=16, out_channels=16))
        assert not seq.done
        seq.tick()  # DONE -> IDLE
        seq.tick()  # accept
        assert seq.state == SeqState.LOAD_WEIGHTS
        assert seq.error_code == ConfigError.NONE


class TestAccumulatorWidth:
    """Two's complement wrapping of the accumulator."""

    def test_wrap_signed(self):
        values = np.array([0, 32767, 32768, -32768, -32769, 65536 + 5], dtype=np.int64)
        np.testing.assert_array_equal(
            wrap_signed(values, 16), [0, 32767, -32768, -32768, 32767, 5]
        )

    def test_wrap_full_width_is_identity(self):
        values = np.array([1 << 40, -(1 << 40)], dtype=np.int64)
        np.testing.assert_array_equal(wrap_signed(values, 64), values)

    def test_accumulator_wraps(self):
        config = EngineConfig(acc_bits=16)
        seq = SequencerSim(config)
        layer = LayerConfig(width=3, height=3, in_channels=4, out_channels=16, act_bits=16)
        seq.configure(layer)
        seq.tick()
        seq.tick(weights_loaded=True)

        # All-ones 16-bit activations (65535) against +3 weights, two groups of 2 channels
        window = np.full((3, 3, 16), 3, dtype=np.int64)
        block = np.full((3, 3, 16, 16), 3, dtype=np.int64)
        for _ in range(2):
            _feed_unit(seq, window, block)

        total = 9 * 4 * 65535 * 3 // 2
        wrapped = ((total + (1 << 15)) % (1 << 16)) - (1 << 15)
        np.testing.assert_array_equal(seq.acc, np.full(16, wrapped))
