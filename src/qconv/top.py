"""
ConvAccelSim - Top-level lock-step model of the convolution engine.

This module wires together all blocks of the engine:
- SequencerSim: Layer control loop and accumulator
- WindowGeneratorSim: Activation row store and window emission
- WeightCacheSim: Layer weight store and block server
- PostProcessSim: Register stage (transform or raw accumulator pass-through)
- OutputPackerSim: Output beat packing

External Interfaces:
- Layer configuration (configure())
- Activation and weight beat streams (StreamSource)
- Output beat stream (StreamSink)
- Status: done, error_code

Each tick():
1. Reads every block's valid/ready outputs from current state
2. Decides all transfers (valid & ready) on every boundary
3. Commits every block's next state

so all blocks observe the same pre-tick state, as with a single clock edge.

Data Flow:
    act beats ──▶ WindowGenerator ──window──┐
                                            ▼
    wgt beats ──▶ WeightCache ───block──▶ Sequencer ──▶ PostProcess ──▶ Packer ──▶ out beats
                        ▲                   │
                        └────request────────┘
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np

from .config import (
    DEFAULT_ENGINE_CONFIG,
    ConfigError,
    EngineConfig,
    LayerConfig,
    check_layer_config,
)
from .controller.sequencer import SequencerSim
from .memory.weight_cache import WeightCacheSim
from .output import OutputPackerSim, PostProcessSim
from .stencil.window_generator import WindowGeneratorSim
from .util.packing import Beat, pack_activations, pack_weights, unpack_outputs
from .util.stream import StreamSink, StreamSource, always


class ConvAccelSim:
    """
    Cycle-accurate model of the complete engine for one layer at a time.

    Example:
        sim = ConvAccelSim(EngineConfig())
        sim.configure(layer)
        sim.attach(act_beats, wgt_beats)
        cycles = sim.run()
        beats = sim.output.beats
    """

    def __init__(self, config: EngineConfig = DEFAULT_ENGINE_CONFIG):
        self.config = config

        self.sequencer = SequencerSim(config)
        self.window_gen = WindowGeneratorSim(config)
        self.weight_cache = WeightCacheSim(config)
        self.postprocess = PostProcessSim()
        self.packer = OutputPackerSim(config)

        self.act_source = StreamSource()
        self.wgt_source = StreamSource()
        self.output = StreamSink()

        self.cycle = 0

    def configure(self, layer: LayerConfig) -> None:
        """Submit the configuration of the next layer."""
        self.sequencer.configure(layer)

    def attach(
        self,
        act_beats: list[Beat],
        wgt_beats: list[Beat],
        out_ready: Callable[[int], bool] = always,
        act_valid: Callable[[int], bool] = always,
        wgt_valid: Callable[[int], bool] = always,
    ) -> None:
        """Connect stream endpoints for the next layer."""
        self.act_source = StreamSource(act_beats, act_valid)
        self.wgt_source = StreamSource(wgt_beats, wgt_valid)
        self.output = StreamSink(out_ready)

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def done(self) -> bool:
        return self.sequencer.done

    @property
    def error_code(self) -> ConfigError:
        return self.sequencer.error_code

    @property
    def output_idle(self) -> bool:
        return self.postprocess.idle and self.packer.idle

    # =========================================================================
    # Simulation
    # =========================================================================

    def tick(self) -> None:
        """Advance the whole engine by one cycle."""
        seq = self.sequencer
        gen = self.window_gen
        cache = self.weight_cache
        post = self.postprocess
        packer = self.packer

        # Handshakes, all from pre-tick state
        act_fire = self.act_source.valid and gen.in_ready(seq.window_ready)
        wgt_fire = self.wgt_source.valid and cache.in_ready
        win_fire = gen.out_valid and seq.window_ready
        req_fire = seq.req_valid and cache.req_ready
        resp_fire = cache.resp_valid and seq.resp_ready
        elem_fire = seq.out_valid and post.in_ready
        post_fire = post.out_valid and packer.in_ready
        out_fire = packer.out_valid and self.output.ready

        # Payloads
        act_beat = self.act_source.beat if act_fire else None
        wgt_beat = self.wgt_source.beat if wgt_fire else None
        window = gen.window() if win_fire else None
        request = seq.request if req_fire else None
        block = cache.block if resp_fire else None
        element = seq.out_element if elem_fire else None
        post_element = (post.value, post.last) if post_fire else None
        out_beat = packer.beat if out_fire else None
        gen_done = gen.done
        output_idle = self.output_idle
        weights_loaded = cache.loaded

        # Commit
        self.act_source.tick(act_fire)
        self.wgt_source.tick(wgt_fire)
        gen.tick(act_beat, win_fire)
        cache.tick(wgt_beat, request, resp_fire)
        seq.tick(
            window=window,
            req_fire=req_fire,
            block=block,
            out_fire=elem_fire,
            gen_done=gen_done,
            output_idle=output_idle,
            weights_loaded=weights_loaded,
        )
        post.tick(element, post_fire)
        packer.tick(post_element, out_fire)
        self.output.tick(out_beat)

        # The accepted configuration is broadcast to the stream-side blocks
        if seq.started:
            gen.start(seq.layer)
            cache.start(seq.layer)
            post.reset(seq.layer.raw_out)
            packer.reset()

        self.cycle += 1

    def run(self, max_cycles: int = 1_000_000) -> int:
        """
        Tick until the layer reports done.

        Returns:
            Number of cycles taken.

        Raises:
            RuntimeError: if the layer does not finish within max_cycles.
        """
        start = self.cycle
        # A configuration submitted in IDLE is taken up on the first tick
        self.tick()
        while not self.done:
            if self.cycle - start >= max_cycles:
                raise RuntimeError(
                    f"Layer did not complete within {max_cycles} cycles "
                    f"(sequencer state {self.sequencer.state.name})"
                )
            self.tick()
        return self.cycle - start

    def get_statistics(self) -> dict[str, Any]:
        return {
            "cycles": self.cycle,
            "sequencer": self.sequencer.get_statistics(),
            "window_generator": self.window_gen.get_statistics(),
            "weight_cache": self.weight_cache.get_statistics(),
            "postprocess": self.postprocess.get_statistics(),
            "packer": self.packer.get_statistics(),
            "output_stall_cycles": self.output.stall_cycles,
        }


@dataclass
class LayerResult:
    """Outcome of one layer run."""

    error_code: ConfigError
    outputs: np.ndarray
    beats: list[Beat]
    cycles: int
    statistics: dict[str, Any]


def run_layer(
    layer: LayerConfig,
    act_codes: np.ndarray,
    wgt_codes: np.ndarray,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    out_ready: Callable[[int], bool] = always,
    act_valid: Callable[[int], bool] = always,
    wgt_valid: Callable[[int], bool] = always,
    max_cycles: int = 1_000_000,
) -> LayerResult:
    """
    Run one layer end to end on a fresh engine.

    Args:
        layer: Layer configuration
        act_codes: Activation codes, shape (height, width, in_channels)
        wgt_codes: Weight codes, shape (3, 3, out_channels, in_channels)
        config: Engine configuration
        out_ready: Output sink readiness pattern, cycle -> bool
        act_valid, wgt_valid: Input source validity patterns, cycle -> bool
        max_cycles: Cycle limit before RuntimeError

    Returns:
        LayerResult with outputs shaped (out_height, out_width, out_channels);
        empty when the configuration was rejected.
    """
    sim = ConvAccelSim(config)
    sim.configure(layer)

    # A rejected layer consumes no stream data; its operand widths may not
    # even be packable, so the streams stay empty.
    if check_layer_config(layer, config) != ConfigError.NONE:
        act_beats, wgt_beats = [], []
    else:
        act_beats = pack_activations(act_codes, layer, config)
        wgt_beats = pack_weights(wgt_codes, layer, config)

    sim.attach(
        act_beats,
        wgt_beats,
        out_ready=out_ready,
        act_valid=act_valid,
        wgt_valid=wgt_valid,
    )
    cycles = sim.run(max_cycles)

    if sim.error_code != ConfigError.NONE:
        outputs = np.zeros((0,), dtype=np.int64)
    else:
        outputs = unpack_outputs(sim.output.beats, layer, config)

    return LayerResult(
        error_code=sim.error_code,
        outputs=outputs,
        beats=list(sim.output.beats),
        cycles=cycles,
        statistics=sim.get_statistics(),
    )
