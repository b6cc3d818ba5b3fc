"""
Sequencer / Accumulator.

The per-layer control loop. It validates the layer configuration, waits
for the weight cache to load, then walks the loop nest

    for out_row:
        for out_col:
            for oc_group:
                for ic_group:
                    window = window generator      (ready/valid)
                    block  = weight cache[oc_group, ic_group]  (request/response)
                    acc    = partial if ic_group == 0 else acc + partial  (acc_bits wide)
                emit acc[0 .. cpc_w - 1], one element per cycle

and finally waits for the window generator and the output path to drain.

State machine:
    IDLE ──▶ LOAD_WEIGHTS ──▶ STREAM_COMPUTE ──▶ DRAIN ──▶ DONE ──▶ IDLE
      │                                                     ▲
      └──▶ CONFIG_ERROR ────────────────────────────────────┘

Within STREAM_COMPUTE the FETCH phase collects a window and a block and
accumulates; the EMIT phase serializes the finished accumulator.
"""

from dataclasses import dataclass, field
from enum import IntEnum, auto
from typing import Any

import numpy as np

from ..config import ConfigError, EngineConfig, LayerConfig, check_layer_config
from ..core.dot_product import DotProductEngine


def wrap_signed(values: np.ndarray, bits: int) -> np.ndarray:
    """Reduce int64 values to ``bits``-wide two's complement."""
    if bits >= 64:
        return values
    half = np.int64(1) << (bits - 1)
    mask = (np.int64(1) << bits) - 1
    return ((values + half) & mask) - half


class SeqState(IntEnum):
    """Sequencer states."""

    IDLE = 0
    CONFIG_ERROR = auto()
    LOAD_WEIGHTS = auto()
    STREAM_COMPUTE = auto()
    DRAIN = auto()
    DONE = auto()


class SeqPhase(IntEnum):
    """Sub-phase of STREAM_COMPUTE."""

    FETCH = 0  # Gather window + weight block, accumulate
    EMIT = auto()  # Serialize the finished accumulator


@dataclass
class SequencerSim:
    """
    Cycle-accurate model of the sequencer and its accumulator.

    Outputs:
        started: a valid configuration was accepted this cycle
        window_ready: accepts a window this cycle
        req_valid / request: weight block request (oc_group, ic_group)
        resp_ready: accepts the weight cache response this cycle
        out_valid / out_element: (value, last) output element
        done, error_code, busy: status
    """

    config: EngineConfig

    state: SeqState = SeqState.IDLE
    phase: SeqPhase = SeqPhase.FETCH
    layer: LayerConfig | None = None
    pending_layer: LayerConfig | None = None
    started: bool = False

    # Status
    done: bool = False
    error_code: ConfigError = ConfigError.NONE

    # Loop counters
    out_row: int = 0
    out_col: int = 0
    oc_group: int = 0
    ic_group: int = 0

    # Operand registers
    window: np.ndarray | None = None
    block: np.ndarray | None = None
    req_issued: bool = False

    # Accumulator
    acc: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    emit_index: int = 0

    # Statistics
    cycles: int = 0
    compute_steps: int = 0
    elements_emitted: int = 0
    fetch_wait_cycles: int = 0
    emit_stall_cycles: int = 0

    def __post_init__(self):
        self.engine = DotProductEngine(self.config)

    def configure(self, layer: LayerConfig) -> None:
        """Submit a layer configuration; it is taken up in the IDLE state."""
        self.pending_layer = layer
        self.done = False

    # =========================================================================
    # Derived parameters
    # =========================================================================

    @property
    def oc_per_group(self) -> int:
        return self.config.channels_per_cycle(self.layer.wgt_bits)

    @property
    def num_ic_groups(self) -> int:
        return self.layer.in_channels // self.config.channels_per_cycle(self.layer.act_bits)

    @property
    def num_oc_groups(self) -> int:
        return self.layer.out_channels // self.oc_per_group

    def _is_final_unit(self) -> bool:
        layer = self.layer
        return (
            self.out_row == layer.out_height - 1
            and self.out_col == layer.out_width - 1
            and self.oc_group == self.num_oc_groups - 1
        )

    # =========================================================================
    # Outputs
    # =========================================================================

    @property
    def busy(self) -> bool:
        return self.state not in (SeqState.IDLE, SeqState.DONE)

    @property
    def _fetching(self) -> bool:
        return self.state == SeqState.STREAM_COMPUTE and self.phase == SeqPhase.FETCH

    @property
    def window_ready(self) -> bool:
        return self._fetching and self.window is None

    @property
    def req_valid(self) -> bool:
        return self._fetching and self.block is None and not self.req_issued

    @property
    def request(self) -> tuple[int, int]:
        return (self.oc_group, self.ic_group)

    @property
    def resp_ready(self) -> bool:
        return self._fetching and self.req_issued and self.block is None

    @property
    def out_valid(self) -> bool:
        return self.state == SeqState.STREAM_COMPUTE and self.phase == SeqPhase.EMIT

    @property
    def out_element(self) -> tuple[int, bool]:
        last = self._is_final_unit() and self.emit_index == self.oc_per_group - 1
        return (int(self.acc[self.emit_index]), last)

    # =========================================================================
    # State update
    # =========================================================================

    def _accept_config(self) -> None:
        layer = self.pending_layer
        self.pending_layer = None
        self.layer = layer
        self.done = False
        self.error_code = check_layer_config(layer, self.config)

        if self.error_code != ConfigError.NONE:
            self.state = SeqState.CONFIG_ERROR
            return

        self.out_row = 0
        self.out_col = 0
        self.oc_group = 0
        self.ic_group = 0
        self.window = None
        self.block = None
        self.req_issued = False
        self.acc = np.zeros(self.oc_per_group, dtype=np.int64)
        self.emit_index = 0
        self.phase = SeqPhase.FETCH
        self.cycles = 0
        self.compute_steps = 0
        self.elements_emitted = 0
        self.fetch_wait_cycles = 0
        self.emit_stall_cycles = 0
        self.started = True
        self.state = SeqState.LOAD_WEIGHTS

    def _accumulate(self) -> None:
        layer = self.layer
        partial = self.engine.compute(self.window, self.block, layer.act_bits, layer.wgt_bits)
        if self.ic_group == 0:
            acc = partial
        else:
            acc = self.acc + partial
        self.acc = wrap_signed(acc, self.config.acc_bits)
        self.compute_steps += 1
        self.window = None
        self.block = None
        self.req_issued = False

        if self.ic_group == self.num_ic_groups - 1:
            self.ic_group = 0
            self.emit_index = 0
            self.phase = SeqPhase.EMIT
        else:
            self.ic_group += 1

    def _advance_unit(self) -> bool:
        """Move to the next (row, col, oc_group). Returns True when the layer is complete."""
        self.oc_group += 1
        if self.oc_group < self.num_oc_groups:
            return False
        self.oc_group = 0
        self.out_col += 1
        if self.out_col < self.layer.out_width:
            return False
        self.out_col = 0
        self.out_row += 1
        return self.out_row >= self.layer.out_height

    def _stream_step(
        self,
        window: np.ndarray | None,
        req_fire: bool,
        block: np.ndarray | None,
        out_fire: bool,
    ) -> None:
        if self.phase == SeqPhase.FETCH:
            if self.window is not None and self.block is not None:
                self._accumulate()
                return
            if window is not None:
                self.window = window
            if req_fire:
                self.req_issued = True
            if block is not None:
                self.block = block
            if window is None and block is None:
                self.fetch_wait_cycles += 1
            return

        # EMIT
        if not out_fire:
            self.emit_stall_cycles += 1
            return
        self.elements_emitted += 1
        self.emit_index += 1
        if self.emit_index < self.oc_per_group:
            return
        self.emit_index = 0
        if self._advance_unit():
            self.state = SeqState.DRAIN
        else:
            self.phase = SeqPhase.FETCH

    def tick(
        self,
        window: np.ndarray | None = None,
        req_fire: bool = False,
        block: np.ndarray | None = None,
        out_fire: bool = False,
        gen_done: bool = False,
        output_idle: bool = False,
        weights_loaded: bool = False,
    ) -> None:
        """
        Advance one cycle.

        Args:
            window: Window transferred from the generator this cycle, or None
            req_fire: The weight request was accepted this cycle
            block: Weight block transferred from the cache this cycle, or None
            out_fire: The output element was accepted this cycle
            gen_done: Window generator has finished the layer
            output_idle: Post-process stage and packer hold no data
            weights_loaded: Weight cache holds the full layer
        """
        self.started = False

        if self.state == SeqState.IDLE:
            if self.pending_layer is not None:
                self._accept_config()
            return

        self.cycles += 1

        if self.state == SeqState.CONFIG_ERROR:
            self.done = True
            self.state = SeqState.DONE
        elif self.state == SeqState.LOAD_WEIGHTS:
            if weights_loaded:
                self.state = SeqState.STREAM_COMPUTE
        elif self.state == SeqState.STREAM_COMPUTE:
            self._stream_step(window, req_fire, block, out_fire)
        elif self.state == SeqState.DRAIN:
            if gen_done and output_idle:
                self.done = True
                self.state = SeqState.DONE
        elif self.state == SeqState.DONE:
            self.state = SeqState.IDLE

    def get_statistics(self) -> dict[str, Any]:
        return {
            "state": self.state.name,
            "error_code": self.error_code.name,
            "cycles": self.cycles,
            "compute_steps": self.compute_steps,
            "elements_emitted": self.elements_emitted,
            "fetch_wait_cycles": self.fetch_wait_cycles,
            "emit_stall_cycles": self.emit_stall_cycles,
        }
