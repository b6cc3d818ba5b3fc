"""
Sliding Window Generator.

Keeps the three most recent input rows in a circular row store and emits
3x3 activation windows in raster order. A line buffer and a window
former folded into one block: the row store gives
1x reads per input element, and windows are gathered straight out of it.

Architecture:
    ┌────────────────────────────────────────────────────────────────┐
    │                    WINDOW GENERATOR                            │
    │                                                                │
    │  activation beats ──▶ [holding register] ── 1 element/cycle    │
    │                                │                               │
    │                                ▼                               │
    │             ┌────────────┬────────────┬────────────┐           │
    │             │  slot 0    │  slot 1    │  slot 2    │  W*IC     │
    │             │ row r%3==0 │ row r%3==1 │ row r%3==2 │  elements │
    │             └────────────┴────────────┴────────────┘           │
    │                                │                               │
    │                                ▼                               │
    │        window gather (stride, slot rotation, slice lanes)      │
    │                                │                               │
    │                                ▼                               │
    │                      3 x 3 x lanes window ──▶ sequencer        │
    └────────────────────────────────────────────────────────────────┘

Emission order (outer to inner): output row, output column, output-channel
group, input-channel group. The window depends only on (row, column,
input-channel group); it is presented again for every output-channel group
so the sequencer never has to hold more than one window.

Row safety: an element of input row r goes to slot r % 3, which holds row
r - 3. It may only be written once row r - 3 is no longer read by the
current output row, i.e. r < out_row * stride + 3.

State machine:
    IDLE ──▶ FILL_ROWS ──▶ PROCESS ──▶ DRAIN ──────▶ DONE
                              │                        ▲
                              └──▶ SKIP_TAIL ──────────┘
    SKIP_TAIL: every window has been accepted but input rows no window
    reads (stride 2, even height) are still arriving; they are consumed
    and discarded.
"""

from dataclasses import dataclass, field
from enum import IntEnum, auto
from typing import Any

import numpy as np

from ..config import KERNEL_SIZE, EngineConfig, LayerConfig
from ..util.packing import Beat, elements_per_beat

ROW_SLOTS = 3
"""Rows held by the circular row store (= kernel height)."""


class GenState(IntEnum):
    """Window generator states."""

    IDLE = 0
    FILL_ROWS = auto()  # Loading the first three rows
    PROCESS = auto()  # Emitting windows while input streams in
    DRAIN = auto()  # Input exhausted, emitting the remaining windows
    SKIP_TAIL = auto()  # Windows finished, discarding unused input rows
    DONE = auto()


@dataclass
class WindowGeneratorSim:
    """
    Cycle-accurate model of the sliding window generator.

    Outputs (valid for the current cycle, computed from state):
        out_valid / window(): current window, held stable until accepted
        in_ready(out_ready): can accept an activation beat this cycle
        done: final window accepted and the input stream fully consumed

    Call tick() once per cycle with the beat accepted this cycle (or None)
    and the consumer's ready.
    """

    config: EngineConfig

    state: GenState = GenState.IDLE
    layer: LayerConfig | None = None

    # Circular row store: ROW_SLOTS x (width * in_channels) native codes
    rows: np.ndarray = field(default_factory=lambda: np.zeros((ROW_SLOTS, 0), dtype=np.int64))

    # Beat holding register
    beat_data: int = 0
    beat_left: int = 0
    beat_pos: int = 0

    # Element counters
    accepted: int = 0  # Elements taken in from beats
    written: int = 0  # Elements retired from the holding register

    # Current window position
    out_row: int = 0
    out_col: int = 0
    oc_group: int = 0
    ic_group: int = 0

    # Statistics
    cycles: int = 0
    windows_emitted: int = 0
    beats_accepted: int = 0
    stall_cycles: int = 0

    def start(self, layer: LayerConfig) -> None:
        """Begin a new layer (called when the sequencer accepts a configuration)."""
        self.layer = layer
        self.rows = np.zeros((ROW_SLOTS, layer.row_elements), dtype=np.int64)
        self.beat_data = 0
        self.beat_left = 0
        self.beat_pos = 0
        self.accepted = 0
        self.written = 0
        self.out_row = 0
        self.out_col = 0
        self.oc_group = 0
        self.ic_group = 0
        self.cycles = 0
        self.windows_emitted = 0
        self.beats_accepted = 0
        self.stall_cycles = 0
        self.state = GenState.FILL_ROWS

    # =========================================================================
    # Derived parameters
    # =========================================================================

    @property
    def channels_per_cycle(self) -> int:
        return self.config.channels_per_cycle(self.layer.act_bits)

    @property
    def num_ic_groups(self) -> int:
        return self.layer.in_channels // self.channels_per_cycle

    @property
    def num_oc_groups(self) -> int:
        return self.layer.out_channels // self.config.channels_per_cycle(self.layer.wgt_bits)

    def _rows_needed(self) -> int:
        """Elements that must be written before the current window is complete."""
        return (self.out_row * self.layer.stride + KERNEL_SIZE) * self.layer.row_elements

    # =========================================================================
    # Outputs
    # =========================================================================

    @property
    def out_valid(self) -> bool:
        if self.state not in (GenState.PROCESS, GenState.DRAIN):
            return False
        return self.written >= self._rows_needed()

    @property
    def done(self) -> bool:
        return self.state == GenState.DONE

    def in_ready(self, out_ready: bool) -> bool:
        """Ready for an activation beat; suspended while the window is stalled."""
        if self.state not in (
            GenState.FILL_ROWS,
            GenState.PROCESS,
            GenState.DRAIN,
            GenState.SKIP_TAIL,
        ):
            return False
        if self.beat_left > 0 or self.accepted >= self.layer.act_elements:
            return False
        return not (self.out_valid and not out_ready)

    def window(self) -> np.ndarray:
        """
        Current window, shape (3, 3, lanes).

        Lane s * cpc + p holds slice s of physical input channel p of the
        current input-channel group.
        """
        layer = self.layer
        cpc = self.channels_per_cycle
        y0 = self.out_row * layer.stride
        x0 = self.out_col * layer.stride
        c0 = self.ic_group * cpc

        win = np.zeros((KERNEL_SIZE, KERNEL_SIZE, self.config.lanes), dtype=np.int64)
        for kh in range(KERNEL_SIZE):
            # Kernel row 0 is the oldest of the three rows in use
            slot = (y0 + kh) % ROW_SLOTS
            row = self.rows[slot].reshape(layer.width, layer.in_channels)
            codes = row[x0 : x0 + KERNEL_SIZE, c0 : c0 + cpc]
            for s in range(layer.act_slices):
                win[kh, :, s * cpc : (s + 1) * cpc] = (codes >> (2 * s)) & 0x3
        return win

    # =========================================================================
    # State update
    # =========================================================================

    def _write_allowed(self) -> bool:
        if self.beat_left == 0:
            return False
        if self.state == GenState.SKIP_TAIL:
            return True
        row = self.written // self.layer.row_elements
        return row < self.out_row * self.layer.stride + ROW_SLOTS

    def _write_element(self) -> None:
        layer = self.layer
        bits = layer.act_bits
        value = (self.beat_data >> (self.beat_pos * bits)) & ((1 << bits) - 1)

        if self.state != GenState.SKIP_TAIL:
            slot = (self.written // layer.row_elements) % ROW_SLOTS
            self.rows[slot, self.written % layer.row_elements] = value

        self.written += 1
        self.beat_pos += 1
        self.beat_left -= 1

    def _capture_beat(self, beat: Beat) -> None:
        per_beat = elements_per_beat(self.config.beat_bits, self.layer.act_bits)
        count = min(per_beat, self.layer.act_elements - self.accepted)
        self.beat_data = beat.data
        self.beat_left = count
        self.beat_pos = 0
        self.accepted += count
        self.beats_accepted += 1

    def _advance(self) -> bool:
        """Step to the next window. Returns True after the final window."""
        layer = self.layer
        self.ic_group += 1
        if self.ic_group < self.num_ic_groups:
            return False
        self.ic_group = 0
        self.oc_group += 1
        if self.oc_group < self.num_oc_groups:
            return False
        self.oc_group = 0
        self.out_col += 1
        if self.out_col < layer.out_width:
            return False
        self.out_col = 0
        self.out_row += 1
        return self.out_row >= layer.out_height

    def tick(self, in_beat: Beat | None, out_ready: bool) -> None:
        """
        Advance one cycle.

        Args:
            in_beat: Activation beat transferred this cycle, or None
            out_ready: Consumer accepts the current window this cycle
        """
        if self.state in (GenState.IDLE, GenState.DONE):
            return

        self.cycles += 1
        valid = self.out_valid
        out_fire = valid and out_ready
        if valid and not out_ready:
            self.stall_cycles += 1

        # Write path uses the window position from before this cycle's advance
        if self._write_allowed():
            self._write_element()

        if in_beat is not None:
            self._capture_beat(in_beat)

        last_window = False
        if out_fire:
            self.windows_emitted += 1
            last_window = self._advance()

        input_done = self.written >= self.layer.act_elements

        if last_window:
            self.state = GenState.DONE if input_done else GenState.SKIP_TAIL
        elif self.state == GenState.FILL_ROWS:
            if self.written >= ROW_SLOTS * self.layer.row_elements:
                self.state = GenState.DRAIN if input_done else GenState.PROCESS
        elif self.state == GenState.PROCESS:
            if input_done:
                self.state = GenState.DRAIN
        elif self.state == GenState.SKIP_TAIL:
            if input_done:
                self.state = GenState.DONE

    def get_statistics(self) -> dict[str, Any]:
        return {
            "state": self.state.name,
            "cycles": self.cycles,
            "windows_emitted": self.windows_emitted,
            "beats_accepted": self.beats_accepted,
            "elements_written": self.written,
            "stall_cycles": self.stall_cycles,
        }
