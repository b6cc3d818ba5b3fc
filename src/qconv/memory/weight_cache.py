"""
Weight Cache.

Buffers an entire layer's weight tensor and serves weight blocks for
(output-channel group, input-channel group) pairs.

Load phase:
    Weight beats are unpacked one element per cycle and stored at native
    width. Element (oc, ic, kh, kw) lives at

        addr = ((kh * 3 + kw) * out_channels + oc) * in_channels + ic

    which is also the arrival order on the weight stream. The cache
    reports ``loaded`` once 9 * out_channels * in_channels elements are in.

Serve phase:
    One request in flight. A request (oc_group, ic_group) is accepted only
    when ``req_ready``; the block is synthesized and held with
    ``resp_valid`` until the requester accepts it.

Weight block layout, shape (3, 3, lanes, lanes) = [kh, kw, out_lane, in_lane]:
    out_lane = g * cpc_w + p   weight slice g of physical output channel p
    in_lane  = q               physical input channel q of the group
Lanes beyond the configured channel totals are zero-filled.
"""

from dataclasses import dataclass, field
from enum import IntEnum, auto
from typing import Any

import numpy as np

from ..config import KERNEL_SIZE, EngineConfig, LayerConfig
from ..util.packing import Beat, elements_per_beat


class CacheState(IntEnum):
    """Weight cache states."""

    IDLE = 0
    LOAD = auto()  # Accepting the weight stream
    READY = auto()  # Loaded, waiting for a request
    RESPOND = auto()  # Block valid, waiting for the requester


@dataclass
class WeightCacheSim:
    """
    Cycle-accurate model of the weight cache.

    Outputs:
        in_ready: can accept a weight beat this cycle
        loaded: full layer stored
        req_ready: can accept a block request this cycle
        resp_valid / block: requested block, held until accepted
    """

    config: EngineConfig

    state: CacheState = CacheState.IDLE
    layer: LayerConfig | None = None
    store: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))

    # Beat holding register
    beat_data: int = 0
    beat_left: int = 0
    beat_pos: int = 0
    accepted: int = 0
    written: int = 0

    # Response register
    block: np.ndarray | None = None
    request: tuple[int, int] | None = None

    # Statistics
    load_cycles: int = 0
    beats_accepted: int = 0
    requests_served: int = 0

    def start(self, layer: LayerConfig) -> None:
        """Begin loading a new layer's weights."""
        self.layer = layer
        self.store = np.zeros(layer.wgt_elements, dtype=np.int64)
        self.beat_data = 0
        self.beat_left = 0
        self.beat_pos = 0
        self.accepted = 0
        self.written = 0
        self.block = None
        self.request = None
        self.load_cycles = 0
        self.beats_accepted = 0
        self.requests_served = 0
        self.state = CacheState.LOAD

    @staticmethod
    def address(oc: int, ic: int, kh: int, kw: int, layer: LayerConfig) -> int:
        return ((kh * KERNEL_SIZE + kw) * layer.out_channels + oc) * layer.in_channels + ic

    # =========================================================================
    # Outputs
    # =========================================================================

    @property
    def in_ready(self) -> bool:
        return (
            self.state == CacheState.LOAD
            and self.beat_left == 0
            and self.accepted < self.layer.wgt_elements
        )

    @property
    def loaded(self) -> bool:
        return self.state in (CacheState.READY, CacheState.RESPOND)

    @property
    def req_ready(self) -> bool:
        return self.state == CacheState.READY

    @property
    def resp_valid(self) -> bool:
        return self.state == CacheState.RESPOND

    # =========================================================================
    # Block synthesis
    # =========================================================================

    def build_block(self, oc_group: int, ic_group: int) -> np.ndarray:
        """Extract the weight block of one (output group, input group) pair."""
        layer = self.layer
        lanes = self.config.lanes
        cpc_w = self.config.channels_per_cycle(layer.wgt_bits)
        cpc_a = self.config.channels_per_cycle(layer.act_bits)

        oc = oc_group * cpc_w + np.arange(cpc_w)
        ic = ic_group * cpc_a + np.arange(cpc_a)
        in_range = (oc < layer.out_channels)[:, None] & (ic < layer.in_channels)[None, :]

        weights = self.store.reshape(
            KERNEL_SIZE, KERNEL_SIZE, layer.out_channels, layer.in_channels
        )
        codes = weights[:, :, np.minimum(oc, layer.out_channels - 1)]
        codes = codes[:, :, :, np.minimum(ic, layer.in_channels - 1)]
        codes = np.where(in_range, codes, 0)

        block = np.zeros((KERNEL_SIZE, KERNEL_SIZE, lanes, lanes), dtype=np.int64)
        for g in range(layer.wgt_slices):
            block[:, :, g * cpc_w : (g + 1) * cpc_w, :cpc_a] = (codes >> (2 * g)) & 0x3
        return block

    # =========================================================================
    # State update
    # =========================================================================

    def _load_step(self, in_beat: Beat | None) -> None:
        layer = self.layer
        bits = layer.wgt_bits

        if self.beat_left > 0:
            value = (self.beat_data >> (self.beat_pos * bits)) & ((1 << bits) - 1)
            self.store[self.written] = value
            self.written += 1
            self.beat_pos += 1
            self.beat_left -= 1

        if in_beat is not None:
            per_beat = elements_per_beat(self.config.beat_bits, bits)
            count = min(per_beat, layer.wgt_elements - self.accepted)
            self.beat_data = in_beat.data
            self.beat_left = count
            self.beat_pos = 0
            self.accepted += count
            self.beats_accepted += 1

        if self.written >= layer.wgt_elements:
            self.state = CacheState.READY

    def tick(
        self,
        in_beat: Beat | None = None,
        request: tuple[int, int] | None = None,
        resp_ready: bool = False,
    ) -> None:
        """
        Advance one cycle.

        Args:
            in_beat: Weight beat transferred this cycle, or None
            request: (oc_group, ic_group) transferred this cycle, or None
            resp_ready: Requester accepts the held block this cycle
        """
        if self.state == CacheState.LOAD:
            self.load_cycles += 1
            self._load_step(in_beat)
        elif self.state == CacheState.READY:
            if request is not None:
                self.request = request
                self.block = self.build_block(*request)
                self.state = CacheState.RESPOND
        elif self.state == CacheState.RESPOND:
            if resp_ready:
                self.requests_served += 1
                self.block = None
                self.request = None
                self.state = CacheState.READY

    def get_statistics(self) -> dict[str, Any]:
        return {
            "state": self.state.name,
            "load_cycles": self.load_cycles,
            "beats_accepted": self.beats_accepted,
            "elements_stored": self.written,
            "requests_served": self.requests_served,
        }
