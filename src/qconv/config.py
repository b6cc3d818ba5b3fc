"""
Qconv Configuration Module

This module defines the two configuration objects of the engine:

    EngineConfig: static hardware parameters (lane count, transfer width,
                  size limits). Fixed when the engine is built.
    LayerConfig:  runtime parameters for one convolution layer. Submitted
                  once per layer, immutable while the layer runs and
                  replaced wholesale for the next one.

It also defines the layer error codes and the priority-ordered layer
validation shared by the behavioral model and the ConfigChecker RTL.
"""

from dataclasses import dataclass
from enum import IntEnum

SUPPORTED_BITS = (2, 4, 8, 16)
"""Operand bit widths accepted for activations and weights."""

SUPPORTED_STRIDES = (1, 2)
"""Convolution strides accepted by the window generator."""

KERNEL_SIZE = 3
"""The kernel is fixed at 3x3 (valid convolution, no padding)."""


class ConfigError(IntEnum):
    """Error codes reported for a rejected layer configuration."""

    NONE = 0x00
    INVALID_STRIDE = 0x01  # Stride not in {1, 2}
    INVALID_ACT_BITS = 0x02  # Activation width not in {2, 4, 8, 16}
    INVALID_WGT_BITS = 0x03  # Weight width not in {2, 4, 8, 16}
    DUAL_HIGH_BITS = 0x04  # Both operands wider than 2 bits
    IC_ALIGNMENT = 0x05  # Input channels not a multiple of the group size
    OC_ALIGNMENT = 0x06  # Output channels not a multiple of the group size
    SIZE_LIMIT = 0x07  # Spatial size or channel count out of range


@dataclass
class EngineConfig:
    """
    Static hardware parameters of the convolution engine.

    Example:
        >>> engine = EngineConfig(lanes=16, beat_bits=128)
        >>> engine.channels_per_cycle(4)
        8
    """

    # =========================================================================
    # Datapath
    # =========================================================================
    lanes: int = 16
    """Parallel 2-bit slice lanes on each operand side."""

    acc_bits: int = 32
    """Accumulator width; partial sums wrap as two's complement at this width."""

    out_bits: int = 32
    """Width of one signed output element on the output stream."""

    # =========================================================================
    # Streams
    # =========================================================================
    beat_bits: int = 128
    """Width of one transfer beat on the activation, weight and output streams."""

    # =========================================================================
    # Size Limits
    # =========================================================================
    max_width: int = 256
    """Maximum input width (sizes the 3-row buffer)."""

    max_height: int = 256
    """Maximum input height."""

    max_in_channels: int = 1024
    """Maximum input channels."""

    max_out_channels: int = 1024
    """Maximum output channels."""

    # =========================================================================
    # Computed Properties
    # =========================================================================
    def channels_per_cycle(self, bits: int) -> int:
        """Physical channels that fit in one group at the given operand width."""
        return self.lanes // (bits // 2)

    @property
    def outputs_per_beat(self) -> int:
        """Output elements packed into one beat."""
        return self.beat_bits // self.out_bits

    def __post_init__(self):
        """Validate configuration parameters."""
        assert self.lanes >= 16, "lanes must be at least 16 (16-bit operands use 8 slices)"
        assert self.lanes & (self.lanes - 1) == 0, "lanes should be a power of 2"
        assert self.beat_bits > 0 and self.beat_bits % 16 == 0, (
            "beat_bits must be a positive multiple of 16"
        )
        assert 0 < self.out_bits <= self.beat_bits, "out_bits must fit in one beat"
        assert 16 <= self.acc_bits <= 64, "acc_bits should be between 16 and 64"
        assert self.max_width >= KERNEL_SIZE, "max_width must hold one kernel"
        assert self.max_height >= KERNEL_SIZE, "max_height must hold one kernel"
        assert self.max_in_channels > 0, "max_in_channels must be positive"
        assert self.max_out_channels > 0, "max_out_channels must be positive"


@dataclass(frozen=True)
class LayerConfig:
    """
    Runtime configuration of one convolution layer.

    Frozen: a running layer never sees its configuration change. Use
    ``dataclasses.replace`` to derive the next layer's configuration.
    """

    width: int
    height: int
    in_channels: int
    out_channels: int
    stride: int = 1
    act_bits: int = 2
    wgt_bits: int = 2
    raw_out: bool = False
    """Forward raw accumulator values, bypassing the post-process transform."""

    @property
    def out_height(self) -> int:
        if self.height < KERNEL_SIZE or self.stride < 1:
            return 0
        return (self.height - KERNEL_SIZE) // self.stride + 1

    @property
    def out_width(self) -> int:
        if self.width < KERNEL_SIZE or self.stride < 1:
            return 0
        return (self.width - KERNEL_SIZE) // self.stride + 1

    @property
    def act_slices(self) -> int:
        return self.act_bits // 2

    @property
    def wgt_slices(self) -> int:
        return self.wgt_bits // 2

    @property
    def row_elements(self) -> int:
        """Elements in one input row (channel innermost)."""
        return self.width * self.in_channels

    @property
    def act_elements(self) -> int:
        return self.height * self.width * self.in_channels

    @property
    def wgt_elements(self) -> int:
        return KERNEL_SIZE * KERNEL_SIZE * self.out_channels * self.in_channels

    @property
    def out_elements(self) -> int:
        return self.out_height * self.out_width * self.out_channels


def check_layer_config(layer: LayerConfig, engine: EngineConfig) -> ConfigError:
    """
    Validate a layer configuration against the engine.

    Checks run in a fixed priority order and the first violation wins.

    Returns:
        ConfigError.NONE if the layer can run, otherwise the error code.
    """
    if layer.stride not in SUPPORTED_STRIDES:
        return ConfigError.INVALID_STRIDE
    if layer.act_bits not in SUPPORTED_BITS:
        return ConfigError.INVALID_ACT_BITS
    if layer.wgt_bits not in SUPPORTED_BITS:
        return ConfigError.INVALID_WGT_BITS
    if layer.act_bits > 2 and layer.wgt_bits > 2:
        return ConfigError.DUAL_HIGH_BITS
    if layer.in_channels % engine.channels_per_cycle(layer.act_bits) != 0:
        return ConfigError.IC_ALIGNMENT
    if layer.out_channels % engine.channels_per_cycle(layer.wgt_bits) != 0:
        return ConfigError.OC_ALIGNMENT
    if not (
        KERNEL_SIZE <= layer.width <= engine.max_width
        and KERNEL_SIZE <= layer.height <= engine.max_height
        and 1 <= layer.in_channels <= engine.max_in_channels
        and 1 <= layer.out_channels <= engine.max_out_channels
    ):
        return ConfigError.SIZE_LIMIT
    return ConfigError.NONE


# Pre-defined configurations
DEFAULT_ENGINE_CONFIG = EngineConfig()
"""Default engine: 16 lanes, 128-bit beats, 32-bit outputs."""

SMALL_ENGINE_CONFIG = EngineConfig(
    max_width=32,
    max_height=32,
    max_in_channels=64,
    max_out_channels=64,
)
"""Small configuration for testing."""
