"""
Layer Configuration Checker.

Combinational validation of a submitted layer configuration, evaluated
once per layer before any stream data is accepted. The checks form a
priority chain; the first failing check selects the error code:

    1. stride in {1, 2}                   INVALID_STRIDE
    2. act_bits in {2, 4, 8, 16}          INVALID_ACT_BITS
    3. wgt_bits in {2, 4, 8, 16}          INVALID_WGT_BITS
    4. not (act_bits > 2 and wgt_bits > 2) DUAL_HIGH_BITS
    5. in_channels % cpc(act_bits) == 0   IC_ALIGNMENT
    6. out_channels % cpc(wgt_bits) == 0  OC_ALIGNMENT
    7. sizes within [3, max] / [1, max]   SIZE_LIMIT

Group sizes are powers of two, so the alignment checks are mask tests.
check_layer_config() in qconv.config is the software twin of this block.
"""

from amaranth import Module, Signal, unsigned
from amaranth.lib.wiring import Component, In, Out

from ..config import KERNEL_SIZE, SUPPORTED_BITS, SUPPORTED_STRIDES, ConfigError, EngineConfig


class ConfigChecker(Component):
    """
    Priority-encoded layer configuration checker.

    Ports:
        cfg_width, cfg_height: Input spatial size
        cfg_in_channels, cfg_out_channels: Channel counts
        cfg_stride: Convolution stride
        cfg_act_bits, cfg_wgt_bits: Operand widths in bits

        error: Any check failed
        error_code: ConfigError of the first failing check
    """

    def __init__(self, config: EngineConfig):
        self.config = config

        self.size_bits = max(
            config.max_width, config.max_height, config.max_in_channels, config.max_out_channels
        ).bit_length() + 1

        super().__init__(
            {
                "cfg_width": In(unsigned(self.size_bits)),
                "cfg_height": In(unsigned(self.size_bits)),
                "cfg_in_channels": In(unsigned(self.size_bits)),
                "cfg_out_channels": In(unsigned(self.size_bits)),
                "cfg_stride": In(unsigned(4)),
                "cfg_act_bits": In(unsigned(5)),
                "cfg_wgt_bits": In(unsigned(5)),
                "error": Out(1),
                "error_code": Out(8),
            }
        )

    def _group_mask(self, m: Module, bits: Signal, name: str) -> Signal:
        """cpc(bits) - 1 for a supported width, 0 otherwise."""
        mask = Signal(unsigned(self.config.lanes.bit_length()), name=name)
        with m.Switch(bits):
            for b in SUPPORTED_BITS:
                with m.Case(b):
                    m.d.comb += mask.eq(self.config.channels_per_cycle(b) - 1)
            with m.Default():
                m.d.comb += mask.eq(0)
        return mask

    def elaborate(self, _platform):
        m = Module()
        cfg = self.config

        stride_ok = Signal(name="stride_ok")
        act_ok = Signal(name="act_ok")
        wgt_ok = Signal(name="wgt_ok")

        m.d.comb += [
            stride_ok.eq(self.cfg_stride.matches(*SUPPORTED_STRIDES)),
            act_ok.eq(self.cfg_act_bits.matches(*SUPPORTED_BITS)),
            wgt_ok.eq(self.cfg_wgt_bits.matches(*SUPPORTED_BITS)),
        ]

        ic_mask = self._group_mask(m, self.cfg_act_bits, "ic_mask")
        oc_mask = self._group_mask(m, self.cfg_wgt_bits, "oc_mask")

        size_ok = Signal(name="size_ok")
        m.d.comb += size_ok.eq(
            (self.cfg_width >= KERNEL_SIZE)
            & (self.cfg_width <= cfg.max_width)
            & (self.cfg_height >= KERNEL_SIZE)
            & (self.cfg_height <= cfg.max_height)
            & (self.cfg_in_channels >= 1)
            & (self.cfg_in_channels <= cfg.max_in_channels)
            & (self.cfg_out_channels >= 1)
            & (self.cfg_out_channels <= cfg.max_out_channels)
        )

        with m.If(~stride_ok):
            m.d.comb += self.error_code.eq(ConfigError.INVALID_STRIDE.value)
        with m.Elif(~act_ok):
            m.d.comb += self.error_code.eq(ConfigError.INVALID_ACT_BITS.value)
        with m.Elif(~wgt_ok):
            m.d.comb += self.error_code.eq(ConfigError.INVALID_WGT_BITS.value)
        with m.Elif((self.cfg_act_bits > 2) & (self.cfg_wgt_bits > 2)):
            m.d.comb += self.error_code.eq(ConfigError.DUAL_HIGH_BITS.value)
        with m.Elif((self.cfg_in_channels & ic_mask) != 0):
            m.d.comb += self.error_code.eq(ConfigError.IC_ALIGNMENT.value)
        with m.Elif((self.cfg_out_channels & oc_mask) != 0):
            m.d.comb += self.error_code.eq(ConfigError.OC_ALIGNMENT.value)
        with m.Elif(~size_ok):
            m.d.comb += self.error_code.eq(ConfigError.SIZE_LIMIT.value)
        with m.Else():
            m.d.comb += self.error_code.eq(ConfigError.NONE.value)

        m.d.comb += self.error.eq(self.error_code != ConfigError.NONE.value)

        return m
