"""
Qconv - A cycle-accurate model of a low-bit 3x3 convolution engine.

This package provides the quantized convolution datapath as Amaranth HDL
leaves (slice multiply-add, lane reduction, configuration checker) and a
lock-step behavioral model of the full engine (window generator, weight
cache, sequencer/accumulator, output path).
"""

from .config import ConfigError, EngineConfig, LayerConfig, check_layer_config
from .top import ConvAccelSim, LayerResult, run_layer

__version__ = "0.1.0"
__all__ = [
    "EngineConfig",
    "LayerConfig",
    "ConfigError",
    "check_layer_config",
    "ConvAccelSim",
    "LayerResult",
    "run_layer",
    "__version__",
]
