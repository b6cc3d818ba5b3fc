"""
Sliding window generation over the activation stream.

Components:
    WindowGeneratorSim: 3-row circular store and raster-order window emission
    GenState: Window generator states
"""

from .window_generator import GenState, WindowGeneratorSim

__all__ = ["GenState", "WindowGeneratorSim"]
