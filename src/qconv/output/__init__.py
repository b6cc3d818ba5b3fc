"""
Output path: post-process register stage and output beat packer.
"""

from .packer import OutputPackerSim
from .postprocess import PostProcessSim

__all__ = ["OutputPackerSim", "PostProcessSim"]
