"""
Core datapath: slice multiply-add primitive, lane reduction tree and the
quantized dot-product engine.
"""

from .dot_product import DotProductEngine
from .lane_reducer import LaneReducer
from .slice_mac import SLICE_MAC_LUT, SliceMac, slice_mac

__all__ = ["SliceMac", "slice_mac", "SLICE_MAC_LUT", "LaneReducer", "DotProductEngine"]
