"""
Utilities: coded values, beat packing, stream endpoints and the golden
reference convolution.
"""

from .coding import decode, decode_tensor, decode_value, encode_digits, random_codes, slice_code
from .packing import (
    Beat,
    pack_activations,
    pack_elements,
    pack_weights,
    unpack_elements,
    unpack_outputs,
)
from .reference import conv3x3_reference
from .stream import StreamSink, StreamSource

__all__ = [
    "decode",
    "decode_value",
    "decode_tensor",
    "encode_digits",
    "random_codes",
    "slice_code",
    "Beat",
    "pack_elements",
    "unpack_elements",
    "pack_activations",
    "pack_weights",
    "unpack_outputs",
    "conv3x3_reference",
    "StreamSource",
    "StreamSink",
]
