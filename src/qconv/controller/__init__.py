"""
Controllers: layer configuration checker and the sequencer/accumulator.
"""

from .config_check import ConfigChecker
from .sequencer import SeqPhase, SeqState, SequencerSim, wrap_signed

__all__ = ["ConfigChecker", "SeqPhase", "SeqState", "SequencerSim", "wrap_signed"]
