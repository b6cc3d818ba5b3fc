#!/usr/bin/env python3
"""
Run one convolution layer on the cycle-accurate engine model.

Generates random coded activations and weights, runs them through the
lock-step model of the full engine and checks the result against the
direct-summation reference.

Usage:
    python run_layer.py [options]

Examples:
    # 8x8 input, 16 -> 16 channels, 2-bit operands
    python run_layer.py --width 8 --height 8 --in-c 16 --out-c 16

    # Stride 2 with 8-bit activations and a stalling output sink
    python run_layer.py --width 9 --height 9 --in-c 8 --act-bits 8 --stride 2 --out-ready 0.5
"""

import argparse
import sys
from pathlib import Path

# Add src to path if running from scripts/
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np  # noqa: E402

from qconv.config import (  # noqa: E402
    DEFAULT_ENGINE_CONFIG,
    ConfigError,
    LayerConfig,
    check_layer_config,
)
from qconv.top import run_layer  # noqa: E402
from qconv.util.coding import random_codes  # noqa: E402
from qconv.util.reference import conv3x3_reference  # noqa: E402
from qconv.util.stream import always  # noqa: E402


def bernoulli_pattern(rng: np.random.Generator, probability: float):
    """cycle -> bool pattern that is True with the given probability."""
    if probability >= 1.0:
        return always
    flags = rng.random(1 << 20) < probability
    return lambda cycle: bool(flags[cycle % len(flags)])


def run_demo(
    layer: LayerConfig,
    seed: int,
    out_ready: float,
    in_valid: float,
    verbose: bool,
) -> bool:
    config = DEFAULT_ENGINE_CONFIG
    rng = np.random.default_rng(seed)

    print("=" * 70)
    print("Quantized 3x3 Convolution Layer")
    print("=" * 70)
    print(f"   Input:   [{layer.height}, {layer.width}, {layer.in_channels}]  (HWC)")
    print(f"   Weights: [3, 3, {layer.out_channels}, {layer.in_channels}]")
    print(f"   Output:  [{layer.out_height}, {layer.out_width}, {layer.out_channels}]")
    print(f"   Stride: {layer.stride}  act_bits: {layer.act_bits}  wgt_bits: {layer.wgt_bits}")

    status = check_layer_config(layer, config)
    if status != ConfigError.NONE:
        print(f"\n   Configuration rejected: {status.name}")
        return False

    act = random_codes((layer.height, layer.width, layer.in_channels), layer.act_bits, rng)
    wgt = random_codes((3, 3, layer.out_channels, layer.in_channels), layer.wgt_bits, rng)

    result = run_layer(
        layer,
        act,
        wgt,
        config=config,
        out_ready=bernoulli_pattern(rng, out_ready),
        act_valid=bernoulli_pattern(rng, in_valid),
        wgt_valid=bernoulli_pattern(rng, in_valid),
    )

    print(f"\n   Completed in {result.cycles} cycles, status {result.error_code.name}")
    if verbose:
        stats = result.statistics
        for block in ("sequencer", "window_generator", "weight_cache", "packer"):
            print(f"   {block}: {stats[block]}")
        print(f"   output stall cycles: {stats['output_stall_cycles']}")

    expected = conv3x3_reference(act, wgt, layer)
    mismatches = int(np.count_nonzero(result.outputs != expected))
    if mismatches:
        print(f"\n   FAIL: {mismatches} of {expected.size} outputs differ from reference")
        return False
    print(f"\n   PASS: {expected.size} outputs match reference")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Run a quantized 3x3 convolution layer on the engine model"
    )
    parser.add_argument("--width", type=int, default=8, help="Input width (default: 8)")
    parser.add_argument("--height", type=int, default=8, help="Input height (default: 8)")
    parser.add_argument("--in-c", type=int, default=16, help="Input channels (default: 16)")
    parser.add_argument("--out-c", type=int, default=16, help="Output channels (default: 16)")
    parser.add_argument("--stride", type=int, default=1, help="Stride (default: 1)")
    parser.add_argument(
        "--act-bits", type=int, default=2, help="Activation width in bits (default: 2)"
    )
    parser.add_argument("--wgt-bits", type=int, default=2, help="Weight width in bits (default: 2)")
    parser.add_argument(
        "--out-ready",
        type=float,
        default=1.0,
        help="Probability the output sink is ready each cycle (default: 1.0)",
    )
    parser.add_argument(
        "--in-valid",
        type=float,
        default=1.0,
        help="Probability an input stream presents a beat each cycle (default: 1.0)",
    )
    parser.add_argument("--seed", type=int, default=0, help="Random seed (default: 0)")
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Reduce output verbosity",
    )

    args = parser.parse_args()

    layer = LayerConfig(
        width=args.width,
        height=args.height,
        in_channels=args.in_c,
        out_channels=args.out_c,
        stride=args.stride,
        act_bits=args.act_bits,
        wgt_bits=args.wgt_bits,
    )

    success = run_demo(
        layer,
        seed=args.seed,
        out_ready=args.out_ready,
        in_valid=args.in_valid,
        verbose=not args.quiet,
    )
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
