#!/usr/bin/env python3
"""Generate LaneReducer Verilog from qconv."""

import argparse
import sys
from pathlib import Path

# Add src to path if running from scripts/
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from amaranth.back import verilog  # noqa: E402

from qconv.config import EngineConfig  # noqa: E402
from qconv.core.dot_product import DotProductEngine  # noqa: E402
from qconv.core.lane_reducer import LaneReducer  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Generate LaneReducer Verilog")
    parser.add_argument(
        "--act-bits",
        type=int,
        default=2,
        choices=[2, 4, 8, 16],
        help="Activation width the reducer is sized for (default: 2)",
    )
    args = parser.parse_args()

    gen_dir = project_root / "gen"
    gen_dir.mkdir(exist_ok=True)

    n_pairs = DotProductEngine(EngineConfig()).n_pairs(args.act_bits)
    reducer = LaneReducer(n_pairs=n_pairs)

    output_path = gen_dir / f"lane_reducer_{n_pairs}.v"
    with open(output_path, "w") as f:
        f.write(verilog.convert(reducer, name=f"LaneReducer{n_pairs}"))

    print(f"Generated {output_path} ({n_pairs} pairs, {reducer.sum_bits}-bit sum)")


if __name__ == "__main__":
    main()
