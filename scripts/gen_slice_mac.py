#!/usr/bin/env python3
"""
Generate SliceMac Verilog, and optionally its lookup table as a hex image.

The hex image holds one 5-bit entry per line, indexed by
(a0 << 6) | (w0 << 4) | (a1 << 2) | w1, in the format read by $readmemh.
It lets a ROM-based SliceMac be checked against the generated case table.

Usage:
    python gen_slice_mac.py [--lut] [--out-dir DIR]
"""

import argparse
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from amaranth.back import verilog  # noqa: E402

from qconv.core.slice_mac import SLICE_MAC_LUT, SliceMac  # noqa: E402


def write_lut_hex(path: Path) -> None:
    with open(path, "w") as f:
        for value in SLICE_MAC_LUT:
            f.write(f"{int(value):02x}\n")


def main():
    parser = argparse.ArgumentParser(description="Generate SliceMac Verilog")
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=project_root / "gen",
        help="Output directory (default: gen/)",
    )
    parser.add_argument(
        "--lut",
        action="store_true",
        help="Also write the 256-entry lookup table as slice_mac_lut.hex",
    )
    args = parser.parse_args()

    args.out_dir.mkdir(parents=True, exist_ok=True)

    verilog_path = args.out_dir / "slice_mac.v"
    verilog_path.write_text(verilog.convert(SliceMac(), name="SliceMac"))
    print(f"Generated {verilog_path}")

    if args.lut:
        lut_path = args.out_dir / "slice_mac_lut.hex"
        write_lut_hex(lut_path)
        print(f"Generated {lut_path} ({len(SLICE_MAC_LUT)} entries)")


if __name__ == "__main__":
    main()
