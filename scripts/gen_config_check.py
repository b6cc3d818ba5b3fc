#!/usr/bin/env python3
"""Generate ConfigChecker Verilog from qconv."""

import sys
from pathlib import Path

# Add src to path if running from scripts/
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from amaranth.back import verilog  # noqa: E402

from qconv.config import EngineConfig  # noqa: E402
from qconv.controller.config_check import ConfigChecker  # noqa: E402


def main():
    gen_dir = project_root / "gen"
    gen_dir.mkdir(exist_ok=True)

    config = EngineConfig()
    checker = ConfigChecker(config)

    output_path = gen_dir / "config_check.v"
    with open(output_path, "w") as f:
        f.write(verilog.convert(checker, name="ConfigChecker"))

    print(f"Generated {output_path}")


if __name__ == "__main__":
    main()
