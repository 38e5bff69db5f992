#!/usr/bin/env python3

import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mpi_panel.pipeline import build_dataset_pipeline


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    strict = "--strict-deflation" in sys.argv[1:]
    outputs = build_dataset_pipeline(write_panel_csv=True, strict_deflation=strict)
    for name, path in sorted(outputs.items()):
        print(f"[build_dataset] {name}: {path}")


if __name__ == "__main__":
    main()
