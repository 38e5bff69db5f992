#!/usr/bin/env python3

import subprocess
import sys
from pathlib import Path


def main() -> None:
    project_root = Path(__file__).resolve().parents[1]

    for script_name in ["build_dataset.py", "run_models.py", "build_latex_tables.py"]:
        subprocess.run(
            [sys.executable, str(project_root / "scripts" / script_name), *sys.argv[1:]],
            cwd=project_root,
            check=True,
        )


if __name__ == "__main__":
    main()
