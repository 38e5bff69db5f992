#!/usr/bin/env python3

from __future__ import annotations

import shutil
import sys
from pathlib import Path
from typing import Dict, List

import pandas as pd

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mpi_panel import config

REPORT_TABLES = config.REPORT_DIR / "tables"

CSV_REQUIRED = [
    config.QA_TABLES["descriptives"],
    config.QA_TABLES["governance_loadings"],
    config.QA_TABLES["coverage"],
    config.MODEL_TABLES["regression_table"],
    config.MODEL_TABLES["hausman"],
]


def _ensure_dirs() -> None:
    REPORT_TABLES.mkdir(parents=True, exist_ok=True)


def _check_inputs_exist() -> None:
    missing = [str(path) for path in CSV_REQUIRED if not path.exists()]

    if missing:
        formatted = "\n".join(f"  - {path}" for path in missing)
        raise FileNotFoundError(
            "Missing required report inputs. Run `python scripts/run_pipeline.py` first.\n"
            f"{formatted}"
        )


def _copy_inputs() -> None:
    for path in CSV_REQUIRED:
        shutil.copy2(path, REPORT_TABLES / path.name)


def _fmt_numeric(df: pd.DataFrame, columns: List[str], decimals: int = 3) -> pd.DataFrame:
    out = df.copy()
    for col in columns:
        if col in out.columns:
            out[col] = pd.to_numeric(out[col], errors="coerce").map(
                lambda x: f"{x:.{decimals}f}" if pd.notna(x) else ""
            )
    return out


def _latex_escape_value(x: object) -> object:
    if not isinstance(x, str):
        return x
    return (
        x.replace("\\", r"\textbackslash{}")
        .replace("_", r"\_")
        .replace("%", r"\%")
        .replace("&", r"\&")
        .replace("$", r"\$")
    )


def _write_tabular(df: pd.DataFrame, out_path: Path) -> None:
    safe = df.copy()
    safe.columns = [_latex_escape_value(str(c)) for c in safe.columns]
    for col in safe.columns:
        safe[col] = safe[col].map(_latex_escape_value)

    colspec = "l" * len(safe.columns)
    lines = [f"\\begin{{tabular}}{{{colspec}}}", "\\toprule"]
    header = " & ".join(str(c) for c in safe.columns) + r" \\"
    lines.append(header)
    lines.append("\\midrule")

    for row in safe.itertuples(index=False, name=None):
        values = []
        for value in row:
            if pd.isna(value):
                values.append("")
            else:
                values.append(str(value))
        lines.append(" & ".join(values) + r" \\")

    lines.append("\\bottomrule")
    lines.append("\\end{tabular}")
    out_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _load_csv(path: Path) -> pd.DataFrame:
    return pd.read_csv(REPORT_TABLES / path.name)


def _build_table_snippets() -> Dict[str, Path]:
    outputs: Dict[str, Path] = {}

    descriptives = _load_csv(config.QA_TABLES["descriptives"])
    descriptives = descriptives.rename(
        columns={
            "variable": "Variable",
            "n_obs": "N",
            "n_countries": "Countries",
            "mean": "Mean",
            "std": "SD",
            "min": "Min",
            "max": "Max",
        }
    )
    descriptives = _fmt_numeric(descriptives, ["Mean", "SD", "Min", "Max"], decimals=3)
    _write_tabular(descriptives, REPORT_TABLES / "descriptive_statistics.tex")
    outputs["descriptive_statistics"] = REPORT_TABLES / "descriptive_statistics.tex"

    loadings = _load_csv(config.QA_TABLES["governance_loadings"])
    loadings = loadings[["indicator", "PC1", "PC2"]].rename(columns={"indicator": "Indicator"})
    loadings["Indicator"] = loadings["Indicator"].replace({"explained_variance_ratio": "Explained variance"})
    loadings = _fmt_numeric(loadings, ["PC1", "PC2"], decimals=3)
    _write_tabular(loadings, REPORT_TABLES / "governance_loadings.tex")
    outputs["governance_loadings"] = REPORT_TABLES / "governance_loadings.tex"

    coverage = _load_csv(config.QA_TABLES["coverage"])
    coverage = coverage[["CountryCode", "first_year", "last_year", "mpi_rows", "governance_complete_rows"]].rename(
        columns={
            "CountryCode": "Country",
            "first_year": "From",
            "last_year": "To",
            "mpi_rows": "MPI obs",
            "governance_complete_rows": "WGI complete",
        }
    )
    _write_tabular(coverage, REPORT_TABLES / "country_coverage.tex")
    outputs["country_coverage"] = REPORT_TABLES / "country_coverage.tex"

    regression = _load_csv(config.MODEL_TABLES["regression_table"])
    for outcome in config.OUTCOME_VARIABLES:
        columns = ["term", *[c for c in regression.columns if c.startswith(f"{outcome} |")]]
        subset = regression[columns].rename(columns={"term": "Term"})
        subset = subset[subset.drop(columns=["Term"]).fillna("").ne("").any(axis=1)]
        subset.columns = [c.replace(f"{outcome} | ", "") for c in subset.columns]
        out_path = REPORT_TABLES / f"panel_regressions_{outcome}.tex"
        _write_tabular(subset, out_path)
        outputs[f"panel_regressions_{outcome}"] = out_path

    hausman = _load_csv(config.MODEL_TABLES["hausman"])
    hausman = hausman[["model", "chi2", "df", "p_value", "preferred", "n_obs"]].rename(
        columns={
            "model": "Model",
            "chi2": "Chi2",
            "df": "df",
            "p_value": "p",
            "preferred": "Preferred",
            "n_obs": "N obs",
        }
    )
    hausman = _fmt_numeric(hausman, ["Chi2", "p"], decimals=3)
    _write_tabular(hausman, REPORT_TABLES / "hausman_tests.tex")
    outputs["hausman_tests"] = REPORT_TABLES / "hausman_tests.tex"

    return outputs


def main() -> None:
    _ensure_dirs()
    _check_inputs_exist()
    _copy_inputs()
    snippets = _build_table_snippets()
    for name, path in snippets.items():
        print(f"[build_latex_tables] {name}: {path}")


if __name__ == "__main__":
    main()
