from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from mpi_panel import config
from mpi_panel.errors import DuplicateKeyError, SchemaError

LOGGER = logging.getLogger(__name__)

DELIMITERS = {".csv": ",", ".txt": ",", ".tsv": "\t"}
SPREADSHEET_SUFFIXES = {".xlsx", ".xls"}


def read_table(
    path: Path,
    missing_tokens: Iterable[str] = config.MISSING_TOKENS,
    sheet_name: Optional[str] = None,
) -> pd.DataFrame:
    """Read a delimited text file or a spreadsheet into a DataFrame.

    The format is picked from the file extension. Only ``missing_tokens``
    are turned into missing values; pandas' built-in NA vocabulary is
    switched off so that any other token survives exactly as written.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing input file: {path}. Place the raw export under {config.DATA_RAW_DIR}.")

    tokens = list(missing_tokens)
    suffix = path.suffix.lower()

    if suffix in DELIMITERS:
        df = pd.read_csv(
            path,
            sep=DELIMITERS[suffix],
            na_values=tokens,
            keep_default_na=False,
            low_memory=False,
        )
    elif suffix in SPREADSHEET_SUFFIXES:
        df = pd.read_excel(
            path,
            sheet_name=sheet_name if sheet_name is not None else 0,
            na_values=tokens,
            keep_default_na=False,
        )
    else:
        raise SchemaError(
            f"Unsupported file extension '{path.suffix}' for {path}. "
            f"Expected one of: {', '.join(sorted(set(DELIMITERS) | SPREADSHEET_SUFFIXES))}."
        )

    df.columns = [str(column).replace("\ufeff", "").strip() for column in df.columns]
    LOGGER.info("Loaded %s: %s rows, %s columns", path.name, df.shape[0], df.shape[1])
    return df


def normalize_columns(df: pd.DataFrame, dataset: str) -> pd.DataFrame:
    renames = config.COLUMN_RENAMES[dataset]
    present = {source: target for source, target in renames.items() if source in df.columns}
    normalized = df.rename(columns=present)

    collisions = sorted(set(normalized.columns[normalized.columns.duplicated()]))
    if collisions:
        sources = sorted(source for source, target in present.items() if target in collisions)
        raise SchemaError(
            f"Dataset {dataset} renames {sources} onto columns that already exist: {collisions}."
        )

    required = config.REQUIRED_COLUMNS[dataset]
    missing = [column for column in required if column not in normalized.columns]
    if missing:
        expected_sources = [source for source, target in renames.items() if target in missing]
        raise SchemaError(
            f"Dataset {dataset} is missing required columns {missing}. "
            f"Expected source columns: {expected_sources}. Available columns: {sorted(df.columns)}"
        )

    return normalized


def normalize_code_column(series: pd.Series) -> pd.Series:
    codes = series.astype("string").str.strip().str.upper()
    return codes.replace({"": pd.NA})


def parse_year_series(series: pd.Series) -> pd.Series:
    extracted = series.astype("string").str.extract(r"(\d{4})", expand=False)
    years = pd.to_numeric(extracted, errors="coerce")
    years = years.where(years.between(1900, 2100), np.nan)
    return years.astype("Int64")


def parse_numeric_series(series: pd.Series, label: str) -> pd.Series:
    if pd.api.types.is_numeric_dtype(series):
        return series.astype(float)

    cleaned = series.astype("string").str.strip()
    cleaned = cleaned.str.replace(" ", "", regex=False)
    cleaned = cleaned.str.replace(",", "", regex=False).replace("", pd.NA)
    raw = cleaned.astype(object).where(cleaned.notna(), np.nan)
    parsed = pd.to_numeric(raw, errors="coerce")

    unparseable = cleaned.notna() & parsed.isna()
    if unparseable.any():
        examples = sorted(set(cleaned[unparseable].tolist()))[:5]
        raise SchemaError(
            f"Column {label} has {int(unparseable.sum())} non-numeric values that are not "
            f"configured missing tokens, e.g. {examples}."
        )

    return parsed.astype(float)


def normalize_types(df: pd.DataFrame, numeric_columns: Sequence[str], label: str) -> pd.DataFrame:
    typed = df.copy()
    typed["CountryCode"] = normalize_code_column(typed["CountryCode"])
    typed["Year"] = parse_year_series(typed["Year"])

    invalid_keys = typed["CountryCode"].isna() | typed["Year"].isna()
    if invalid_keys.any():
        LOGGER.warning("Dropping %s rows from %s without a usable CountryCode/Year", int(invalid_keys.sum()), label)
        typed = typed[~invalid_keys].copy()
    typed["Year"] = typed["Year"].astype(int)

    for column in numeric_columns:
        typed[column] = parse_numeric_series(typed[column], f"{label}.{column}")

    return typed.reset_index(drop=True)


def assert_unique_keys(df: pd.DataFrame, label: str, keys: Sequence[str] = config.KEY_COLUMNS) -> None:
    duplicated = df.duplicated(list(keys), keep=False)
    if duplicated.any():
        sample = df.loc[duplicated, list(keys)].drop_duplicates().head(5).to_dict("records")
        raise DuplicateKeyError(
            f"Dataset {label} has {int(duplicated.sum())} rows sharing {tuple(keys)} keys, e.g. {sample}."
        )


def pivot_governance(df: pd.DataFrame) -> pd.DataFrame:
    long = df.copy()
    indicator_names: Dict[str, str] = dict(config.WGI_INDICATOR_CODES)
    indicator_names.update({name.lower(): name for name in config.GOVERNANCE_INDICATORS})

    codes = long["Indicator"].astype("string").str.strip().str.lower()
    long["Indicator"] = codes.map(indicator_names)

    unknown = long["Indicator"].isna()
    if unknown.any():
        LOGGER.info(
            "Ignoring %s governance rows with unknown indicator codes: %s",
            int(unknown.sum()),
            sorted(set(codes[unknown].dropna().tolist())),
        )
        long = long[~unknown]

    assert_unique_keys(long, "governance (long)", keys=[*config.KEY_COLUMNS, "Indicator"])

    wide = long.pivot(index=config.KEY_COLUMNS, columns="Indicator", values="Estimate")
    absent = [name for name in config.GOVERNANCE_INDICATORS if name not in wide.columns]
    if absent:
        raise SchemaError(f"Governance dataset has no rows for indicators: {absent}.")

    wide = wide[config.GOVERNANCE_INDICATORS].reset_index()
    wide.columns.name = None
    return wide.sort_values(config.KEY_COLUMNS).reset_index(drop=True)


def _raw_path(dataset: str, path: Optional[Path]) -> Path:
    return Path(path) if path is not None else config.DATA_RAW_DIR / config.RAW_FILES[dataset]


def load_investment(path: Optional[Path] = None) -> pd.DataFrame:
    df = read_table(_raw_path("investment", path))
    df = normalize_columns(df, "investment")
    df = normalize_types(df, config.NUMERIC_COLUMNS["investment"], "investment")

    # One row per mobilizing institution is collapsed into one country-year.
    descriptors = [
        column
        for column in ("CountryName", "Region", "IncomeGroup")
        if column in df.columns
    ]
    grouped = df.groupby(config.KEY_COLUMNS, sort=True)
    investment = grouped["MPI"].sum(min_count=1).to_frame()
    if descriptors:
        investment = investment.join(grouped[descriptors].first())
    investment = investment.reset_index()

    collapsed = len(df) - len(investment)
    if collapsed:
        LOGGER.info("Summed %s investment rows sharing a (CountryCode, Year) key", collapsed)

    assert_unique_keys(investment, "investment")
    return investment


def load_economic(path: Optional[Path] = None) -> pd.DataFrame:
    df = read_table(_raw_path("economic", path))
    df = normalize_columns(df, "economic")
    df = normalize_types(df, config.NUMERIC_COLUMNS["economic"], "economic")

    keep: List[str] = [*config.KEY_COLUMNS, *config.NUMERIC_COLUMNS["economic"]]
    economic = df[keep].sort_values(config.KEY_COLUMNS).reset_index(drop=True)
    assert_unique_keys(economic, "economic")
    return economic


def load_governance(path: Optional[Path] = None) -> pd.DataFrame:
    df = read_table(_raw_path("governance", path))
    df = normalize_columns(df, "governance")
    df = normalize_types(df, config.NUMERIC_COLUMNS["governance"], "governance")
    governance = pivot_governance(df)
    assert_unique_keys(governance, "governance")
    return governance
