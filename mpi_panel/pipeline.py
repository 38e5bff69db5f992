from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from mpi_panel import config
from mpi_panel import ingest
from mpi_panel.errors import (
    DuplicateKeyError,
    InsufficientDataError,
    MissingAnchorError,
    SchemaError,
)

LOGGER = logging.getLogger(__name__)

KEY_COLUMNS = config.KEY_COLUMNS


@dataclass
class GovernanceIndex:
    panel: pd.DataFrame
    loadings: pd.DataFrame
    explained_variance_ratio: pd.Series
    n_complete: int


def ensure_output_directories() -> None:
    for directory in [config.DATA_PROCESSED_DIR, config.OUTPUTS_TABLES_DIR]:
        directory.mkdir(parents=True, exist_ok=True)


def coerce_keys(df: pd.DataFrame) -> pd.DataFrame:
    coerced = df.copy()
    coerced["CountryCode"] = ingest.normalize_code_column(coerced["CountryCode"])
    coerced["Year"] = pd.to_numeric(coerced["Year"], errors="raise").astype(int)
    return coerced


def merge_left_preserve_rows(base: pd.DataFrame, other: pd.DataFrame, label: str) -> pd.DataFrame:
    base = coerce_keys(base)
    other = coerce_keys(other)

    if other.duplicated(KEY_COLUMNS).any():
        duplicate_count = int(other.duplicated(KEY_COLUMNS).sum())
        raise DuplicateKeyError(f"Cannot merge {label}: {duplicate_count} duplicated key rows in source.")

    overlapping = sorted((set(base.columns) & set(other.columns)) - set(KEY_COLUMNS))
    if overlapping:
        raise SchemaError(f"Cannot merge {label}: columns {overlapping} exist on both sides.")

    before_rows = len(base)
    merged = base.merge(other, on=KEY_COLUMNS, how="left", sort=False, validate="one_to_one", indicator=True)

    if len(merged) != before_rows:
        raise SchemaError(
            f"Row count changed during merge of {label}: before={before_rows}, after={len(merged)}"
        )

    matched = int((merged["_merge"] == "both").sum())
    LOGGER.info("Merged %s: %s of %s rows matched", label, matched, before_rows)
    merged = merged.drop(columns=["_merge"])

    ingest.assert_unique_keys(merged, f"merged_{label}")
    return merged


def merge_datasets(
    investment: pd.DataFrame,
    economic: pd.DataFrame,
    governance: pd.DataFrame,
) -> pd.DataFrame:
    ingest.assert_unique_keys(investment, "investment")

    economic_columns = [column for column in economic.columns if column != "CountryName"]
    governance_columns = [column for column in governance.columns if column != "CountryName"]

    panel = merge_left_preserve_rows(investment, economic[economic_columns], "economic")
    panel = merge_left_preserve_rows(panel, governance[governance_columns], "governance")
    return panel.sort_values(KEY_COLUMNS).reset_index(drop=True)


def _country_price_index(inflation: pd.Series) -> pd.Series:
    """Chain annual inflation into a price level, 1.0 in the first year.

    ``inflation`` is indexed by consecutive years. Years before the first
    observed rate are outside the series; a gap after it leaves that year
    and every later one without an index.
    """
    index = pd.Series(np.nan, index=inflation.index, dtype=float)
    first_year = inflation.first_valid_index()
    if first_year is None:
        return index

    factors = 1.0 + inflation.loc[first_year:] / 100.0
    factors.iloc[0] = 1.0
    broken = factors.isna().cummax()
    chained = factors.fillna(1.0).cumprod().where(~broken)
    index.loc[chained.index] = chained
    return index


def build_price_index(economic: pd.DataFrame, base_year: int = config.BASE_YEAR) -> pd.DataFrame:
    frames: List[pd.DataFrame] = []

    for country, country_df in coerce_keys(economic).groupby("CountryCode", sort=True):
        inflation = country_df.set_index("Year")["Inflation"].sort_index()
        years = range(int(inflation.index.min()), int(inflation.index.max()) + 1)
        inflation = inflation.reindex(years)

        price_index = _country_price_index(inflation)
        base_index = price_index.get(base_year, np.nan)
        if not base_index > 0:
            base_index = np.nan

        frames.append(
            pd.DataFrame(
                {
                    "CountryCode": country,
                    "Year": list(years),
                    "price_index": price_index.to_numpy(),
                    "base_index": base_index,
                }
            )
        )

    if not frames:
        return pd.DataFrame(columns=[*KEY_COLUMNS, "price_index", "base_index"])

    price_index = pd.concat(frames, ignore_index=True)
    ingest.assert_unique_keys(price_index, "price_index")
    return price_index


def deflate_investment(
    panel: pd.DataFrame,
    price_index: pd.DataFrame,
    base_year: int = config.BASE_YEAR,
    strict: bool = False,
) -> pd.DataFrame:
    # The anchor belongs to the country; years outside its WDI span only lack a price_index.
    anchors = coerce_keys(price_index).groupby("CountryCode")["base_index"].first()
    deflated = merge_left_preserve_rows(panel, price_index[[*KEY_COLUMNS, "price_index"]], "price_index")
    deflated["base_index"] = deflated["CountryCode"].map(anchors).astype(float)
    deflated["deflator_anchor_missing"] = deflated["base_index"].isna()

    flagged = sorted(deflated.loc[deflated["deflator_anchor_missing"], "CountryCode"].unique().tolist())
    if flagged:
        if strict:
            raise MissingAnchorError(flagged, base_year)
        LOGGER.warning(
            "No %s price-index anchor for %s countries; their MPI_real stays missing: %s",
            base_year,
            len(flagged),
            ", ".join(flagged),
        )

    relative_price = deflated["price_index"] / deflated["base_index"]
    deflated["MPI_real"] = deflated["MPI"] / relative_price
    return deflated


def safe_log1p(series: pd.Series) -> pd.Series:
    values = pd.to_numeric(series, errors="coerce").astype(float)
    return np.log1p(values.where(values > 0))


def add_derived_variables(panel: pd.DataFrame, threshold_year: int = config.THRESHOLD_YEAR) -> pd.DataFrame:
    derived = panel.copy()

    fdi_share = derived["FDIPercentGDP"].astype(float)
    gdp = derived["GDP"].astype(float)
    valid_fdi = fdi_share.ge(0) & gdp.ge(0)
    derived["FDI_amount"] = (fdi_share / 100.0 * gdp).where(valid_fdi)

    for source, target in config.LOG_TRANSFORMS.items():
        derived[target] = safe_log1p(derived[source])

    derived["post_2020"] = (derived["Year"] >= threshold_year).astype(int)
    return derived


def build_governance_index(
    panel: pd.DataFrame,
    indicators: Sequence[str] = config.GOVERNANCE_INDICATORS,
    output_column: str = "governance_index",
) -> GovernanceIndex:
    indicators = list(indicators)
    complete = panel[indicators].dropna()

    if len(complete) < 2:
        raise InsufficientDataError(
            output_column,
            f"{len(complete)} rows have all of {indicators}; at least 2 are needed.",
        )

    means = complete.mean()
    stds = complete.std(ddof=1)
    constant = stds[~(stds > 0)].index.tolist()
    if constant:
        raise InsufficientDataError(output_column, f"indicators without variance on complete rows: {constant}.")

    standardized = (complete - means) / stds
    correlation = np.cov(standardized.to_numpy(), rowvar=False, ddof=1)
    eigenvalues, eigenvectors = np.linalg.eigh(correlation)

    order = np.argsort(eigenvalues)[::-1]
    eigenvalues = eigenvalues[order]
    eigenvectors = eigenvectors[:, order]

    components = [f"PC{position + 1}" for position in range(len(indicators))]
    loadings = pd.DataFrame(eigenvectors, index=indicators, columns=components)
    explained = pd.Series(eigenvalues / eigenvalues.sum(), index=components, name="explained_variance_ratio")

    scored = panel.copy()
    scored[output_column] = np.nan
    scored.loc[complete.index, output_column] = standardized.to_numpy() @ eigenvectors[:, 0]

    LOGGER.info(
        "Governance index from %s of %s rows; PC1 explains %.1f%% of variance",
        len(complete),
        len(panel),
        100.0 * float(explained.iloc[0]),
    )

    return GovernanceIndex(
        panel=scored,
        loadings=loadings,
        explained_variance_ratio=explained,
        n_complete=int(len(complete)),
    )


def build_descriptive_statistics(panel: pd.DataFrame, columns: Sequence[str] = config.DESCRIPTIVE_VARIABLES) -> pd.DataFrame:
    rows = []
    for column in columns:
        if column not in panel.columns:
            continue
        values = pd.to_numeric(panel[column], errors="coerce").dropna()
        rows.append(
            {
                "variable": column,
                "n_obs": int(values.shape[0]),
                "n_countries": int(panel.loc[values.index, "CountryCode"].nunique()),
                "mean": float(values.mean()) if len(values) else np.nan,
                "std": float(values.std(ddof=1)) if len(values) > 1 else np.nan,
                "min": float(values.min()) if len(values) else np.nan,
                "max": float(values.max()) if len(values) else np.nan,
            }
        )
    return pd.DataFrame(rows, columns=["variable", "n_obs", "n_countries", "mean", "std", "min", "max"])


def build_correlation_matrix(panel: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    present = [column for column in columns if column in panel.columns]
    matrix = panel[present].astype(float).corr(method="pearson")
    matrix.index.name = "variable"
    return matrix.reset_index()


def build_country_coverage(panel: pd.DataFrame) -> pd.DataFrame:
    grouped = panel.groupby("CountryCode", sort=True)
    coverage = pd.DataFrame(
        {
            "first_year": grouped["Year"].min(),
            "last_year": grouped["Year"].max(),
            "n_rows": grouped.size(),
            "mpi_rows": grouped["MPI"].count(),
            "mpi_real_rows": grouped["MPI_real"].count(),
            "governance_complete_rows": grouped["governance_index"].count(),
            "deflator_anchor_missing": grouped["deflator_anchor_missing"].any(),
        }
    )
    return coverage.reset_index()


def build_missing_anchor_table(panel: pd.DataFrame) -> pd.DataFrame:
    flagged = panel[panel["deflator_anchor_missing"]]
    return (
        flagged.groupby("CountryCode", as_index=False, sort=True)
        .agg(n_rows=("Year", "size"), first_year=("Year", "min"), last_year=("Year", "max"))
    )


def build_scatter_frame(panel: pd.DataFrame) -> pd.DataFrame:
    columns = [*KEY_COLUMNS, "governance_index", "log_mpi_real", "log_fdi"]
    return panel[columns].dropna().reset_index(drop=True)


def build_loadings_table(governance: GovernanceIndex) -> pd.DataFrame:
    table = governance.loadings.copy()
    table.index.name = "indicator"
    table = table.reset_index()
    explained = governance.explained_variance_ratio.to_frame().T.reset_index(drop=True)
    explained.insert(0, "indicator", "explained_variance_ratio")
    table = pd.concat([table, explained], ignore_index=True)
    table["n_complete_rows"] = governance.n_complete
    return table


class StageLineage:
    def __init__(self) -> None:
        self._records: List[Dict[str, object]] = []
        self._previous_columns: List[str] = []

    def record(self, stage: str, df: pd.DataFrame) -> pd.DataFrame:
        added = [column for column in df.columns if column not in self._previous_columns]
        self._records.append(
            {
                "stage": stage,
                "n_rows": int(df.shape[0]),
                "n_columns": int(df.shape[1]),
                "columns_added": ",".join(added),
            }
        )
        self._previous_columns = list(df.columns)
        LOGGER.info("Stage %s: %s rows, %s columns", stage, df.shape[0], df.shape[1])
        return df

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self._records, columns=["stage", "n_rows", "n_columns", "columns_added"])


def build_panel(
    investment: pd.DataFrame,
    economic: pd.DataFrame,
    governance: pd.DataFrame,
    strict_deflation: bool = False,
    lineage: Optional[StageLineage] = None,
) -> GovernanceIndex:
    lineage = lineage if lineage is not None else StageLineage()

    panel = lineage.record("merge", merge_datasets(investment, economic, governance))
    price_index = build_price_index(economic)
    panel = lineage.record("deflate", deflate_investment(panel, price_index, strict=strict_deflation))
    panel = lineage.record("derive", add_derived_variables(panel))

    governance_index = build_governance_index(panel)
    lineage.record("governance_index", governance_index.panel)
    return governance_index


def write_csv(df: pd.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, float_format="%.10g")


def write_parquet(df: pd.DataFrame, path: Path) -> None:
    try:
        df.to_parquet(path, index=False)
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(
            "Could not write Parquet file. Install parquet support (e.g., pyarrow) and rerun."
        ) from exc


def build_dataset_pipeline(
    write_panel_csv: bool = True,
    raw_paths: Optional[Mapping[str, Path]] = None,
    strict_deflation: bool = False,
) -> Dict[str, Path]:
    ensure_output_directories()
    raw_paths = raw_paths or {}

    lineage = StageLineage()
    investment = lineage.record("load_investment", ingest.load_investment(raw_paths.get("investment")))
    economic = ingest.load_economic(raw_paths.get("economic"))
    governance = ingest.load_governance(raw_paths.get("governance"))

    governance_index = build_panel(
        investment,
        economic,
        governance,
        strict_deflation=strict_deflation,
        lineage=lineage,
    )
    panel = governance_index.panel

    if write_panel_csv:
        write_csv(panel, config.PANEL_MASTER_CSV)
    write_parquet(panel, config.PANEL_MASTER_PARQUET)

    correlation_columns = [*config.GOVERNANCE_INDICATORS, "governance_index", "log_mpi_real", "log_fdi", *config.CONTROL_VARIABLES]

    write_csv(lineage.to_frame(), config.QA_TABLES["lineage"])
    write_csv(build_descriptive_statistics(panel), config.QA_TABLES["descriptives"])
    write_csv(build_correlation_matrix(panel, correlation_columns), config.QA_TABLES["correlations"])
    write_csv(build_country_coverage(panel), config.QA_TABLES["coverage"])
    write_csv(build_missing_anchor_table(panel), config.QA_TABLES["deflator_anchors"])
    write_csv(build_loadings_table(governance_index), config.QA_TABLES["governance_loadings"])
    write_csv(build_scatter_frame(panel), config.QA_TABLES["scatter"])

    LOGGER.info(
        "Built panel_master with %s rows for %s countries",
        panel.shape[0],
        panel["CountryCode"].nunique(),
    )

    outputs = {
        "panel_master_parquet": config.PANEL_MASTER_PARQUET,
        **{f"qa_table_{name}": path for name, path in config.QA_TABLES.items()},
    }
    if write_panel_csv:
        outputs["panel_master_csv"] = config.PANEL_MASTER_CSV
    return outputs
