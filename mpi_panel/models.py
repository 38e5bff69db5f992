from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from linearmodels.panel import RandomEffects
from scipy.stats import chi2

from mpi_panel import config
from mpi_panel.errors import DuplicateKeyError, InsufficientDataError, SchemaError

LOGGER = logging.getLogger(__name__)

FIXED_EFFECTS = "fixed_effects"
RANDOM_EFFECTS = "random_effects"

NUISANCE_PREFIXES = ("C(CountryCode)", "C(Year)", "Intercept")

PANEL_REQUIRED_COLUMNS = [
    "CountryCode",
    "Year",
    *config.OUTCOME_VARIABLES,
    *config.CONTROL_VARIABLES,
    *config.GOVERNANCE_INDICATORS,
    "governance_index",
    "post_2020",
]

LONG_TABLE_COLUMNS = [
    "model",
    "estimator",
    "outcome",
    "term",
    "coef",
    "std_err",
    "t_stat",
    "p_value",
    "stars",
    "ci_95_lower",
    "ci_95_upper",
    "n_obs",
    "n_countries",
    "sample_year_min",
    "sample_year_max",
    "controls_used",
]


@dataclass(frozen=True)
class PanelSpecification:
    name: str
    outcome: str
    predictors: Tuple[str, ...]
    controls: Tuple[str, ...] = tuple(config.CONTROL_VARIABLES)

    @property
    def regressors(self) -> List[str]:
        return [*self.predictors, *self.controls]

    @property
    def required_columns(self) -> List[str]:
        columns = [self.outcome]
        for term in self.regressors:
            columns.extend(token for token in term.split(":") if token)
        return list(dict.fromkeys(columns))


@dataclass
class RegressionRun:
    model_name: str
    estimator: str
    outcome: str
    formula: str
    result: object
    sample_df: pd.DataFrame
    terms: List[str]
    controls_used: List[str] = field(default_factory=list)

    @property
    def n_obs(self) -> int:
        return int(self.sample_df.shape[0])

    @property
    def n_countries(self) -> int:
        return int(self.sample_df.index.get_level_values("CountryCode").nunique())

    @property
    def year_min(self) -> int:
        return int(self.sample_df.index.get_level_values("Year").min())

    @property
    def year_max(self) -> int:
        return int(self.sample_df.index.get_level_values("Year").max())

    @property
    def params(self) -> pd.Series:
        return self.result.params

    @property
    def cov(self) -> pd.DataFrame:
        if self.estimator == FIXED_EFFECTS:
            return self.result.cov_params()
        return self.result.cov

    def coefficients(self) -> pd.DataFrame:
        if self.estimator == FIXED_EFFECTS:
            std_errors = self.result.bse
            tstats = self.result.tvalues
            conf = self.result.conf_int(alpha=0.05)
        else:
            std_errors = self.result.std_errors
            tstats = self.result.tstats
            conf = self.result.conf_int(level=0.95)

        params = self.result.params
        return pd.DataFrame(
            {
                "term": params.index,
                "coef": params.values,
                "std_err": std_errors.reindex(params.index).values,
                "t_stat": tstats.reindex(params.index).values,
                "p_value": self.result.pvalues.reindex(params.index).values,
                "ci_95_lower": conf.iloc[:, 0].reindex(params.index).values,
                "ci_95_upper": conf.iloc[:, 1].reindex(params.index).values,
            }
        )


@dataclass
class HausmanResult:
    specification: str
    statistic: float
    df: int
    p_value: float
    prefer_fixed_effects: bool
    terms: List[str]


@dataclass
class SpecificationResult:
    specification: PanelSpecification
    fixed: RegressionRun
    random: RegressionRun
    hausman: HausmanResult


def significance_stars(p_value: float) -> str:
    if pd.isna(p_value):
        return ""
    if p_value < 0.01:
        return "***"
    if p_value < 0.05:
        return "**"
    if p_value < 0.1:
        return "*"
    return ""


def _validate_columns(df: pd.DataFrame, required: Sequence[str], dataset_path: Path, source_hint: str) -> None:
    missing = sorted(set(required) - set(df.columns))
    if missing:
        missing_text = ", ".join(missing)
        raise SchemaError(
            f"Missing required columns in {dataset_path}: {missing_text}. "
            f"These should come from {source_hint}."
        )


def load_analysis_inputs(panel_path: Optional[Path] = None) -> pd.DataFrame:
    panel_path = Path(panel_path) if panel_path is not None else config.PANEL_MASTER_PARQUET

    if not panel_path.exists():
        raise FileNotFoundError(
            f"Missing input file: {panel_path}. Run scripts/build_dataset.py to generate it."
        )

    if panel_path.suffix == ".parquet":
        panel = pd.read_parquet(panel_path)
    else:
        panel = pd.read_csv(panel_path)

    _validate_columns(
        panel,
        PANEL_REQUIRED_COLUMNS,
        panel_path,
        "the dataset pipeline in scripts/build_dataset.py (mpi_panel/pipeline.py)",
    )
    return panel


def to_panel_index(panel: pd.DataFrame) -> pd.DataFrame:
    """Index a flat panel by (CountryCode, Year), rejecting repeated pairs."""
    if isinstance(panel.index, pd.MultiIndex):
        if list(panel.index.names) != config.KEY_COLUMNS:
            raise SchemaError(f"Panel index must be {config.KEY_COLUMNS}, got {list(panel.index.names)}.")
        indexed = panel.copy()
    else:
        _validate_columns(panel, config.KEY_COLUMNS, Path("<panel>"), "the merged dataset")
        indexed = panel.copy()
        indexed["CountryCode"] = indexed["CountryCode"].astype(str)
        indexed["Year"] = pd.to_numeric(indexed["Year"], errors="raise").astype(int)
        indexed = indexed.set_index(config.KEY_COLUMNS)

    duplicated = indexed.index.duplicated(keep=False)
    if duplicated.any():
        sample = indexed.index[duplicated].unique()[:5].tolist()
        raise DuplicateKeyError(f"Panel has {int(duplicated.sum())} rows with repeated (CountryCode, Year), e.g. {sample}.")

    return indexed.sort_index()


def build_specifications(
    outcomes: Sequence[str] = config.OUTCOME_VARIABLES,
    controls: Sequence[str] = config.CONTROL_VARIABLES,
) -> List[PanelSpecification]:
    specifications: List[PanelSpecification] = []
    controls = tuple(controls)

    for outcome in outcomes:
        for indicator in config.GOVERNANCE_INDICATORS:
            specifications.append(
                PanelSpecification(f"{outcome} | {indicator}", outcome, (indicator,), controls)
            )
        specifications.append(
            PanelSpecification(f"{outcome} | governance_index", outcome, ("governance_index",), controls)
        )
        specifications.append(
            PanelSpecification(
                f"{outcome} | governance_index x post_2020",
                outcome,
                ("governance_index", "governance_index:post_2020"),
                controls,
            )
        )

    return specifications


def _specification_sample(panel: pd.DataFrame, spec: PanelSpecification) -> pd.DataFrame:
    missing = sorted(set(spec.required_columns) - set(panel.columns))
    if missing:
        raise SchemaError(f"Specification {spec.name} is missing required columns: {', '.join(missing)}.")

    sample = panel[spec.required_columns].astype(float).dropna().copy()
    for term in spec.regressors:
        if ":" in term:
            factors = [token for token in term.split(":") if token]
            sample[term] = sample[factors].prod(axis=1)
    return sample


def _check_sample_size(spec: PanelSpecification, estimator: str, sample: pd.DataFrame, n_params: int) -> None:
    n_obs = int(sample.shape[0])
    n_countries = int(sample.index.get_level_values("CountryCode").nunique())
    if n_countries < 2 or n_obs <= n_params:
        raise InsufficientDataError(
            spec.name,
            f"{estimator} has {n_obs} usable observations across {n_countries} countries "
            f"for {n_params} free parameters.",
        )


def _build_formula(outcome: str, regressors: Sequence[str]) -> str:
    terms = list(regressors)
    terms.append("C(CountryCode)")
    terms.append("C(Year)")
    rhs = " + ".join(terms)
    return f"{outcome} ~ {rhs}"


def fit_fixed_effects(panel: pd.DataFrame, spec: PanelSpecification) -> RegressionRun:
    """Two-way within estimator, fitted as OLS with country and year dummies."""
    sample = _specification_sample(panel, spec)
    n_countries = sample.index.get_level_values("CountryCode").nunique()
    n_years = sample.index.get_level_values("Year").nunique()
    _check_sample_size(spec, FIXED_EFFECTS, sample, len(spec.regressors) + n_countries + n_years - 1)

    formula = _build_formula(spec.outcome, spec.regressors)
    data = sample[spec.required_columns].reset_index()
    result = smf.ols(formula=formula, data=data).fit()

    return RegressionRun(
        model_name=spec.name,
        estimator=FIXED_EFFECTS,
        outcome=spec.outcome,
        formula=formula,
        result=result,
        sample_df=sample,
        terms=spec.regressors,
        controls_used=list(spec.controls),
    )


def fit_random_effects(panel: pd.DataFrame, spec: PanelSpecification) -> RegressionRun:
    """Random country effects; year effects enter as dummies."""
    sample = _specification_sample(panel, spec)
    years = sample.index.get_level_values("Year")
    year_levels = sorted(years.unique().tolist())
    _check_sample_size(spec, RANDOM_EFFECTS, sample, len(spec.regressors) + len(year_levels))

    exog = sample[spec.regressors].copy()
    for year in year_levels[1:]:
        exog[f"C(Year)[T.{year}]"] = (years == year).astype(float)
    exog.insert(0, "Intercept", 1.0)

    try:
        result = RandomEffects(sample[spec.outcome], exog).fit(cov_type="unadjusted")
    except (ValueError, np.linalg.LinAlgError) as exc:
        raise InsufficientDataError(spec.name, f"{RANDOM_EFFECTS} could not be estimated: {exc}") from exc

    formula = f"{spec.outcome} ~ 1 + {' + '.join(spec.regressors)} + C(Year) + RandomEffects(CountryCode)"
    return RegressionRun(
        model_name=spec.name,
        estimator=RANDOM_EFFECTS,
        outcome=spec.outcome,
        formula=formula,
        result=result,
        sample_df=sample,
        terms=spec.regressors,
        controls_used=list(spec.controls),
    )


def hausman_test(fixed: RegressionRun, random: RegressionRun, alpha: float = config.HAUSMAN_ALPHA) -> HausmanResult:
    terms = [term for term in fixed.terms if term in fixed.params.index and term in random.params.index]
    if not terms:
        raise InsufficientDataError(fixed.model_name, "no common slope terms for the Hausman test.")

    difference = (fixed.params[terms] - random.params[terms]).to_numpy()
    variance = fixed.cov.loc[terms, terms].to_numpy() - random.cov.loc[terms, terms].to_numpy()
    statistic = float(difference @ np.linalg.pinv(variance) @ difference)
    if statistic < 0:
        LOGGER.warning(
            "Hausman statistic for %s is negative (%.4f); the variance difference is not positive semi-definite.",
            fixed.model_name,
            statistic,
        )

    dof = len(terms)
    p_value = float(chi2.sf(statistic, dof))
    return HausmanResult(
        specification=fixed.model_name,
        statistic=statistic,
        df=dof,
        p_value=p_value,
        prefer_fixed_effects=bool(p_value <= alpha),
        terms=terms,
    )


def run_specification(
    panel: pd.DataFrame,
    spec: PanelSpecification,
    alpha: float = config.HAUSMAN_ALPHA,
) -> SpecificationResult:
    fixed = fit_fixed_effects(panel, spec)
    random = fit_random_effects(panel, spec)
    hausman = hausman_test(fixed, random, alpha=alpha)

    LOGGER.info(
        "%s: n=%s, Hausman chi2(%s)=%.3f p=%.4f -> %s",
        spec.name,
        fixed.n_obs,
        hausman.df,
        hausman.statistic,
        hausman.p_value,
        "fixed effects" if hausman.prefer_fixed_effects else "random effects",
    )
    return SpecificationResult(specification=spec, fixed=fixed, random=random, hausman=hausman)


def _result_to_long_table(run: RegressionRun, keep_fe_terms: bool = False) -> pd.DataFrame:
    table = run.coefficients()

    if not keep_fe_terms:
        table = table[~table["term"].str.startswith(NUISANCE_PREFIXES)].copy()

    table["stars"] = table["p_value"].map(significance_stars)
    table["model"] = run.model_name
    table["estimator"] = run.estimator
    table["outcome"] = run.outcome
    table["n_obs"] = run.n_obs
    table["n_countries"] = run.n_countries
    table["sample_year_min"] = run.year_min
    table["sample_year_max"] = run.year_max
    table["controls_used"] = ",".join(run.controls_used)

    return table[LONG_TABLE_COLUMNS].reset_index(drop=True)


def build_regression_table(long_table: pd.DataFrame, decimals: int = 3) -> pd.DataFrame:
    """Pivot coefficient rows into one ``coef*** (se)`` column per fit."""
    if long_table.empty:
        return pd.DataFrame(columns=["term"])

    table = long_table.copy()
    table["column"] = table["model"] + " [" + table["estimator"].str.replace("_effects", "", regex=False).str.upper() + "]"
    table["cell"] = (
        table["coef"].map(lambda value: f"{value:.{decimals}f}")
        + table["stars"]
        + " ("
        + table["std_err"].map(lambda value: f"{value:.{decimals}f}")
        + ")"
    )

    column_order = list(dict.fromkeys(table["column"].tolist()))
    term_order = list(dict.fromkeys(table["term"].tolist()))

    wide = table.pivot(index="term", columns="column", values="cell").reindex(index=term_order, columns=column_order)

    footer = table.drop_duplicates("column").set_index("column")[["n_obs", "n_countries"]].T
    footer = footer.reindex(columns=column_order).astype(str)
    footer.index = ["N obs", "N countries"]

    wide = pd.concat([wide, footer]).fillna("")
    wide.index.name = "term"
    wide.columns.name = None
    return wide.reset_index()


def build_hausman_table(results: Sequence[SpecificationResult]) -> pd.DataFrame:
    rows = []
    for result in results:
        rows.append(
            {
                "model": result.specification.name,
                "outcome": result.specification.outcome,
                "predictors": ",".join(result.specification.predictors),
                "chi2": result.hausman.statistic,
                "df": result.hausman.df,
                "p_value": result.hausman.p_value,
                "preferred": FIXED_EFFECTS if result.hausman.prefer_fixed_effects else RANDOM_EFFECTS,
                "n_obs": result.fixed.n_obs,
                "n_countries": result.fixed.n_countries,
            }
        )
    return pd.DataFrame(
        rows,
        columns=["model", "outcome", "predictors", "chi2", "df", "p_value", "preferred", "n_obs", "n_countries"],
    )


def _write_csv(df: pd.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, float_format="%.10g")


def run_models_pipeline(
    panel_path: Optional[Path] = None,
    alpha: float = config.HAUSMAN_ALPHA,
) -> Dict[str, Path]:
    config.OUTPUTS_TABLES_DIR.mkdir(parents=True, exist_ok=True)

    panel = to_panel_index(load_analysis_inputs(panel_path))

    results: List[SpecificationResult] = []
    skipped: List[Dict[str, str]] = []
    for spec in build_specifications():
        try:
            results.append(run_specification(panel, spec, alpha=alpha))
        except InsufficientDataError as exc:
            LOGGER.warning("Skipping %s", exc)
            skipped.append({"model": spec.name, "reason": str(exc)})

    if not results:
        raise InsufficientDataError("all", "no specification could be estimated; see the warnings above.")

    long_table = pd.concat(
        [
            _result_to_long_table(run)
            for result in results
            for run in (result.fixed, result.random)
        ],
        ignore_index=True,
    )

    _write_csv(long_table, config.MODEL_TABLES["coefficients"])
    _write_csv(build_regression_table(long_table), config.MODEL_TABLES["regression_table"])
    _write_csv(build_hausman_table(results), config.MODEL_TABLES["hausman"])
    _write_csv(pd.DataFrame(skipped, columns=["model", "reason"]), config.MODEL_TABLES["skipped"])

    LOGGER.info(
        "Estimated %s specifications (%s skipped). Outputs written under %s",
        len(results),
        len(skipped),
        config.OUTPUTS_TABLES_DIR,
    )
    return dict(config.MODEL_TABLES)
