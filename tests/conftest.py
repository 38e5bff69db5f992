from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from mpi_panel import config

YEARS = list(range(2010, 2023))


def _investment_rows(country, years, base_amount):
    return [
        {"CountryCode": country, "Year": year, "MPI": base_amount * (1 + 0.1 * (year - 2015))}
        for year in years
    ]


@pytest.fixture
def investment() -> pd.DataFrame:
    rows = []
    rows += _investment_rows("KEN", range(2014, 2022), 1_000_000.0)
    rows += _investment_rows("GHA", range(2014, 2022), 500_000.0)
    rows += _investment_rows("NGA", range(2014, 2022), 2_000_000.0)
    rows += _investment_rows("BRA", range(2016, 2022), 3_000_000.0)
    rows += _investment_rows("TCD", range(2015, 2019), 100_000.0)
    return pd.DataFrame(rows)


@pytest.fixture
def economic() -> pd.DataFrame:
    inflation = {"KEN": 0.0, "GHA": 10.0, "NGA": 5.0, "BRA": 4.0, "TCD": 2.0}
    rows = []
    for country, rate in inflation.items():
        years = range(2016, 2023) if country == "BRA" else YEARS
        for year in years:
            rows.append(
                {
                    "CountryCode": country,
                    "Year": year,
                    "GDP": 1e10 * (1 + 0.02 * (year - 2010)),
                    "GDPPerCapita": 2000.0 + 50.0 * (year - 2010),
                    "Population": 5e6,
                    "Inflation": np.nan if (country == "NGA" and year == 2017) else rate,
                    "TradeOpenness": 40.0 + (year - 2010),
                    "ExternalDebt": 30.0,
                    "FDIPercentGDP": 2.0,
                }
            )
    return pd.DataFrame(rows)


@pytest.fixture
def governance() -> pd.DataFrame:
    rng = np.random.default_rng(7)
    rows = []
    for country in ["KEN", "GHA", "NGA", "BRA"]:
        level = rng.normal()
        for year in YEARS:
            row = {"CountryCode": country, "Year": year}
            for indicator in config.GOVERNANCE_INDICATORS:
                row[indicator] = level + rng.normal(scale=0.3)
            rows.append(row)
    frame = pd.DataFrame(rows)
    frame.loc[(frame["CountryCode"] == "NGA") & (frame["Year"] == 2019), "RuleOfLaw"] = np.nan
    return frame


@pytest.fixture
def analysis_panel() -> pd.DataFrame:
    """Balanced 12-country panel with every column the estimators use."""
    rng = np.random.default_rng(2024)
    rows = []
    for position in range(12):
        country = f"C{position:02d}"
        country_effect = rng.normal()
        for year in range(2012, 2022):
            row = {"CountryCode": country, "Year": year}
            for indicator in config.GOVERNANCE_INDICATORS:
                row[indicator] = 0.5 * country_effect + rng.normal(scale=0.5)
            row["governance_index"] = float(np.mean([row[i] for i in config.GOVERNANCE_INDICATORS]))
            row["post_2020"] = int(year >= config.THRESHOLD_YEAR)
            row["log_gdp_per_capita"] = 8.0 + 0.1 * country_effect + rng.normal(scale=0.2)
            row["log_population"] = 16.0 + rng.normal(scale=0.1)
            row["TradeOpenness"] = 50.0 + rng.normal(scale=5.0)
            row["ExternalDebt"] = 40.0 + rng.normal(scale=5.0)
            row["Inflation"] = 5.0 + rng.normal(scale=1.0)
            noise = rng.normal(scale=0.1)
            row["log_mpi_real"] = 15.0 + 0.8 * row["governance_index"] + country_effect + noise
            row["log_fdi"] = 18.0 + 0.4 * row["governance_index"] + country_effect + rng.normal(scale=0.3)
            rows.append(row)
    return pd.DataFrame(rows)
