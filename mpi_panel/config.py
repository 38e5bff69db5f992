from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_RAW_DIR = PROJECT_ROOT / "data" / "raw"
DATA_PROCESSED_DIR = PROJECT_ROOT / "data" / "processed"
OUTPUTS_DIR = PROJECT_ROOT / "outputs"
OUTPUTS_TABLES_DIR = OUTPUTS_DIR / "tables"
REPORT_DIR = PROJECT_ROOT / "report"

RAW_FILES = {
    "investment": "mobilised_private_investment.xlsx",
    "economic": "wdi_country_year.csv",
    "governance": "wgi_long.xlsx",
}

# Only these tokens are read as missing; everything else is kept verbatim.
MISSING_TOKENS = ("..", "", "NA", "N/A", "n/a", "#N/A", "NaN", "nan")

KEY_COLUMNS = ["CountryCode", "Year"]

BASE_YEAR = 2015
THRESHOLD_YEAR = 2020

GOVERNANCE_INDICATORS = [
    "VoiceAccountability",
    "PoliticalStability",
    "GovEffectiveness",
    "RegulatoryQuality",
    "RuleOfLaw",
    "ControlCorruption",
]

WGI_INDICATOR_CODES = {
    "va": "VoiceAccountability",
    "pv": "PoliticalStability",
    "ge": "GovEffectiveness",
    "rq": "RegulatoryQuality",
    "rl": "RuleOfLaw",
    "cc": "ControlCorruption",
}

COLUMN_RENAMES = {
    "investment": {
        "ISO3": "CountryCode",
        "Country": "CountryName",
        "Year": "Year",
        "Mobilised Private Investment (USD)": "MPI",
        "Region": "Region",
        "Income group": "IncomeGroup",
    },
    "economic": {
        "Country Code": "CountryCode",
        "Country Name": "CountryName",
        "Time": "Year",
        "GDP (current US$) [NY.GDP.MKTP.CD]": "GDP",
        "GDP per capita (current US$) [NY.GDP.PCAP.CD]": "GDPPerCapita",
        "Population, total [SP.POP.TOTL]": "Population",
        "Inflation, consumer prices (annual %) [FP.CPI.TOTL.ZG]": "Inflation",
        "Trade (% of GDP) [NE.TRD.GNFS.ZS]": "TradeOpenness",
        "External debt stocks (% of GNI) [DT.DOD.DECT.GN.ZS]": "ExternalDebt",
        "Foreign direct investment, net inflows (% of GDP) [BX.KLT.DINV.WD.GD.ZS]": "FDIPercentGDP",
    },
    "governance": {
        "code": "CountryCode",
        "countryname": "CountryName",
        "year": "Year",
        "indicator": "Indicator",
        "estimate": "Estimate",
    },
}

REQUIRED_COLUMNS = {
    "investment": ["CountryCode", "Year", "MPI"],
    "economic": [
        "CountryCode",
        "Year",
        "GDP",
        "GDPPerCapita",
        "Population",
        "Inflation",
        "TradeOpenness",
        "ExternalDebt",
        "FDIPercentGDP",
    ],
    "governance": ["CountryCode", "Year", "Indicator", "Estimate"],
}

NUMERIC_COLUMNS = {
    "investment": ["MPI"],
    "economic": [
        "GDP",
        "GDPPerCapita",
        "Population",
        "Inflation",
        "TradeOpenness",
        "ExternalDebt",
        "FDIPercentGDP",
    ],
    "governance": ["Estimate"],
}

LOG_TRANSFORMS = {
    "MPI_real": "log_mpi_real",
    "FDI_amount": "log_fdi",
    "GDPPerCapita": "log_gdp_per_capita",
    "GDP": "log_gdp",
    "Population": "log_population",
}

OUTCOME_VARIABLES = ["log_mpi_real", "log_fdi"]

CONTROL_VARIABLES = [
    "log_gdp_per_capita",
    "log_population",
    "TradeOpenness",
    "ExternalDebt",
    "Inflation",
]

DESCRIPTIVE_VARIABLES = [
    "MPI",
    "MPI_real",
    "FDI_amount",
    "GDP",
    "GDPPerCapita",
    "Population",
    "Inflation",
    "TradeOpenness",
    "ExternalDebt",
    "FDIPercentGDP",
    *GOVERNANCE_INDICATORS,
    "governance_index",
]

HAUSMAN_ALPHA = 0.05

PANEL_MASTER_CSV = DATA_PROCESSED_DIR / "panel_master.csv"
PANEL_MASTER_PARQUET = DATA_PROCESSED_DIR / "panel_master.parquet"

QA_TABLES = {
    "lineage": OUTPUTS_TABLES_DIR / "stage_lineage.csv",
    "descriptives": OUTPUTS_TABLES_DIR / "descriptive_statistics.csv",
    "correlations": OUTPUTS_TABLES_DIR / "correlation_matrix.csv",
    "coverage": OUTPUTS_TABLES_DIR / "country_coverage.csv",
    "deflator_anchors": OUTPUTS_TABLES_DIR / "deflator_missing_anchor.csv",
    "governance_loadings": OUTPUTS_TABLES_DIR / "governance_pca_loadings.csv",
    "scatter": OUTPUTS_TABLES_DIR / "governance_investment_scatter.csv",
}

MODEL_TABLES = {
    "coefficients": OUTPUTS_TABLES_DIR / "panel_coefficients.csv",
    "regression_table": OUTPUTS_TABLES_DIR / "panel_regression_table.csv",
    "hausman": OUTPUTS_TABLES_DIR / "hausman_tests.csv",
    "skipped": OUTPUTS_TABLES_DIR / "skipped_specifications.csv",
}
