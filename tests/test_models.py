import numpy as np
import pandas as pd
import pytest

from mpi_panel import config, models
from mpi_panel.errors import DuplicateKeyError, InsufficientDataError


@pytest.fixture
def panel(analysis_panel):
    return models.to_panel_index(analysis_panel)


@pytest.fixture
def composite_spec():
    return models.PanelSpecification("log_mpi_real | governance_index", "log_mpi_real", ("governance_index",))


class TestPanelIndex:
    def test_two_level_index(self, panel):
        assert list(panel.index.names) == config.KEY_COLUMNS
        assert panel.index.is_monotonic_increasing

    def test_duplicate_pairs_fail(self, analysis_panel):
        duplicated = pd.concat([analysis_panel, analysis_panel.iloc[[0]]], ignore_index=True)
        with pytest.raises(DuplicateKeyError):
            models.to_panel_index(duplicated)


class TestSpecifications:
    def test_family(self):
        specifications = models.build_specifications()
        names = [spec.name for spec in specifications]
        per_outcome = len(config.GOVERNANCE_INDICATORS) + 2
        assert len(specifications) == per_outcome * len(config.OUTCOME_VARIABLES)
        assert len(set(names)) == len(names)
        assert all(spec.controls == tuple(config.CONTROL_VARIABLES) for spec in specifications)

    def test_interaction_columns(self):
        spec = models.PanelSpecification("x", "log_fdi", ("governance_index", "governance_index:post_2020"))
        assert spec.required_columns[:3] == ["log_fdi", "governance_index", "post_2020"]


class TestEstimators:
    def test_fixed_effects_recovers_slope(self, panel, composite_spec):
        run = models.fit_fixed_effects(panel, composite_spec)
        assert run.n_obs == 120
        assert run.n_countries == 12
        assert run.params["governance_index"] == pytest.approx(0.8, abs=0.2)

    def test_random_effects_shares_sample(self, panel, composite_spec):
        fixed = models.fit_fixed_effects(panel, composite_spec)
        random = models.fit_random_effects(panel, composite_spec)
        assert random.n_obs == fixed.n_obs
        assert set(composite_spec.regressors) <= set(random.params.index)

    def test_interaction_term(self, panel):
        spec = models.PanelSpecification(
            "log_mpi_real | governance_index x post_2020",
            "log_mpi_real",
            ("governance_index", "governance_index:post_2020"),
        )
        fixed = models.fit_fixed_effects(panel, spec)
        random = models.fit_random_effects(panel, spec)
        assert "governance_index:post_2020" in fixed.params.index
        assert "governance_index:post_2020" in random.params.index

    def test_fits_do_not_mutate_panel(self, panel, composite_spec):
        before = panel.copy()
        models.fit_fixed_effects(panel, composite_spec)
        models.fit_random_effects(panel, composite_spec)
        pd.testing.assert_frame_equal(panel, before)

    def test_insufficient_data_names_specification(self, analysis_panel, composite_spec):
        small = analysis_panel[analysis_panel["CountryCode"].isin(["C00", "C01", "C02"]) & (analysis_panel["Year"] <= 2013)]
        with pytest.raises(InsufficientDataError, match="log_mpi_real \\| governance_index"):
            models.fit_fixed_effects(models.to_panel_index(small), composite_spec)

    def test_missing_predictor_collapses_sample(self, analysis_panel, composite_spec):
        emptied = analysis_panel.assign(governance_index=np.nan)
        with pytest.raises(InsufficientDataError) as excinfo:
            models.fit_random_effects(models.to_panel_index(emptied), composite_spec)
        assert excinfo.value.specification == composite_spec.name


class TestSampleSizes:
    def test_same_missingness_same_sample(self, panel, composite_spec):
        single = models.PanelSpecification("single", "log_mpi_real", ("GovEffectiveness",))
        assert models.fit_fixed_effects(panel, single).n_obs == models.fit_fixed_effects(panel, composite_spec).n_obs

    def test_different_missingness_different_sample(self, analysis_panel, composite_spec):
        altered = analysis_panel.copy()
        altered.loc[altered.index[:5], "governance_index"] = np.nan
        panel = models.to_panel_index(altered)
        single = models.PanelSpecification("single", "log_mpi_real", ("GovEffectiveness",))
        assert models.fit_fixed_effects(panel, single).n_obs == 120
        assert models.fit_fixed_effects(panel, composite_spec).n_obs == 115


class TestHausman:
    def test_identical_fits_do_not_reject(self, panel, composite_spec):
        fixed = models.fit_fixed_effects(panel, composite_spec)
        result = models.hausman_test(fixed, fixed)
        assert result.statistic == pytest.approx(0.0)
        assert result.p_value == pytest.approx(1.0)
        assert not result.prefer_fixed_effects

    def test_decision_follows_alpha(self, panel, composite_spec):
        result = models.run_specification(panel, composite_spec)
        assert result.hausman.df == len(composite_spec.regressors)
        assert result.hausman.prefer_fixed_effects == (result.hausman.p_value <= config.HAUSMAN_ALPHA)
        assert 0.0 <= result.hausman.p_value <= 1.0


class TestTables:
    def test_long_table_drops_nuisance_terms(self, panel, composite_spec):
        run = models.fit_fixed_effects(panel, composite_spec)
        table = models._result_to_long_table(run)
        assert set(table["term"]) == set(composite_spec.regressors)
        assert list(table.columns) == models.LONG_TABLE_COLUMNS

    def test_regression_table_cells(self, panel, composite_spec):
        result = models.run_specification(panel, composite_spec)
        long_table = pd.concat(
            [models._result_to_long_table(result.fixed), models._result_to_long_table(result.random)],
            ignore_index=True,
        )
        wide = models.build_regression_table(long_table).set_index("term")
        assert list(wide.columns) == [f"{composite_spec.name} [FIXED]", f"{composite_spec.name} [RANDOM]"]
        assert wide.loc["N obs"].tolist() == ["120", "120"]
        assert wide.loc["governance_index"].str.contains(r"\(").all()

    def test_stars(self):
        assert models.significance_stars(0.001) == "***"
        assert models.significance_stars(0.03) == "**"
        assert models.significance_stars(0.07) == "*"
        assert models.significance_stars(0.5) == ""
        assert models.significance_stars(np.nan) == ""


def test_run_models_pipeline_writes_tables(tmp_path, monkeypatch, analysis_panel):
    tables = {name: tmp_path / path.name for name, path in config.MODEL_TABLES.items()}
    monkeypatch.setattr(config, "MODEL_TABLES", tables)
    monkeypatch.setattr(config, "OUTPUTS_TABLES_DIR", tmp_path)

    panel_path = tmp_path / "panel_master.csv"
    analysis_panel.assign(log_fdi=np.nan).to_csv(panel_path, index=False)

    outputs = models.run_models_pipeline(panel_path=panel_path)

    hausman = pd.read_csv(outputs["hausman"])
    skipped = pd.read_csv(outputs["skipped"])
    assert set(hausman["outcome"]) == {"log_mpi_real"}
    assert len(skipped) == len(config.GOVERNANCE_INDICATORS) + 2
    assert skipped["model"].str.startswith("log_fdi").all()
