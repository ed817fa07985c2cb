"""
Tests for core/thresholds.py module.

This module tests quantity stratification of samples into Low/Medium/High.
"""
import numpy as np
import pandas as pd
import pytest

from methylation_qc.core.errors import InvalidInputError
from methylation_qc.core.thresholds import (
    HIGH,
    LOW,
    MEDIUM,
    GroupRule,
    classify,
    classify_samples,
    compute_thresholds,
    group_thresholds,
    rule_for_group,
    rules_from_dict,
)


@pytest.fixture
def samples():
    """Two tissues with nine samples each."""
    blood = pd.DataFrame(
        {
            "sample": [f"B{i}" for i in range(1, 10)],
            "group": "blood",
            "metric": np.arange(1, 10, dtype=float),
            "qubit_ng": np.arange(10, 100, 10, dtype=float),
        }
    )
    tissue = pd.DataFrame(
        {
            "sample": [f"T{i}" for i in range(1, 10)],
            "group": "tissue",
            "metric": np.arange(10, 100, 10, dtype=float),
            "qubit_ng": np.arange(1, 10, dtype=float),
        }
    )
    return pd.concat([blood, tissue], ignore_index=True)


class TestComputeThresholds:
    """Test compute_thresholds function."""

    def test_one_to_nine(self):
        """Tercile cuts of 1..9 lie inside the range and are ordered."""
        low_cut, high_cut = compute_thresholds(range(1, 10), 0.33, 0.67)

        assert low_cut < high_cut
        assert 1 <= low_cut <= 9
        assert 1 <= high_cut <= 9
        assert low_cut == pytest.approx(3.64)
        assert high_cut == pytest.approx(6.36)

    def test_matches_numpy_linear_quantile(self):
        """Cuts use linear interpolation between order statistics."""
        values = [5.2, 1.1, 9.8, 3.3, 7.7, 2.4]
        result = compute_thresholds(values, 0.25, 0.75)

        expected = np.quantile(values, [0.25, 0.75])
        assert result.low_cut == pytest.approx(expected[0])
        assert result.high_cut == pytest.approx(expected[1])

    def test_deterministic(self):
        """Same input gives the same cuts."""
        values = [0.3, 12.0, 4.5, 4.5, 8.1, 2.2, 9.9]
        assert compute_thresholds(values) == compute_thresholds(values)

    def test_single_value(self):
        """A single value gives equal cuts."""
        result = compute_thresholds([4.2])
        assert result.low_cut == result.high_cut == pytest.approx(4.2)

    def test_empty_values(self):
        """Empty input is rejected."""
        with pytest.raises(InvalidInputError):
            compute_thresholds([])

    def test_non_finite_values(self):
        """NaN and inf are rejected."""
        with pytest.raises(InvalidInputError):
            compute_thresholds([1.0, np.nan, 3.0])
        with pytest.raises(InvalidInputError):
            compute_thresholds([1.0, np.inf, 3.0])

    @pytest.mark.parametrize(
        "low_q, high_q",
        [(0.0, 0.67), (0.33, 1.0), (-0.1, 0.5), (0.67, 0.33), (0.5, 0.5)],
    )
    def test_invalid_quantiles(self, low_q, high_q):
        """Quantiles outside (0, 1) or unordered are rejected."""
        with pytest.raises(InvalidInputError):
            compute_thresholds([1, 2, 3], low_q, high_q)

    def test_invalid_input_is_value_error(self):
        """InvalidInputError can be caught as ValueError."""
        with pytest.raises(ValueError):
            compute_thresholds([])


class TestClassify:
    """Test classify function."""

    def test_levels(self):
        assert classify(1.0, 3.0, 6.0) == LOW
        assert classify(4.5, 3.0, 6.0) == MEDIUM
        assert classify(7.0, 3.0, 6.0) == HIGH

    def test_boundaries(self):
        """Values on a cut belong to the outer level."""
        assert classify(3.0, 3.0, 6.0) == LOW
        assert classify(6.0, 3.0, 6.0) == HIGH

    def test_equal_cuts_tie_break(self):
        """A value equal to both cuts is Low."""
        assert classify(5.0, 5.0, 5.0) == LOW
        assert classify(5.1, 5.0, 5.0) == HIGH
        assert classify(4.9, 5.0, 5.0) == LOW

    def test_exactly_one_label(self):
        """Low iff v <= lo, High iff v >= hi, Medium otherwise."""
        lo, hi = 2.5, 7.5
        for v in np.linspace(-5, 15, 201):
            label = classify(v, lo, hi)
            assert label in (LOW, MEDIUM, HIGH)
            assert (label == LOW) == (v <= lo)
            assert (label == HIGH) == (v >= hi)
            assert (label == MEDIUM) == (lo < v < hi)

    def test_unordered_cuts(self):
        with pytest.raises(InvalidInputError):
            classify(1.0, 6.0, 3.0)

    def test_non_finite_value(self):
        with pytest.raises(InvalidInputError):
            classify(float("nan"), 3.0, 6.0)


class TestGroupThresholds:
    """Test group_thresholds function."""

    def test_per_group_cuts(self, samples):
        thresholds = group_thresholds(samples)

        assert list(thresholds.index) == ["blood", "tissue"]
        assert thresholds.loc["blood", "low_cut"] == pytest.approx(3.64)
        assert thresholds.loc["tissue", "low_cut"] == pytest.approx(36.4)
        assert thresholds.loc["tissue", "n"] == 9
        assert (thresholds["metric"] == "metric").all()

    def test_group_specific_metric(self, samples):
        """Blood samples can use a different metric column."""
        rules = {"blood": GroupRule(metric="qubit_ng")}
        thresholds = group_thresholds(samples, rules=rules)

        assert thresholds.loc["blood", "metric"] == "qubit_ng"
        assert thresholds.loc["blood", "low_cut"] == pytest.approx(36.4)
        assert thresholds.loc["tissue", "metric"] == "metric"

    def test_fixed_cuts(self, samples):
        rules = {"tissue": GroupRule(fixed_cuts=(25.0, 75.0))}
        thresholds = group_thresholds(samples, rules=rules)

        assert thresholds.loc["tissue", "low_cut"] == 25.0
        assert thresholds.loc["tissue", "high_cut"] == 75.0

    def test_unordered_fixed_cuts(self, samples):
        rules = {"tissue": GroupRule(fixed_cuts=(75.0, 25.0))}
        with pytest.raises(InvalidInputError, match="tissue"):
            group_thresholds(samples, rules=rules)

    def test_missing_metric_names_group(self, samples):
        rules = {"blood": GroupRule(metric="nanodrop_ng")}
        with pytest.raises(InvalidInputError, match="blood.*nanodrop_ng"):
            group_thresholds(samples, rules=rules)

    def test_non_finite_metric_names_sample(self, samples):
        samples.loc[samples["sample"] == "T3", "metric"] = np.nan
        with pytest.raises(InvalidInputError, match="T3"):
            group_thresholds(samples)

    def test_missing_group_label(self, samples):
        samples.loc[samples["sample"] == "B2", "group"] = None
        with pytest.raises(InvalidInputError, match="B2"):
            group_thresholds(samples)

    def test_unknown_group_without_default(self, samples):
        rules = {"blood": GroupRule()}
        with pytest.raises(InvalidInputError, match="tissue"):
            group_thresholds(samples, rules=rules, default_rule=None)

    def test_empty_table(self):
        empty = pd.DataFrame(columns=["sample", "group", "metric"])
        with pytest.raises(InvalidInputError):
            group_thresholds(empty)

    def test_missing_group_column(self, samples):
        with pytest.raises(InvalidInputError, match="tissue_type"):
            group_thresholds(samples, group_col="tissue_type")


class TestClassifySamples:
    """Test classify_samples function."""

    def test_terciles(self, samples):
        annotated, _ = classify_samples(samples)
        levels = dict(zip(annotated["sample"], annotated["quantity_level"]))

        assert [levels[f"B{i}"] for i in range(1, 10)] == (
            [LOW] * 3 + [MEDIUM] * 3 + [HIGH] * 3
        )
        assert [levels[f"T{i}"] for i in range(1, 10)] == (
            [LOW] * 3 + [MEDIUM] * 3 + [HIGH] * 3
        )

    def test_records_metric_used(self, samples):
        rules = {"blood": GroupRule(metric="qubit_ng")}
        annotated, _ = classify_samples(samples, rules=rules)
        b1 = annotated.set_index("sample").loc["B1"]

        assert b1["level_metric"] == "qubit_ng"
        assert b1["level_value"] == 10.0

    def test_input_not_modified(self, samples):
        before = samples.copy()
        classify_samples(samples)
        pd.testing.assert_frame_equal(samples, before)

    def test_idempotent(self, samples):
        """Classifying labelled output again gives the same labels."""
        first, _ = classify_samples(samples)
        second, _ = classify_samples(first)

        assert first["quantity_level"].tolist() == second["quantity_level"].tolist()
        assert list(second.columns) == list(first.columns)

    def test_stale_labels_recomputed(self, samples):
        stale = samples.assign(quantity_level="High")
        annotated, _ = classify_samples(stale)
        assert annotated.set_index("sample").loc["B1", "quantity_level"] == LOW


class TestRules:
    """Test rule lookup and construction."""

    def test_rule_for_group_fallback(self):
        default = GroupRule(metric="x")
        assert rule_for_group("liver", {}, default) is default

    def test_rules_from_dict(self):
        rules = rules_from_dict(
            {
                "blood": {"metric": "qubit_ng", "low_quantile": 0.25},
                "tissue": {"fixed_cuts": [10, 50]},
            }
        )
        assert rules["blood"] == GroupRule(metric="qubit_ng", low_quantile=0.25)
        assert rules["tissue"].fixed_cuts == (10.0, 50.0)

    def test_rules_from_dict_unknown_key(self):
        with pytest.raises(InvalidInputError, match="blood"):
            rules_from_dict({"blood": {"column": "qubit_ng"}})
