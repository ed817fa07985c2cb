"""
Tests for core/plots.py module.

Since plotting functions create figures, we focus on testing that they:
1. Accept correct input formats
2. Return expected figure objects
3. Don't crash with edge cases
"""
import pytest
import pandas as pd
import numpy as np
import matplotlib
matplotlib.use('Agg')  # Use non-interactive backend for tests
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from methylation_qc.core.plots import (
    plot_qc_intensities,
    plot_detection_means,
    plot_quantity_levels,
)
from methylation_qc.core.qc import detection_summary, flag_samples
from methylation_qc.core.thresholds import classify_samples


@pytest.fixture
def qc_table():
    return pd.DataFrame(
        {"mMed": [11.5, 12.0, 9.8, 11.1], "uMed": [11.0, 11.4, 9.9, 10.8]},
        index=["S1", "S2", "S3", "S4"],
    )


@pytest.fixture
def samples():
    return pd.DataFrame(
        {
            "sample": [f"S{i}" for i in range(12)],
            "group": ["blood", "buccal", "saliva"] * 4,
            "metric": np.linspace(1, 50, 12),
        }
    )


class TestPlotQCIntensities:
    """Test plot_qc_intensities function."""

    def test_with_flags(self, qc_table):
        fig = plot_qc_intensities(flag_samples(qc_table))
        assert isinstance(fig, Figure)
        plt.close(fig)

    def test_derives_flags(self, qc_table):
        fig = plot_qc_intensities(qc_table, cutoff=11.0, label_bad=False)
        assert isinstance(fig, Figure)
        plt.close(fig)

    def test_all_good(self, qc_table):
        fig = plot_qc_intensities(qc_table, cutoff=5.0, title="All good")
        assert fig.axes[0].get_title() == "All good"
        plt.close(fig)


class TestPlotDetectionMeans:
    """Test plot_detection_means function."""

    def test_with_groups(self):
        rng = np.random.default_rng(1)
        det = pd.DataFrame(
            rng.uniform(0, 0.1, size=(50, 4)), columns=["S1", "S2", "S3", "S4"]
        )
        summary = detection_summary(det, alpha=0.05)
        groups = pd.Series(["a", "a", "b", "b"], index=["S1", "S2", "S3", "S4"])

        fig = plot_detection_means(summary, alpha=0.05, groups=groups)
        assert isinstance(fig, Figure)
        plt.close(fig)

    def test_without_groups(self):
        det = pd.DataFrame({"S1": [0.001, 0.2], "S2": [0.01, 0.02]})
        fig = plot_detection_means(detection_summary(det))
        assert isinstance(fig, Figure)
        plt.close(fig)


class TestPlotQuantityLevels:
    """Test plot_quantity_levels function."""

    def test_three_groups(self, samples):
        annotated, thresholds = classify_samples(samples)
        fig = plot_quantity_levels(annotated, thresholds)
        assert isinstance(fig, Figure)
        plt.close(fig)
