"""
Tests for jobs/qc_jobs.py module.

Only job construction is checked here; running the graph is left to
pipeline integration runs.
"""
import pytest

ppg = pytest.importorskip("pypipegraph2")

from methylation_qc.core.thresholds import GroupRule
from methylation_qc.jobs.qc_jobs import (
    _rules_key,
    probe_filter_job,
    sample_levels_job,
    sample_qc_report_job,
)


@pytest.fixture
def new_graph(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    ppg.new()
    yield tmp_path


class TestJobs:
    """Test pypipegraph job factories."""

    def test_sample_levels_job(self, new_graph):
        job = sample_levels_job(
            "incoming/samples.tsv",
            "results/levels",
            rules={"blood": GroupRule(metric="qubit_ng")},
        )
        assert isinstance(job, ppg.MultiFileGeneratingJob)
        assert (new_graph / "results" / "levels").exists()

    def test_probe_filter_job(self, new_graph):
        job = probe_filter_job(
            "incoming/detection.tsv",
            "results/probes",
            snp_probes="incoming/snp_probes.txt",
        )
        assert isinstance(job, ppg.MultiFileGeneratingJob)

    def test_sample_qc_report_job(self, new_graph):
        job = sample_qc_report_job(
            "results/report",
            sample_sheet="incoming/samples.tsv",
            detection="incoming/detection.tsv",
        )
        assert isinstance(job, ppg.MultiFileGeneratingJob)

    def test_sample_qc_report_job_with_rules(self, new_graph):
        job = sample_qc_report_job(
            "results/report",
            sample_sheet="incoming/samples.tsv",
            id_col="id",
            group_col="tissue",
            rules={"blood": GroupRule(metric="qubit_ng")},
            default_rule=None,
            save_formats=["png"],
        )
        assert isinstance(job, ppg.MultiFileGeneratingJob)

    def test_sample_qc_report_job_needs_input(self, new_graph):
        with pytest.raises(ValueError):
            sample_qc_report_job("results/report")


class TestRulesKey:
    """Test parameter keys for rule mappings."""

    def test_order_independent(self):
        a = {"blood": GroupRule(metric="x"), "liver": GroupRule()}
        b = {"liver": GroupRule(), "blood": GroupRule(metric="x")}
        assert _rules_key(a, GroupRule()) == _rules_key(b, GroupRule())

    def test_rule_change_changes_key(self):
        a = {"blood": GroupRule(metric="x")}
        b = {"blood": GroupRule(metric="y")}
        assert _rules_key(a, None) != _rules_key(b, None)
