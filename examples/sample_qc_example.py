"""
Example script demonstrating methylation sample QC.

This script shows how to use the QC rules both standalone and integrated
with pypipegraph workflows.
"""

from pathlib import Path

from methylation_qc.core.thresholds import GroupRule
from methylation_qc.services.io import generate_sample_qc_report
from methylation_qc.jobs.qc_jobs import sample_qc_report_job


# Blood DNA is quantified on the Qubit, solid tissue on the NanoDrop
RULES = {
    "blood": GroupRule(metric="qubit_ng_ul"),
    "tumor": GroupRule(metric="nanodrop_ng_ul"),
    "normal": GroupRule(metric="nanodrop_ng_ul"),
}


def example_standalone_analysis():
    """
    Example: Run the sample QC report standalone (no pypipegraph).
    """
    report = generate_sample_qc_report(
        output_dir="results/qc/samples",
        sample_sheet="incoming/sample_sheet.tsv",
        qc_table="results/minfi/qc_medians.tsv",
        detection="results/minfi/detection_p.tsv",
        snp_probes="incoming/snp_probes.txt",
        rules=RULES,
        default_rule=None,
        save_formats=["png", "pdf"],
    )

    flags = report["flags"]
    bad = flags.index[flags["sample_flag"] == "bad"].tolist()

    print("\n" + "=" * 60)
    print("Sample QC Summary")
    print("=" * 60)
    print(report["thresholds"])
    print(report["levels"]["quantity_level"].value_counts())
    print(f"Bad samples: {bad if bad else 'none'}")
    print(f"Retained probes: {len(report['retained_probes'])}")


def example_pypipegraph_integration():
    """
    Example: Register the sample QC report as a pypipegraph job.
    """
    import pypipegraph2 as ppg

    ppg.new()
    sample_qc_report_job(
        output_dir=Path("results/qc/samples"),
        sample_sheet="incoming/sample_sheet.tsv",
        qc_table="results/minfi/qc_medians.tsv",
        detection="results/minfi/detection_p.tsv",
        snp_probes="incoming/snp_probes.txt",
        rules=RULES,
        default_rule=None,
    )
    ppg.run()


if __name__ == "__main__":
    example_standalone_analysis()
