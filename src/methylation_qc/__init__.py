"""
Methylation QC – sample stratification and filtering rules for array reports.

This package provides:
- core: quantity levels, intensity/detection flags, probe filtering, plots
- services: file input/output and the combined sample QC report
- jobs: pypipegraph2 wrappers
- main: command line interface
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("methylation-qc")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"


from .core import (
    InvalidInputError,
    GroupRule,
    classify,
    classify_samples,
    compute_thresholds,
    detection_summary,
    filter_probes,
    flag_sample,
    flag_samples,
    fraction_detected,
)
from .services.io import generate_sample_qc_report

__all__ = [
    "InvalidInputError",
    "GroupRule",
    "classify",
    "classify_samples",
    "compute_thresholds",
    "detection_summary",
    "filter_probes",
    "flag_sample",
    "flag_samples",
    "fraction_detected",
    "generate_sample_qc_report",
]
