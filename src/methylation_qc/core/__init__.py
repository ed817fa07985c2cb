"""
Classification and filtering rules for methylation array QC reports.
"""

from .errors import InvalidInputError
from .thresholds import (
    GroupRule,
    Thresholds,
    classify,
    classify_samples,
    compute_thresholds,
    group_thresholds,
)
from .qc import (
    combine_flags,
    detection_summary,
    flag_sample,
    flag_samples,
    fraction_detected,
)
from .probes import drop_snp_probes, filter_probes, probe_filter_summary

__all__ = [
    "InvalidInputError",
    "GroupRule",
    "Thresholds",
    "classify",
    "classify_samples",
    "compute_thresholds",
    "group_thresholds",
    "combine_flags",
    "detection_summary",
    "flag_sample",
    "flag_samples",
    "fraction_detected",
    "drop_snp_probes",
    "filter_probes",
    "probe_filter_summary",
]
