"""
Probe filtering on detection p-values and known SNP overlaps.
"""

import warnings
from typing import Dict, Iterable, Optional, Set

import numpy as np
from pandas import DataFrame

from .errors import InvalidInputError

DEFAULT_PROBE_ALPHA = 0.01


def _detected_mask(detection: DataFrame, alpha: float) -> np.ndarray:
    if not (0.0 < alpha < 1.0):
        raise InvalidInputError(f"alpha must lie in (0, 1), got {alpha!r}")
    if detection.shape[0] == 0 or detection.shape[1] == 0:
        raise InvalidInputError("Detection p-value matrix is empty")
    values = detection.to_numpy(dtype=float)
    # NaN compares False, so a missing p-value fails the probe
    return (values < alpha).all(axis=1)


def drop_snp_probes(
    probe_ids: Iterable[str], snp_probes: Optional[Iterable[str]]
) -> Set[str]:
    """
    Remove probes listed in an externally supplied SNP exclusion list.

    Matching is by exact identifier.
    """
    probe_ids = set(probe_ids)
    if not snp_probes:
        return probe_ids
    return probe_ids - set(snp_probes)


def filter_probes(
    detection: DataFrame,
    alpha: float = DEFAULT_PROBE_ALPHA,
    exclude: Optional[Iterable[str]] = None,
) -> Set[str]:
    """
    Select probes detected in every sample and not overlapping SNPs.

    Parameters
    ----------
    detection : DataFrame
        Detection p-values, rows = probes (index = probe id), columns =
        samples.
    alpha : float
        A probe is kept only if its p-value is strictly below alpha in
        every sample.
    exclude : iterable of str, optional
        Probe ids overlapping known polymorphic sites.

    Returns
    -------
    set
        Ids of retained probes.
    """
    keep = _detected_mask(detection, alpha)
    detected = detection.index[keep]
    return drop_snp_probes(detected, exclude)


def probe_filter_summary(
    detection: DataFrame,
    alpha: float = DEFAULT_PROBE_ALPHA,
    exclude: Optional[Iterable[str]] = None,
) -> Dict[str, int]:
    """
    Count probes removed at each filtering step.

    Returns
    -------
    dict
        total, failed_detection, snp_overlap, retained. snp_overlap only
        counts probes that passed detection.
    """
    keep = _detected_mask(detection, alpha)
    detected = set(detection.index[keep])
    exclude = set(exclude) if exclude else set()
    unknown = exclude - set(detection.index)
    if exclude and len(unknown) == len(exclude):
        warnings.warn(
            "None of the SNP probe ids occur in the detection matrix; "
            "check the probe id format"
        )
    retained = detected - exclude
    return {
        "total": int(detection.shape[0]),
        "failed_detection": int(detection.shape[0] - keep.sum()),
        "snp_overlap": len(detected & exclude),
        "retained": len(retained),
    }
