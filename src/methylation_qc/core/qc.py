"""
Sample quality flags for methylation arrays.

Two independent checks are provided:

- intensity QC: the average of the median log2 methylated (mMed) and
  unmethylated (uMed) channel intensities must reach a fixed cutoff
  (10.5 in the standard report), otherwise the sample is flagged bad;
- detection QC: per-sample summaries of the detection p-value matrix,
  flagging samples whose mean detection p-value reaches alpha.

Intensity medians and detection p-values are produced upstream by the
array processing library; nothing here reads raw array data.
"""

import math
from typing import Iterable, List

import numpy as np
import pandas as pd
from pandas import DataFrame, Series

from .errors import InvalidInputError

GOOD = "good"
BAD = "bad"

DEFAULT_INTENSITY_CUTOFF = 10.5


def _check_alpha(alpha: float) -> None:
    if not (0.0 < alpha < 1.0):
        raise InvalidInputError(f"alpha must lie in (0, 1), got {alpha!r}")


def flag_sample(
    metric_a: float, metric_b: float, cutoff: float = DEFAULT_INTENSITY_CUTOFF
) -> str:
    """
    Flag a sample from two paired intensity medians.

    The sample is bad when (metric_a + metric_b) / 2 is strictly below
    `cutoff`, good otherwise.

    Parameters
    ----------
    metric_a : float
        First metric, e.g. median methylated log2 intensity.
    metric_b : float
        Second metric, e.g. median unmethylated log2 intensity.
    cutoff : float
        Minimum acceptable average.

    Returns
    -------
    str
        "good" or "bad".
    """
    if not all(math.isfinite(x) for x in (metric_a, metric_b, cutoff)):
        raise InvalidInputError(
            f"flag_sample() needs finite inputs, got ({metric_a!r}, "
            f"{metric_b!r}, cutoff={cutoff!r})"
        )
    return BAD if (metric_a + metric_b) / 2 < cutoff else GOOD


def fraction_detected(p_values: Iterable[float], alpha: float) -> float:
    """
    Fraction of probes detected at `alpha`: 1 - #(p >= alpha) / #p.

    A missing (NaN) p-value counts as not detected.
    """
    _check_alpha(alpha)
    arr = np.asarray(list(p_values), dtype=float)
    if arr.size == 0:
        raise InvalidInputError(
            "Cannot compute detected fraction of empty p-values"
        )
    return 1.0 - float(np.count_nonzero(~(arr < alpha))) / arr.size


def flag_samples(
    qc: DataFrame,
    m_col: str = "mMed",
    u_col: str = "uMed",
    cutoff: float = DEFAULT_INTENSITY_CUTOFF,
    flag_col: str = "qc_flag",
) -> DataFrame:
    """
    Apply the intensity cutoff to a per-sample QC table.

    Parameters
    ----------
    qc : DataFrame
        One row per sample (index = sample id) with the two median columns.
    m_col, u_col : str
        Columns of the methylated / unmethylated medians.
    cutoff : float
        Bad-sample cutoff on the mean of both medians.
    flag_col : str
        Name of the output flag column.

    Returns
    -------
    DataFrame
        Copy of `qc` with 'meanMed' and `flag_col` columns.
    """
    missing = [c for c in (m_col, u_col) if c not in qc.columns]
    if missing:
        raise InvalidInputError(
            f"QC table missing columns {missing}. Found: {list(qc.columns)}"
        )
    if qc.empty:
        raise InvalidInputError("QC table is empty")
    if not math.isfinite(cutoff):
        raise InvalidInputError(f"cutoff must be finite, got {cutoff!r}")

    pair = qc[[m_col, u_col]].apply(pd.to_numeric, errors="coerce")
    non_finite = ~np.isfinite(pair.to_numpy(dtype=float)).all(axis=1)
    if non_finite.any():
        raise InvalidInputError(
            f"Non-finite {m_col}/{u_col} values for samples "
            f"{qc.index[non_finite].astype(str).tolist()}"
        )

    flagged = qc.copy()
    flagged["meanMed"] = pair.mean(axis=1)
    flagged[flag_col] = np.where(flagged["meanMed"] < cutoff, BAD, GOOD)
    return flagged


def detection_summary(
    detection: DataFrame,
    alpha: float = 0.05,
    flag_col: str = "detection_flag",
) -> DataFrame:
    """
    Summarise a probe x sample detection p-value matrix per sample.

    Returns
    -------
    DataFrame
        Indexed by sample with columns:
        - mean_detection_p: mean p-value over all probes
        - fraction_detected: fraction of probes with p < alpha
        - `flag_col`: "bad" when mean_detection_p >= alpha
    """
    _check_alpha(alpha)
    if detection.shape[0] == 0 or detection.shape[1] == 0:
        raise InvalidInputError("Detection p-value matrix is empty")

    records: List[dict] = []
    for sample in detection.columns:
        p_values = detection[sample].to_numpy(dtype=float)
        # all-NaN columns stay NaN and end up flagged bad
        mean_p = np.nan
        if np.isfinite(p_values).any():
            mean_p = float(np.nanmean(p_values))
        records.append(
            {
                "sample": sample,
                "mean_detection_p": mean_p,
                "fraction_detected": fraction_detected(p_values, alpha),
                flag_col: GOOD if mean_p < alpha else BAD,
            }
        )
    return pd.DataFrame(records).set_index("sample")


def combine_flags(*flags: Series) -> Series:
    """
    Merge several good/bad flag series; good only if good everywhere.

    Samples missing from one of the series count as bad.
    """
    if not flags:
        raise InvalidInputError("combine_flags() needs at least one series")
    index = flags[0].index
    for flag in flags[1:]:
        index = index.union(flag.index, sort=False)
    good = pd.Series(True, index=index)
    for flag in flags:
        good &= flag.reindex(index).eq(GOOD)
    return pd.Series(np.where(good, GOOD, BAD), index=index, name="qc_flag")
