"""
QC figures for the sample and probe rules.
"""

from typing import Optional, Tuple

import matplotlib.pyplot as plt  # type: ignore
import numpy as np
import pandas as pd  # type: ignore
import seaborn as sns  # type: ignore
from matplotlib.figure import Figure  # type: ignore
from pandas import DataFrame  # type: ignore

from .qc import BAD, DEFAULT_INTENSITY_CUTOFF, GOOD
from .thresholds import LEVELS

LEVEL_COLORS = {"Low": "#d95f02", "Medium": "#7570b3", "High": "#1b9e77"}
FLAG_COLORS = {GOOD: "#1f77b4", BAD: "#d62728"}


def plot_qc_intensities(
    qc: DataFrame,
    m_col: str = "mMed",
    u_col: str = "uMed",
    cutoff: float = DEFAULT_INTENSITY_CUTOFF,
    flag_col: str = "qc_flag",
    label_bad: bool = True,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (6, 6),
) -> Figure:
    """
    Scatter of median methylated vs unmethylated intensity per sample.

    The dashed line marks (mMed + uMed) / 2 == cutoff; samples below it are
    bad. If `flag_col` is missing, flags are derived from the cutoff.

    Parameters
    ----------
    qc : DataFrame
        Per-sample table, index = sample id.
    m_col, u_col : str
        Median intensity columns.
    cutoff : float
        Bad-sample cutoff.
    flag_col : str
        Column with "good"/"bad" flags.
    label_bad : bool
        Annotate bad samples with their id.
    title : str, optional
        Plot title.
    figsize : tuple
        Figure size.

    Returns
    -------
    Figure
        Matplotlib figure
    """
    if flag_col in qc.columns:
        flags = qc[flag_col]
    else:
        mean = (qc[m_col] + qc[u_col]) / 2
        flags = pd.Series(np.where(mean < cutoff, BAD, GOOD), index=qc.index)

    fig, ax = plt.subplots(figsize=figsize)
    for flag, color in FLAG_COLORS.items():
        mask = flags == flag
        if mask.any():
            ax.scatter(
                qc.loc[mask, m_col],
                qc.loc[mask, u_col],
                c=color,
                label=f"{flag} (n={int(mask.sum())})",
                alpha=0.8,
                edgecolors="none",
            )
    if label_bad:
        for sample in qc.index[flags == BAD]:
            ax.annotate(
                str(sample),
                (qc.at[sample, m_col], qc.at[sample, u_col]),
                fontsize=8,
                xytext=(3, 3),
                textcoords="offset points",
            )

    lo = min(qc[m_col].min(), qc[u_col].min(), cutoff) - 0.5
    hi = max(qc[m_col].max(), qc[u_col].max(), cutoff) + 0.5
    xs = np.linspace(lo, hi, 50)
    ax.plot(xs, 2 * cutoff - xs, ls="--", c="grey", lw=1, label=f"cutoff {cutoff}")
    ax.set_xlim(lo, hi)
    ax.set_ylim(lo, hi)
    ax.set_xlabel("Meth median intensity (log2)")
    ax.set_ylabel("Unmeth median intensity (log2)")
    ax.set_title(title or "Sample intensity QC")
    ax.legend(loc="lower right", fontsize=8)
    plt.tight_layout()
    return fig


def plot_detection_means(
    summary: DataFrame,
    alpha: float = 0.05,
    groups: Optional[pd.Series] = None,
    mean_col: str = "mean_detection_p",
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (10, 5),
) -> Figure:
    """
    Bar plot of mean detection p-value per sample with the alpha line.

    `summary` is the output of detection_summary(); `groups` optionally maps
    sample id -> group label for bar colours.
    """
    data = summary[[mean_col]].copy()
    data["sample"] = data.index.astype(str)
    if groups is not None:
        data["group"] = groups.reindex(summary.index).fillna("NA").astype(str)
    else:
        data["group"] = "all"

    width = max(figsize[0], 0.3 * len(data))
    fig, ax = plt.subplots(figsize=(width, figsize[1]))
    sns.barplot(
        data=data,
        x="sample",
        y=mean_col,
        hue="group",
        dodge=False,
        ax=ax,
    )
    ax.axhline(alpha, color="red", ls="--", lw=1)
    ax.set_ylabel("Mean detection p-value")
    ax.set_xlabel("")
    ax.tick_params(axis="x", labelrotation=90)
    if groups is None and ax.get_legend() is not None:
        ax.get_legend().remove()
    ax.set_title(title or f"Mean detection p-values (alpha = {alpha})")
    plt.tight_layout()
    return fig


def plot_quantity_levels(
    annotated: DataFrame,
    thresholds: DataFrame,
    group_col: str = "group",
    level_col: str = "quantity_level",
    value_col: str = "level_value",
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (8, 5),
) -> Figure:
    """
    Strip plot of the stratification metric per group coloured by level.

    Short horizontal lines mark each group's low and high cut.
    """
    data = annotated[[group_col, level_col, value_col]].copy()
    data[level_col] = data[level_col].astype(str)
    order = list(thresholds.index)

    fig, ax = plt.subplots(figsize=figsize)
    sns.stripplot(
        data=data,
        x=group_col,
        y=value_col,
        hue=level_col,
        hue_order=list(LEVELS),
        order=order,
        palette=LEVEL_COLORS,
        jitter=0.15,
        ax=ax,
    )
    for i, group in enumerate(order):
        for cut in ("low_cut", "high_cut"):
            ax.hlines(
                thresholds.at[group, cut],
                i - 0.35,
                i + 0.35,
                colors="grey",
                linestyles="--",
                lw=1,
            )
    ax.set_xlabel("")
    ax.set_ylabel("Quantity metric")
    ax.set_title(title or "Quantity levels per group")
    plt.tight_layout()
    return fig
