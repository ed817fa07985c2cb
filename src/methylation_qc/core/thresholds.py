"""
Quantity stratification of samples into Low/Medium/High levels.

Cut points are computed per stratifying group (e.g. tissue) from the
empirical distribution of a quantity metric such as the DNA input amount.
Which metric column and which quantile pair (or fixed cut points) apply to
a group is configured with a mapping of group name to GroupRule, so blood
and solid tissue samples can be stratified on different measurements.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

import numpy as np
import pandas as pd
from pandas import DataFrame

from .errors import InvalidInputError

LOW = "Low"
MEDIUM = "Medium"
HIGH = "High"
LEVELS = (LOW, MEDIUM, HIGH)

DEFAULT_LOW_QUANTILE = 0.33
DEFAULT_HIGH_QUANTILE = 0.67


class Thresholds(NamedTuple):
    """Low and high cut points of one group; low_cut <= high_cut."""

    low_cut: float
    high_cut: float


@dataclass(frozen=True)
class GroupRule:
    """
    Stratification rule for one group of samples.

    Attributes
    ----------
    metric : str
        Column of the sample table holding the quantity metric.
    low_quantile : float
        Quantile used for the Low/Medium cut point.
    high_quantile : float
        Quantile used for the Medium/High cut point.
    fixed_cuts : tuple of float, optional
        (low_cut, high_cut) used as-is instead of empirical quantiles.
    """

    metric: str = "metric"
    low_quantile: float = DEFAULT_LOW_QUANTILE
    high_quantile: float = DEFAULT_HIGH_QUANTILE
    fixed_cuts: Optional[Tuple[float, float]] = None


def _check_quantiles(low_quantile: float, high_quantile: float) -> None:
    for q in (low_quantile, high_quantile):
        if not (0.0 < q < 1.0):
            raise InvalidInputError(
                f"Quantiles must lie in (0, 1), got {q!r}"
            )
    if low_quantile >= high_quantile:
        raise InvalidInputError(
            f"low_quantile ({low_quantile}) must be smaller than "
            f"high_quantile ({high_quantile})"
        )


def compute_thresholds(
    values: Iterable[float],
    low_quantile: float = DEFAULT_LOW_QUANTILE,
    high_quantile: float = DEFAULT_HIGH_QUANTILE,
) -> Thresholds:
    """
    Compute the (low_cut, high_cut) pair from empirical quantiles.

    Quantiles are linearly interpolated between order statistics, which
    matches R's default quantile estimator (type 7).

    Parameters
    ----------
    values : iterable of float
        Metric values of one group. Must be non-empty and finite.
    low_quantile : float
        Lower quantile in (0, 1).
    high_quantile : float
        Upper quantile in (0, 1), larger than low_quantile.

    Returns
    -------
    Thresholds
        Named tuple (low_cut, high_cut) with low_cut <= high_cut.
    """
    _check_quantiles(low_quantile, high_quantile)
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        raise InvalidInputError("Cannot compute thresholds from empty values")
    if not np.isfinite(arr).all():
        raise InvalidInputError(
            "Cannot compute thresholds from non-finite values"
        )
    low_cut, high_cut = np.quantile(
        arr, [low_quantile, high_quantile], method="linear"
    )
    return Thresholds(float(low_cut), float(high_cut))


def classify(value: float, low_cut: float, high_cut: float) -> str:
    """
    Label a value Low, Medium or High against a pair of cut points.

    value <= low_cut is Low, value >= high_cut is High, anything in between
    is Medium. The Low branch is tested first, so a value equal to both cuts
    (low_cut == high_cut) is Low.
    """
    if not all(math.isfinite(x) for x in (value, low_cut, high_cut)):
        raise InvalidInputError(
            f"classify() needs finite inputs, got value={value!r}, "
            f"low_cut={low_cut!r}, high_cut={high_cut!r}"
        )
    if low_cut > high_cut:
        raise InvalidInputError(
            f"low_cut ({low_cut}) must not exceed high_cut ({high_cut})"
        )
    if value <= low_cut:
        return LOW
    if value >= high_cut:
        return HIGH
    return MEDIUM


def rule_for_group(
    group: str,
    rules: Optional[Mapping[str, GroupRule]] = None,
    default_rule: Optional[GroupRule] = None,
) -> GroupRule:
    """Look up the rule of a group, falling back to the default rule."""
    rules = rules or {}
    if group in rules:
        return rules[group]
    if default_rule is not None:
        return default_rule
    raise InvalidInputError(
        f"No stratification rule configured for group '{group}'"
    )


def _group_values(
    group_df: DataFrame, group: str, rule: GroupRule, id_col: str
) -> pd.Series:
    if rule.metric not in group_df.columns:
        raise InvalidInputError(
            f"Group '{group}': metric column '{rule.metric}' not found in "
            "sample table"
        )
    values = pd.to_numeric(group_df[rule.metric], errors="coerce")
    bad = ~np.isfinite(values.to_numpy(dtype=float))
    if bad.any():
        offenders = group_df.loc[bad, id_col].astype(str).tolist()
        raise InvalidInputError(
            f"Group '{group}': non-finite '{rule.metric}' values for "
            f"samples {offenders}"
        )
    return values


def group_thresholds(
    samples: DataFrame,
    group_col: str = "group",
    rules: Optional[Mapping[str, GroupRule]] = None,
    default_rule: Optional[GroupRule] = GroupRule(),
    id_col: str = "sample",
) -> DataFrame:
    """
    Compute cut points for every group present in a sample table.

    Parameters
    ----------
    samples : DataFrame
        Sample table with identifier, group and metric columns.
    group_col : str
        Column holding the stratifying group label.
    rules : dict, optional
        Mapping group label -> GroupRule.
    default_rule : GroupRule, optional
        Rule for groups missing from `rules`. None makes unknown groups an
        error.
    id_col : str
        Column holding the sample identifier, used in error messages.

    Returns
    -------
    DataFrame
        Indexed by group, columns: metric, low_cut, high_cut, n.
    """
    for col in (id_col, group_col):
        if col not in samples.columns:
            raise InvalidInputError(
                f"Column '{col}' not found in sample table. "
                f"Available columns: {list(samples.columns)}"
            )
    if samples.empty:
        raise InvalidInputError("Sample table is empty")
    unlabelled = samples[group_col].isna()
    if unlabelled.any():
        raise InvalidInputError(
            f"Missing '{group_col}' label for samples "
            f"{samples.loc[unlabelled, id_col].astype(str).tolist()}"
        )

    records: List[Dict] = []
    for group, group_df in samples.groupby(group_col, sort=True):
        rule = rule_for_group(group, rules, default_rule)
        values = _group_values(group_df, group, rule, id_col)
        if rule.fixed_cuts is not None:
            low_cut, high_cut = (float(c) for c in rule.fixed_cuts)
            if low_cut > high_cut:
                raise InvalidInputError(
                    f"Group '{group}': fixed cuts {rule.fixed_cuts} are "
                    "not ordered"
                )
        else:
            try:
                low_cut, high_cut = compute_thresholds(
                    values, rule.low_quantile, rule.high_quantile
                )
            except InvalidInputError as exc:
                raise InvalidInputError(f"Group '{group}': {exc}") from exc
        records.append(
            {
                group_col: group,
                "metric": rule.metric,
                "low_cut": low_cut,
                "high_cut": high_cut,
                "n": len(values),
            }
        )
    return pd.DataFrame(records).set_index(group_col)


def classify_samples(
    samples: DataFrame,
    id_col: str = "sample",
    group_col: str = "group",
    rules: Optional[Mapping[str, GroupRule]] = None,
    default_rule: Optional[GroupRule] = GroupRule(),
    level_col: str = "quantity_level",
) -> Tuple[DataFrame, DataFrame]:
    """
    Assign a quantity level to every sample, per stratifying group.

    An existing `level_col` is dropped and recomputed, so feeding the
    annotated output back in gives the same labels.

    Returns
    -------
    tuple
        (annotated, thresholds) where:
        - annotated: copy of `samples` plus 'level_metric', 'level_value'
          and `level_col` columns
        - thresholds: DataFrame from group_thresholds()
    """
    base = samples.drop(
        columns=[
            c
            for c in (level_col, "level_metric", "level_value")
            if c in samples.columns
        ]
    )
    thresholds = group_thresholds(
        base,
        group_col=group_col,
        rules=rules,
        default_rule=default_rule,
        id_col=id_col,
    )

    annotated = base.copy()
    metrics, values, levels = [], [], []
    for _, row in annotated.iterrows():
        cuts = thresholds.loc[row[group_col]]
        value = float(row[cuts["metric"]])
        metrics.append(cuts["metric"])
        values.append(value)
        levels.append(classify(value, cuts["low_cut"], cuts["high_cut"]))
    annotated["level_metric"] = metrics
    annotated["level_value"] = values
    annotated[level_col] = pd.Categorical(levels, categories=list(LEVELS))
    return annotated, thresholds


def rules_from_dict(config: Mapping[str, Mapping]) -> Dict[str, GroupRule]:
    """
    Build GroupRules from plain mappings, e.g. parsed JSON/YAML.

    >>> rules_from_dict({"blood": {"metric": "qubit_ng"}})
    {'blood': GroupRule(metric='qubit_ng', low_quantile=0.33, high_quantile=0.67, fixed_cuts=None)}
    """
    rules = {}
    for group, params in config.items():
        params = dict(params)
        if params.get("fixed_cuts") is not None:
            params["fixed_cuts"] = tuple(float(c) for c in params["fixed_cuts"])
        try:
            rules[group] = GroupRule(**params)
        except TypeError as exc:
            raise InvalidInputError(f"Group '{group}': {exc}") from exc
    return rules
