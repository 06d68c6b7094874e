"""
Disparity: the spread of specimens in an ordination space.

Disparity metrics summarize a score matrix (specimens x axes) with one
number. Computed per group, with bootstrap resampling and optional
rarefaction, they give disparity-through-time when groups are time bins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Hashable, Sequence

import numpy as np
import pandas as pd

from morphospace.ordination import OrdinationResult
from morphospace.stats import align_groups

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def sum_of_variances(scores: NDArray[np.floating]) -> float:
    return float(scores.var(axis=0, ddof=1).sum())


def sum_of_ranges(scores: NDArray[np.floating]) -> float:
    return float((scores.max(axis=0) - scores.min(axis=0)).sum())


def product_of_variances(scores: NDArray[np.floating]) -> float:
    """Geometric mean of the per-axis variances."""
    variances = scores.var(axis=0, ddof=1)
    return float(np.prod(variances) ** (1 / len(variances)))


def centroid_distance(scores: NDArray[np.floating]) -> float:
    """Median Euclidean distance of specimens to their centroid."""
    return float(np.median(np.linalg.norm(scores - scores.mean(axis=0), axis=1)))


DISPARITY_METRICS: dict[str, Callable[[NDArray[np.floating]], float]] = {
    "sum_of_variances": sum_of_variances,
    "sum_of_ranges": sum_of_ranges,
    "product_of_variances": product_of_variances,
    "centroid_distance": centroid_distance,
}


@dataclass
class DisparityResult:
    """Per-group disparity with bootstrap summaries.

    Attributes:
        metric: Name of the disparity metric
        table: One row per group; columns ``n``, ``observed``,
            ``bootstrap_mean`` and one column per quantile (``"2.5%"`` ...)
        bootstraps: Raw bootstrap values, one array per group
        rarefaction: Subsample size, if rarefied
    """

    metric: str
    table: pd.DataFrame
    bootstraps: dict[str, NDArray[np.floating]]
    rarefaction: int | None = None


def _metric(name: str) -> Callable[[NDArray[np.floating]], float]:
    try:
        return DISPARITY_METRICS[name]
    except KeyError:
        raise ValueError(
            f"Unknown disparity metric: {name}. "
            f"Available: {', '.join(sorted(DISPARITY_METRICS))}"
        ) from None


def _scores(scores: OrdinationResult | pd.DataFrame | NDArray) -> pd.DataFrame:
    if isinstance(scores, OrdinationResult):
        return scores.scores
    if isinstance(scores, pd.DataFrame):
        frame = scores.copy()
        frame.index = frame.index.map(str)
        return frame
    values = np.asarray(scores, dtype=float)
    if values.ndim != 2:
        raise ValueError(f"Scores must be 2D (specimens x axes), got {values.ndim}D")
    return pd.DataFrame(values, index=[str(i) for i in range(len(values))])


def _grouped(
    frame: pd.DataFrame,
    groups: pd.Series | Sequence[Hashable] | None,
) -> list[tuple[str, NDArray[np.floating]]]:
    if groups is None:
        return [("all", frame.to_numpy(dtype=float))]

    membership = align_groups(list(frame.index), groups)
    if isinstance(groups, pd.Series) and isinstance(groups.dtype, pd.CategoricalDtype):
        order = [str(c) for c in groups.cat.categories]
    else:
        order = [str(g) for g in pd.unique(pd.Series(membership).dropna())]

    values = frame.to_numpy(dtype=float)
    names = np.array([None if pd.isna(g) else str(g) for g in membership], dtype=object)
    result = []
    for name in order:
        rows = names == name
        if rows.any():
            result.append((name, values[rows]))
    return result


def disparity(
    scores: OrdinationResult | pd.DataFrame | NDArray,
    groups: pd.Series | Sequence[Hashable] | None = None,
    metric: str = "sum_of_variances",
) -> pd.Series:
    """Disparity of each group of specimens.

    Args:
        scores: Ordination result or score matrix (specimens x axes)
        groups: Group of each specimen; None treats all specimens as one group
        metric: Name in ``DISPARITY_METRICS``

    Returns:
        Series of disparity values indexed by group
    """
    compute = _metric(metric)
    values = {}
    for name, members in _grouped(_scores(scores), groups):
        if len(members) < 2:
            raise ValueError(f"Group {name} has fewer than two specimens")
        values[name] = compute(members)
    return pd.Series(values, name=metric)


def bootstrap_disparity(
    scores: OrdinationResult | pd.DataFrame | NDArray,
    groups: pd.Series | Sequence[Hashable] | None = None,
    metric: str = "sum_of_variances",
    n_bootstrap: int = 100,
    rarefaction: int | None = None,
    seed: int | None = None,
    quantiles: Sequence[float] = (2.5, 97.5),
) -> DisparityResult:
    """Bootstrapped (and optionally rarefied) disparity per group.

    Each bootstrap replicate draws specimens with replacement from a
    group; with ``rarefaction`` every replicate draws that many specimens
    so groups of different sizes become comparable.

    Args:
        scores: Ordination result or score matrix (specimens x axes)
        groups: Group of each specimen, e.g. from :func:`time_bins`
        metric: Name in ``DISPARITY_METRICS``
        n_bootstrap: Number of bootstrap replicates
        rarefaction: Subsample size per replicate
        seed: Seed for the resampling generator
        quantiles: Percentiles of the bootstrap distribution to report

    Returns:
        DisparityResult
    """
    compute = _metric(metric)
    if n_bootstrap < 1:
        raise ValueError("n_bootstrap must be at least 1")
    if rarefaction is not None and rarefaction < 2:
        raise ValueError("rarefaction must be at least 2")

    rng = np.random.default_rng(seed)
    rows = {}
    bootstraps = {}
    for name, members in _grouped(_scores(scores), groups):
        n = len(members)
        if n < 2:
            raise ValueError(f"Group {name} has fewer than two specimens")
        if rarefaction is not None and n < rarefaction:
            raise ValueError(
                f"Group {name} has {n} specimens, fewer than the rarefaction size {rarefaction}"
            )
        size = rarefaction or n
        values = np.array([
            compute(members[rng.integers(0, n, size=size)]) for _ in range(n_bootstrap)
        ])
        bootstraps[name] = values
        row = {
            "n": n,
            "observed": compute(members),
            "bootstrap_mean": float(values.mean()),
        }
        for q in quantiles:
            row[f"{q:g}%"] = float(np.percentile(values, q))
        rows[name] = row
        logger.debug("Disparity of %s (n=%d): %.4g", name, n, row["observed"])

    table = pd.DataFrame.from_dict(rows, orient="index")
    table.index.name = "group"
    return DisparityResult(metric=metric, table=table, bootstraps=bootstraps, rarefaction=rarefaction)


def time_bins(
    ages: pd.Series | Sequence[float],
    breaks: Sequence[float],
    labels: Sequence[Hashable] | None = None,
) -> pd.Series:
    """Assign specimens to time bins for disparity-through-time.

    Ages are times before present. ``breaks`` run from oldest to youngest;
    bin ``"100-80"`` holds ages in (80, 100], and the youngest bin also
    holds its lower boundary. Ages outside every bin are NaN.

    Args:
        ages: Age of each specimen; a Series keeps its index as labels
        breaks: Bin boundaries, strictly decreasing, at least two
        labels: Specimen labels when ``ages`` is not a Series

    Returns:
        Ordered categorical Series of bin names, oldest bin first
    """
    breaks = [float(b) for b in breaks]
    if len(breaks) < 2:
        raise ValueError("Need at least two breaks to define a bin")
    if any(older <= younger for older, younger in zip(breaks, breaks[1:])):
        raise ValueError("Time bin breaks must be strictly decreasing (oldest first)")

    if isinstance(ages, pd.Series):
        index = ages.index.map(str)
        values = ages.to_numpy(dtype=float)
    else:
        values = np.asarray(ages, dtype=float)
        index = [str(label) for label in labels] if labels is not None else None

    names = [f"{older:g}-{younger:g}" for older, younger in zip(breaks, breaks[1:])]
    assigned = np.full(len(values), None, dtype=object)
    last = len(names) - 1
    for k, (older, younger) in enumerate(zip(breaks, breaks[1:])):
        inside = (values <= older) & ((values > younger) | ((values == younger) & (k == last)))
        assigned[inside] = names[k]

    categories = pd.CategoricalDtype(names, ordered=True)
    return pd.Series(pd.Categorical(assigned, dtype=categories), index=index, name="time_bin")
