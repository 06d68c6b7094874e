"""
Permutation tests on distance matrices.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Hashable, Sequence

import numpy as np
import pandas as pd

from morphospace.distance import DistanceMatrix

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


@dataclass
class PermanovaResult:
    """One-way PERMANOVA outcome.

    Attributes:
        statistic: Pseudo-F of the observed grouping
        p_value: Proportion of permutations with pseudo-F at least as large
        permutations: Number of permutations run
        df_between: Degrees of freedom between groups
        df_within: Degrees of freedom within groups
        r_squared: Share of total sum of squares explained by the grouping
    """

    statistic: float
    p_value: float
    permutations: int
    df_between: int
    df_within: int
    r_squared: float


def align_groups(
    labels: Sequence[str],
    groups: pd.Series | Sequence[Hashable],
) -> NDArray:
    """Group membership in the order of ``labels``.

    A Series is matched by index; any other sequence must already be in
    label order.
    """
    if isinstance(groups, pd.Series):
        index = groups.index.map(str)
        lookup = pd.Series(groups.to_numpy(), index=index)
        missing = [label for label in labels if label not in lookup.index]
        if missing:
            raise ValueError(f"No group given for: {', '.join(missing)}")
        return lookup.loc[list(labels)].to_numpy()
    groups = np.asarray(groups, dtype=object)
    if len(groups) != len(labels):
        raise ValueError(f"Got {len(groups)} group labels for {len(labels)} specimens")
    return groups


def _pseudo_f(
    squared: NDArray[np.floating],
    codes: NDArray[np.integer],
    n_groups: int,
) -> tuple[float, float, float]:
    n = len(codes)
    ss_total = squared[np.triu_indices(n, k=1)].sum() / n
    ss_within = 0.0
    for g in range(n_groups):
        members = np.where(codes == g)[0]
        block = squared[np.ix_(members, members)]
        ss_within += block[np.triu_indices(len(members), k=1)].sum() / len(members)
    ss_between = ss_total - ss_within
    if ss_within == 0:
        return np.inf, ss_between, ss_total
    statistic = (ss_between / (n_groups - 1)) / (ss_within / (n - n_groups))
    return float(statistic), ss_between, ss_total


def permanova(
    distance: DistanceMatrix,
    groups: pd.Series | Sequence[Hashable],
    permutations: int = 999,
    seed: int | None = None,
) -> PermanovaResult:
    """Permutational multivariate analysis of variance (Anderson 2001).

    Args:
        distance: Complete distance matrix
        groups: Group of each specimen; a Series is matched on labels
        permutations: Number of label permutations
        seed: Seed for the permutation generator

    Returns:
        PermanovaResult

    Raises:
        ValueError: With fewer than two groups or no replication within groups
    """
    distance.require_complete()
    membership = align_groups(distance.labels, groups)
    names, codes = np.unique(membership.astype(str), return_inverse=True)
    n_groups = len(names)
    n = distance.n
    if n_groups < 2:
        raise ValueError("PERMANOVA needs at least two groups")
    if n_groups >= n:
        raise ValueError("PERMANOVA needs replicates within at least one group")
    if permutations < 1:
        raise ValueError("permutations must be at least 1")

    squared = distance.values ** 2
    statistic, ss_between, ss_total = _pseudo_f(squared, codes, n_groups)

    rng = np.random.default_rng(seed)
    exceed = 0
    for _ in range(permutations):
        permuted, _, _ = _pseudo_f(squared, rng.permutation(codes), n_groups)
        if permuted >= statistic - 1e-12:
            exceed += 1
    p_value = (exceed + 1) / (permutations + 1)

    logger.info(
        "PERMANOVA on %d specimens in %d groups: F=%.4g, p=%.4g",
        n,
        n_groups,
        statistic,
        p_value,
    )
    return PermanovaResult(
        statistic=statistic,
        p_value=p_value,
        permutations=permutations,
        df_between=n_groups - 1,
        df_within=n - n_groups,
        r_squared=float(ss_between / ss_total) if ss_total > 0 else 0.0,
    )
