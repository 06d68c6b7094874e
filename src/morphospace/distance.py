"""
Distance and dissimilarity matrices.

A :class:`DistanceMatrix` is square, symmetric, has a zero diagonal and no
negative entries. Undefined pairs (for example two taxa with no character
scored in common) are stored as NaN; such a matrix is *incomplete* and has
to be trimmed before it can be ordinated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Hashable, Sequence

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist, squareform

from morphospace.errors import (
    IncompleteDistanceError,
    MissingDataError,
    ShapeMismatchError,
)
from morphospace.procrustes import align, center, scale
from morphospace.specimens import SpecimenMatrix, VariableKind

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

_ATOL = 1e-8


@dataclass(frozen=True)
class DistanceMatrix:
    """Pairwise distances between labelled specimens.

    Attributes:
        values: Distances, shape (n, n)
        labels: Specimen labels, one per row/column
        metric: Name of the metric that produced the distances
    """

    values: NDArray[np.floating]
    labels: list[str]
    metric: str = "unknown"

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=float)
        labels = [str(label) for label in self.labels]

        if values.ndim != 2 or values.shape[0] != values.shape[1]:
            raise ShapeMismatchError(f"Distance matrix must be square, got {values.shape}")
        if len(labels) != values.shape[0]:
            raise ShapeMismatchError(
                f"Got {len(labels)} labels for a {values.shape[0]}x{values.shape[0]} matrix"
            )
        if len(set(labels)) != len(labels):
            raise ValueError("Distance matrix labels must be unique")

        observed = ~np.isnan(values)
        if not np.array_equal(observed, observed.T):
            raise ValueError("Distance matrix is not symmetric: missing entries differ")
        both = np.where(observed, values, 0.0)
        if not np.allclose(both, both.T, atol=_ATOL):
            raise ValueError("Distance matrix is not symmetric")
        diagonal = np.diag(values)
        if np.isnan(diagonal).any() or not np.allclose(diagonal, 0.0, atol=_ATOL):
            raise ValueError("Distance matrix must have a zero diagonal")
        if (values[observed] < -_ATOL).any():
            raise ValueError("Distance matrix has negative entries")

        values = (values + values.T) / 2
        np.fill_diagonal(values, 0.0)
        values[observed] = np.clip(values[observed], 0.0, None)

        object.__setattr__(self, "values", values)
        object.__setattr__(self, "labels", labels)

    @property
    def n(self) -> int:
        return len(self.labels)

    @property
    def is_complete(self) -> bool:
        return not np.isnan(self.values).any()

    def missing_pairs(self) -> list[tuple[str, str]]:
        rows, cols = np.where(np.triu(np.isnan(self.values), k=1))
        return [(self.labels[i], self.labels[j]) for i, j in zip(rows, cols)]

    def require_complete(self) -> DistanceMatrix:
        """Return self, or raise if any pairwise entry is undefined.

        Raises:
            IncompleteDistanceError: Listing the undefined pairs
        """
        if self.is_complete:
            return self
        pairs = self.missing_pairs()
        shown = ", ".join(f"{a}-{b}" for a, b in pairs[:5])
        more = f" and {len(pairs) - 5} more" if len(pairs) > 5 else ""
        raise IncompleteDistanceError(
            f"Distance matrix has {len(pairs)} undefined pairs: {shown}{more}. "
            "Use trim_incomplete() to drop specimens first.",
            pairs=pairs,
        )

    def condensed(self) -> NDArray[np.floating]:
        """Upper triangle as a scipy condensed distance vector."""
        return squareform(self.require_complete().values, checks=False)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.values, index=self.labels, columns=self.labels)

    def subset(self, labels: Sequence[Hashable]) -> DistanceMatrix:
        labels = [str(label) for label in labels]
        index = {label: i for i, label in enumerate(self.labels)}
        missing = [label for label in labels if label not in index]
        if missing:
            raise KeyError(f"Unknown specimens: {', '.join(missing)}")
        idx = [index[label] for label in labels]
        return DistanceMatrix(self.values[np.ix_(idx, idx)], labels, self.metric)

    def trim_incomplete(self) -> tuple[DistanceMatrix, list[str]]:
        """Drop specimens until no undefined pairs remain.

        The specimen involved in the most undefined pairs goes first; on a
        tie the one listed last is removed.

        Returns:
            Tuple of (complete matrix, removed labels in removal order)
        """
        keep = list(range(self.n))
        removed = []
        missing = np.isnan(self.values)
        while True:
            sub = missing[np.ix_(keep, keep)]
            counts = sub.sum(axis=1)
            if counts.max(initial=0) == 0:
                break
            worst = len(counts) - 1 - int(np.argmax(counts[::-1]))
            label = self.labels[keep[worst]]
            logger.warning(
                "Removing %s from distance matrix (%d undefined pairs)",
                label,
                counts[worst],
            )
            removed.append(label)
            del keep[worst]

        if len(keep) < 2:
            raise IncompleteDistanceError(
                "Fewer than two specimens remain after trimming undefined pairs",
                pairs=self.missing_pairs(),
            )
        labels = [self.labels[i] for i in keep]
        return self.subset(labels), removed

    def __repr__(self) -> str:
        return f"DistanceMatrix(metric={self.metric!r}, n={self.n}, complete={self.is_complete})"


def _scipy_metric(name: str) -> Callable[[SpecimenMatrix], NDArray[np.floating]]:
    def compute(specimens: SpecimenMatrix) -> NDArray[np.floating]:
        if not specimens.kind.is_numeric:
            raise TypeError(
                f"Metric '{name}' needs numeric variables; use 'gower' for characters"
            )
        if specimens.has_missing:
            raise MissingDataError(
                f"Metric '{name}' cannot handle missing values; use 'gower' or "
                "drop incomplete specimens"
            )
        values = specimens.values
        if name == "braycurtis" and (values < 0).any():
            raise ValueError("Bray-Curtis dissimilarity requires non-negative values")
        return squareform(pdist(values, metric=name))

    return compute


def _gower(specimens: SpecimenMatrix) -> NDArray[np.floating]:
    """Gower dissimilarity averaged over the variables both specimens share."""
    n = specimens.n_specimens
    observed = specimens.data.notna().to_numpy()

    if specimens.kind.is_numeric:
        values = specimens.values
        ranges = np.nanmax(values, axis=0) - np.nanmin(values, axis=0)
        ranges = np.where(np.isnan(ranges) | (ranges == 0), 1.0, ranges)
        scaled = values / ranges
    else:
        states = specimens.values

    total = np.zeros((n, n))
    shared = np.zeros((n, n))
    for i in range(n):
        for j in range(i + 1, n):
            both = observed[i] & observed[j]
            n_shared = both.sum()
            if n_shared == 0:
                continue
            if specimens.kind.is_numeric:
                diff = np.abs(scaled[i, both] - scaled[j, both]).sum()
            else:
                diff = sum(a != b for a, b in zip(states[i, both], states[j, both]))
            total[i, j] = total[j, i] = diff
            shared[i, j] = shared[j, i] = n_shared

    with np.errstate(invalid="ignore", divide="ignore"):
        distances = np.where(shared > 0, total / np.where(shared > 0, shared, 1), np.nan)
    np.fill_diagonal(distances, 0.0)
    return distances


def _landmark_dims(specimens: SpecimenMatrix) -> int:
    axes = [column[0] for column in specimens.variables]
    if not set(axes) <= set("xyzw"):
        raise ShapeMismatchError(
            "Procrustes distance needs coordinate columns named x1..xp, y1..yp[, z1..zp]"
        )
    return len(dict.fromkeys(axes))


def _procrustes(specimens: SpecimenMatrix) -> NDArray[np.floating]:
    """Partial Procrustes distance: centred, unit-size, optimally rotated."""
    if specimens.kind is not VariableKind.COORDINATES:
        raise TypeError("Procrustes distance needs a coordinates matrix")
    if specimens.has_missing:
        raise MissingDataError("Metric 'procrustes' cannot handle missing coordinates")
    landmarks = specimens.to_landmarks(_landmark_dims(specimens))
    shapes = [scale(center(landmarks[:, :, i])) for i in range(landmarks.shape[2])]
    n = len(shapes)
    distances = np.zeros((n, n))
    for i in range(n):
        for j in range(i + 1, n):
            aligned = align(shapes[j], shapes[i])
            distances[i, j] = distances[j, i] = np.linalg.norm(shapes[i] - aligned)
    return distances


METRICS: dict[str, Callable[[SpecimenMatrix], NDArray[np.floating]]] = {
    "euclidean": _scipy_metric("euclidean"),
    "manhattan": _scipy_metric("cityblock"),
    "chebyshev": _scipy_metric("chebyshev"),
    "cosine": _scipy_metric("cosine"),
    "braycurtis": _scipy_metric("braycurtis"),
    "canberra": _scipy_metric("canberra"),
    "gower": _gower,
    "procrustes": _procrustes,
}


def distance_matrix(
    specimens: SpecimenMatrix,
    metric: str = "euclidean",
) -> DistanceMatrix:
    """Compute pairwise distances between the rows of a specimen matrix.

    Args:
        specimens: Specimen-by-variable matrix
        metric: One of ``METRICS``. Only ``gower`` accepts discrete
            characters and missing values; ``procrustes`` expects
            landmark coordinates and superimposes each pair itself.

    Returns:
        DistanceMatrix labelled with the specimen labels

    Raises:
        ValueError: If the metric is unknown
        MissingDataError: If the metric cannot handle missing values
    """
    try:
        compute = METRICS[metric]
    except KeyError:
        raise ValueError(
            f"Unknown metric: {metric}. Available: {', '.join(sorted(METRICS))}"
        ) from None

    if specimens.n_specimens < 2:
        raise ShapeMismatchError("Need at least two specimens to compute distances")

    logger.debug(
        "Computing %s distances for %d specimens x %d variables",
        metric,
        specimens.n_specimens,
        specimens.n_variables,
    )
    result = DistanceMatrix(compute(specimens), specimens.labels, metric)
    if not result.is_complete:
        logger.warning(
            "%s distance matrix has %d undefined pairs",
            metric,
            len(result.missing_pairs()),
        )
    return result
