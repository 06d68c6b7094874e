"""
Ordination of specimen matrices and distance matrices.

Principal component analysis works on a :class:`SpecimenMatrix`;
principal coordinates and non-metric multidimensional scaling work on a
complete :class:`DistanceMatrix`; phylogenetic PCA additionally takes a
tree relating the specimens.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Sequence

import numpy as np
import pandas as pd
import scipy.linalg as sp
from sklearn.manifold import MDS

from morphospace.distance import DistanceMatrix
from morphospace.errors import MissingDataError, ShapeMismatchError
from morphospace.phylogeny import Tree, phylogenetic_vcv
from morphospace.specimens import SpecimenMatrix, VariableKind

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

_EIGEN_TOL = 1e-10


@dataclass
class OrdinationResult:
    """Specimen positions on a set of ordination axes.

    Attributes:
        method: Name of the ordination method
        scores: Specimen scores, DataFrame (n_specimens, n_axes)
        eigenvalues: Eigenvalue of each retained axis, descending
        variance_explained: Proportion of total variance on each axis
        loadings: Variable loadings (n_variables, n_axes); PCA family only
        center: Vector subtracted from the data before projection; PCA family only
        scale: Per-variable divisor applied after centering, if any
        kind: Variable kind of the ordinated matrix; PCA family only
        negative_eigenvalues: Negative eigenvalues left out of a PCoA
        correction: Negative eigenvalue correction applied to a PCoA
        stress: Kruskal stress of an NMDS solution
    """

    method: str
    scores: pd.DataFrame
    eigenvalues: NDArray[np.floating]
    variance_explained: NDArray[np.floating]
    loadings: pd.DataFrame | None = None
    center: NDArray[np.floating] | None = None
    scale: NDArray[np.floating] | None = None
    kind: VariableKind | None = None
    negative_eigenvalues: NDArray[np.floating] = field(
        default_factory=lambda: np.zeros(0)
    )
    correction: str | None = None
    stress: float | None = None

    @property
    def n_axes(self) -> int:
        return self.scores.shape[1]

    @property
    def labels(self) -> list[str]:
        return list(self.scores.index)

    def axis(self, number: int) -> pd.Series:
        """Scores on one axis (1-indexed, like PC1, PC2, ...)."""
        _check_axis(number, self.n_axes)
        return self.scores.iloc[:, number - 1]


def _check_axis(number: int, n_axes: int) -> None:
    if number < 1 or number > n_axes:
        raise ValueError(f"Axis {number} is out of range. Available: 1-{n_axes}")


def _axis_names(prefix: str, n: int) -> list[str]:
    return [f"{prefix}{i + 1}" for i in range(n)]


def _sorted_eigh(
    matrix: NDArray[np.floating],
    n_components: int | None = None,
) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    """Eigenvalues (descending) and eigenvectors of a symmetric matrix."""
    size = matrix.shape[0]
    if n_components is not None and n_components < size:
        eigenvalues, eigenvectors = sp.eigh(
            matrix, subset_by_index=(size - n_components, size - 1)
        )
    else:
        eigenvalues, eigenvectors = sp.eigh(matrix)
    idx = np.argsort(eigenvalues)[::-1]
    return np.real(eigenvalues[idx]), np.real(eigenvectors[:, idx])


def _numeric_values(specimens: SpecimenMatrix, method: str) -> NDArray[np.floating]:
    if not specimens.kind.is_numeric:
        raise TypeError(
            f"{method} needs numeric variables; ordinate discrete characters "
            "through a Gower distance matrix and pcoa()"
        )
    if specimens.has_missing:
        raise MissingDataError(f"{method} cannot handle missing values")
    return specimens.values


def pca(
    specimens: SpecimenMatrix,
    n_components: int | None = None,
    scale: bool = False,
) -> OrdinationResult:
    """Principal Component Analysis of a specimen matrix.

    Args:
        specimens: Numeric specimen-by-variable matrix without missing values
        n_components: Number of components to retain. If None, retains
            min(n_specimens, n_variables) components.
        scale: Standardize variables to unit variance (correlation PCA)

    Returns:
        OrdinationResult with scores, loadings, eigenvalues and variance explained
    """
    values = _numeric_values(specimens, "PCA")
    n_specimens, n_variables = values.shape
    if n_specimens < 2:
        raise ShapeMismatchError("PCA needs at least two specimens")

    mean_vec = values.mean(axis=0)
    centered = values - mean_vec
    std = None
    if scale:
        std = centered.std(axis=0, ddof=1)
        constant = [specimens.variables[j] for j in np.where(std == 0)[0]]
        if constant:
            raise ValueError(f"Cannot scale constant variables: {', '.join(constant)}")
        centered = centered / std

    cov_matrix = np.dot(centered.T, centered) / (n_specimens - 1)

    if n_components is None:
        n_components = min(n_specimens, n_variables)
    n_components = min(n_components, n_variables)

    # Only the leading eigenpairs are needed when variables outnumber specimens
    subset = n_components if n_specimens <= n_variables else None
    eigenvalues, eigenvectors = _sorted_eigh(cov_matrix, subset)
    eigenvalues = np.clip(eigenvalues[:n_components], 0.0, None)
    eigenvectors = eigenvectors[:, :n_components]

    scores = np.dot(centered, eigenvectors)

    total_variance = np.trace(cov_matrix)
    if total_variance > 0:
        variance_explained = eigenvalues / total_variance
    else:
        variance_explained = np.zeros_like(eigenvalues)

    axes = _axis_names("PC", n_components)
    logger.info(
        "PCA of %d specimens x %d variables: PC1 explains %.1f%%",
        n_specimens,
        n_variables,
        100 * variance_explained[0] if n_components else 0.0,
    )
    return OrdinationResult(
        method="pca",
        scores=pd.DataFrame(scores, index=specimens.labels, columns=axes),
        eigenvalues=eigenvalues,
        variance_explained=variance_explained,
        loadings=pd.DataFrame(eigenvectors, index=specimens.variables, columns=axes),
        center=mean_vec,
        scale=std,
        kind=specimens.kind,
    )


def warp_along_pc(
    result: OrdinationResult,
    pc: int,
    magnitude: float,
    n_dims: int = 2,
) -> NDArray[np.floating]:
    """Shape at a position along one principal component.

    Starts from the mean configuration and moves ``magnitude`` standard
    deviations along the component; useful for drawing the shape changes
    an axis captures.

    Args:
        result: PCA result of a coordinates matrix
        pc: Principal component number (1-indexed)
        magnitude: Distance along the PC in standard deviations
        n_dims: Dimensions per landmark

    Returns:
        Configuration, shape (n_landmarks, n_dims)
    """
    if result.loadings is None or result.kind is not VariableKind.COORDINATES:
        raise TypeError("Warping needs a PCA of landmark coordinates")
    if result.scale is not None:
        raise TypeError("Cannot warp shapes from a scaled (correlation) PCA")
    _check_axis(pc, result.n_axes)

    eigenvector = result.loadings.iloc[:, pc - 1].to_numpy()
    value = result.eigenvalues[pc - 1]
    std = np.sqrt(value) if value > 0 else 1.0
    shifted = result.center + eigenvector * magnitude * std

    n_landmarks = len(shifted) // n_dims
    if n_landmarks * n_dims != len(shifted):
        raise ShapeMismatchError(
            f"{len(shifted)} coordinates do not divide into {n_dims} dimensions"
        )
    return shifted.reshape(n_landmarks, n_dims, order="F")


def project(
    specimens: SpecimenMatrix,
    result: OrdinationResult,
    axes: Sequence[int] = (1, 2),
) -> pd.DataFrame:
    """Project specimens into an existing PCA space.

    Args:
        specimens: Matrix with the same variables as the ordinated one
        result: PCA (or phylogenetic PCA) result
        axes: Axis numbers to return (1-indexed)

    Returns:
        Scores DataFrame (n_specimens, len(axes))
    """
    if result.loadings is None or result.center is None:
        raise TypeError(f"Cannot project onto a {result.method} ordination")
    if specimens.variables != list(result.loadings.index):
        raise ShapeMismatchError("Specimen variables do not match the ordinated variables")
    for number in axes:
        _check_axis(number, result.n_axes)

    centered = _numeric_values(specimens, "Projection") - result.center
    if result.scale is not None:
        centered = centered / result.scale
    vectors = result.loadings.iloc[:, [number - 1 for number in axes]]
    return pd.DataFrame(
        np.dot(centered, vectors.to_numpy()),
        index=specimens.labels,
        columns=list(vectors.columns),
    )


def _gower_centered(values: NDArray[np.floating]) -> NDArray[np.floating]:
    n = values.shape[0]
    centering = np.eye(n) - np.ones((n, n)) / n
    return centering @ values @ centering


def _cailliez_constant(distances: NDArray[np.floating]) -> float:
    n = distances.shape[0]
    g1 = _gower_centered(-0.5 * distances ** 2)
    g2 = _gower_centered(-0.5 * distances)
    block = np.block([[np.zeros((n, n)), 2 * g1], [-np.eye(n), -4 * g2]])
    return float(np.max(np.real(sp.eigvals(block))))


def pcoa(
    distance: DistanceMatrix,
    n_components: int | None = None,
    correction: str | None = None,
) -> OrdinationResult:
    """Principal Coordinates Analysis (classical scaling).

    Non-Euclidean dissimilarities produce negative eigenvalues. Without a
    correction those axes are left out and reported in
    ``negative_eigenvalues``; ``"lingoes"`` adds a constant to the squared
    distances and ``"cailliez"`` to the distances so that none remain.

    Args:
        distance: Complete distance matrix
        n_components: Number of axes to keep (default: every positive axis)
        correction: None, ``"lingoes"`` or ``"cailliez"``

    Returns:
        OrdinationResult with specimen scores on the principal coordinates
    """
    distance.require_complete()
    if distance.n < 3:
        raise ShapeMismatchError("PCoA needs at least three specimens")

    distances = distance.values
    off_diagonal = ~np.eye(distance.n, dtype=bool)
    eigenvalues, eigenvectors = _sorted_eigh(_gower_centered(-0.5 * distances ** 2))

    if correction is not None:
        if correction == "lingoes":
            constant = max(0.0, -float(eigenvalues[-1]))
            distances = np.where(off_diagonal, np.sqrt(distances ** 2 + 2 * constant), 0.0)
        elif correction == "cailliez":
            constant = max(0.0, _cailliez_constant(distances))
            distances = np.where(off_diagonal, distances + constant, 0.0)
        else:
            raise ValueError(
                f"Unknown correction: {correction}. Available: 'lingoes', 'cailliez'"
            )
        logger.info("PCoA %s correction constant: %.6g", correction, constant)
        eigenvalues, eigenvectors = _sorted_eigh(_gower_centered(-0.5 * distances ** 2))

    tol = _EIGEN_TOL * max(1.0, abs(eigenvalues[0]))
    positive = eigenvalues > tol
    negative = eigenvalues[eigenvalues < -tol]
    if len(negative):
        logger.warning(
            "PCoA of %s distances has %d negative eigenvalues (largest %.3g)",
            distance.metric,
            len(negative),
            negative.min(),
        )

    eigenvalues_pos = eigenvalues[positive]
    vectors = eigenvectors[:, positive]
    n_axes = len(eigenvalues_pos)
    if n_components is not None:
        if n_components > n_axes:
            logger.warning(
                "Requested %d axes but only %d have positive eigenvalues",
                n_components,
                n_axes,
            )
        n_axes = min(n_components, n_axes)

    total = eigenvalues_pos.sum()
    scores = vectors[:, :n_axes] * np.sqrt(eigenvalues_pos[:n_axes])
    return OrdinationResult(
        method="pcoa",
        scores=pd.DataFrame(scores, index=distance.labels, columns=_axis_names("PCo", n_axes)),
        eigenvalues=eigenvalues_pos[:n_axes],
        variance_explained=eigenvalues_pos[:n_axes] / total if total > 0 else np.zeros(n_axes),
        negative_eigenvalues=negative,
        correction=correction,
    )


def _nonmetric_precomputed() -> dict[str, Any]:
    # scikit-learn 1.8 renamed metric= to metric_mds=, folded dissimilarity= into
    # metric= and added init=, whose default is moving from random starts to classical MDS
    params = inspect.signature(MDS).parameters
    if "metric_mds" in params:
        options = {"metric_mds": False, "metric": "precomputed"}
    else:
        options = {"metric": False, "dissimilarity": "precomputed"}
    if "init" in params:
        options["init"] = "random"
    return options


def nmds(
    distance: DistanceMatrix,
    n_components: int = 2,
    n_init: int = 4,
    max_iter: int = 300,
    seed: int | None = None,
) -> OrdinationResult:
    """Non-metric multidimensional scaling.

    Runs scikit-learn's SMACOF solver on the rank order of the
    dissimilarities from ``n_init`` random starts and keeps the solution
    with the lowest stress.

    Returns:
        OrdinationResult with NMDS scores and Kruskal stress-1 in ``stress``
    """
    distance.require_complete()
    if distance.n <= n_components:
        raise ShapeMismatchError(
            f"NMDS in {n_components} dimensions needs more than {n_components} specimens"
        )
    model = MDS(
        n_components=n_components,
        n_init=n_init,
        max_iter=max_iter,
        random_state=seed,
        **_nonmetric_precomputed(),
    )
    scores = model.fit_transform(distance.values)
    stress = float(model.stress_)
    logger.info("NMDS in %d dimensions: stress %.4f", n_components, stress)

    # Axes carry no eigenvalues; report the spread of scores on each instead
    spread = scores.var(axis=0, ddof=1)
    return OrdinationResult(
        method="nmds",
        scores=pd.DataFrame(scores, index=distance.labels, columns=_axis_names("NMDS", n_components)),
        eigenvalues=spread,
        variance_explained=spread / spread.sum() if spread.sum() > 0 else spread,
        stress=stress,
    )


def phylogenetic_pca(
    specimens: SpecimenMatrix,
    tree: Tree,
    n_components: int | None = None,
) -> OrdinationResult:
    """Phylogenetic PCA (Revell 2009).

    The phylogenetic mean and the evolutionary covariance matrix are
    estimated by generalized least squares using the Brownian-motion
    covariance among species; the data are centered on the phylogenetic
    mean and projected onto the eigenvectors of the evolutionary covariance.

    Args:
        specimens: Numeric matrix whose labels are tip labels of ``tree``
        tree: Phylogeny; tips without data are pruned
        n_components: Number of components to retain

    Returns:
        OrdinationResult with method ``"ppca"``
    """
    values = _numeric_values(specimens, "Phylogenetic PCA")
    n_specimens, n_variables = values.shape
    if n_specimens < 3:
        raise ShapeMismatchError("Phylogenetic PCA needs at least three species")

    cov = phylogenetic_vcv(tree, specimens.labels)
    inv_cov = sp.inv(cov)
    ones = np.ones((n_specimens, 1))
    phylo_mean = (ones.T @ inv_cov @ values) / (ones.T @ inv_cov @ ones)
    centered = values - phylo_mean
    rate_matrix = centered.T @ inv_cov @ centered / (n_specimens - 1)

    if n_components is None:
        n_components = min(n_specimens, n_variables)
    n_components = min(n_components, n_variables)
    eigenvalues, eigenvectors = _sorted_eigh(rate_matrix)
    eigenvalues = np.clip(eigenvalues[:n_components], 0.0, None)
    eigenvectors = eigenvectors[:, :n_components]

    total = np.trace(rate_matrix)
    axes = _axis_names("PC", n_components)
    logger.info("Phylogenetic PCA of %d species x %d variables", n_specimens, n_variables)
    return OrdinationResult(
        method="ppca",
        scores=pd.DataFrame(centered @ eigenvectors, index=specimens.labels, columns=axes),
        eigenvalues=eigenvalues,
        variance_explained=eigenvalues / total if total > 0 else np.zeros_like(eigenvalues),
        loadings=pd.DataFrame(eigenvectors, index=specimens.variables, columns=axes),
        center=phylo_mean.ravel(),
        kind=specimens.kind,
    )


def ordinate(
    data: SpecimenMatrix | DistanceMatrix,
    method: str = "pca",
    **options: Any,
) -> OrdinationResult:
    """Run an ordination by name.

    ``pca`` and ``ppca`` (which needs ``tree=``) take a SpecimenMatrix;
    ``pcoa`` and ``nmds`` take a DistanceMatrix.
    """
    if method in ("pca", "ppca"):
        if not isinstance(data, SpecimenMatrix):
            raise TypeError(f"{method} needs a SpecimenMatrix, got {type(data).__name__}")
        if method == "ppca":
            if "tree" not in options:
                raise ValueError("Phylogenetic PCA needs a tree")
            return phylogenetic_pca(data, **options)
        return pca(data, **options)
    if method in ("pcoa", "nmds"):
        if not isinstance(data, DistanceMatrix):
            raise TypeError(f"{method} needs a DistanceMatrix, got {type(data).__name__}")
        return pcoa(data, **options) if method == "pcoa" else nmds(data, **options)
    raise ValueError(f"Unknown method: {method}. Available: pca, ppca, pcoa, nmds")
