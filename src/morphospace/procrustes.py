"""
Procrustes superimposition of landmark configurations.

Removes translation, rotation and (optionally) scale differences between
landmark configurations so that the remaining variation is shape. Works
on 2D and 3D landmarks alike.

Based on Dryden and Mardia (2016) "Statistical Shape Analysis".
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING, Hashable, Sequence

import numpy as np
import scipy.linalg as sp

from morphospace.errors import ConvergenceWarning, ShapeMismatchError
from morphospace.specimens import SpecimenMatrix

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


@dataclass
class GPAResult:
    """Result of Generalized Procrustes Analysis.

    Attributes:
        aligned: Aligned landmark coordinates, shape (n_landmarks, n_dims, n_specimens)
        mean_shape: Consensus shape after alignment, shape (n_landmarks, n_dims)
        centroid_sizes: Centroid size of each specimen before alignment
        iterations: Number of refinement passes performed
        converged: Whether the consensus change fell below the tolerance
    """

    aligned: NDArray[np.floating]
    mean_shape: NDArray[np.floating]
    centroid_sizes: NDArray[np.floating]
    iterations: int = 0
    converged: bool = True

    def to_specimens(self, labels: Sequence[Hashable] | None = None) -> SpecimenMatrix:
        """Aligned coordinates as a specimen-by-coordinate matrix."""
        return SpecimenMatrix.from_landmarks(self.aligned, labels)


def center(shape: NDArray[np.floating]) -> NDArray[np.floating]:
    """Translate a configuration so its centroid sits at the origin."""
    return shape - shape.mean(axis=0)


def scale(shape: NDArray[np.floating]) -> NDArray[np.floating]:
    """Scale a configuration to unit Frobenius norm.

    A degenerate (all-zero) configuration is returned unchanged.
    """
    norm = np.linalg.norm(shape)
    if norm == 0:
        return shape
    return shape / norm


def centroid_size(shape: NDArray[np.floating]) -> float:
    """Square root of the summed squared distances of landmarks to their centroid."""
    return float(np.linalg.norm(center(shape)))


def align(
    shape: NDArray[np.floating],
    reference: NDArray[np.floating],
    allow_reflection: bool = False,
) -> NDArray[np.floating]:
    """Rotate a configuration onto a reference.

    The rotation comes from the SVD of the cross-product matrix of the two
    configurations. Unless ``allow_reflection`` is set, an improper solution
    (determinant -1) is replaced by the best proper rotation.

    Args:
        shape: Configuration to rotate, shape (n_landmarks, n_dims)
        reference: Target configuration, shape (n_landmarks, n_dims)
        allow_reflection: Accept mirror-image solutions

    Returns:
        Rotated configuration
    """
    if shape.shape != reference.shape:
        raise ShapeMismatchError(
            f"Cannot align shape {shape.shape} to reference {reference.shape}"
        )
    u, _, vt = sp.svd(np.dot(reference.T, shape), full_matrices=True)
    rotation = np.dot(vt.T, u.T)
    if not allow_reflection and np.linalg.det(rotation) < 0:
        vt[-1, :] *= -1
        rotation = np.dot(vt.T, u.T)
    return np.dot(shape, rotation)


def mean_shape(landmarks: NDArray[np.floating]) -> NDArray[np.floating]:
    """Landmark-wise mean of a stack, shape (n_landmarks, n_dims)."""
    return landmarks.mean(axis=2)


def procrustes_distance(
    landmarks: NDArray[np.floating],
    reference: NDArray[np.floating],
) -> NDArray[np.floating]:
    """Distance from each aligned specimen to a reference configuration.

    Args:
        landmarks: Aligned coordinates, shape (n_landmarks, n_dims, n_specimens)
        reference: Reference shape (e.g. the consensus), shape (n_landmarks, n_dims)

    Returns:
        Procrustes distances, shape (n_specimens,)
    """
    if landmarks.shape[:2] != reference.shape:
        raise ShapeMismatchError(
            f"Reference {reference.shape} does not match landmarks {landmarks.shape[:2]}"
        )
    diffs = landmarks - reference[:, :, np.newaxis]
    return np.sqrt((diffs ** 2).sum(axis=(0, 1)))


def generalized_procrustes(
    landmarks: NDArray[np.floating],
    scale: bool = True,
    max_iterations: int = 10,
    tolerance: float = 1e-4,
    allow_reflection: bool = False,
) -> GPAResult:
    """Superimpose a set of landmark configurations.

    Every specimen is centered (and optionally scaled to unit centroid
    size), rotated onto the first specimen, and then repeatedly rotated
    onto the running consensus until the consensus moves less than
    ``tolerance`` between passes.

    Args:
        landmarks: Coordinates, shape (n_landmarks, n_dims, n_specimens).
            Copied, never modified in place.
        scale: Scale specimens to unit centroid size. With False the
            result keeps size (Boas coordinates).
        max_iterations: Maximum number of refinement passes
        tolerance: Convergence threshold on the consensus change
        allow_reflection: Accept mirror-image rotations

    Returns:
        GPAResult with aligned coordinates, consensus and centroid sizes

    Raises:
        ShapeMismatchError: If fewer than two specimens or landmarks are given
    """
    aligned = np.array(landmarks, dtype=float)
    if aligned.ndim != 3:
        raise ShapeMismatchError(
            "Expected landmarks of shape (n_landmarks, n_dims, n_specimens), "
            f"got {aligned.shape}"
        )
    n_landmarks, n_dims, n_specimens = aligned.shape
    if n_specimens < 2:
        raise ShapeMismatchError("Procrustes superimposition needs at least two specimens")
    if n_landmarks < 2:
        raise ShapeMismatchError("Procrustes superimposition needs at least two landmarks")

    centroid_sizes = np.array([centroid_size(aligned[:, :, i]) for i in range(n_specimens)])

    for i in range(n_specimens):
        aligned[:, :, i] = center(aligned[:, :, i])
        if scale:
            aligned[:, :, i] = _unit_size(aligned[:, :, i])

    aligned = _align_all(aligned[:, :, 0].copy(), aligned, scale, allow_reflection)
    current_mean = _consensus(aligned, scale)

    converged = False
    iterations = 0
    for iterations in range(1, max_iterations + 1):
        aligned = _align_all(current_mean, aligned, scale, allow_reflection)
        new_mean = _consensus(aligned, scale)

        diff = np.linalg.norm(current_mean - new_mean)
        current_mean = new_mean
        logger.debug("GPA pass %d: consensus change %.3g", iterations, diff)

        if diff < tolerance:
            converged = True
            break

    if not converged:
        logger.warning(
            "GPA did not converge in %d iterations (tolerance %g)", max_iterations, tolerance
        )
        warnings.warn(
            f"Procrustes superimposition did not converge in {max_iterations} iterations",
            ConvergenceWarning,
            stacklevel=2,
        )

    logger.info(
        "Superimposed %d specimens of %d landmarks in %d dimensions",
        n_specimens,
        n_landmarks,
        n_dims,
    )
    return GPAResult(
        aligned=aligned,
        mean_shape=current_mean,
        centroid_sizes=centroid_sizes,
        iterations=iterations,
        converged=converged,
    )


# Named apart from ``scale`` because generalized_procrustes shadows it with a flag
def _unit_size(shape: NDArray[np.floating]) -> NDArray[np.floating]:
    norm = np.linalg.norm(shape)
    if norm == 0:
        return shape
    return shape / norm


def _consensus(landmarks: NDArray[np.floating], scale: bool) -> NDArray[np.floating]:
    consensus = mean_shape(landmarks)
    return _unit_size(consensus) if scale else center(consensus)


def _align_all(
    reference: NDArray[np.floating],
    landmarks: NDArray[np.floating],
    scale: bool,
    allow_reflection: bool,
) -> NDArray[np.floating]:
    ref = _unit_size(reference) if scale else center(reference)
    for i in range(landmarks.shape[2]):
        landmarks[:, :, i] = center(align(landmarks[:, :, i], ref, allow_reflection))
    return landmarks
