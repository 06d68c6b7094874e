"""
Dataset loading.

Builds specimen matrices from data already in memory and generates small
deterministic example datasets (landmarks, outlines, community
abundances, discrete characters) for trying the analysis stages.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Hashable

import numpy as np
import pandas as pd

from morphospace.specimens import SpecimenMatrix, VariableKind

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def load_table(
    frame: pd.DataFrame,
    kind: VariableKind | str = VariableKind.TRAITS,
    label_column: Hashable | None = None,
) -> SpecimenMatrix:
    """Adopt a DataFrame as a specimen matrix.

    Args:
        frame: One row per specimen
        kind: Variable kind of every remaining column
        label_column: Column holding specimen labels; the index is used if None

    Returns:
        SpecimenMatrix
    """
    if label_column is not None:
        if label_column not in frame.columns:
            raise KeyError(f"Label column not found: {label_column}")
        frame = frame.set_index(label_column)
    specimens = SpecimenMatrix(frame, kind)
    logger.info("Loaded %r", specimens)
    return specimens


def _labels(prefix: str, n: int) -> list[str]:
    width = len(str(n))
    return [f"{prefix}{str(i + 1).zfill(width)}" for i in range(n)]


def _rotation_2d(angle: float) -> NDArray[np.floating]:
    return np.array([[np.cos(angle), -np.sin(angle)], [np.sin(angle), np.cos(angle)]])


def _random_rotation(rng: np.random.Generator, n_dims: int) -> NDArray[np.floating]:
    if n_dims == 2:
        return _rotation_2d(rng.uniform(0, 2 * np.pi))
    q, r = np.linalg.qr(rng.normal(size=(n_dims, n_dims)))
    q = q * np.sign(np.diag(r))
    if np.linalg.det(q) < 0:
        q[:, 0] *= -1
    return q


def make_landmarks(
    n_specimens: int = 20,
    n_landmarks: int = 8,
    n_dims: int = 2,
    noise: float = 0.05,
    seed: int | None = 0,
) -> tuple[NDArray[np.floating], list[str]]:
    """Landmark configurations that differ by shape noise and similarity transforms.

    Each specimen starts from a common base configuration, receives
    Gaussian shape noise, and is then rotated, scaled and translated at
    random, so Procrustes superimposition should recover the base shape.

    Returns:
        Tuple of (landmarks of shape (n_landmarks, n_dims, n_specimens), labels)
    """
    rng = np.random.default_rng(seed)
    base = rng.normal(size=(n_landmarks, n_dims))
    landmarks = np.zeros((n_landmarks, n_dims, n_specimens))
    for i in range(n_specimens):
        shape = base + rng.normal(scale=noise, size=base.shape)
        rotation = _random_rotation(rng, n_dims)
        size = rng.uniform(0.5, 2.0)
        shift = rng.uniform(-10, 10, size=n_dims)
        landmarks[:, :, i] = size * np.dot(shape, rotation) + shift
    return landmarks, _labels("specimen_", n_specimens)


def make_outlines(
    n_specimens: int = 20,
    n_points: int = 64,
    groups: tuple[str, str] = ("round", "square"),
    seed: int | None = 0,
) -> tuple[list[NDArray[np.floating]], list[str], pd.Series]:
    """Closed superellipse outlines in two groups.

    The first group has exponent near 2 (ellipses), the second near 4
    (rounded rectangles). Aspect ratio, size, rotation and position vary.

    Returns:
        Tuple of (outlines, labels, group Series indexed by label)
    """
    rng = np.random.default_rng(seed)
    t = np.linspace(0, 2 * np.pi, n_points, endpoint=False)
    outlines = []
    membership = []
    for i in range(n_specimens):
        group = i % 2
        exponent = (2.0 if group == 0 else 4.0) + rng.normal(scale=0.2)
        width, height = 1.0, rng.uniform(0.5, 0.8)
        cos, sin = np.cos(t), np.sin(t)
        x = width * np.sign(cos) * np.abs(cos) ** (2 / exponent)
        y = height * np.sign(sin) * np.abs(sin) ** (2 / exponent)
        outline = np.column_stack([x, y]) * rng.uniform(0.5, 2.0)
        outline = np.dot(outline, _rotation_2d(rng.uniform(0, 2 * np.pi)).T)
        outlines.append(outline + rng.uniform(-5, 5, size=2))
        membership.append(groups[group])

    labels = _labels("outline_", n_specimens)
    return outlines, labels, pd.Series(membership, index=labels, name="group")


def make_community(
    n_sites: int = 30,
    n_species: int = 12,
    seed: int | None = 0,
) -> tuple[SpecimenMatrix, pd.Series]:
    """Species abundances at sites along an environmental gradient.

    Each species has a Gaussian response around its own optimum; counts
    are Poisson draws from the expected abundance.

    Returns:
        Tuple of (site-by-species TRAITS matrix of counts, gradient Series)
    """
    rng = np.random.default_rng(seed)
    gradient = np.sort(rng.uniform(0, 10, size=n_sites))
    optima = np.linspace(0, 10, n_species)
    tolerance = rng.uniform(1.0, 2.5, size=n_species)
    peak = rng.uniform(5, 30, size=n_species)
    expected = peak * np.exp(-((gradient[:, None] - optima) ** 2) / (2 * tolerance ** 2))
    counts = rng.poisson(expected)

    # Sites must hold at least one individual for Bray-Curtis to be defined
    empty = counts.sum(axis=1) == 0
    counts[empty, np.argmax(expected[empty], axis=1)] = 1

    labels = _labels("site_", n_sites)
    species = _labels("sp", n_species)
    community = SpecimenMatrix.from_array(counts, labels, species, VariableKind.TRAITS)
    return community, pd.Series(gradient, index=labels, name="gradient")


def make_characters(
    n_taxa: int = 12,
    n_characters: int = 20,
    n_states: int = 3,
    missing: float = 0.1,
    seed: int | None = 0,
) -> SpecimenMatrix:
    """Discrete character matrix with missing cells.

    States are small integers; a proportion ``missing`` of cells is NaN.
    """
    rng = np.random.default_rng(seed)
    states = rng.integers(0, n_states, size=(n_taxa, n_characters)).astype(object)
    states[rng.random(size=states.shape) < missing] = np.nan
    return SpecimenMatrix.from_array(
        states,
        _labels("taxon_", n_taxa),
        [f"char{j + 1}" for j in range(n_characters)],
        VariableKind.CHARACTERS,
    )
