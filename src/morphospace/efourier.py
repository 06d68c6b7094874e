"""
Elliptic Fourier analysis of closed outlines.

Outlines are (n_points, 2) arrays of x, y coordinates traced around a
closed contour; the last point connects back to the first. Coefficients
follow Kuhl and Giardina (1982): each harmonic n contributes four
coefficients ``a_n, b_n, c_n, d_n`` describing an ellipse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Hashable, Sequence

import numpy as np
import pandas as pd
from scipy.interpolate import interp1d

from morphospace.errors import ShapeMismatchError
from morphospace.specimens import SpecimenMatrix, VariableKind

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = (90.0, 95.0, 99.0, 99.9)


@dataclass
class EllipticFourier:
    """Elliptic Fourier coefficients of one outline.

    Attributes:
        coefficients: Shape (n_harmonics, 4), columns a, b, c, d
        a0: Mean x coordinate of the outline
        c0: Mean y coordinate of the outline
    """

    coefficients: NDArray[np.floating]
    a0: float = 0.0
    c0: float = 0.0

    @property
    def n_harmonics(self) -> int:
        return self.coefficients.shape[0]


def _as_outline(outline: NDArray[np.floating]) -> NDArray[np.floating]:
    outline = np.asarray(outline, dtype=float)
    if outline.ndim != 2 or outline.shape[1] != 2:
        raise ShapeMismatchError(f"Outline must have shape (n_points, 2), got {outline.shape}")
    if len(outline) > 1 and np.allclose(outline[0], outline[-1]):
        outline = outline[:-1]
    if len(outline) < 3:
        raise ShapeMismatchError("An outline needs at least three distinct points")
    return outline


def interpolate_outline(
    outline: NDArray[np.floating],
    n_points: int,
) -> NDArray[np.floating]:
    """Resample a closed outline to equally spaced points along its perimeter.

    Args:
        outline: Outline coordinates, shape (n_points, 2)
        n_points: Number of points to return

    Returns:
        Resampled outline, shape (n_points, 2), starting at the original first point
    """
    outline = _as_outline(outline)
    closed = np.vstack([outline, outline[:1]])
    steps = np.sqrt((np.diff(closed, axis=0) ** 2).sum(axis=1))
    distance = np.concatenate([[0.0], np.cumsum(steps)])
    if distance[-1] == 0:
        return np.repeat(outline[:1], n_points, axis=0)

    # Drop repeated points so the interpolation abscissa is strictly increasing
    keep = np.concatenate([[True], steps > 0])
    distance = distance[keep] / distance[-1]
    closed = closed[keep]

    fx = interp1d(distance, closed[:, 0])
    fy = interp1d(distance, closed[:, 1])
    alpha = np.linspace(0, 1, n_points, endpoint=False)
    return np.column_stack([fx(alpha), fy(alpha)])


def efourier(
    outline: NDArray[np.floating],
    n_harmonics: int,
    normalize: bool = False,
) -> EllipticFourier:
    """Elliptic Fourier decomposition of a closed outline.

    Args:
        outline: Outline coordinates, shape (n_points, 2)
        n_harmonics: Number of harmonics; at most half the number of points
        normalize: Make the coefficients invariant to size, rotation and
            starting point by aligning on the first harmonic ellipse

    Returns:
        EllipticFourier with coefficients of shape (n_harmonics, 4)
    """
    outline = _as_outline(outline)
    max_harmonics = len(outline) // 2
    if n_harmonics < 1 or n_harmonics > max_harmonics:
        raise ValueError(
            f"n_harmonics must be between 1 and {max_harmonics} "
            f"(half the {len(outline)} outline points), got {n_harmonics}"
        )

    closed = np.vstack([outline, outline[:1]])
    dxy = np.diff(closed, axis=0)
    dt = np.sqrt((dxy ** 2).sum(axis=1))
    moving = dt > 0
    dxy, dt = dxy[moving], dt[moving]
    t = np.concatenate([[0.0], np.cumsum(dt)])
    period = t[-1]

    # Outline mean over arc length: each segment contributes its midpoint
    starts = closed[:-1][moving]
    midpoints = starts + dxy / 2
    a0, c0 = (midpoints * dt[:, np.newaxis]).sum(axis=0) / period

    orders = np.arange(1, n_harmonics + 1)[:, np.newaxis]
    phi = 2 * np.pi * orders * t / period
    d_cos = np.cos(phi[:, 1:]) - np.cos(phi[:, :-1])
    d_sin = np.sin(phi[:, 1:]) - np.sin(phi[:, :-1])
    const = period / (2 * orders[:, 0] ** 2 * np.pi ** 2)

    slope_x = dxy[:, 0] / dt
    slope_y = dxy[:, 1] / dt
    coefficients = np.column_stack([
        const * (slope_x * d_cos).sum(axis=1),
        const * (slope_x * d_sin).sum(axis=1),
        const * (slope_y * d_cos).sum(axis=1),
        const * (slope_y * d_sin).sum(axis=1),
    ])

    if normalize:
        coefficients = _normalize(coefficients)
    return EllipticFourier(coefficients=coefficients, a0=float(a0), c0=float(c0))


def _normalize(coefficients: NDArray[np.floating]) -> NDArray[np.floating]:
    """First-harmonic normalization of Kuhl and Giardina."""
    a1, b1, c1, d1 = coefficients[0]
    theta = 0.5 * np.arctan2(2 * (a1 * b1 + c1 * d1), a1 ** 2 - b1 ** 2 + c1 ** 2 - d1 ** 2)

    normalized = np.zeros_like(coefficients)
    for n in range(coefficients.shape[0]):
        block = coefficients[n].reshape(2, 2)
        angle = (n + 1) * theta
        shift = np.array([[np.cos(angle), -np.sin(angle)], [np.sin(angle), np.cos(angle)]])
        normalized[n] = np.dot(block, shift).ravel()

    psi = np.arctan2(normalized[0, 2], normalized[0, 0])
    spin = np.array([[np.cos(psi), np.sin(psi)], [-np.sin(psi), np.cos(psi)]])
    for n in range(normalized.shape[0]):
        normalized[n] = np.dot(spin, normalized[n].reshape(2, 2)).ravel()

    size = np.abs(normalized[0, 0])
    if size == 0:
        return normalized
    return normalized / size


def inverse_efourier(
    efa: EllipticFourier | NDArray[np.floating],
    n_points: int = 300,
    n_harmonics: int | None = None,
) -> NDArray[np.floating]:
    """Reconstruct outline points from elliptic Fourier coefficients.

    Args:
        efa: EllipticFourier, or a bare (n_harmonics, 4) coefficient array
        n_points: Number of points to generate
        n_harmonics: Use only the first harmonics; defaults to all of them

    Returns:
        Outline, shape (n_points, 2)
    """
    if isinstance(efa, EllipticFourier):
        coefficients, a0, c0 = efa.coefficients, efa.a0, efa.c0
    else:
        coefficients, a0, c0 = np.asarray(efa, dtype=float), 0.0, 0.0
    if n_harmonics is not None:
        coefficients = coefficients[:n_harmonics]

    t = np.linspace(0, 1, n_points, endpoint=False)
    orders = np.arange(1, coefficients.shape[0] + 1)[:, np.newaxis]
    cos = np.cos(2 * np.pi * orders * t)
    sin = np.sin(2 * np.pi * orders * t)
    a, b, c, d = (coefficients[:, k:k + 1] for k in range(4))
    x = a0 + (a * cos + b * sin).sum(axis=0)
    y = c0 + (c * cos + d * sin).sum(axis=0)
    return np.column_stack([x, y])


def harmonic_power(coefficients: NDArray[np.floating]) -> NDArray[np.floating]:
    """Power of each harmonic, ``(a^2 + b^2 + c^2 + d^2) / 2``."""
    coefficients = np.asarray(coefficients, dtype=float)
    return (coefficients ** 2).sum(axis=1) / 2


def efourier_matrix(
    outlines: Sequence[NDArray[np.floating]],
    n_harmonics: int,
    normalize: bool = True,
    labels: Sequence[Hashable] | None = None,
) -> SpecimenMatrix:
    """Elliptic Fourier coefficients of many outlines as a specimen matrix.

    Columns are ``A1..An, B1..Bn, C1..Cn, D1..Dn``.
    """
    rows = [efourier(outline, n_harmonics, normalize).coefficients for outline in outlines]
    values = np.array([row.T.ravel() for row in rows])
    columns = [f"{letter}{n}" for letter in "ABCD" for n in range(1, n_harmonics + 1)]
    logger.info("Computed %d harmonics for %d outlines", n_harmonics, len(rows))
    return SpecimenMatrix.from_array(values, labels, columns, VariableKind.HARMONICS)


@dataclass
class HarmonicPowerCalibration:
    """Cumulative harmonic power for every outline and number of harmonics.

    Attributes:
        wide: Cumulative power (percent), specimens x harmonic labels
        thresholds: Power thresholds used for ``min_harmonics``
    """

    wide: pd.DataFrame
    thresholds: tuple[float, ...] = DEFAULT_THRESHOLDS
    min_harmonics: dict[float, int | None] = field(init=False, default_factory=dict)

    def __post_init__(self) -> None:
        median = self.median
        self.min_harmonics = {}
        for threshold in self.thresholds:
            reached = median[median >= threshold]
            self.min_harmonics[threshold] = (
                _harmonic_rank(reached.index[0]) if len(reached) else None
            )

    @property
    def table(self) -> pd.DataFrame:
        """Long table with one row per specimen per harmonic."""
        long = self.wide.rename_axis("specimen").reset_index().melt(
            id_vars="specimen", var_name="harmonic", value_name="power"
        )
        return long[["specimen", "harmonic", "power"]]

    @property
    def harmonics(self) -> list[str]:
        return list(self.wide.columns)

    @property
    def median(self) -> pd.Series:
        return self.wide.median(axis=0)

    def counts(self) -> pd.Series:
        """Number of cumulative power values per harmonic."""
        return self.table["harmonic"].value_counts().reindex(self.harmonics)

    def power_at(self, harmonic: int | str) -> pd.Series:
        """Cumulative power of every outline at one harmonic (``5`` or ``"h5"``)."""
        label = harmonic if isinstance(harmonic, str) else f"h{harmonic}"
        if label not in self.wide.columns:
            raise KeyError(
                f"Harmonic {label} not calibrated. Available: "
                f"{self.harmonics[0]}-{self.harmonics[-1]}"
            )
        return self.wide[label].rename(label)


def _harmonic_rank(label: str) -> int:
    return int(label[1:])


def calibrate_harmonic_power(
    outlines: Sequence[NDArray[np.floating]],
    n_harmonics: int | None = None,
    drop: int = 1,
    thresholds: Sequence[float] = DEFAULT_THRESHOLDS,
    labels: Sequence[Hashable] | None = None,
) -> HarmonicPowerCalibration:
    """Cumulative harmonic power of each outline.

    For every outline the raw (unnormalized) coefficients are computed, the
    first ``drop`` harmonics are discarded, and the power of the remaining
    harmonics is accumulated as a percentage of their total. This shows how
    many harmonics are needed to capture a given share of outline detail.

    Args:
        outlines: Outline arrays, each shape (n_points, 2)
        n_harmonics: Harmonics to try; defaults to half the smallest point count
        drop: Leading harmonics left out of the cumulative sum
        thresholds: Percent thresholds for ``min_harmonics``
        labels: Specimen labels

    Returns:
        HarmonicPowerCalibration. Harmonic labels keep their rank, so with
        ``drop=1`` the first column is ``h2``.
    """
    outlines = [_as_outline(outline) for outline in outlines]
    if not outlines:
        raise ValueError("No outlines to calibrate")
    if labels is None:
        labels = [f"specimen_{i + 1}" for i in range(len(outlines))]
    if len(labels) != len(outlines):
        raise ShapeMismatchError(f"Got {len(labels)} labels for {len(outlines)} outlines")

    max_harmonics = min(len(outline) for outline in outlines) // 2
    if n_harmonics is None:
        n_harmonics = max_harmonics
    if drop < 0 or drop >= n_harmonics:
        raise ValueError(f"drop must be between 0 and {n_harmonics - 1}, got {drop}")

    rows = []
    for outline in outlines:
        power = harmonic_power(efourier(outline, n_harmonics).coefficients)[drop:]
        total = power.sum()
        if total > 0:
            rows.append(np.cumsum(power) / total * 100)
        else:
            rows.append(np.full(power.shape, 100.0))

    columns = [f"h{n}" for n in range(drop + 1, n_harmonics + 1)]
    wide = pd.DataFrame(rows, index=[str(label) for label in labels], columns=columns)
    calibration = HarmonicPowerCalibration(wide, tuple(float(t) for t in thresholds))
    logger.info(
        "Calibrated harmonic power for %d outlines up to %d harmonics: %s",
        len(outlines),
        n_harmonics,
        calibration.min_harmonics,
    )
    return calibration
