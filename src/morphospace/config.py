"""
Analysis configuration.

Defaults live as module constants so notebooks can read or override them
before building an :class:`AnalysisConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

from morphospace.distance import METRICS

DEFAULT_METHOD = "pca"
DEFAULT_METRIC = "euclidean"
DEFAULT_PERMUTATIONS = 999
DEFAULT_GPA_MAX_ITERATIONS = 10
DEFAULT_GPA_TOLERANCE = 1e-4
DEFAULT_HARMONIC_THRESHOLDS = (90.0, 95.0, 99.0, 99.9)

METHODS = ("pca", "pcoa", "nmds", "ppca")
DISTANCE_METHODS = ("pcoa", "nmds")
CORRECTIONS = (None, "lingoes", "cailliez")


@dataclass(frozen=True)
class AnalysisConfig:
    """Parameters for one pass through the analysis pipeline.

    Attributes:
        method: Ordination method, one of ``METHODS``
        metric: Distance metric used by distance-based methods
        n_components: Number of axes to keep (None keeps all)
        scale: PCA on the correlation rather than covariance matrix
        correction: Negative eigenvalue correction for PCoA
        n_harmonics: Harmonics kept for outline data (None picks the maximum)
        normalize_outlines: Normalize elliptic Fourier coefficients
        scale_shapes: Scale landmark configurations to unit centroid size
        permutations: Permutations for PERMANOVA when groups are supplied
        seed: Seed for permutation tests and NMDS starts
        gpa_max_iterations: Iteration cap for generalized Procrustes
        gpa_tolerance: Convergence threshold on the mean shape change
    """

    method: str = DEFAULT_METHOD
    metric: str = DEFAULT_METRIC
    n_components: int | None = None
    scale: bool = False
    correction: str | None = None
    n_harmonics: int | None = None
    normalize_outlines: bool = True
    scale_shapes: bool = True
    permutations: int = DEFAULT_PERMUTATIONS
    seed: int | None = None
    gpa_max_iterations: int = DEFAULT_GPA_MAX_ITERATIONS
    gpa_tolerance: float = DEFAULT_GPA_TOLERANCE

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> AnalysisConfig:
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(
                f"Unknown configuration keys: {', '.join(unknown)}. "
                f"Known keys: {', '.join(sorted(known))}"
            )
        return cls(**dict(options))

    def with_options(self, **options: Any) -> AnalysisConfig:
        return replace(self, **options)

    def __post_init__(self) -> None:
        self.validate()

    @property
    def needs_distance(self) -> bool:
        return self.method in DISTANCE_METHODS

    def validate(self) -> None:
        """Check option names and ranges.

        Raises:
            ValueError: If any option is out of range or unknown
        """
        if self.method not in METHODS:
            raise ValueError(
                f"Unknown method: {self.method}. Available: {', '.join(METHODS)}"
            )
        if self.metric not in METRICS:
            raise ValueError(
                f"Unknown metric: {self.metric}. Available: {', '.join(sorted(METRICS))}"
            )
        if self.correction not in CORRECTIONS:
            raise ValueError(
                f"Unknown correction: {self.correction}. "
                "Available: None, 'lingoes', 'cailliez'"
            )
        if self.n_components is not None and self.n_components < 1:
            raise ValueError("n_components must be at least 1")
        if self.n_harmonics is not None and self.n_harmonics < 1:
            raise ValueError("n_harmonics must be at least 1")
        if self.permutations < 1:
            raise ValueError("permutations must be at least 1")
        if self.gpa_max_iterations < 1:
            raise ValueError("gpa_max_iterations must be at least 1")
