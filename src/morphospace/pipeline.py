"""
End-to-end analysis: load, normalize, ordinate, summarize.

:class:`Analysis` chains the stages for the common cases:

- a landmark stack (n_landmarks, n_dims, n_specimens) is superimposed by
  generalized Procrustes analysis;
- a list of (n_points, 2) outlines is decomposed into elliptic Fourier
  coefficients;
- a :class:`SpecimenMatrix` is used as-is;
- a :class:`DistanceMatrix` goes straight to a distance-based ordination.

Example:
    >>> import morphospace as ms
    >>> landmarks, labels = ms.make_landmarks(n_specimens=30)
    >>> result = ms.Analysis(ms.AnalysisConfig(method="pca")).run(landmarks, labels=labels)
    >>> print(result.report)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Hashable, Sequence, Union

import numpy as np
import pandas as pd

from morphospace.config import AnalysisConfig
from morphospace.distance import DistanceMatrix, distance_matrix
from morphospace.efourier import (
    HarmonicPowerCalibration,
    calibrate_harmonic_power,
    efourier_matrix,
)
from morphospace.ordination import OrdinationResult, nmds, pca, pcoa, phylogenetic_pca
from morphospace.phylogeny import Tree
from morphospace.procrustes import GPAResult, generalized_procrustes
from morphospace.report import (
    calibration_table,
    format_report,
    permanova_table,
    variance_table,
)
from morphospace.specimens import SpecimenMatrix
from morphospace.stats import PermanovaResult, align_groups, permanova

if TYPE_CHECKING:
    from numpy.typing import NDArray

    AnalysisInput = Union[
        SpecimenMatrix, DistanceMatrix, NDArray[np.floating], Sequence[NDArray[np.floating]]
    ]

logger = logging.getLogger(__name__)

# Share of harmonic power (percent) that picks the harmonic count for outlines
OUTLINE_POWER_THRESHOLD = 99.0


@dataclass
class AnalysisResult:
    """Everything produced by one :meth:`Analysis.run`.

    Attributes:
        ordination: Ordination of the specimens
        specimens: Specimen matrix that was analysed (None for distance input)
        distance: Distance matrix, when one was built or given
        permanova: Group test, when groups were given
        gpa: Procrustes fit, for landmark input
        calibration: Harmonic power calibration, for outline input
        removed: Specimens dropped to make the distance matrix complete
        report: Plain-text summary
    """

    ordination: OrdinationResult
    specimens: SpecimenMatrix | None = None
    distance: DistanceMatrix | None = None
    permanova: PermanovaResult | None = None
    gpa: GPAResult | None = None
    calibration: HarmonicPowerCalibration | None = None
    removed: list[str] = field(default_factory=list)
    report: str = ""


class Analysis:
    """Runs the load -> normalize -> ordinate -> summarize chain."""

    def __init__(self, config: AnalysisConfig | None = None):
        self.config = config or AnalysisConfig()

    def run(
        self,
        data: AnalysisInput,
        labels: Sequence[Hashable] | None = None,
        groups: pd.Series | Sequence[Hashable] | None = None,
        tree: Tree | None = None,
    ) -> AnalysisResult:
        """Analyse one dataset.

        Args:
            data: Landmark stack, outline list, SpecimenMatrix or DistanceMatrix
            labels: Specimen labels for landmark or outline input
            groups: Optional grouping; triggers a PERMANOVA
            tree: Phylogeny, required for ``method="ppca"``

        Returns:
            AnalysisResult
        """
        config = self.config
        specimens = gpa = calibration = distance = None
        removed: list[str] = []

        if isinstance(data, DistanceMatrix):
            if not config.needs_distance:
                raise TypeError(f"Method {config.method} needs specimens, not distances")
            distance = data
        else:
            specimens, gpa, calibration = self._normalize(data, labels)

        if config.needs_distance or groups is not None:
            if distance is None:
                distance = distance_matrix(specimens, config.metric)
            if groups is not None and not isinstance(groups, pd.Series):
                # Key groups by label so they survive trimming
                groups = pd.Series(align_groups(distance.labels, groups), index=distance.labels)
            if not distance.is_complete:
                distance, removed = distance.trim_incomplete()
                if specimens is not None:
                    specimens = specimens.subset(distance.labels)

        result = AnalysisResult(
            ordination=self._ordinate(specimens, distance, tree),
            specimens=specimens,
            distance=distance,
            gpa=gpa,
            calibration=calibration,
            removed=removed,
        )
        if groups is not None:
            result.permanova = permanova(
                distance, groups, permutations=config.permutations, seed=config.seed
            )
        result.report = self._report(result)
        return result

    def _normalize(
        self,
        data: AnalysisInput,
        labels: Sequence[Hashable] | None,
    ) -> tuple[SpecimenMatrix, GPAResult | None, HarmonicPowerCalibration | None]:
        config = self.config
        if isinstance(data, SpecimenMatrix):
            logger.info("Using %r as given", data)
            return data, None, None

        if isinstance(data, np.ndarray) and data.ndim == 3:
            logger.info("Superimposing %d landmark configurations", data.shape[2])
            gpa = generalized_procrustes(
                data,
                scale=config.scale_shapes,
                max_iterations=config.gpa_max_iterations,
                tolerance=config.gpa_tolerance,
            )
            return gpa.to_specimens(labels), gpa, None

        outlines = list(data)
        if outlines and all(np.ndim(outline) == 2 for outline in outlines):
            logger.info("Decomposing %d outlines", len(outlines))
            n_harmonics = config.n_harmonics
            calibration = None
            if n_harmonics is None:
                calibration = calibrate_harmonic_power(
                    outlines,
                    thresholds=(OUTLINE_POWER_THRESHOLD,),
                    labels=labels,
                )
                n_harmonics = calibration.min_harmonics[OUTLINE_POWER_THRESHOLD]
                if n_harmonics is None:
                    n_harmonics = int(calibration.harmonics[-1][1:])
                logger.info(
                    "Using %d harmonics (%.4g%% of harmonic power)",
                    n_harmonics,
                    OUTLINE_POWER_THRESHOLD,
                )
            specimens = efourier_matrix(
                outlines, n_harmonics, normalize=config.normalize_outlines, labels=labels
            )
            return specimens, None, calibration

        raise TypeError(
            "Expected a landmark array (n_landmarks, n_dims, n_specimens), a list of "
            f"outlines, a SpecimenMatrix or a DistanceMatrix; got {type(data).__name__}"
        )

    def _ordinate(
        self,
        specimens: SpecimenMatrix | None,
        distance: DistanceMatrix | None,
        tree: Tree | None,
    ) -> OrdinationResult:
        config = self.config

        if config.method == "pca":
            return pca(specimens, n_components=config.n_components, scale=config.scale)
        if config.method == "ppca":
            if tree is None:
                raise ValueError("Phylogenetic PCA needs a tree")
            return phylogenetic_pca(specimens, tree, n_components=config.n_components)
        if config.method == "pcoa":
            return pcoa(
                distance,
                n_components=config.n_components,
                correction=config.correction,
            )
        return nmds(distance, n_components=config.n_components or 2, seed=config.seed)

    def _report(self, result: AnalysisResult) -> str:
        ordination = result.ordination
        data = result.specimens if result.specimens is not None else result.distance
        sections = [("Data", f"{data!r}, method {ordination.method}")]
        if result.removed:
            sections.append(("Removed specimens", ", ".join(result.removed)))
        if result.gpa is not None:
            sections.append((
                "Procrustes fit",
                f"{result.gpa.iterations} iterations, converged: {result.gpa.converged}",
            ))
        if result.calibration is not None:
            sections.append(("Harmonic power", calibration_table(result.calibration)))
        sections.append(("Ordination axes", variance_table(ordination)))
        if ordination.stress is not None:
            sections.append(("Stress", f"{ordination.stress:.4f}"))
        if len(ordination.negative_eigenvalues):
            sections.append((
                "Negative eigenvalues",
                f"{len(ordination.negative_eigenvalues)} "
                f"(sum {ordination.negative_eigenvalues.sum():.4g})",
            ))
        if result.permanova is not None:
            sections.append(("PERMANOVA", permanova_table(result.permanova)))
        return format_report(*sections)
