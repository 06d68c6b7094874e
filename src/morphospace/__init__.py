"""
morphospace - ordination and distance analysis for morphometric data.

Takes specimens from raw measurements to a summarized morphospace:
landmark configurations are superimposed by Procrustes analysis, outlines
are decomposed into elliptic Fourier coefficients, specimen matrices are
turned into distance matrices, and either is ordinated (PCA, PCoA, NMDS,
phylogenetic PCA). Disparity and PERMANOVA summarize the result.

Example usage:
    >>> import morphospace as ms
    >>>
    >>> # Landmarks: superimpose, then PCA
    >>> landmarks, labels = ms.make_landmarks(n_specimens=30)
    >>> gpa = ms.generalized_procrustes(landmarks)
    >>> shapes = gpa.to_specimens(labels)
    >>> result = ms.pca(shapes)
    >>> warped = ms.warp_along_pc(result, pc=1, magnitude=2.0)
    >>>
    >>> # Communities: Bray-Curtis distances, then principal coordinates
    >>> community, gradient = ms.make_community()
    >>> distances = ms.distance_matrix(community, metric="braycurtis")
    >>> coords = ms.pcoa(distances, correction="cailliez")
    >>>
    >>> # Outlines: how many harmonics capture 99% of the outline?
    >>> outlines, labels, groups = ms.make_outlines()
    >>> calibration = ms.calibrate_harmonic_power(outlines, labels=labels)
    >>> calibration.min_harmonics[99.0]
"""

import logging

from morphospace.config import AnalysisConfig
from morphospace.datasets import (
    load_table,
    make_characters,
    make_community,
    make_landmarks,
    make_outlines,
)
from morphospace.disparity import (
    DISPARITY_METRICS,
    DisparityResult,
    bootstrap_disparity,
    disparity,
    time_bins,
)
from morphospace.distance import METRICS, DistanceMatrix, distance_matrix
from morphospace.efourier import (
    EllipticFourier,
    HarmonicPowerCalibration,
    calibrate_harmonic_power,
    efourier,
    efourier_matrix,
    harmonic_power,
    interpolate_outline,
    inverse_efourier,
)
from morphospace.errors import (
    ConvergenceWarning,
    IncompleteDistanceError,
    MissingDataError,
    MorphospaceError,
    NewickParseError,
    ShapeMismatchError,
)
from morphospace.ordination import (
    OrdinationResult,
    nmds,
    ordinate,
    pca,
    pcoa,
    phylogenetic_pca,
    project,
    warp_along_pc,
)
from morphospace.phylogeny import Node, Tree, parse_newick
from morphospace.pipeline import Analysis, AnalysisResult
from morphospace.procrustes import (
    GPAResult,
    align,
    center,
    centroid_size,
    generalized_procrustes,
    mean_shape,
    procrustes_distance,
    scale,
)
from morphospace.report import (
    calibration_table,
    format_report,
    permanova_table,
    summarize,
    variance_table,
)
from morphospace.specimens import SpecimenMatrix, VariableKind
from morphospace.stats import PermanovaResult, permanova

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Data model
    "SpecimenMatrix",
    "VariableKind",
    "DistanceMatrix",
    "Tree",
    "Node",
    "parse_newick",
    # Loading
    "load_table",
    "make_landmarks",
    "make_outlines",
    "make_community",
    "make_characters",
    # Procrustes
    "GPAResult",
    "generalized_procrustes",
    "center",
    "scale",
    "align",
    "mean_shape",
    "centroid_size",
    "procrustes_distance",
    # Elliptic Fourier
    "EllipticFourier",
    "HarmonicPowerCalibration",
    "efourier",
    "inverse_efourier",
    "efourier_matrix",
    "harmonic_power",
    "interpolate_outline",
    "calibrate_harmonic_power",
    # Distances
    "METRICS",
    "distance_matrix",
    # Ordination
    "OrdinationResult",
    "pca",
    "pcoa",
    "nmds",
    "phylogenetic_pca",
    "ordinate",
    "warp_along_pc",
    "project",
    # Statistics
    "PermanovaResult",
    "permanova",
    "DISPARITY_METRICS",
    "DisparityResult",
    "disparity",
    "bootstrap_disparity",
    "time_bins",
    # Reporting
    "summarize",
    "variance_table",
    "calibration_table",
    "permanova_table",
    "format_report",
    # Pipeline
    "AnalysisConfig",
    "Analysis",
    "AnalysisResult",
    # Errors
    "MorphospaceError",
    "ShapeMismatchError",
    "MissingDataError",
    "IncompleteDistanceError",
    "NewickParseError",
    "ConvergenceWarning",
]
