"""Tests for the end-to-end analysis pipeline."""

import numpy as np
import pytest

from morphospace import (
    Analysis,
    AnalysisConfig,
    SpecimenMatrix,
    VariableKind,
    distance_matrix,
    make_characters,
    make_community,
    make_landmarks,
    make_outlines,
    parse_newick,
)


class TestAnalysis:
    def test_landmarks_go_through_procrustes_and_pca(self):
        landmarks, labels = make_landmarks(n_specimens=12)

        result = Analysis().run(landmarks, labels=labels)

        assert result.gpa is not None
        assert result.specimens.kind is VariableKind.COORDINATES
        assert result.ordination.method == "pca"
        assert result.ordination.labels == labels
        assert result.distance is None
        assert "Procrustes fit" in result.report
        assert "Ordination axes" in result.report

    def test_outlines_pick_harmonics_from_power(self):
        outlines, labels, groups = make_outlines(n_specimens=10)
        config = AnalysisConfig(method="pcoa", permutations=19, seed=0)

        result = Analysis(config).run(outlines, labels=labels, groups=groups)

        chosen = result.calibration.min_harmonics[99.0]
        assert result.specimens.kind is VariableKind.HARMONICS
        assert result.specimens.n_variables == 4 * chosen
        assert result.permanova is not None
        assert 0 < result.permanova.p_value <= 1
        assert "Harmonic power" in result.report
        assert "PERMANOVA" in result.report

    def test_fixed_harmonic_count_skips_calibration(self):
        outlines, labels, _ = make_outlines(n_specimens=6)

        result = Analysis(AnalysisConfig(n_harmonics=5)).run(outlines, labels=labels)

        assert result.calibration is None
        assert result.specimens.n_variables == 20

    def test_community_nmds(self):
        community, _ = make_community(n_sites=12)
        config = AnalysisConfig(method="nmds", metric="braycurtis", seed=0)

        result = Analysis(config).run(community)

        assert result.ordination.stress is not None
        assert result.distance.metric == "braycurtis"
        assert "Stress" in result.report

    def test_characters_with_gower_trim_undefined_pairs(self):
        states = np.array(
            [[0, 1, np.nan], [0, 0, 1], [np.nan, np.nan, 1], [1, 1, 0], [1, 0, 0]],
            dtype=object,
        )
        characters = SpecimenMatrix.from_array(states, kind=VariableKind.CHARACTERS)
        config = AnalysisConfig(method="pcoa", metric="gower")

        result = Analysis(config).run(characters)

        assert result.removed == ["specimen_3"]
        assert "specimen_3" not in result.ordination.labels
        assert result.specimens.labels == result.distance.labels
        assert "Removed specimens" in result.report

    def test_group_list_follows_trimmed_specimens(self):
        states = np.array(
            [[0, 1, np.nan], [0, 0, 1], [np.nan, np.nan, 1], [1, 1, 0], [1, 0, 0], [1, 1, 1]],
            dtype=object,
        )
        characters = SpecimenMatrix.from_array(states, kind=VariableKind.CHARACTERS)
        config = AnalysisConfig(method="pcoa", metric="gower", permutations=19, seed=0)

        result = Analysis(config).run(characters, groups=["a", "a", "a", "b", "b", "b"])

        assert result.removed == ["specimen_3"]
        assert result.permanova is not None
        assert (result.permanova.df_between, result.permanova.df_within) == (1, 3)
        assert "PERMANOVA" in result.report

    def test_generated_characters(self):
        config = AnalysisConfig(method="pcoa", metric="gower", correction="cailliez")

        result = Analysis(config).run(make_characters())

        assert len(result.ordination.negative_eigenvalues) == 0

    def test_distance_matrix_input(self):
        community, _ = make_community(n_sites=10)
        distances = distance_matrix(community, "braycurtis")

        result = Analysis(AnalysisConfig(method="pcoa")).run(distances)

        assert result.specimens is None
        assert result.distance is distances
        assert "DistanceMatrix" in result.report

    def test_distance_matrix_needs_distance_method(self):
        community, _ = make_community(n_sites=10)

        with pytest.raises(TypeError, match="needs specimens"):
            Analysis().run(distance_matrix(community))

    def test_phylogenetic_pca(self):
        community, _ = make_community(n_sites=4, n_species=3)
        labels = community.labels
        tree = parse_newick(
            f"(({labels[0]}:1,{labels[1]}:1):1,({labels[2]}:1,{labels[3]}:1):1);"
        )

        result = Analysis(AnalysisConfig(method="ppca")).run(community, tree=tree)

        assert result.ordination.method == "ppca"

    def test_phylogenetic_pca_needs_tree(self):
        community, _ = make_community(n_sites=5)

        with pytest.raises(ValueError, match="tree"):
            Analysis(AnalysisConfig(method="ppca")).run(community)

    def test_rejects_unknown_input(self):
        with pytest.raises(TypeError, match="Expected a landmark array"):
            Analysis().run(np.zeros(5))
