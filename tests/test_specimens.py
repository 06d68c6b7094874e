"""Tests for specimen matrices and dataset loading."""

import numpy as np
import pandas as pd
import pytest

from morphospace import (
    ShapeMismatchError,
    SpecimenMatrix,
    VariableKind,
    load_table,
    make_characters,
    make_community,
    make_landmarks,
    make_outlines,
)


class TestSpecimenMatrix:
    def test_from_array_default_names(self):
        specimens = SpecimenMatrix.from_array(np.zeros((3, 2)))

        assert specimens.labels == ["specimen_1", "specimen_2", "specimen_3"]
        assert specimens.variables == ["V1", "V2"]
        assert specimens.kind is VariableKind.TRAITS
        assert len(specimens) == 3

    def test_labels_and_columns_become_strings(self):
        frame = pd.DataFrame([[1.0, 2.0], [3.0, 4.0]], index=[10, 20], columns=[0, 1])

        specimens = SpecimenMatrix(frame)

        assert specimens.labels == ["10", "20"]
        assert specimens.variables == ["0", "1"]

    def test_kind_accepts_string(self):
        specimens = SpecimenMatrix.from_array(np.ones((2, 2)), kind="harmonics")

        assert specimens.kind is VariableKind.HARMONICS

    def test_rejects_duplicate_labels(self):
        with pytest.raises(ValueError, match="Duplicate specimen labels: a"):
            SpecimenMatrix.from_array(np.ones((3, 1)), labels=["a", "a", "b"])

    def test_rejects_empty_matrix(self):
        with pytest.raises(ShapeMismatchError):
            SpecimenMatrix(pd.DataFrame())

    def test_rejects_non_numeric_traits(self):
        frame = pd.DataFrame({"length": [1.0, 2.0], "colour": ["red", "blue"]})

        with pytest.raises(TypeError, match="colour"):
            SpecimenMatrix(frame, VariableKind.TRAITS)

    def test_characters_may_hold_anything(self):
        frame = pd.DataFrame({"colour": ["red", "blue", None]})

        specimens = SpecimenMatrix(frame, VariableKind.CHARACTERS)

        assert specimens.has_missing
        assert specimens.values.dtype == object

    def test_landmarks_round_trip(self):
        landmarks, labels = make_landmarks(n_specimens=4, n_landmarks=3)

        specimens = SpecimenMatrix.from_landmarks(landmarks, labels)

        assert specimens.kind is VariableKind.COORDINATES
        assert specimens.variables == ["x1", "x2", "x3", "y1", "y2", "y3"]
        np.testing.assert_array_equal(specimens.values[0, :3], landmarks[:, 0, 0])
        np.testing.assert_array_equal(specimens.to_landmarks(2), landmarks)

    def test_to_landmarks_needs_coordinates(self):
        with pytest.raises(TypeError):
            SpecimenMatrix.from_array(np.ones((2, 4))).to_landmarks(2)

    def test_to_landmarks_dimension_mismatch(self):
        landmarks, _ = make_landmarks(n_specimens=2, n_landmarks=5)

        with pytest.raises(ShapeMismatchError):
            SpecimenMatrix.from_landmarks(landmarks).to_landmarks(3)

    def test_subset_keeps_requested_order(self):
        specimens = SpecimenMatrix.from_array(np.arange(6.0).reshape(3, 2))

        subset = specimens.subset(["specimen_3", "specimen_1"])

        assert subset.labels == ["specimen_3", "specimen_1"]
        np.testing.assert_array_equal(subset.values[0], [4.0, 5.0])
        with pytest.raises(KeyError, match="specimen_9"):
            specimens.subset(["specimen_9"])

    def test_drop_variables(self):
        specimens = SpecimenMatrix.from_array(np.ones((2, 3)))

        assert specimens.drop_variables(["V2"]).variables == ["V1", "V3"]

    def test_repr(self):
        specimens = SpecimenMatrix.from_array(np.ones((2, 3)))

        assert repr(specimens) == "SpecimenMatrix(kind=traits, n_specimens=2, n_variables=3)"


class TestLoadTable:
    def test_label_column_becomes_index(self):
        frame = pd.DataFrame({"id": ["a", "b"], "mass": [1.0, 2.0]})

        specimens = load_table(frame, label_column="id")

        assert specimens.labels == ["a", "b"]
        assert specimens.variables == ["mass"]

    def test_missing_label_column(self):
        with pytest.raises(KeyError, match="taxon"):
            load_table(pd.DataFrame({"mass": [1.0]}), label_column="taxon")


class TestExampleDatasets:
    def test_make_landmarks_is_deterministic(self):
        first, labels = make_landmarks(n_specimens=5, seed=7)
        second, _ = make_landmarks(n_specimens=5, seed=7)

        assert first.shape == (8, 2, 5)
        assert labels[0] == "specimen_1"
        np.testing.assert_array_equal(first, second)

    def test_labels_are_zero_padded(self):
        _, labels = make_landmarks(n_specimens=12)

        assert labels[0] == "specimen_01"
        assert labels == sorted(labels)

    def test_make_outlines(self):
        outlines, labels, groups = make_outlines(n_specimens=6, n_points=40)

        assert len(outlines) == 6
        assert outlines[0].shape == (40, 2)
        assert list(groups.index) == labels
        assert list(groups[:2]) == ["round", "square"]

    def test_make_community_has_no_empty_sites(self):
        community, gradient = make_community(n_sites=25, n_species=8)

        assert community.values.shape == (25, 8)
        assert (community.values.sum(axis=1) > 0).all()
        assert gradient.is_monotonic_increasing

    def test_make_characters(self):
        characters = make_characters(n_taxa=6, n_characters=10, missing=0.3, seed=1)

        assert characters.kind is VariableKind.CHARACTERS
        assert characters.has_missing
        assert characters.variables[0] == "char1"
