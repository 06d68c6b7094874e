"""Tests for the Procrustes module."""

import numpy as np
import pytest

from morphospace import (
    ConvergenceWarning,
    ShapeMismatchError,
    VariableKind,
    align,
    center,
    centroid_size,
    generalized_procrustes,
    make_landmarks,
    mean_shape,
    procrustes_distance,
    scale,
)


class TestCenter:
    def test_center_moves_centroid_to_origin(self):
        shape = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0], [7.0, 8.0, 9.0]])
        centered = center(shape)

        np.testing.assert_array_almost_equal(
            centered.mean(axis=0), np.array([0.0, 0.0, 0.0])
        )

    def test_center_preserves_relative_positions(self):
        shape = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        centered = center(shape)

        np.testing.assert_almost_equal(
            np.linalg.norm(shape[0] - shape[1]),
            np.linalg.norm(centered[0] - centered[1]),
        )


class TestScale:
    def test_scale_normalizes_to_unit_norm(self):
        shape = np.array([[1.0, 0.0, 0.0], [0.0, 2.0, 0.0], [0.0, 0.0, 3.0]])

        np.testing.assert_almost_equal(np.linalg.norm(scale(shape)), 1.0)

    def test_scale_handles_zero_shape(self):
        shape = np.zeros((2, 3))

        np.testing.assert_array_equal(scale(shape), shape)


class TestCentroidSize:
    def test_centroid_size_unit_square(self):
        square = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])

        # Each corner sits sqrt(0.5) from the centroid
        np.testing.assert_almost_equal(centroid_size(square), np.sqrt(4 * 0.5))

    def test_centroid_size_ignores_translation_and_scales_linearly(self):
        shape = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])

        np.testing.assert_almost_equal(centroid_size(shape + 5), centroid_size(shape))
        np.testing.assert_almost_equal(centroid_size(shape * 2), centroid_size(shape) * 2)


class TestAlign:
    def test_align_rotated_shape(self):
        ref = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
        theta = np.pi / 2
        rotation = np.array(
            [[np.cos(theta), -np.sin(theta), 0], [np.sin(theta), np.cos(theta), 0], [0, 0, 1]]
        )
        rotated = np.dot(ref, rotation)

        aligned = align(rotated, ref)

        np.testing.assert_array_almost_equal(aligned, ref, decimal=5)

    def test_align_preserves_interlandmark_distances(self):
        ref = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        shape = np.array([[0.0, 0.0, 0.0], [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0]])

        aligned = align(shape, ref)

        pairs = [(i, j) for i in range(3) for j in range(i + 1, 3)]
        np.testing.assert_array_almost_equal(
            [np.linalg.norm(shape[i] - shape[j]) for i, j in pairs],
            [np.linalg.norm(aligned[i] - aligned[j]) for i, j in pairs],
        )

    def test_align_refuses_reflection_by_default(self):
        ref = center(np.array([[0.0, 0.0], [2.0, 0.0], [0.0, 1.0]]))
        mirrored = ref * np.array([-1.0, 1.0])

        proper = align(mirrored, ref)
        reflected = align(mirrored, ref, allow_reflection=True)

        np.testing.assert_array_almost_equal(reflected, ref)
        assert np.linalg.norm(proper - ref) > 0.1

    def test_align_shape_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            align(np.zeros((3, 2)), np.zeros((4, 2)))


class TestMeanShape:
    def test_mean_shape_multiple_specimens(self):
        landmarks = np.zeros((3, 2, 2))
        landmarks[:, :, 0] = [[0, 0], [2, 0], [0, 2]]
        landmarks[:, :, 1] = [[0, 0], [4, 0], [0, 4]]

        expected = np.array([[0, 0], [3, 0], [0, 3]])
        np.testing.assert_array_equal(mean_shape(landmarks), expected)


class TestProcrustesDistance:
    def test_procrustes_distance_identical(self):
        landmarks = np.zeros((3, 3, 2))
        landmarks[:, :, 0] = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
        landmarks[:, :, 1] = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]

        dists = procrustes_distance(landmarks, mean_shape(landmarks))

        np.testing.assert_array_almost_equal(dists, [0.0, 0.0])

    def test_procrustes_distance_different(self):
        landmarks = np.zeros((3, 3, 2))
        landmarks[:, :, 0] = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
        landmarks[:, :, 1] = [[0, 0, 0], [2, 0, 0], [0, 2, 0]]

        dists = procrustes_distance(landmarks, landmarks[:, :, 0])

        assert dists[0] == 0.0
        np.testing.assert_almost_equal(dists[1], np.sqrt(2.0))

    def test_procrustes_distance_reference_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            procrustes_distance(np.zeros((3, 2, 4)), np.zeros((4, 2)))


class TestGeneralizedProcrustes:
    def test_gpa_aligns_translated_shapes(self):
        landmarks = np.zeros((3, 3, 2))
        landmarks[:, :, 0] = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
        landmarks[:, :, 1] = [[10, 10, 10], [11, 10, 10], [10, 11, 10]]

        result = generalized_procrustes(landmarks)

        diff = np.linalg.norm(result.aligned[:, :, 0] - result.aligned[:, :, 1])
        assert diff < 0.01

    def test_gpa_aligns_scaled_shapes(self):
        landmarks = np.zeros((3, 3, 2))
        landmarks[:, :, 0] = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
        landmarks[:, :, 1] = [[0, 0, 0], [2, 0, 0], [0, 2, 0]]

        result = generalized_procrustes(landmarks, scale=True)

        diff = np.linalg.norm(result.aligned[:, :, 0] - result.aligned[:, :, 1])
        assert diff < 0.01

    def test_gpa_no_scale_preserves_size_differences(self):
        landmarks = np.zeros((3, 3, 2))
        landmarks[:, :, 0] = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
        landmarks[:, :, 1] = [[0, 0, 0], [2, 0, 0], [0, 2, 0]]

        result = generalized_procrustes(landmarks, scale=False)

        size0 = np.linalg.norm(result.aligned[:, :, 0])
        size1 = np.linalg.norm(result.aligned[:, :, 1])
        assert size1 > size0

    def test_gpa_returns_centroid_sizes(self):
        landmarks = np.zeros((3, 3, 2))
        landmarks[:, :, 0] = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
        landmarks[:, :, 1] = [[0, 0, 0], [2, 0, 0], [0, 2, 0]]

        result = generalized_procrustes(landmarks)

        assert len(result.centroid_sizes) == 2
        np.testing.assert_almost_equal(result.centroid_sizes[1], 2 * result.centroid_sizes[0])

    def test_gpa_does_not_modify_input(self):
        landmarks = np.zeros((3, 3, 2))
        landmarks[:, :, 0] = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
        landmarks[:, :, 1] = [[10, 10, 10], [11, 10, 10], [10, 11, 10]]
        original = landmarks.copy()

        generalized_procrustes(landmarks)

        np.testing.assert_array_equal(landmarks, original)

    def test_gpa_recovers_common_shape_in_2d(self):
        landmarks, _ = make_landmarks(n_specimens=15, n_landmarks=6, noise=0.0, seed=1)

        result = generalized_procrustes(landmarks)

        assert result.converged
        distances = procrustes_distance(result.aligned, result.mean_shape)
        np.testing.assert_array_almost_equal(distances, np.zeros(15), decimal=6)
        np.testing.assert_almost_equal(np.linalg.norm(result.mean_shape), 1.0)

    def test_gpa_aligned_specimens_are_centered(self):
        landmarks, _ = make_landmarks(n_specimens=10, n_landmarks=5, n_dims=3, seed=2)

        result = generalized_procrustes(landmarks)

        np.testing.assert_array_almost_equal(
            result.aligned.mean(axis=0), np.zeros((3, 10))
        )

    def test_gpa_warns_when_not_converged(self):
        landmarks, _ = make_landmarks(n_specimens=10, n_landmarks=5, noise=0.2, seed=3)

        with pytest.warns(ConvergenceWarning):
            result = generalized_procrustes(landmarks, max_iterations=1, tolerance=0.0)

        assert not result.converged
        assert result.iterations == 1

    def test_gpa_needs_two_specimens(self):
        with pytest.raises(ShapeMismatchError, match="two specimens"):
            generalized_procrustes(np.zeros((4, 2, 1)))

    def test_gpa_to_specimens(self):
        landmarks, labels = make_landmarks(n_specimens=4, n_landmarks=5)

        specimens = generalized_procrustes(landmarks).to_specimens(labels)

        assert specimens.kind is VariableKind.COORDINATES
        assert specimens.labels == labels
        assert specimens.n_variables == 10
