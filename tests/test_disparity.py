"""Tests for disparity metrics, bootstrapping and time bins."""

import numpy as np
import pandas as pd
import pytest

from morphospace import (
    DISPARITY_METRICS,
    bootstrap_disparity,
    disparity,
    make_community,
    pca,
    time_bins,
)


def _scores():
    return pd.DataFrame(
        [[0.0, 0.0], [2.0, 0.0], [0.0, 4.0], [2.0, 4.0]],
        index=["a", "b", "c", "d"],
        columns=["PC1", "PC2"],
    )


class TestDisparityMetrics:
    def test_sum_of_variances(self):
        # Variances with n - 1: 4/3 and 16/3
        value = DISPARITY_METRICS["sum_of_variances"](_scores().to_numpy())

        assert value == pytest.approx(20 / 3)

    def test_sum_of_ranges(self):
        assert DISPARITY_METRICS["sum_of_ranges"](_scores().to_numpy()) == pytest.approx(6.0)

    def test_product_of_variances_is_geometric_mean(self):
        value = DISPARITY_METRICS["product_of_variances"](_scores().to_numpy())

        assert value == pytest.approx(np.sqrt(4 / 3 * 16 / 3))

    def test_centroid_distance(self):
        value = DISPARITY_METRICS["centroid_distance"](_scores().to_numpy())

        assert value == pytest.approx(np.sqrt(5.0))


class TestDisparity:
    def test_single_group(self):
        result = disparity(_scores(), metric="sum_of_ranges")

        assert list(result.index) == ["all"]
        assert result["all"] == pytest.approx(6.0)
        assert result.name == "sum_of_ranges"

    def test_groups_keep_first_appearance_order(self):
        groups = ["y", "x", "y", "x"]

        result = disparity(_scores(), groups, metric="sum_of_ranges")

        assert list(result.index) == ["y", "x"]
        assert result["y"] == pytest.approx(4.0)
        assert result["x"] == pytest.approx(4.0)

    def test_accepts_ordination_result(self):
        community, _ = make_community(n_sites=12)

        result = disparity(pca(community, n_components=3))

        assert result["all"] > 0

    def test_accepts_plain_array(self):
        result = disparity(_scores().to_numpy(), ["g", "g", "h", "h"])

        assert list(result.index) == ["g", "h"]

    def test_group_too_small(self):
        with pytest.raises(ValueError, match="fewer than two"):
            disparity(_scores(), ["x", "x", "x", "y"])

    def test_unknown_metric(self):
        with pytest.raises(ValueError, match="Unknown disparity metric"):
            disparity(_scores(), metric="volume")


class TestBootstrapDisparity:
    def test_table_layout(self):
        community, _ = make_community(n_sites=20)
        scores = pca(community, n_components=3)
        groups = ["early"] * 10 + ["late"] * 10

        result = bootstrap_disparity(scores, groups, n_bootstrap=50, seed=0)

        assert list(result.table.index) == ["early", "late"]
        assert result.table.index.name == "group"
        assert list(result.table.columns) == ["n", "observed", "bootstrap_mean", "2.5%", "97.5%"]
        assert (result.table["2.5%"] <= result.table["97.5%"]).all()
        assert result.bootstraps["early"].shape == (50,)

    def test_seed_makes_result_reproducible(self):
        first = bootstrap_disparity(_scores(), n_bootstrap=20, seed=3)
        second = bootstrap_disparity(_scores(), n_bootstrap=20, seed=3)

        pd.testing.assert_frame_equal(first.table, second.table)

    def test_rarefaction(self):
        community, _ = make_community(n_sites=20)
        scores = pca(community, n_components=2)
        groups = ["big"] * 15 + ["small"] * 5

        result = bootstrap_disparity(scores, groups, n_bootstrap=20, rarefaction=4, seed=0)

        assert result.rarefaction == 4
        assert result.table.loc["big", "n"] == 15

    def test_rarefaction_larger_than_group(self):
        groups = ["x", "x", "y", "y"]

        with pytest.raises(ValueError, match="rarefaction size"):
            bootstrap_disparity(_scores(), groups, rarefaction=3)

    def test_rarefaction_too_small(self):
        with pytest.raises(ValueError, match="at least 2"):
            bootstrap_disparity(_scores(), rarefaction=1)


class TestTimeBins:
    def test_bin_boundaries(self):
        bins = time_bins([95, 80, 70, 40, 120], breaks=[100, 80, 60, 40], labels=list("abcde"))

        assert list(bins.astype(object).iloc[:4]) == ["100-80", "80-60", "80-60", "60-40"]
        assert pd.isna(bins.iloc[4])
        assert list(bins.index) == list("abcde")
        assert list(bins.cat.categories) == ["100-80", "80-60", "60-40"]
        assert bins.cat.ordered

    def test_series_keeps_index(self):
        ages = pd.Series([10.0, 5.0], index=["x", "y"])

        bins = time_bins(ages, breaks=[12, 6, 0])

        assert list(bins.index) == ["x", "y"]
        assert list(bins.astype(object)) == ["12-6", "6-0"]

    def test_breaks_must_decrease(self):
        with pytest.raises(ValueError, match="strictly decreasing"):
            time_bins([1.0], breaks=[0, 10])

    def test_disparity_through_time(self):
        community, _ = make_community(n_sites=12)
        scores = pca(community, n_components=2)
        ages = pd.Series(np.linspace(1, 59, 12), index=community.labels)
        bins = time_bins(ages, breaks=[60, 40, 20, 0])

        result = bootstrap_disparity(scores, bins, n_bootstrap=10, seed=0)

        assert list(result.table.index) == ["60-40", "40-20", "20-0"]
        assert result.table["n"].sum() == 12
