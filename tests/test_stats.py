"""Unit tests for robust window statistics (median / MAD)."""

import pytest

from beacon_proximity.stats import mad, median


class TestMedian:
    def test_empty_is_undefined(self):
        assert median([]) is None

    def test_odd_length(self):
        assert median([1, 3, 2]) == 2

    def test_even_length_is_mean_of_middle_values(self):
        assert median([1, 2, 3, 4]) == 2.5

    def test_single_value(self):
        assert median([7.25]) == 7.25

    def test_unsorted_input_not_mutated(self):
        values = [5.0, 1.0, 3.0]
        median(values)
        assert values == [5.0, 1.0, 3.0]


class TestMad:
    @pytest.mark.parametrize("values", [[], [1.0], [1.0, 2.0], [1.0, 2.0, 3.0]])
    def test_undefined_below_four_samples(self, values):
        assert mad(values) is None

    def test_constant_window_is_zero(self):
        assert mad([1, 1, 1, 1]) == 0

    def test_known_value(self):
        # median 3, deviations [2, 1, 0, 1, 4] -> median 1
        assert mad([1, 2, 3, 4, 7]) == 1

    def test_shift_invariant(self):
        values = [1.0, 2.5, 3.0, 7.0, 4.2, 3.3]
        shifted = [v + 12.5 for v in values]
        assert mad(shifted) == pytest.approx(mad(values))

    def test_scales_linearly(self):
        values = [1.0, 2.5, 3.0, 7.0, 4.2, 3.3]
        scaled = [v * 3.0 for v in values]
        assert mad(scaled) == pytest.approx(3.0 * mad(values))

    def test_outlier_resistant(self):
        assert mad([2.0, 2.1, 1.9, 2.0, 40.0]) == pytest.approx(0.1)

    def test_custom_minimum(self):
        assert mad([1.0, 2.0], min_samples=2) == 0.5
