"""Tests for soil formulas."""

import pytest

from trunk.core.formulas import (
    calculate_capacity_reward,
    calculate_end_date,
    calculate_soil_cost,
    calculate_uproot_refund,
    get_capacity_reward,
    round_soil,
)


class TestSoilCost:
    def test_table_lookup(self):
        assert calculate_soil_cost("2w", "fertile") == 2
        assert calculate_soil_cost("3m", "firm") == 8
        assert calculate_soil_cost("1y", "barren") == 24

    def test_unknown_season_raises(self):
        with pytest.raises(KeyError):
            calculate_soil_cost("1w", "fertile")


class TestCapacityReward:
    def test_formula(self):
        expected = 0.26 * 1.1 * 0.85 * (1 - 10 / 120) ** 1.5
        assert calculate_capacity_reward("2w", "fertile", 4, 10) == pytest.approx(expected)

    def test_full_result_barren_year(self):
        expected = 8.84 * 2.4 * 1.0 * (1 - 50 / 120) ** 1.5
        assert calculate_capacity_reward("1y", "barren", 5, 50) == pytest.approx(expected)

    def test_diminishes_as_capacity_grows(self):
        low = calculate_capacity_reward("3m", "firm", 5, 10)
        high = calculate_capacity_reward("3m", "firm", 5, 100)
        assert 0 < high < low

    def test_zero_at_and_past_max(self):
        assert calculate_capacity_reward("1y", "barren", 5, 120) == 0
        assert calculate_capacity_reward("1y", "barren", 5, 130) == 0

    def test_out_of_range_result_uses_middle_multiplier(self):
        assert calculate_capacity_reward("1m", "firm", 9, 20) == calculate_capacity_reward(
            "1m", "firm", 3, 20
        )

    def test_base_reward(self):
        assert get_capacity_reward("firm", "3m") == pytest.approx(1.95 * 1.75)


class TestRefundsAndDates:
    def test_uproot_refund_is_a_quarter(self):
        assert calculate_uproot_refund(5) == 1.25
        assert calculate_uproot_refund(3) == 0.75

    def test_round_soil(self):
        assert round_soil(0.1 + 0.2) == 0.3
        assert round_soil(8.049999) == 8.05

    def test_end_date(self):
        assert calculate_end_date("2025-01-01T00:00:00.000Z", "2w") == "2025-01-15T00:00:00.000Z"
        assert calculate_end_date("2025-01-01T00:00:00.000Z", "1m") == "2025-01-31T00:00:00.000Z"
