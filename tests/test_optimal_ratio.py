"""
Unit tests for the optimal ratio estimator
"""

from datetime import date, timedelta

import pandas as pd
import pytest

from bidtarget.config import EstimatorConfig
from bidtarget.models import Confidence, DailyMetric
from bidtarget.optimal_ratio import (
    build_ratio_bins,
    daily_net_profit,
    determine_confidence,
    estimate_optimal_ratio,
    metrics_from_frame,
    period_net_profit,
)


def make_days(rows, start=date(2025, 1, 1)):
    """rows: list of (revenue, ratio, count)"""
    days = []
    for revenue, ratio, count in rows:
        for _ in range(count):
            days.append(
                DailyMetric(
                    date=start + timedelta(days=len(days)),
                    revenue=revenue,
                    ad_spend=revenue * ratio,
                )
            )
    return days


class TestEstimateOptimalRatio:
    def setup_method(self):
        self.config = EstimatorConfig()

    def test_empty_history_uses_fallback(self):
        """No history returns exactly the fallback ratio"""
        result = estimate_optimal_ratio([], self.config)

        assert result.ratio == self.config.fallback_ratio
        assert result.used_fallback is True
        assert result.confidence == Confidence.LOW
        assert result.valid_days_used == 0

    def test_days_outside_range_are_ignored(self):
        """Zero revenue and out-of-range ratios never count"""
        days = [
            DailyMetric(date=date(2025, 1, 1), revenue=0, ad_spend=100),
            DailyMetric(date=date(2025, 1, 2), revenue=1000, ad_spend=900),  # 0.90
            DailyMetric(date=date(2025, 1, 3), revenue=1000, ad_spend=5),  # 0.005
        ]
        result = estimate_optimal_ratio(days, self.config)

        assert result.used_fallback is True
        assert result.valid_days_used == 0

    def test_sparse_bins_fall_back(self):
        """Valid days but no bin with min_days_per_bin days"""
        days = make_days([(10000, 0.10, 2), (10000, 0.20, 2)])
        result = estimate_optimal_ratio(days, self.config)

        assert result.used_fallback is True
        assert result.valid_days_used == 4
        assert result.valid_bin_count == 0
        assert result.ratio == self.config.fallback_ratio

    def test_single_bin_history_is_low_confidence(self):
        """100 days at 10% land in one bin: estimate 0.10, one bin is LOW"""
        days = make_days([(10000, 0.10, 100)])
        result = estimate_optimal_ratio(days, self.config)

        assert result.ratio == pytest.approx(0.10)
        assert result.used_fallback is False
        assert result.valid_days_used == 100
        assert result.valid_bin_count == 1
        assert result.confidence == Confidence.LOW

    def test_picks_most_profitable_bin(self):
        """Spending more grows revenue until the margin loss outweighs it"""
        days = make_days([
            (10000, 0.035, 20),
            (14000, 0.065, 20),
            (16000, 0.095, 20),
            (16500, 0.125, 20),
            (16600, 0.155, 20),
        ])
        result = estimate_optimal_ratio(days, self.config)

        assert result.ratio == pytest.approx(0.095)
        assert result.valid_bin_count == 5
        assert result.confidence == Confidence.HIGH
        assert result.optimal_bin_profit == pytest.approx(16000 * (0.55 - 0.095))

    def test_day_on_bin_boundary_not_shared(self):
        """Days at exactly 0.32 open the next bin instead of joining the one below"""
        days = make_days([(10000, 0.30, 2), (10000, 0.32, 3)])
        result = estimate_optimal_ratio(days, self.config)

        assert result.valid_bin_count == 1
        assert result.ratio == pytest.approx(0.32)
        assert result.valid_days_used == 5

    def test_tie_goes_to_lowest_ratio(self):
        """Equal total profit keeps the first bin in ascending order"""
        config = EstimatorConfig(
            margin_potential=0.5, bin_width=0.125, min_ratio=0.0, max_ratio=0.5
        )
        # 5 x (0.5 - 0.0625) == 7 x (0.5 - 0.1875) == 2.1875
        days = make_days([(7, 0.1875, 3), (5, 0.0625, 3)])
        result = estimate_optimal_ratio(days, config)

        assert result.ratio == pytest.approx(0.0625)

    def test_accepts_plain_dicts(self):
        """Warehouse rows may arrive as dicts with camelCase spend"""
        rows = [
            {"date": "2025-01-0%d" % i, "revenue": 10000, "adSpend": 1000}
            for i in range(1, 4)
        ]
        result = estimate_optimal_ratio(rows)

        assert result.ratio == pytest.approx(0.10)
        assert result.used_fallback is False

    def test_deterministic(self):
        """Identical inputs give identical outputs"""
        days = make_days([(10000, 0.05, 10), (12000, 0.12, 10)])

        assert estimate_optimal_ratio(days) == estimate_optimal_ratio(days)


class TestRatioBins:
    def test_bins_are_half_open(self):
        """A ratio on a boundary belongs to the upper bin"""
        config = EstimatorConfig(
            margin_potential=0.5, bin_width=0.125, min_ratio=0.0, max_ratio=0.5
        )
        bins = build_ratio_bins([(0.125, 1.0), (0.0625, 1.0)], config)

        assert [b.lower_bound for b in bins] == [0.0, 0.125]
        assert [b.days for b in bins] == [1, 1]

    def test_last_bin_clipped_to_max(self):
        config = EstimatorConfig(
            margin_potential=0.5, bin_width=0.25, min_ratio=0.0, max_ratio=0.375
        )
        bins = build_ratio_bins([(0.3, 1.0)], config)

        assert bins[0].lower_bound == 0.25
        assert bins[0].upper_bound == 0.375

    def test_boundary_days_counted_once(self):
        """Every in-range day lands in exactly one bin, boundaries included"""
        config = EstimatorConfig()
        points = [(0.32, 1.0), (0.44, 1.0), (0.59, 1.0), (0.02, 1.0), (0.05, 1.0)]
        bins = build_ratio_bins(points, config)

        assert sum(b.days for b in bins) == len(points)
        for previous, current in zip(bins, bins[1:]):
            assert previous.upper_bound <= current.lower_bound

    def test_adjacent_bins_share_their_bound(self):
        points = [(0.02 + i * 0.03, 1.0) for i in range(20)]
        bins = build_ratio_bins(points, EstimatorConfig())

        assert len(bins) == 20
        for previous, current in zip(bins, bins[1:]):
            assert previous.upper_bound == current.lower_bound


class TestConfidence:
    def test_thresholds(self):
        """Confidence depends only on day and bin counts"""
        assert determine_confidence(90, 5) == Confidence.HIGH
        assert determine_confidence(89, 5) == Confidence.MEDIUM
        assert determine_confidence(90, 4) == Confidence.MEDIUM
        assert determine_confidence(30, 3) == Confidence.MEDIUM
        assert determine_confidence(29, 3) == Confidence.LOW
        assert determine_confidence(100, 2) == Confidence.LOW


class TestProfitHelpers:
    def test_daily_net_profit(self):
        assert daily_net_profit(10000, 1000, 0.55) == pytest.approx(4500)
        assert daily_net_profit(0, 500, 0.55) == 0.0

    def test_period_net_profit(self):
        days = make_days([(10000, 0.10, 3)])

        assert period_net_profit(days, 0.55) == pytest.approx(13500)


class TestMetricsFromFrame:
    def test_converts_and_sorts(self):
        """Rows are sorted by date and missing spend becomes 0"""
        frame = pd.DataFrame({
            "date": ["2025-01-02", "2025-01-01"],
            "revenue": [2000, 1000],
            "adSpend": [None, 100],
        })
        metrics = metrics_from_frame(frame)

        assert [m.date for m in metrics] == [date(2025, 1, 1), date(2025, 1, 2)]
        assert metrics[0].ad_spend == 100
        assert metrics[1].ad_spend == 0

    def test_missing_column_raises(self):
        frame = pd.DataFrame({"date": ["2025-01-01"], "ad_spend": [10]})

        with pytest.raises(ValueError, match="revenue"):
            metrics_from_frame(frame)
