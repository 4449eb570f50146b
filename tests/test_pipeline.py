"""
End-to-end tests for per-product evaluation
"""

from datetime import date, datetime, timedelta

import pytest

from bidtarget.models import (
    Confidence,
    DailyMetric,
    InvestmentState,
    LifecycleStage,
    LossBudgetState,
    SaleEvent,
    SalePhase,
)
from bidtarget.config import PipelineConfig, Settings
from bidtarget.pipeline import BidTargetCalculator, EvaluationBook


def steady_history(days=100, revenue=10000, ratio=0.10):
    start = date(2025, 1, 1)
    return [
        DailyMetric(date=start + timedelta(days=i), revenue=revenue, ad_spend=revenue * ratio)
        for i in range(days)
    ]


PRIME_DAY = SaleEvent(
    id="prime_day_2025",
    label="Prime Day 2025",
    start=datetime(2025, 7, 15, 0, 0, 0),
    end=datetime(2025, 7, 16, 23, 59, 59),
    prep_days=3,
)


class TestBidTargetCalculator:
    def setup_method(self):
        self.calculator = BidTargetCalculator(events=[PRIME_DAY])
        self.history = steady_history()

    def evaluate(self, **overrides):
        values = dict(
            product_id="B0PIPE",
            metrics=self.history,
            stage="GROW",
            price=3000,
            expected_cvr=0.03,
            base_ltv_acos=0.40,
            sales_total_30d=300000,
            ad_sales_30d=90000,
            sale_phase=SalePhase.NORMAL,
        )
        values.update(overrides)
        return self.calculator.evaluate(**values)

    def test_full_evaluation(self):
        """Steady 10% history: on target, ratio model below the LTV ceiling"""
        result = self.evaluate(proposed_bid=50)

        assert result.estimate.ratio == pytest.approx(0.10)
        assert result.estimate.confidence == Confidence.LOW
        assert result.targets.current_target == pytest.approx(0.10)
        assert result.loss_budget.state == InvestmentState.SAFE
        assert result.loss_budget.revenue == 300000
        assert result.loss_budget.period_start == date(2025, 3, 12)
        assert result.constraints.reason.startswith("GROW/SAFE")
        assert result.target_acos.final_target == pytest.approx(0.10 / 0.3)
        assert result.target_acos.ratio_model_selected is True
        assert result.max_bid.ceiling == pytest.approx(34.5)
        assert result.bid_guard.was_clipped is True
        assert result.bid_guard.final_bid == 34
        assert result.loss_budget_summary.state == LossBudgetState.SAFE

    def test_empty_history_still_evaluates(self):
        result = self.evaluate(metrics=[])

        assert result.estimate.used_fallback is True
        assert result.targets.grow_target == 0.15
        assert result.loss_budget.revenue == 0
        assert result.loss_budget.period_start is None

    def test_explicit_window_breach(self):
        """Overspending in the window restricts increases"""
        result = self.evaluate(window_revenue=100000, window_ad_spend=80000)

        assert result.loss_budget.state == InvestmentState.BREACH
        assert not result.constraints.allow_up
        assert result.loss_budget.period_start is None

    def test_launch_window(self):
        launch = steady_history(days=10, ratio=0.30)
        result = self.evaluate(launch_metrics=launch, launch_investment_limit=50000)

        assert result.launch_investment.investment_total == pytest.approx(20000)
        assert result.loss_budget_summary.launch_invest_usage == pytest.approx(0.4)
        assert result.loss_budget_summary.state == LossBudgetState.SAFE

    def test_sale_phase_from_calendar(self):
        """Six hours into the event the sale CVR and promoted target apply"""
        result = self.evaluate(
            sale_phase=None,
            at=datetime(2025, 7, 15, 6, 0),
            sale_clicks=50,
            sale_observed_cvr=0.045,
        )

        assert result.sale_phase == SalePhase.MAIN_SALE
        assert result.sale_cvr.expected_cvr == pytest.approx(0.045)
        assert result.target_acos.final_target == pytest.approx(0.40)
        assert result.max_bid.normal_ceiling == pytest.approx(34.5)
        assert result.max_bid.ceiling == pytest.approx(3000 * 0.40 * 0.045 * 1.15)
        assert result.max_bid.was_uplift_capped is False

    def test_calendar_outside_events(self):
        result = self.evaluate(sale_phase=None, at=datetime(2025, 9, 1, 12, 0))

        assert result.sale_phase == SalePhase.NORMAL
        assert result.sale_cvr is None

    def test_calendar_needs_evaluation_time(self):
        """Resolving the phase from the calendar never reads the wall clock"""
        with pytest.raises(ValueError, match="at"):
            self.evaluate(sale_phase=None)

    def test_naive_time_read_in_configured_timezone(self, monkeypatch):
        """20:00 on the eve is pre-sale in Tokyo but 05:00 into the sale when read as UTC"""
        at = datetime(2025, 7, 14, 20, 0)

        assert self.evaluate(sale_phase=None, at=at).sale_phase == SalePhase.PRE_SALE

        monkeypatch.setenv("BT_TIMEZONE", "UTC")
        calculator = BidTargetCalculator(config=Settings().pipeline_config(), events=[PRIME_DAY])
        result = calculator.evaluate(
            product_id="B0PIPE",
            metrics=self.history,
            stage="GROW",
            price=3000,
            expected_cvr=0.03,
            base_ltv_acos=0.40,
            at=at,
        )

        assert calculator.timezone == "UTC"
        assert result.sale_phase == SalePhase.MAIN_SALE
        assert result.sale_cvr.breakdown.uplift == 1.3

    def test_explicit_timezone_wins(self):
        config = PipelineConfig(timezone="UTC")

        assert BidTargetCalculator(config=config).timezone == "UTC"
        assert BidTargetCalculator(config=config, timezone="Asia/Tokyo").timezone == "Asia/Tokyo"

    def test_deterministic(self):
        assert self.evaluate() == self.evaluate()

    def test_summary(self):
        summary = self.evaluate().summary()

        assert summary["product_id"] == "B0PIPE"
        assert summary["stage"] == "GROW"
        assert summary["investment_state"] == "SAFE"
        assert summary["final_bid"] is None


class TestEvaluationBook:
    def setup_method(self):
        self.calculator = BidTargetCalculator()
        self.book = EvaluationBook()

    def evaluate(self, product_id, spend):
        return self.calculator.evaluate(
            product_id=product_id,
            metrics=steady_history(),
            stage=LifecycleStage.GROW,
            price=3000,
            expected_cvr=0.03,
            base_ltv_acos=0.40,
            window_revenue=100000,
            window_ad_spend=spend,
            sale_phase=SalePhase.NORMAL,
        )

    def test_latest_evaluation_wins(self):
        self.book.record(self.evaluate("A", 10000))
        self.book.record(self.evaluate("A", 80000))

        assert len(self.book) == 1
        assert "A" in self.book
        assert self.book.get("A").loss_budget.state == InvestmentState.BREACH

    def test_filter_by_state(self):
        self.book.record(self.evaluate("A", 10000))
        self.book.record(self.evaluate("B", 80000))

        assert [e.product_id for e in self.book.at_or_above(InvestmentState.WATCH)] == ["B"]
        assert [e.product_id for e in self.book.in_state(InvestmentState.SAFE)] == ["A"]

    def test_books_are_independent(self):
        other = EvaluationBook()
        self.book.record(self.evaluate("A", 10000))

        assert len(other) == 0
        assert other.get("A") is None

    def test_remove_and_clear(self):
        self.book.record(self.evaluate("A", 10000))
        self.book.record(self.evaluate("B", 10000))
        self.book.remove("A")

        assert "A" not in self.book
        self.book.clear()
        assert len(self.book) == 0

    def test_to_frame(self):
        self.book.record(self.evaluate("B", 80000))
        self.book.record(self.evaluate("A", 10000))

        frame = self.book.to_frame()

        assert list(frame["product_id"]) == ["A", "B"]
        assert list(frame["investment_state"]) == ["SAFE", "BREACH"]

    def test_empty_frame(self):
        assert self.book.to_frame().empty
