import math
import unittest

from services.analytics import advanced_metrics as am
from services.analytics.types import HoldingSnapshot


def _h(symbol, value, change=0.0):
    return HoldingSnapshot(symbol=symbol, quantity=1.0, current_price=value, price_change_24h=change)


def _peak_trough_values():
    # 31 points: climb to 120, fall to 90, partial recovery
    up = [100.0 + 2.0 * i for i in range(11)]            # 100 .. 120
    down = [120.0 - 3.0 * i for i in range(1, 11)]       # 117 .. 90
    recover = [90.0 + 2.0 * i for i in range(1, 11)]     # 92 .. 110
    return up + down + recover


class ReturnMetricsTests(unittest.TestCase):
    def test_volatility_annualizes_population_stddev(self):
        self.assertEqual(am.compute_volatility([0.01, -0.01]), round(0.01 * math.sqrt(365) * 100, 1))

    def test_short_series_fallbacks(self):
        self.assertEqual(am.compute_volatility([0.01]), 25.0)
        self.assertEqual(am.compute_sharpe([0.01]), 0.0)
        self.assertEqual(am.compute_sortino([0.01]), 0.0)
        self.assertEqual(am.compute_max_drawdown([100.0]), 15.0)
        self.assertEqual(am.compute_beta([0.01], [0.02]), 1.0)

    def test_sharpe_with_zero_volatility_falls_back(self):
        self.assertEqual(am.compute_sharpe([0.01] * 10), 0.0)

    def test_sharpe(self):
        returns = [0.02, -0.01, 0.03, -0.02, 0.01]
        mean = sum(returns) / len(returns)
        var = sum((r - mean) ** 2 for r in returns) / len(returns)
        expected = (mean * 365 - 0.05) / math.sqrt(var * 365)
        self.assertAlmostEqual(am.compute_sharpe(returns, risk_free=0.05), round(expected, 2))

    def test_sortino_without_losing_days_is_optimistic(self):
        self.assertEqual(am.compute_sortino([0.01, 0.02, 0.0]), 2.0)

    def test_sortino_uses_downside_rms(self):
        returns = [0.03, -0.01, 0.02, -0.02]
        mean = sum(returns) / len(returns)
        downside = math.sqrt((0.01 ** 2 + 0.02 ** 2) / 2) * math.sqrt(365)
        self.assertAlmostEqual(am.compute_sortino(returns, risk_free=0.05), round((mean * 365 - 0.05) / downside, 2))

    def test_constant_benchmark_gives_default_beta(self):
        self.assertEqual(am.compute_beta([0.01, -0.02, 0.03, 0.0], [0.01] * 4), 1.0)

    def test_beta_of_portfolio_against_itself_is_one(self):
        r = [0.01, -0.02, 0.03, 0.005, -0.01]
        self.assertEqual(am.compute_beta(r, r), 1.0)

    def test_beta_aligns_trailing_window(self):
        bench = [0.01, -0.01, 0.02]
        port = [0.5, 0.02, -0.02, 0.04]  # first point falls outside the common window
        self.assertEqual(am.compute_beta(port, bench), 2.0)

    def test_max_drawdown_peak_to_trough(self):
        values = _peak_trough_values()
        self.assertEqual(len(values), 31)
        self.assertEqual(am.compute_max_drawdown(values), 25.0)

    def test_max_drawdown_monotonic_rise_is_zero(self):
        self.assertEqual(am.compute_max_drawdown([1.0, 2.0, 3.0]), 0.0)

    def test_var_needs_ten_points(self):
        self.assertEqual(am.compute_value_at_risk([0.01, -0.02, 0.015, -0.01, 0.005]), 8.0)

    def test_var_uses_floor_index(self):
        returns = [-0.10, -0.04] + [0.01] * 18
        # floor(20 * 0.05) = 1 -> -0.04
        self.assertEqual(am.compute_value_at_risk(returns), 4.0)


class HoldingsMetricsTests(unittest.TestCase):
    def test_concentration_and_diversification_share_hhi(self):
        holdings = [_h("BTC", 6000.0), _h("ETH", 4000.0)]
        self.assertEqual(am.compute_concentration_index(holdings), 5200.0)
        self.assertEqual(am.compute_diversification_ratio(holdings), 0.48)

    def test_all_value_in_one_symbol(self):
        holdings = [_h("BTC", 1000.0), _h("ETH", 0.0)]
        self.assertEqual(am.compute_concentration_index(holdings), 10000.0)
        self.assertEqual(am.compute_diversification_ratio(holdings), 0.0)

    def test_single_holding_diversification_fallback(self):
        self.assertEqual(am.compute_diversification_ratio([_h("BTC", 1000.0)]), 0.3)

    def test_empty_holdings_concentration_fallback(self):
        self.assertEqual(am.compute_concentration_index([]), 100.0)

    def test_risk_buckets(self):
        self.assertEqual(am.risk_bucket("usdt"), "low")
        self.assertEqual(am.risk_bucket("ETH"), "medium")
        self.assertEqual(am.risk_bucket("DOGE"), "high")

    def test_risk_distribution_sums_to_hundred(self):
        holdings = [_h("BTC", 3333.0), _h("USDC", 1111.0), _h("SOL", 2222.0), _h("PEPE", 777.0)]
        dist = am.compute_risk_distribution(holdings)
        self.assertAlmostEqual(dist.low + dist.medium + dist.high, 100.0, delta=0.1)
        self.assertEqual(dist.low, round(1111.0 / 7443.0 * 100, 1))

    def test_risk_distribution_fallback_for_zero_total(self):
        dist = am.compute_risk_distribution([_h("BTC", 0.0)])
        self.assertEqual((dist.low, dist.medium, dist.high), (20.0, 50.0, 30.0))

    def test_performance_attribution_top_five_best_first(self):
        holdings = [_h(sym, 1000.0, change) for sym, change in
                    [("A", 1.0), ("B", -5.0), ("C", 10.0), ("D", 2.0), ("E", 0.0), ("F", 4.0)]]
        rows = am.compute_performance_attribution(holdings)
        self.assertEqual([r.symbol for r in rows], ["C", "F", "D", "A", "E"])
        top = rows[0]
        self.assertEqual(top.weight, round(100 / 6, 1))
        self.assertEqual(top.return_pct, 10.0)
        self.assertEqual(top.contribution, round(100 / 6 * 10 / 100, 2))
        self.assertEqual(top.model_dump(by_alias=True)["return"], 10.0)


class FallbackDecoratorTests(unittest.TestCase):
    def test_exception_returns_fallback(self):
        @am.with_fallback("Broken", lambda: 7.0)
        def broken():
            raise ZeroDivisionError("boom")

        with self.assertLogs("services.analytics.advanced_metrics", level="WARNING"):
            self.assertEqual(broken(), 7.0)

    def test_non_finite_returns_fallback(self):
        @am.with_fallback("NaN", lambda: 1.5)
        def nan():
            return float("nan")

        self.assertEqual(nan(), 1.5)


class BundleTests(unittest.TestCase):
    def test_default_metrics(self):
        m = am.default_metrics("42")
        self.assertEqual(m.user_id, "42")
        self.assertEqual(m.concentration_index, 100.0)
        self.assertEqual(m.volatility, 25.0)
        self.assertEqual(m.beta_coefficient, 1.0)
        self.assertEqual(m.performance_attribution, [])

    def test_bundle_serializes_camel_case(self):
        holdings = [_h("BTC", 6000.0, 2.0), _h("ETH", 4000.0, -1.0)]
        values = _peak_trough_values()
        returns = [(b - a) / a for a, b in zip(values, values[1:])]
        m = am.compute_metrics_bundle(holdings, values, returns, returns, user_id="7")
        d = m.to_dict()
        for key in ("sharpeRatio", "betaCoefficient", "maxDrawdown", "sortinoRatio", "valueAtRisk",
                    "diversificationRatio", "concentrationIndex", "riskDistribution", "performanceAttribution"):
            self.assertIn(key, d)
        self.assertEqual(d["maxDrawdown"], 25.0)
        self.assertEqual(d["betaCoefficient"], 1.0)
        self.assertEqual(d["concentrationIndex"], 5200.0)


if __name__ == "__main__":
    unittest.main()
