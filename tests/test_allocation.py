import pytest

from swp_planner.calculators import allocation
from swp_planner.calculators.allocation import ConfigurationError, Strategy
from swp_planner.calculators.nav_series import build_indexes
from swp_planner.calculators.precision import CONSERVATION_TOLERANCE

AS_OF = "2024-06-30"


def _indexes(**prices):
    return build_indexes({fund: [("2024-01-01", price)] for fund, price in prices.items()})


def _by_fund(result):
    out = {}
    for sale in result.sales:
        out[sale.fund_id] = round(out.get(sale.fund_id, 0.0) + sale.amount, 2)
    return out


def _assert_conserved(result, requested):
    assert sum(s.amount for s in result.sales) + result.shortfall == pytest.approx(requested, abs=CONSERVATION_TOLERANCE)


def test_proportional_split_by_weight():
    units = {"A": 100.0, "B": 100.0}
    res = allocation.allocate_proportional(1000.0, units, AS_OF, _indexes(A=10.0, B=20.0), {"A": 0.6, "B": 0.4})
    assert _by_fund(res) == {"A": 600.0, "B": 400.0}
    assert res.shortfall == 0.0
    assert units["A"] == pytest.approx(40.0)
    assert units["B"] == pytest.approx(80.0)


def test_proportional_normalises_weights():
    units = {"A": 100.0, "B": 100.0}
    res = allocation.allocate_proportional(1000.0, units, AS_OF, _indexes(A=10.0, B=20.0), {"A": 3.0, "B": 2.0})
    assert _by_fund(res) == {"A": 600.0, "B": 400.0}


def test_proportional_equal_split_when_weights_are_zero():
    units = {"A": 100.0, "B": 100.0}
    res = allocation.allocate_proportional(1000.0, units, AS_OF, _indexes(A=10.0, B=10.0), {"A": 0.0, "B": 0.0})
    assert _by_fund(res) == {"A": 500.0, "B": 500.0}


def test_proportional_skips_fund_without_price_and_tops_up():
    """B has no price, so A covers the whole request in the second pass."""
    units = {"A": 200.0, "B": 100.0}
    idx = build_indexes({"A": [("2024-01-01", 10.0)], "B": [("2024-12-01", 20.0)]})
    res = allocation.allocate_proportional(1000.0, units, AS_OF, idx, {"A": 0.6, "B": 0.4})
    assert _by_fund(res) == {"A": 1000.0}
    assert units["B"] == 100.0
    assert res.shortfall == 0.0


def test_proportional_tops_up_from_funds_with_value_left():
    units = {"A": 30.0, "B": 100.0}
    res = allocation.allocate_proportional(1000.0, units, AS_OF, _indexes(A=10.0, B=20.0), {"A": 0.5, "B": 0.5})
    assert _by_fund(res) == {"A": 300.0, "B": 700.0}
    assert units["A"] == 0.0
    _assert_conserved(res, 1000.0)


def test_proportional_shortfall_when_portfolio_too_small():
    units = {"A": 30.0, "B": 10.0}
    res = allocation.allocate_proportional(1000.0, units, AS_OF, _indexes(A=10.0, B=20.0), {"A": 0.5, "B": 0.5})
    assert _by_fund(res) == {"A": 300.0, "B": 200.0}
    assert res.shortfall == pytest.approx(500.0)
    assert units == {"A": 0.0, "B": 0.0}


def test_proportional_three_way_split_has_no_penny_shortfall():
    units = {"A": 100.0, "B": 100.0, "C": 100.0}
    weights = {"A": 1.0, "B": 1.0, "C": 1.0}
    res = allocation.allocate_proportional(1000.0, units, AS_OF, _indexes(A=10.0, B=10.0, C=10.0), weights)
    assert res.shortfall == 0.0
    assert res.amount == pytest.approx(1000.0)


def test_overweight_first_sells_most_overweight_fund():
    units = {"A": 80.0, "B": 20.0}
    res = allocation.allocate_overweight_first(200.0, units, AS_OF, _indexes(A=10.0, B=10.0), {"A": 0.5, "B": 0.5})
    assert _by_fund(res) == {"A": 200.0}


def test_overweight_first_falls_back_pro_rata_by_value():
    units = {"A": 80.0, "B": 20.0}
    res = allocation.allocate_overweight_first(500.0, units, AS_OF, _indexes(A=10.0, B=10.0), {"A": 0.5, "B": 0.5})
    # 300 of overweight from A, then 200 split 500:200 across A and B
    assert _by_fund(res) == {"A": 442.86, "B": 57.14}
    assert res.shortfall == 0.0
    _assert_conserved(res, 500.0)


def test_overweight_first_orders_by_overweight_amount():
    units = {"A": 40.0, "B": 30.0, "C": 30.0}
    weights = {"A": 0.2, "B": 0.2, "C": 0.6}
    res = allocation.allocate_overweight_first(150.0, units, AS_OF, _indexes(A=10.0, B=10.0, C=10.0), weights)
    # A is 200 over target, B is 100 over, C is under
    assert [s.fund_id for s in res.sales] == ["A"]

    units = {"A": 40.0, "B": 30.0, "C": 30.0}
    res = allocation.allocate_overweight_first(300.0, units, AS_OF, _indexes(A=10.0, B=10.0, C=10.0), weights)
    assert _by_fund(res) == {"A": 200.0, "B": 100.0}


def test_overweight_first_ties_keep_fund_order():
    units = {"A": 50.0, "B": 50.0}
    res = allocation.allocate_overweight_first(100.0, units, AS_OF, _indexes(A=10.0, B=10.0), {"A": 0.0, "B": 0.0})
    assert res.sales[0].fund_id == "A"


def _risk_setup():
    idx = _indexes(L=10.0, H1=10.0, H2=10.0)
    fund_risk = {"L": "low", "H1": "high", "H2": "high"}
    weights = {"L": 0.2, "H1": 0.4, "H2": 0.4}
    return idx, fund_risk, weights


def test_risk_bucket_draws_from_safest_bucket_first():
    idx, fund_risk, weights = _risk_setup()
    units = {"L": 500.0, "H1": 300.0, "H2": 100.0}
    res = allocation.allocate_risk_bucket(1000.0, units, AS_OF, idx, weights, ["low", "high"], fund_risk)
    assert _by_fund(res) == {"L": 1000.0}


def test_risk_bucket_uses_next_bucket_pro_rata_when_first_is_empty():
    idx, fund_risk, weights = _risk_setup()
    units = {"L": 0.0, "H1": 300.0, "H2": 100.0}
    res = allocation.allocate_risk_bucket(1000.0, units, AS_OF, idx, weights, ["low", "high"], fund_risk)
    assert _by_fund(res) == {"H1": 750.0, "H2": 250.0}
    assert res.shortfall == 0.0


def test_risk_bucket_spills_remainder_into_next_bucket():
    idx, fund_risk, weights = _risk_setup()
    units = {"L": 30.0, "H1": 300.0, "H2": 100.0}
    res = allocation.allocate_risk_bucket(1000.0, units, AS_OF, idx, weights, ["low", "high"], fund_risk)
    assert _by_fund(res) == {"L": 300.0, "H1": 525.0, "H2": 175.0}


def test_risk_bucket_leftover_is_shortfall():
    idx, fund_risk, weights = _risk_setup()
    units = {"L": 10.0, "H1": 10.0, "H2": 10.0}
    res = allocation.allocate_risk_bucket(1000.0, units, AS_OF, idx, weights, ["low", "high"], fund_risk)
    assert res.shortfall == pytest.approx(700.0)
    _assert_conserved(res, 1000.0)


def test_risk_bucket_requires_configuration():
    idx, fund_risk, weights = _risk_setup()
    with pytest.raises(ConfigurationError):
        allocation.allocate_risk_bucket(100.0, {"L": 1.0}, AS_OF, idx, weights, None, fund_risk)
    with pytest.raises(ConfigurationError):
        allocation.allocate("RISK_BUCKET", 100.0, {"L": 1.0}, AS_OF, idx, weights, ["low"], None)


def test_unpriced_fund_is_never_sold():
    idx = build_indexes({"A": [("2024-01-01", 10.0)]})
    for strategy in Strategy:
        units = {"A": 10.0, "B": 1000.0}
        res = allocation.allocate(strategy, 500.0, units, AS_OF, idx, {"A": 0.5, "B": 0.5},
                                  ["x"], {"A": "x", "B": "x"})
        assert units["B"] == 1000.0
        assert all(s.fund_id == "A" for s in res.sales)
        assert res.shortfall == pytest.approx(400.0)


@pytest.mark.parametrize("strategy", list(Strategy))
def test_conservation_and_non_negative_units(strategy):
    idx = _indexes(A=13.37, B=7.91, C=101.5)
    units = {"A": 12.345678, "B": 77.7, "C": 3.3}
    weights = {"A": 0.5, "B": 0.3, "C": 0.2}
    fund_risk = {"A": "r1", "B": "r2", "C": "r1"}
    for _ in range(6):
        res = allocation.allocate(strategy, 333.33, units, AS_OF, idx, weights, ["r1", "r2"], fund_risk)
        _assert_conserved(res, 333.33)
        assert all(u >= 0 for u in units.values())


def test_sell_up_to_clamps_amount_and_units():
    assert allocation.sell_up_to(100.0, 50.0, 80.0, 10.0, 5.0) == (5.0, 50.0)
    assert allocation.sell_up_to(100.0, 500.0, 80.0, 10.0, 50.0) == (8.0, 80.0)
    units, amount = allocation.sell_up_to(100.0, 49.999999, 80.0, 10.0, 4.9999999)
    assert units == 4.9999999
    assert amount == 50.0
    assert allocation.sell_up_to(100.0, 50.0, 0.0, 10.0, 5.0) == (0.0, 0.0)
    assert allocation.sell_up_to(100.0, 50.0, 80.0, 0.0, 5.0) == (0.0, 0.0)


def test_strategy_parse():
    assert Strategy.parse("PROPORTIONAL") is Strategy.PROPORTIONAL
    assert Strategy.parse("OverweightFirst") is Strategy.OVERWEIGHT_FIRST
    assert Strategy.parse("risk-bucket") is Strategy.RISK_BUCKET
    with pytest.raises(ConfigurationError):
        Strategy.parse("GLIDE_PATH")
    with pytest.raises(ConfigurationError):
        allocation.allocate("GLIDE_PATH", 1.0, {}, AS_OF, {}, {})
