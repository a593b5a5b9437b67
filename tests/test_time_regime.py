from datetime import date

import pytest

from earnings_vol.errors import InvalidArgumentError
from earnings_vol.timing import (
    EarningsRegime,
    RecommendedModel,
    RegimeType,
    TimeConstraints,
    TimeParameters,
    dte_to_years,
)


def test_expiry_must_follow_valuation():
    with pytest.raises(InvalidArgumentError):
        TimeParameters.create(date(2024, 3, 15), date(2024, 3, 15))
    with pytest.raises(InvalidArgumentError):
        TimeParameters.create(date(2024, 3, 15), date(2024, 3, 1))


def test_time_to_expiry_uses_trading_days():
    params = TimeParameters.create(date(2024, 3, 1), date(2024, 3, 15))
    assert params.days_to_expiry == 10
    assert params.time_to_expiry == pytest.approx(10 / 252)
    assert params.days_to_earnings is None
    assert params.time_to_earnings is None


def test_time_to_expiry_bounds_are_enforced():
    with pytest.raises(InvalidArgumentError):
        TimeParameters.create(date(2024, 1, 2), date(2024, 12, 20), constraints=TimeConstraints.short_dated())


def test_dte_to_years_floors_at_one_day():
    assert dte_to_years(0) == pytest.approx(1 / 252)
    assert dte_to_years(21) == pytest.approx(21 / 252)


class TestRegimeDetection:
    def test_pre_earnings(self):
        params = TimeParameters.create(date(2024, 3, 1), date(2024, 3, 15), date(2024, 3, 8))
        assert params.days_to_earnings == 5
        assert params.is_pre_earnings
        assert params.has_earnings_before_expiry

        regime = EarningsRegime.detect(params)
        assert regime.regime_type == RegimeType.PRE_EARNINGS
        assert regime.transition_weight == 0.0
        assert regime.recommended_model == RecommendedModel.LEUNG_SANTOLI
        assert regime.is_earnings_sensitive

    def test_post_earnings_transition(self):
        params = TimeParameters.create(date(2024, 3, 7), date(2024, 3, 15), date(2024, 3, 4))
        assert params.days_to_earnings == -3
        assert params.is_post_earnings

        regime = EarningsRegime.detect(params)
        assert regime.regime_type == RegimeType.POST_EARNINGS_TRANSITION
        assert regime.days_since_earnings == 3
        assert regime.transition_weight == pytest.approx(0.6)
        assert regime.recommended_model == RecommendedModel.POST_EARNINGS_BLEND

    def test_announcement_day_starts_transition(self):
        params = TimeParameters.create(date(2024, 3, 7), date(2024, 3, 15), date(2024, 3, 7))
        assert params.days_to_earnings == 0
        assert params.time_to_earnings == 0.0
        assert params.is_post_earnings

        regime = EarningsRegime.detect(params)
        assert regime.regime_type == RegimeType.POST_EARNINGS_TRANSITION
        assert regime.days_since_earnings == 0
        assert regime.transition_weight == 0.0
        assert regime.compute_adjusted_iv(0.25, 0.40) == pytest.approx(0.40)

    def test_post_earnings_normal(self):
        params = TimeParameters.create(date(2024, 3, 7), date(2024, 3, 15), date(2024, 2, 20))
        regime = EarningsRegime.detect(params)
        assert regime.regime_type == RegimeType.POST_EARNINGS_NORMAL
        assert regime.transition_weight == 1.0
        assert regime.recommended_model == RecommendedModel.HESTON
        assert not regime.is_earnings_sensitive

    def test_earnings_after_expiry(self):
        params = TimeParameters.create(date(2024, 3, 1), date(2024, 3, 15), date(2024, 3, 20))
        assert params.days_to_earnings is None
        assert EarningsRegime.detect(params).regime_type == RegimeType.NO_EARNINGS

    def test_no_earnings_date(self):
        params = TimeParameters.create(date(2024, 3, 1), date(2024, 3, 15))
        regime = EarningsRegime.detect(params)
        assert regime.regime_type == RegimeType.NO_EARNINGS
        assert regime.transition_weight == 1.0

    def test_distant_earnings_count_as_no_earnings(self):
        params = TimeParameters.create(date(2024, 1, 2), date(2024, 12, 20), date(2024, 6, 3))
        assert params.days_to_earnings > 60
        assert EarningsRegime.detect(params).regime_type == RegimeType.NO_EARNINGS


class TestAdjustedIV:
    def test_pre_earnings_keeps_earnings_iv(self):
        params = TimeParameters.create(date(2024, 3, 1), date(2024, 3, 15), date(2024, 3, 8))
        regime = EarningsRegime.detect(params)
        assert regime.compute_adjusted_iv(0.2, 0.4) == pytest.approx(0.4)

    def test_transition_decays_premium(self):
        params = TimeParameters.create(date(2024, 3, 7), date(2024, 3, 15), date(2024, 3, 4))
        regime = EarningsRegime.detect(params)
        # premium 0.2 scaled by (1 - 0.6)^2
        assert regime.compute_adjusted_iv(0.2, 0.4) == pytest.approx(0.2 + 0.2 * 0.4 * 0.4)

    def test_normal_regime_uses_base_iv(self):
        params = TimeParameters.create(date(2024, 3, 7), date(2024, 3, 15), date(2024, 2, 20))
        regime = EarningsRegime.detect(params)
        assert regime.compute_adjusted_iv(0.2, 0.4) == pytest.approx(0.2)


def test_pre_earnings_entry_window():
    constraints = TimeConstraints()
    params = TimeParameters.create(date(2024, 3, 1), date(2024, 3, 15), date(2024, 3, 8))
    assert constraints.validate_pre_earnings(params).is_valid

    post = TimeParameters.create(date(2024, 3, 7), date(2024, 3, 15), date(2024, 3, 4))
    result = constraints.validate_pre_earnings(post)
    assert not result.is_valid
    assert "Not in pre-earnings regime." in result.errors
