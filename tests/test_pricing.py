"""
Tests for the pricing transform.
"""

from decimal import Decimal

import pytest

from catalog_copier.processor.pricing import (
    InvalidConfig,
    PricingConfig,
    calculate_variants_pricing,
    compute_destination_price,
    format_price,
    get_pricing_summary,
    price_changed,
    validate_pricing_config,
)
from catalog_copier.shopify import SourceVariant


class TestComputeDestinationPrice:
    """Tests for compute_destination_price function."""

    def test_markup_adds_amount(self):
        """Markup mode adds the flat amount."""
        assert compute_destination_price("20.00", PricingConfig.markup("5")) == Decimal("25.00")

    def test_negative_markup_lowers_price(self):
        """A negative markup decreases the price."""
        assert compute_destination_price("20.00", PricingConfig.markup("-5")) == Decimal("15.00")

    def test_markup_result_clamped_to_zero(self):
        """Markup can never produce a negative price."""
        assert compute_destination_price("5.00", PricingConfig.markup("-100")) == Decimal("0.00")

    def test_multiplier_scales_price(self):
        """Multiplier mode multiplies the source price."""
        assert compute_destination_price("10.00", PricingConfig.scaled("1.5")) == Decimal("15.00")

    def test_multiplier_rounds_half_up(self):
        """Results are rounded half-up to cents."""
        # 10.01 * 1.5 = 15.015
        assert compute_destination_price("10.01", PricingConfig.scaled("1.5")) == Decimal("15.02")

    def test_no_float_artifacts(self):
        """0.1 + 0.2 is exactly 0.30."""
        assert compute_destination_price("0.1", PricingConfig.markup(0.2)) == Decimal("0.30")

    def test_zero_price_stays_zero(self):
        assert compute_destination_price("0", PricingConfig.scaled("2")) == Decimal("0.00")

    def test_unknown_mode_raises(self):
        """An unknown mode is an error, not a pass-through."""
        with pytest.raises(InvalidConfig):
            compute_destination_price("10.00", PricingConfig(mode="discount"))

    def test_non_positive_multiplier_raises(self):
        with pytest.raises(InvalidConfig):
            compute_destination_price("10.00", PricingConfig.scaled("0"))

    def test_invalid_price_raises(self):
        with pytest.raises(InvalidConfig):
            compute_destination_price("abc", PricingConfig.markup("1"))

    def test_same_input_same_output(self):
        """Applying the same config twice gives the same price."""
        config = PricingConfig.scaled("1.37")
        first = compute_destination_price("19.99", config)
        second = compute_destination_price("19.99", config)
        assert first == second

    def test_ignores_field_of_other_mode(self):
        """Only the field of the selected mode is used."""
        config = PricingConfig(mode="markup", markup_amount=Decimal("2"), multiplier=Decimal("3"))
        assert compute_destination_price("10", config) == Decimal("12.00")


class TestValidatePricingConfig:
    """Tests for validate_pricing_config function."""

    def test_valid_markup(self):
        validate_pricing_config(PricingConfig.markup("-1000"))
        validate_pricing_config(PricingConfig.markup("10000"))

    def test_markup_out_of_range(self):
        with pytest.raises(InvalidConfig):
            validate_pricing_config(PricingConfig.markup("10000.01"))

    def test_multiplier_out_of_range(self):
        with pytest.raises(InvalidConfig):
            validate_pricing_config(PricingConfig.scaled("0.05"))
        with pytest.raises(InvalidConfig):
            validate_pricing_config(PricingConfig.scaled("11"))

    def test_unknown_mode(self):
        with pytest.raises(InvalidConfig):
            validate_pricing_config(PricingConfig.from_values("percent", None, None))

    def test_missing_markup_amount(self):
        with pytest.raises(InvalidConfig, match="Markup amount is required"):
            validate_pricing_config(PricingConfig.from_values("markup", None, "2"))

    def test_missing_multiplier(self):
        with pytest.raises(InvalidConfig, match="Multiplier is required"):
            validate_pricing_config(PricingConfig.from_values("multiplier", "5", ""))

    def test_missing_amount_is_not_applied(self):
        with pytest.raises(InvalidConfig):
            compute_destination_price("20.00", PricingConfig(mode="markup"))

    def test_from_values_accepts_strings(self):
        config = PricingConfig.from_values("MULTIPLIER", "", "2.5")
        assert config.mode == "multiplier"
        assert config.multiplier == Decimal("2.5")


class TestPriceChanged:
    """Tests for price_changed function."""

    def test_same_price_unchanged(self):
        assert not price_changed("10.00", Decimal("10.00"))

    def test_sub_cent_difference_unchanged(self):
        """Differences below one cent are noise."""
        assert not price_changed("10.004", Decimal("10.00"))

    def test_one_cent_difference_changed(self):
        assert price_changed("10.01", Decimal("10.00"))

    def test_decrease_changed(self):
        assert price_changed("8.00", Decimal("10.00"))


class TestFormatPrice:
    """Tests for format_price function."""

    def test_two_decimals(self):
        assert format_price("19.9") == "19.90"

    def test_rounding(self):
        assert format_price(Decimal("19.995")) == "20.00"

    def test_none(self):
        assert format_price(None) is None


class TestPricingSummary:
    """Tests for variant pricing helpers."""

    def _variants(self):
        return [
            SourceVariant(id="1", title="S", price="10.00"),
            SourceVariant(id="2", title="M", price="20.00"),
        ]

    def test_calculate_variants_pricing(self):
        priced = calculate_variants_pricing(self._variants(), PricingConfig.markup("5"))
        assert [p.destination_price for p in priced] == [Decimal("15.00"), Decimal("25.00")]

    def test_summary(self):
        summary = get_pricing_summary(self._variants(), PricingConfig.scaled("2"))
        assert summary["total_variants"] == 2
        assert summary["min_destination_price"] == "20.00"
        assert summary["max_destination_price"] == "40.00"
        assert summary["average_source_price"] == "15.00"

    def test_summary_without_variants(self):
        assert get_pricing_summary([], PricingConfig.markup("1")) == {"total_variants": 0}
