"""
Pricing rules for imported products.

The same transform is applied when a product is imported and every time it is
synced, so a stored source price always maps to the same destination price.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, List, Optional, Union


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Drift threshold: prices closer than this are considered unchanged
PRICE_EPSILON = CENT

MIN_MARKUP_AMOUNT = Decimal("-1000")
MAX_MARKUP_AMOUNT = Decimal("10000")
MIN_MULTIPLIER = Decimal("0.1")
MAX_MULTIPLIER = Decimal("10")

PriceLike = Union[Decimal, str, int, float]


class InvalidConfig(ValueError):
    """Pricing configuration cannot be applied."""
    pass


class PricingMode(str, Enum):
    """How destination prices are derived from source prices."""
    MARKUP = "markup"
    MULTIPLIER = "multiplier"


@dataclass(frozen=True)
class PricingConfig:
    """
    Pricing rule attached to an import.

    Only the field matching ``mode`` is used; the other one is ignored and may
    be None.
    """

    mode: str
    markup_amount: Optional[Decimal] = None
    multiplier: Optional[Decimal] = None

    @classmethod
    def markup(cls, amount: PriceLike) -> "PricingConfig":
        return cls(mode=PricingMode.MARKUP.value, markup_amount=to_decimal(amount))

    @classmethod
    def scaled(cls, factor: PriceLike) -> "PricingConfig":
        return cls(mode=PricingMode.MULTIPLIER.value, multiplier=to_decimal(factor))

    @classmethod
    def from_values(
        cls,
        mode: str,
        markup_amount: Optional[PriceLike] = None,
        multiplier: Optional[PriceLike] = None,
    ) -> "PricingConfig":
        """Build a config from loosely typed values (form fields, DB columns)."""
        return cls(
            mode=str(mode).lower() if mode is not None else "",
            markup_amount=to_decimal(markup_amount) if markup_amount not in (None, "") else None,
            multiplier=to_decimal(multiplier) if multiplier not in (None, "") else None,
        )

    @classmethod
    def from_record(cls, record) -> "PricingConfig":
        """Rebuild the config stored on an imported product or a job."""
        return cls.from_values(record.pricing_mode, record.markup_amount, record.multiplier)


def to_decimal(value: PriceLike) -> Decimal:
    """
    Convert a price to Decimal without going through binary floats.

    Raises:
        InvalidConfig: If the value is not a number
    """
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so 0.1 stays 0.1 instead of its float expansion
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidConfig(f"Invalid price value: {value!r}") from e


def format_price(value: Optional[PriceLike]) -> Optional[str]:
    """
    Format a price to the 2-decimal string the Admin API expects.

    Args:
        value: Price as Decimal, string or number

    Returns:
        Formatted price or None
    """
    if value is None:
        return None

    try:
        return str(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))
    except InvalidConfig:
        return None


def _require_amount(config: PricingConfig) -> None:
    if config.mode == PricingMode.MARKUP.value and config.markup_amount is None:
        raise InvalidConfig("Markup amount is required")
    if config.mode == PricingMode.MULTIPLIER.value and config.multiplier is None:
        raise InvalidConfig("Multiplier is required")


def compute_destination_price(source_price: PriceLike, config: PricingConfig) -> Decimal:
    """
    Calculate the destination price for a source price.

    Rules:
    1. markup: source + markup_amount
    2. multiplier: source * multiplier
    The result is rounded half-up to cents and never negative.

    Args:
        source_price: Price observed on the source storefront
        config: Pricing rule of the import

    Returns:
        Destination price quantized to cents

    Raises:
        InvalidConfig: If the mode is unknown or has no amount, or the multiplier
            is not positive
    """
    price = to_decimal(source_price)

    _require_amount(config)

    if config.mode == PricingMode.MARKUP.value:
        result = price + config.markup_amount
    elif config.mode == PricingMode.MULTIPLIER.value:
        if config.multiplier <= 0:
            raise InvalidConfig("Multiplier must be greater than 0")
        result = price * config.multiplier
    else:
        raise InvalidConfig(f"Unknown pricing mode: {config.mode!r}")

    return max(ZERO, result.quantize(CENT, rounding=ROUND_HALF_UP))


def validate_pricing_config(config: PricingConfig) -> None:
    """
    Check a user-supplied pricing config against the accepted ranges.

    Raises:
        InvalidConfig: With a message suitable for the end user
    """
    _require_amount(config)

    if config.mode == PricingMode.MARKUP.value:
        if not MIN_MARKUP_AMOUNT <= config.markup_amount <= MAX_MARKUP_AMOUNT:
            raise InvalidConfig(
                f"Markup must be between {MIN_MARKUP_AMOUNT} and {MAX_MARKUP_AMOUNT}"
            )
    elif config.mode == PricingMode.MULTIPLIER.value:
        if config.multiplier <= 0:
            raise InvalidConfig("Multiplier must be greater than 0")
        if not MIN_MULTIPLIER <= config.multiplier <= MAX_MULTIPLIER:
            raise InvalidConfig(
                f"Multiplier must be between {MIN_MULTIPLIER} and {MAX_MULTIPLIER}"
            )
    else:
        raise InvalidConfig(f"Unknown pricing mode: {config.mode!r}")


def price_changed(observed: PriceLike, recorded: PriceLike) -> bool:
    """
    Determine if a source price drifted from the recorded one.

    Args:
        observed: Price from the latest source fetch
        recorded: Price stored at import or last sync

    Returns:
        True if the difference is at least one cent
    """
    return abs(to_decimal(observed) - to_decimal(recorded)) >= PRICE_EPSILON


@dataclass
class VariantPricing:
    """Computed price for one source variant."""

    variant_id: str
    title: str
    source_price: Decimal
    destination_price: Decimal
    sku: Optional[str] = None


def calculate_variants_pricing(variants: Iterable, config: PricingConfig) -> List[VariantPricing]:
    """Price every variant of a source product."""
    validate_pricing_config(config)

    return [
        VariantPricing(
            variant_id=variant.id,
            title=variant.title,
            source_price=to_decimal(variant.price),
            destination_price=compute_destination_price(variant.price, config),
            sku=variant.sku,
        )
        for variant in variants
    ]


def get_pricing_summary(variants: Iterable, config: PricingConfig) -> dict:
    """Summarize the price changes an import would apply."""
    priced = calculate_variants_pricing(variants, config)

    if not priced:
        return {"total_variants": 0}

    source_prices = [p.source_price for p in priced]
    destination_prices = [p.destination_price for p in priced]
    count = Decimal(len(priced))

    return {
        "total_variants": len(priced),
        "average_source_price": format_price(sum(source_prices) / count),
        "average_destination_price": format_price(sum(destination_prices) / count),
        "min_source_price": format_price(min(source_prices)),
        "max_source_price": format_price(max(source_prices)),
        "min_destination_price": format_price(min(destination_prices)),
        "max_destination_price": format_price(max(destination_prices)),
    }
