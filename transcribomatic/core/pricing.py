"""
Pricing calculations and rate management.

Converts token and image counts into dollar costs using fixed rates.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict

from .token_counter import TokenUsage

TOKENS_PER_RATE_UNIT = Decimal("1000000")


@dataclass(frozen=True)
class TokenRates:
    """Fixed rates in dollars.

    Token rates are per 1M tokens; ``image`` is per generated image.
    """
    text_input: Decimal = Decimal("5.00")
    text_cached: Decimal = Decimal("2.50")
    text_output: Decimal = Decimal("20.00")
    audio_input: Decimal = Decimal("40.00")
    audio_cached: Decimal = Decimal("2.50")
    audio_output: Decimal = Decimal("80.00")
    image: Decimal = Decimal("0.011")

    def __post_init__(self):
        """Validate rates are non-negative."""
        for name, value in self.__dict__.items():
            if value < 0:
                raise ValueError(f"{name} rate must be >= 0")


DEFAULT_RATES = TokenRates()


def _per_million(tokens: int, rate: Decimal) -> Decimal:
    return Decimal(tokens) * rate / TOKENS_PER_RATE_UNIT


@dataclass(frozen=True)
class CostBreakdown:
    """Cost of a usage window split per token class.

    ``total_cost`` sums the six token costs and the image cost; the image
    count and the raw token sums are informational only.
    """
    text_input_cost: Decimal = Decimal("0")
    text_cached_cost: Decimal = Decimal("0")
    text_output_cost: Decimal = Decimal("0")
    audio_input_cost: Decimal = Decimal("0")
    audio_cached_cost: Decimal = Decimal("0")
    audio_output_cost: Decimal = Decimal("0")
    image_cost: Decimal = Decimal("0")
    image_count: int = 0
    tokens: TokenUsage = field(default_factory=TokenUsage)

    @property
    def token_cost(self) -> Decimal:
        return (
            self.text_input_cost + self.text_cached_cost + self.text_output_cost
            + self.audio_input_cost + self.audio_cached_cost + self.audio_output_cost
        )

    @property
    def total_cost(self) -> Decimal:
        return self.token_cost + self.image_cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            "textInputCost": float(self.text_input_cost),
            "textCachedCost": float(self.text_cached_cost),
            "textOutputCost": float(self.text_output_cost),
            "audioInputCost": float(self.audio_input_cost),
            "audioCachedCost": float(self.audio_cached_cost),
            "audioOutputCost": float(self.audio_output_cost),
            "imageCost": float(self.image_cost),
            "imageCount": self.image_count,
            "tokens": self.tokens.to_dict(),
            "totalCost": float(self.total_cost),
        }


def calculate_breakdown(
    tokens: TokenUsage,
    image_count: int,
    rates: TokenRates = DEFAULT_RATES
) -> CostBreakdown:
    """Price summed token counts and an image count.

    Args:
        tokens: Token counts, usually summed over a time window
        image_count: Number of generated images in the same window
        rates: Rates to apply

    Returns:
        CostBreakdown with unrounded Decimal costs
    """
    return CostBreakdown(
        text_input_cost=_per_million(tokens.input_text_tokens, rates.text_input),
        text_cached_cost=_per_million(tokens.cached_text_tokens, rates.text_cached),
        text_output_cost=_per_million(tokens.output_text_tokens, rates.text_output),
        audio_input_cost=_per_million(tokens.input_audio_tokens, rates.audio_input),
        audio_cached_cost=_per_million(tokens.cached_audio_tokens, rates.audio_cached),
        audio_output_cost=_per_million(tokens.output_audio_tokens, rates.audio_output),
        image_cost=Decimal(image_count) * rates.image,
        image_count=image_count,
        tokens=tokens,
    )


def calculate_cost(
    tokens: TokenUsage,
    image_count: int = 0,
    rates: TokenRates = DEFAULT_RATES
) -> Decimal:
    """Total dollar cost of token counts plus images."""
    return calculate_breakdown(tokens, image_count, rates).total_cost
