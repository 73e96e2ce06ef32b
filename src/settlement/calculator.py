"""Payment cost calculation.

Single source of truth for what an action costs and how the payment is split.
Used by the initiate endpoint and by the verification service when it records
the expected amount.
"""

from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Optional

from src.models import Cost, PaymentAction, RevenueDistribution
from src.tokens import TokenRegistry

from .distribution import SplitSource, StaticSplitSource, apply_split

_TWO_PLACES = Decimal("0.01")


def format_display_amount(amount: int, decimals: int) -> str:
    """Format a smallest-unit amount with exactly two decimals (half-up)."""
    with localcontext() as ctx:
        ctx.prec = len(str(abs(amount))) + decimals + 4
        value = Decimal(amount).scaleb(-decimals)
        return str(value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def format_token_amount(amount: int, decimals: int = 18) -> str:
    """Format a smallest-unit amount exactly, trimming trailing zeros.

    >>> format_token_amount(1_500_000_000_000_000_000)
    '1.5'
    """
    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(amount), 10**decimals)
    if fraction == 0:
        return f"{sign}{whole}"
    fraction_text = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{fraction_text}"


def parse_token_amount(text: str, decimals: int = 18) -> int:
    """Parse a decimal string into smallest units; extra precision is truncated."""
    whole, _, fraction = text.strip().partition(".")
    if not whole and not fraction:
        raise ValueError(f"Invalid token amount: {text!r}")
    if not (whole or "0").isdigit() or (fraction and not fraction.isdigit()):
        raise ValueError(f"Invalid token amount: {text!r}")
    fraction = fraction.ljust(decimals, "0")[:decimals]
    return int((whole or "0") + fraction)


class PaymentCalculator:
    """Computes costs and revenue distributions for configured tokens."""

    def __init__(self, registry: TokenRegistry, split_source: Optional[SplitSource] = None):
        """Initialize the calculator.

        Args:
            registry: Token configuration registry.
            split_source: Where splits come from. Defaults to the static config split.
        """
        self.registry = registry
        self.split_source = split_source or StaticSplitSource()

    def calculate_cost(self, token_id: str, action: PaymentAction) -> Cost:
        """Calculate the cost of an action.

        Raises:
            ConfigurationError: If the token or its price is not configured.
        """
        token = self.registry.get(token_id)
        amount = self.registry.price_for(token_id, action)
        return Cost(
            action=action,
            amount=amount,
            amount_formatted=format_display_amount(amount, token.decimals),
            token_id=token.id,
            token_symbol=token.symbol,
            decimals=token.decimals,
        )

    async def calculate_distribution(self, token_id: str, action: PaymentAction) -> RevenueDistribution:
        """Calculate how a payment for this action is split.

        Raises:
            ConfigurationError: If the token or its price is not configured.
        """
        token = self.registry.get(token_id)
        amount = self.registry.price_for(token_id, action)
        split = await self.split_source.get_split(token, action)
        return apply_split(amount, split, action)

    def quote_all(self, token_id: str) -> list[Cost]:
        """Cost of every action for a token, for price previews."""
        return [self.calculate_cost(token_id, action) for action in PaymentAction]
