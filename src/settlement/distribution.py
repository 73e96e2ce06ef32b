"""Revenue split sources.

The chain is the source of truth for splits when it is reachable; the token
configuration is used when it is not. Each source resolves a ``SplitBps`` for
a (token, action) pair, and ``FallbackSplitSource`` composes two of them.
"""

from abc import ABC, abstractmethod

from src.logging_utils import get_logger
from src.models import PaymentAction, RevenueDistribution, SplitBps, TokenConfig

from .chain import ChainGateway

logger = get_logger(__name__)

BPS_DENOMINATOR = 10_000

# Mint default: 30% creator pool, 15% writer, 5% platform; the other 50% stays with the payer.
DEFAULT_MINT_SPLIT = SplitBps(writer_bps=1_500, platform_bps=500, creator_bps=3_000)


class SplitSource(ABC):
    """Resolves the revenue split for a token and action."""

    @abstractmethod
    async def get_split(self, token: TokenConfig, action: PaymentAction) -> SplitBps:
        """Return the split in basis points, raising on failure."""


class OnChainSplitSource(SplitSource):
    """Reads the split the token contract enforces."""

    def __init__(self, chain: ChainGateway):
        self.chain = chain

    async def get_split(self, token: TokenConfig, action: PaymentAction) -> SplitBps:
        if action.is_mint_class:
            writer, platform, creator = await self.chain.read_mint_split_bps(token.address)
        else:
            writer, platform, creator = await self.chain.read_revenue_split_bps(token.address)

        split = SplitBps(writer_bps=writer, platform_bps=platform, creator_bps=creator)

        if action.is_mint_class:
            if split.total_bps > BPS_DENOMINATOR:
                raise ValueError(f"On-chain mint split for {token.id} exceeds 100%: {split.total_bps} bps")
        elif split.total_bps != BPS_DENOMINATOR:
            raise ValueError(f"On-chain revenue split for {token.id} does not sum to 100%: {split.total_bps} bps")
        return split


class StaticSplitSource(SplitSource):
    """Split from the token configuration (generation) or the fixed mint default."""

    def __init__(self, mint_split: SplitBps = DEFAULT_MINT_SPLIT):
        self.mint_split = mint_split

    async def get_split(self, token: TokenConfig, action: PaymentAction) -> SplitBps:
        if action.is_mint_class:
            return self.mint_split
        split = token.revenue_split
        return SplitBps(
            writer_bps=split.writer * 100,
            platform_bps=split.platform * 100,
            creator_bps=split.creator_pool * 100,
        )


class FallbackSplitSource(SplitSource):
    """Uses ``primary`` and falls back to ``fallback`` on any primary failure."""

    def __init__(self, primary: SplitSource, fallback: SplitSource):
        self.primary = primary
        self.fallback = fallback

    async def get_split(self, token: TokenConfig, action: PaymentAction) -> SplitBps:
        try:
            return await self.primary.get_split(token, action)
        except Exception as e:
            logger.warning(
                f"Split lookup failed for {token.id}/{action.value}, using fallback: {e}"
            )
            return await self.fallback.get_split(token, action)


def apply_split(amount: int, split: SplitBps, action: PaymentAction) -> RevenueDistribution:
    """Split an amount by basis points using integer arithmetic only.

    For generation-class actions integer-division dust goes to the creator
    share, so the three shares sum to the full amount. For the mint action
    everything not distributed is reported as ``payer_remainder``.
    """
    writer_share = amount * split.writer_bps // BPS_DENOMINATOR
    platform_share = amount * split.platform_bps // BPS_DENOMINATOR

    if action.is_mint_class:
        creator_share = amount * split.creator_bps // BPS_DENOMINATOR
        payer_remainder = amount - writer_share - platform_share - creator_share
    else:
        creator_share = amount - writer_share - platform_share
        payer_remainder = 0

    return RevenueDistribution(
        writer_share=writer_share,
        platform_share=platform_share,
        creator_share=creator_share,
        payer_remainder=payer_remainder,
    )
