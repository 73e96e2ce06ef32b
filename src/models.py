"""Shared data models for the settlement service and SDK.

All Pydantic models used across services for type safety and validation.
Token amounts are always integers in the token's smallest unit.
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from eth_utils import is_address
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import PaymentErrorCategory

TRANSACTION_HASH_PATTERN = r"^0x[0-9a-fA-F]{64}$"

PaymentStatus = Literal["pending", "verified", "failed"]
TERMINAL_STATUSES = ("verified", "failed")


class PaymentAction(str, Enum):
    """What the user is paying for."""

    GENERATE_CONTENT = "generate-content"
    MINT_ARTIFACT = "mint-artifact"
    PLAY_MINIGAME = "play-minigame"

    @property
    def is_mint_class(self) -> bool:
        return self is PaymentAction.MINT_ARTIFACT

    @property
    def price_key(self) -> "PaymentAction":
        """Price table entry used for this action (minigames reuse generation pricing)."""
        if self is PaymentAction.PLAY_MINIGAME:
            return PaymentAction.GENERATE_CONTENT
        return self


class RevenueSplit(BaseModel):
    """Default revenue split in whole percentages."""

    model_config = ConfigDict(frozen=True)

    writer: int = Field(ge=0, le=100, description="% to the writer's treasury")
    platform: int = Field(ge=0, le=100, description="% to the platform")
    creator_pool: int = Field(ge=0, le=100, description="% to the creator pool")

    @model_validator(mode="after")
    def check_total(self) -> "RevenueSplit":
        if self.writer + self.platform + self.creator_pool != 100:
            raise ValueError("revenue split percentages must sum to 100")
        return self


class TokenConfig(BaseModel):
    """A creator-specific payment token. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    symbol: str
    address: str = Field(description="ERC-20 contract address")
    decimals: int = Field(ge=0, le=36)
    writer: str = Field(default="", description="Writer the token belongs to")
    prices: dict[PaymentAction, int] = Field(description="Price per action in smallest units")
    revenue_split: RevenueSplit

    @field_validator("address")
    @classmethod
    def check_address(cls, value: str) -> str:
        if not is_address(value):
            raise ValueError(f"invalid token address: {value}")
        return value

    @field_validator("prices")
    @classmethod
    def check_prices(cls, value: dict[PaymentAction, int]) -> dict[PaymentAction, int]:
        if PaymentAction.GENERATE_CONTENT not in value:
            raise ValueError("a generate-content price is required")
        for action, amount in value.items():
            if amount <= 0:
                raise ValueError(f"price for {action.value} must be positive")
        return value


class Cost(BaseModel):
    """Price of one action, derived from the token config."""

    action: PaymentAction
    amount: int
    amount_formatted: str
    token_id: str
    token_symbol: str
    decimals: int


class SplitBps(BaseModel):
    """Revenue split in basis points (10000 = 100%)."""

    model_config = ConfigDict(frozen=True)

    writer_bps: int = Field(ge=0, le=10_000)
    platform_bps: int = Field(ge=0, le=10_000)
    creator_bps: int = Field(ge=0, le=10_000)

    @property
    def total_bps(self) -> int:
        return self.writer_bps + self.platform_bps + self.creator_bps


class RevenueDistribution(BaseModel):
    """Revenue split of one payment; the four fields sum to the paid amount."""

    writer_share: int
    platform_share: int
    creator_share: int
    payer_remainder: int = 0

    @property
    def distributed(self) -> int:
        return self.writer_share + self.platform_share + self.creator_share

    @property
    def total(self) -> int:
        return self.distributed + self.payer_remainder


class TransactionRequest(BaseModel):
    """A contract call handed to a wallet provider."""

    to: str
    data: str
    value: int = 0
    chain_id: Optional[int] = None


class TransactionResult(BaseModel):
    """Outcome of a wallet submission. Expected failures are reported, not raised."""

    success: bool
    transaction_hash: str = "0x"
    error: Optional[str] = None
    category: Optional[PaymentErrorCategory] = None


class PaymentRecord(BaseModel):
    """Persisted payment, unique by transaction hash."""

    id: str = Field(description="Unique payment identifier")
    transaction_hash: str = Field(description="Lower-cased transaction hash")
    action: PaymentAction
    token_id: str
    status: PaymentStatus = Field(default="pending")
    amount: int = Field(description="Expected amount in smallest units")
    user_id: Optional[str] = Field(default=None, description="Owning user")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    verified_at: Optional[datetime] = Field(default=None, description="Set once, on the terminal transition")
    failure_reason: Optional[str] = Field(default=None)


# HTTP request/response bodies (camelCase on the wire)


class PaymentInitiateRequest(BaseModel):
    """Request a price quote for an action."""

    tokenId: str = Field(min_length=1)
    action: PaymentAction
    userAddress: Optional[str] = None


class TokenSummary(BaseModel):
    id: str
    name: str
    symbol: str
    address: str
    decimals: int


class DistributionSummary(BaseModel):
    writerShare: str
    platformShare: str
    creatorShare: str
    payerRemainder: str


class PaymentQuote(BaseModel):
    """Authoritative price and split returned by the initiate endpoint."""

    contractAddress: str
    action: PaymentAction
    amount: str
    amountFormatted: str
    distribution: DistributionSummary
    chainId: int
    token: TokenSummary


class PaymentVerifyRequest(BaseModel):
    """Register a submitted payment transaction for verification."""

    transactionHash: str = Field(pattern=TRANSACTION_HASH_PATTERN)
    tokenId: str = Field(min_length=1)
    action: PaymentAction
    userId: Optional[str] = None


class VerificationTicket(BaseModel):
    """Response to a verify request: where to poll for the outcome."""

    paymentId: str
    transactionHash: str
    status: PaymentStatus
    statusCheckUrl: str


class PaymentStatusResponse(BaseModel):
    """Current status of a payment record."""

    paymentId: str
    status: PaymentStatus
    verifiedAt: Optional[datetime] = None
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standardized error response model."""

    error: str
    category: Optional[PaymentErrorCategory] = None
    detail: Optional[str] = None
