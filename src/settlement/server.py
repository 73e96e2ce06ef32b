"""Creator Token Settlement Service.

Main FastAPI application integrating:
- Authoritative price quotes and revenue distributions
- Payment transaction registration and status polling
- Background chain confirmation of pending payments
- Token listing and balance lookups
"""

from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from eth_utils import is_address

from src.config import config, validate_config_for_service
from src.database import Database, PaymentRecordRepository
from src.errors import (
    PaymentError,
    PaymentErrorCategory,
    ValidationError,
    classify_error,
    http_status_for,
)
from src.logging_utils import (
    ATTEMPT_ID_HEADER,
    PaymentAttemptContext,
    get_logger,
    setup_logging,
)
from src.models import (
    DistributionSummary,
    ErrorResponse,
    PaymentInitiateRequest,
    PaymentQuote,
    PaymentStatusResponse,
    PaymentVerifyRequest,
    TokenConfig,
    TokenSummary,
    VerificationTicket,
)
from src.tokens import TokenRegistry

from .calculator import PaymentCalculator, format_display_amount, format_token_amount
from .chain import ChainGateway
from .confirmation import ConfirmationWorker
from .distribution import FallbackSplitSource, OnChainSplitSource, StaticSplitSource
from .verification import VerificationService

logger = get_logger(__name__)


def _token_summary(token: TokenConfig) -> TokenSummary:
    return TokenSummary(
        id=token.id,
        name=token.name,
        symbol=token.symbol,
        address=token.address,
        decimals=token.decimals,
    )


def _error_response(status_code: int, error: str, category=None, detail=None) -> JSONResponse:
    body = ErrorResponse(error=error, category=category, detail=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


def create_app(
    repository: Optional[PaymentRecordRepository] = None,
    chain: Optional[ChainGateway] = None,
    registry: Optional[TokenRegistry] = None,
    run_worker: bool = True,
) -> FastAPI:
    """Build the settlement application.

    Args:
        repository: Payment record store. Defaults to SQLite at config.database_path.
        chain: Chain gateway. Defaults to one built from config.
        registry: Token registry. Defaults to config.token_config_path.
        run_worker: Start the background confirmation worker on startup.
    """
    repository = repository or Database(config.database_path)
    chain = chain or ChainGateway()
    registry = registry or TokenRegistry.from_file()

    calculator = PaymentCalculator(
        registry,
        split_source=FallbackSplitSource(OnChainSplitSource(chain), StaticSplitSource()),
    )
    verification = VerificationService(repository, calculator)
    worker = ConfirmationWorker(repository, chain, registry)

    app = FastAPI(
        title="Creator Token Settlement",
        description="Payment quotes, verification and chain confirmation",
    )
    app.state.repository = repository
    app.state.chain = chain
    app.state.registry = registry
    app.state.calculator = calculator
    app.state.verification = verification
    app.state.worker = worker

    @app.on_event("startup")
    async def startup():
        """Initialize the record store and start confirming payments."""
        logger.info("Initializing settlement service...")
        validate_config_for_service("settlement")
        initialize = getattr(repository, "initialize", None)
        if initialize is not None:
            await initialize()
        if run_worker:
            worker.start()
        logger.info(f"Settlement service initialized with {len(registry)} token(s)")

    @app.on_event("shutdown")
    async def shutdown():
        await worker.stop()

    @app.middleware("http")
    async def bind_attempt_id(request: Request, call_next):
        """Bind the client's payment attempt id to the request's log records."""
        attempt_id = request.headers.get(ATTEMPT_ID_HEADER)
        with PaymentAttemptContext(attempt_id) as bound:
            response = await call_next(request)
        if attempt_id:
            response.headers[ATTEMPT_ID_HEADER] = bound
        return response

    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        status_code = http_status_for(exc.category)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
        return _error_response(status_code, exc.message, exc.category, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        return _error_response(400, "Invalid request", PaymentErrorCategory.VALIDATION, details)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(500, "Internal server error", PaymentErrorCategory.UNKNOWN, str(exc))

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "ok", "service": "settlement", "chainId": chain.chain_id}

    @app.get("/tokens")
    async def list_tokens() -> dict:
        """List configured tokens with a cost preview for every action."""
        tokens = []
        for token in registry:
            summary = _token_summary(token).model_dump()
            summary["writer"] = token.writer
            summary["prices"] = {
                cost.action.value: {"amount": str(cost.amount), "amountFormatted": cost.amount_formatted}
                for cost in calculator.quote_all(token.id)
            }
            tokens.append(summary)
        return {"tokens": tokens}

    @app.get("/tokens/{token_id}/balance")
    async def get_balance(token_id: str, wallet: str = Query(...)) -> dict:
        """ERC-20 balance of a wallet for a configured token."""
        if not is_address(wallet):
            raise ValidationError("Invalid wallet address", detail=wallet)
        token = registry.get(token_id)

        try:
            balance = await chain.get_token_balance(token.address, wallet)
        except Exception as e:
            info = classify_error(e)
            category = info.category if info.retryable else PaymentErrorCategory.NETWORK
            raise PaymentError("Balance lookup failed", category=category, detail=str(e))

        return {
            "tokenId": token.id,
            "wallet": wallet,
            "balance": str(balance),
            "balanceExact": format_token_amount(balance, token.decimals),
            "balanceFormatted": format_display_amount(balance, token.decimals),
        }

    @app.post("/payments/initiate", response_model=PaymentQuote)
    async def initiate_payment(request: PaymentInitiateRequest) -> PaymentQuote:
        """Quote the authoritative price and split for an action.

        The client pays exactly ``amount`` to ``contractAddress``.
        """
        token = registry.get(request.tokenId)
        cost = calculator.calculate_cost(token.id, request.action)
        distribution = await calculator.calculate_distribution(token.id, request.action)

        logger.info(
            f"Quote {request.action.value} on {token.id}: {cost.amount_formatted} {token.symbol}"
            + (f" for {request.userAddress}" if request.userAddress else "")
        )

        return PaymentQuote(
            contractAddress=config.payment_contract_address,
            action=request.action,
            amount=str(cost.amount),
            amountFormatted=cost.amount_formatted,
            distribution=DistributionSummary(
                writerShare=str(distribution.writer_share),
                platformShare=str(distribution.platform_share),
                creatorShare=str(distribution.creator_share),
                payerRemainder=str(distribution.payer_remainder),
            ),
            chainId=chain.chain_id,
            token=_token_summary(token),
        )

    @app.post("/payments/verify", response_model=VerificationTicket)
    async def verify_payment(request: PaymentVerifyRequest) -> VerificationTicket:
        """Register a submitted payment transaction for confirmation."""
        result = await verification.initiate(
            transaction_hash=request.transactionHash,
            token_id=request.tokenId,
            action=request.action,
            user_id=request.userId,
        )
        return VerificationTicket(
            paymentId=result.record_id,
            transactionHash=result.transaction_hash,
            status=result.status,
            statusCheckUrl=result.poll_url,
        )

    @app.get("/payments/verify", response_model=PaymentStatusResponse, response_model_exclude_none=True)
    async def get_payment_status(
        paymentId: Optional[str] = None,
        transactionHash: Optional[str] = None,
    ) -> PaymentStatusResponse:
        """Current status of a payment, by id or transaction hash."""
        result = await verification.status(payment_id=paymentId, transaction_hash=transactionHash)
        return PaymentStatusResponse(
            paymentId=result.payment_id,
            status=result.status,
            verifiedAt=result.verified_at,
            message=result.message,
        )

    return app


def main() -> None:
    import uvicorn

    setup_logging(config.log_level, config.log_format)
    validate_config_for_service("settlement")
    uvicorn.run(create_app(), host=config.settlement_host, port=config.settlement_port)


if __name__ == "__main__":
    main()
