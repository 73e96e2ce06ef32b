"""Token configuration registry.

Tokens are loaded once from a JSON file and never change at runtime. Lookups
by id raise ``ConfigurationError`` so callers get one error type for every
"this token/action is not configured" case.
"""

import json
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Optional

from .config import config
from .errors import ConfigurationError
from .logging_utils import get_logger
from .models import PaymentAction, TokenConfig

logger = get_logger(__name__)


class TokenRegistry:
    """Read-only view over the configured payment tokens."""

    def __init__(self, tokens: Iterable[TokenConfig]):
        by_id = {}
        for token in tokens:
            if token.id in by_id:
                raise ValueError(f"Duplicate token id in configuration: {token.id}")
            by_id[token.id] = token
        self._by_id = MappingProxyType(by_id)

    @classmethod
    def from_file(cls, path: Optional[str] = None) -> "TokenRegistry":
        """Load the registry from a JSON file with a top-level ``tokens`` list.

        Args:
            path: Path to the JSON file. Defaults to config.token_config_path.
        """
        path = path or config.token_config_path
        with open(Path(path), encoding="utf-8") as fh:
            data = json.load(fh)
        registry = cls(TokenConfig.model_validate(item) for item in data.get("tokens", []))
        logger.info(f"Loaded {len(registry)} token(s) from {path}")
        return registry

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self):
        return iter(self._by_id.values())

    def get(self, token_id: str) -> TokenConfig:
        """Return the token with this id or raise ConfigurationError."""
        token = self._by_id.get(token_id)
        if token is None:
            raise ConfigurationError(f'Token "{token_id}" is not configured')
        return token

    def price_for(self, token_id: str, action: PaymentAction) -> int:
        """Price of an action in smallest units."""
        token = self.get(token_id)
        amount = token.prices.get(action.price_key)
        if amount is None:
            raise ConfigurationError(f'Token "{token_id}" has no price for {action.value}')
        return amount
