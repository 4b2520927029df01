from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, cast

import requests

from intake.apps.treasury.config import TreasuryConfig

logger = logging.getLogger(__name__)


class IndexerError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class TokenTransfer:
    tx_hash: str
    token: str
    from_address: str
    to_address: str
    value: int
    block_number: Optional[int] = None
    block_timestamp: str = ""

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "TokenTransfer":
        block = row.get("block_number")
        return cls(
            tx_hash=row.get("transaction_hash", ""),
            token=(row.get("address") or "").lower(),
            from_address=(row.get("from_address") or "").lower(),
            to_address=(row.get("to_address") or "").lower(),
            value=int(row.get("value") or 0),
            block_number=int(block) if block is not None else None,
            block_timestamp=row.get("block_timestamp") or "",
        )


class IndexerClient:
    """
    A client for the Moralis Web3 Data API (EVM), scoped to the deposit token.
    """

    page_size = 100
    max_pages = 20

    def __init__(self, config: TreasuryConfig, session: Optional[requests.Session] = None):
        self.base_url = config.indexer_base_url.rstrip("/")
        self.chain = config.indexer_chain
        self.token_address = config.token_address.lower()
        self.timeout = 15
        # Use a session for connection pooling
        self.session = session or requests.Session()
        self.session.headers.update(
            {"X-API-Key": config.indexer_api_key, "Accept": "application/json"}
        )

    def _handle_error(self, response: requests.Response, prefix: str) -> None:
        """Checks for HTTP errors and raises a descriptive IndexerError."""
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            detail = e.response.text
            try:
                error_json = e.response.json()
                detail = error_json.get("message", detail)
            except requests.JSONDecodeError:
                pass  # Stick with the raw text
            raise IndexerError(
                f"{prefix} failed ({e.response.status_code}): {detail}",
                status_code=e.response.status_code,
            ) from e

    def _get(self, path: str, params: Dict[str, Any], prefix: str) -> Any:
        params = {k: v for k, v in params.items() if v is not None}
        try:
            r = self.session.get(
                f"{self.base_url}{path}", params=params, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise IndexerError(f"{prefix} failed: {e}") from e
        self._handle_error(r, prefix)
        return r.json()

    def get_native_balance(self, address: str) -> int:
        """
        GET /{address}/balance

        Native BNB balance in wei.
        """
        data = self._get(f"/{address}/balance", {"chain": self.chain}, "Native balance")
        return int(cast(Dict[str, Any], data).get("balance") or 0)

    def get_token_balance(self, address: str) -> int:
        """
        GET /{address}/erc20

        Balance of the deposit token. The response is either a bare list or an
        object with a `result` list depending on API version.
        """
        data = self._get(
            f"/{address}/erc20",
            {"chain": self.chain, "token_addresses[]": self.token_address},
            "Token balance",
        )
        rows = data if isinstance(data, list) else data.get("result", [])
        for row in rows:
            if (row.get("token_address") or "").lower() == self.token_address:
                return int(row.get("balance") or 0)
        return 0

    def get_token_transfers(self, address: str) -> List[TokenTransfer]:
        """
        GET /{address}/erc20/transfers

        All deposit-token transfers touching `address`, following the cursor.
        """
        transfers: List[TokenTransfer] = []
        cursor = None
        for _ in range(self.max_pages):
            data = self._get(
                f"/{address}/erc20/transfers",
                {"chain": self.chain, "limit": self.page_size, "cursor": cursor},
                "Token transfers",
            )
            for row in data.get("result") or []:
                transfer = TokenTransfer.from_api(row)
                if transfer.token == self.token_address:
                    transfers.append(transfer)
            cursor = data.get("cursor")
            if not cursor:
                break
        else:
            logger.warning(
                f"[Indexer] Stopped after {self.max_pages} pages of transfers for {address}"
            )
        return transfers

    def get_incoming_token_transfers(self, address: str) -> List[TokenTransfer]:
        addr = address.lower()
        return [t for t in self.get_token_transfers(address) if t.to_address == addr]

    def get_outgoing_token_transfers(self, address: str) -> List[TokenTransfer]:
        addr = address.lower()
        return [t for t in self.get_token_transfers(address) if t.from_address == addr]
