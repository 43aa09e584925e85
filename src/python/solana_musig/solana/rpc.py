"""A minimal Solana JSON-RPC 2.0 client, covering the calls needed to fund, query & broadcast transfers."""
from __future__ import annotations

import base64
import itertools
import logging

from typing import Any, Optional

import base58
import requests

logger = logging.getLogger(__name__)


class SolanaRPCError(Exception):
    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        super().__init__(f"RPC Error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data
        self.msg = str(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}: {self.msg}"


class SolanaRPCClient:
    """
    Sends JSON-RPC requests to a Solana cluster endpoint over HTTP POST. Failures surface as ``SolanaRPCError``, and
    are never retried.
    """
    DEFAULT_TIMEOUT: float = 30.0
    COMMITMENT: str = 'confirmed'

    def __init__(self, endpoint: str, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        self._request_ids = itertools.count(1)

    def _call(self, method: str, *params: Any) -> Any:
        payload: dict[str, Any] = {
            'jsonrpc': '2.0',
            'id': next(self._request_ids),
            'method': method,
            'params': list(params),
        }
        logger.debug("Sending RPC request %s to %s", method, self.endpoint)

        try:
            response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as te:
            raise SolanaRPCError(-1, f"Request timed out after {self.timeout}s") from te
        except requests.exceptions.RequestException as re:
            raise SolanaRPCError(-1, f"Request failed: {re}") from re

        if response.status_code != 200:
            raise SolanaRPCError(response.status_code, f"HTTP {response.status_code}: {response.reason}")

        try:
            response_data: dict[str, Any] = response.json()
        except ValueError as ve:
            raise SolanaRPCError(-32700, f"Invalid JSON response: {ve}") from ve

        error: Optional[dict[str, Any]] = response_data.get('error')
        if error:
            raise SolanaRPCError(error.get('code', -1), error.get('message', 'Unknown error'), error.get('data'))
        if 'result' not in response_data:
            raise SolanaRPCError(-32603, f"Missing result in response to {method}")

        return response_data['result']

    def get_balance(self, address: str) -> int:
        """Returns the balance of the address, in lamports."""
        result: dict[str, Any] = self._call('getBalance', address, {'commitment': self.COMMITMENT})
        return int(result['value'])

    def request_airdrop(self, address: str, lamports: int) -> str:
        """Requests an airdrop of lamports to the address, returning the airdrop's transaction signature."""
        return self._call('requestAirdrop', address, lamports, {'commitment': self.COMMITMENT})

    def get_recent_blockhash(self) -> bytes:
        """Returns the cluster's latest block hash, as 32 bytes."""
        result: dict[str, Any] = self._call('getLatestBlockhash', {'commitment': self.COMMITMENT})
        return base58.b58decode(result['value']['blockhash'])

    def send_transaction(self, transaction: bytes) -> str:
        """Submits a signed wire transaction, returning its (base58) transaction signature."""
        encoded_transaction: str = base64.b64encode(transaction).decode('ascii')
        return self._call(
            'sendTransaction', encoded_transaction, {'encoding': 'base64', 'preflightCommitment': self.COMMITMENT}
        )

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> SolanaRPCClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
