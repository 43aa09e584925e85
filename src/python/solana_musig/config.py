"""Runtime configuration of the command line interface, and its logging setup."""
from __future__ import annotations

import logging
import sys

from typing import Optional

import attrs

from solana_musig.ecc.signatures.aggregate_schnorr import AggregateSchnorrContext, KeyOrdering
from solana_musig.solana.network import Network
from solana_musig.solana.rpc import SolanaRPCClient

NETWORK_ENV_VAR: str = 'SOLANA_MUSIG_NET'
RPC_URL_ENV_VAR: str = 'SOLANA_MUSIG_RPC_URL'
KEY_ORDER_ENV_VAR: str = 'SOLANA_MUSIG_KEY_ORDER'

DEFAULT_NETWORK: Network = Network.TESTNET

LOG_FORMAT: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_LEVELS: dict[int, int] = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


@attrs.define(slots=True, frozen=True)
class CLIConfig:
    key_ordering: KeyOrdering = KeyOrdering.SORTED
    rpc_url: Optional[str] = None
    verbose: int = 0

    def aggregate_context(self) -> AggregateSchnorrContext:
        return AggregateSchnorrContext(key_ordering=self.key_ordering)

    def endpoint(self, network: Network) -> str:
        """Returns the RPC endpoint: the configured URL override if any, else the network's public endpoint."""
        return self.rpc_url if self.rpc_url else network.cluster_url

    def rpc_client(self, network: Network) -> SolanaRPCClient:
        return SolanaRPCClient(self.endpoint(network))

    def setup_logging(self) -> None:
        """Configures the package's logging to stderr, at a level based on the verbosity count."""
        level: int = LOG_LEVELS.get(min(self.verbose, 2), logging.DEBUG)

        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

        package_logger = logging.getLogger('solana_musig')
        package_logger.handlers.clear()
        package_logger.setLevel(level)
        package_logger.addHandler(handler)

        # Quiet third-party logs unless in debug mode.
        if self.verbose < 2:
            logging.getLogger('requests').setLevel(logging.WARNING)
            logging.getLogger('urllib3').setLevel(logging.WARNING)
