"""Solana clusters & their public JSON-RPC endpoints."""
from __future__ import annotations

import enum

from solana_musig.exceptions import WrongNetworkException


class Network(enum.Enum):
    MAINNET = 'mainnet'
    TESTNET = 'testnet'
    DEVNET = 'devnet'
    LOCAL = 'local'

    @property
    def cluster_url(self) -> str:
        """Returns the cluster's public JSON-RPC endpoint."""
        return _CLUSTER_URLS[self]

    @classmethod
    def from_string(cls, network_name: str) -> Network:
        """
        Parses a network name, case-insensitively.

        :raises WrongNetworkException: if the name isn't one of 'mainnet', 'testnet', 'devnet' or 'local'.
        """
        try:
            return cls(network_name.strip().lower())
        except ValueError as ve:
            raise WrongNetworkException(network_name) from ve


_CLUSTER_URLS: dict[Network, str] = {
    Network.MAINNET: 'https://api.mainnet-beta.solana.com',
    Network.TESTNET: 'https://api.testnet.solana.com',
    Network.DEVNET: 'https://api.devnet.solana.com',
    Network.LOCAL: 'http://127.0.0.1:8899',
}
