"""
Cryptographic hashing to scalars of a prime-order group, via wide modular reduction.
"""
from __future__ import annotations

import hashlib

from typing import Optional

from solana_musig.exceptions import InvalidHasherStateException


class ScalarReducingHasher:
    """
    Hasher that maps its input to a scalar modulo a prime group order, by interpreting a (wide) cryptographic hash
    digest as an integer & reducing it modulo the prime. The digest must be at least twice the prime's bit-length, so
    that the bias of the reduction is negligible. With SHA-512 & little-endian byte order this is exactly the RFC 8032
    Ed25519 challenge hash `H(R || A || M) mod L`.
    <p>
    An optional domain tag produces a tagged hash `H(H(tag) || H(tag) || message)`, separating the protocol's internal
    hashes (e.g., key aggregation coefficients) from the signature challenge & from one another.</p>
    Note: This class is not thread-safe.
    """
    DEFAULT_HASH_ALGO: str = hashlib.sha512().name

    def __init__(
            self,
            prime_order: int,
            hash_algorithm: str = DEFAULT_HASH_ALGO,
            domain_tag: Optional[bytes] = None
    ):
        """
        Constructs a scalar-reducing hasher, based on the specified cryptographic hash algorithm and prime order.

        :param prime_order: prime order of the group whose scalars are produced.
        :param hash_algorithm: cryptographic hash algorithm to be used, whose digest must be at least twice the
               bit-length of the prime order.
        :param domain_tag: optional domain separation tag, prefixed (hashed twice) to all hashed messages.
        :raises ValueError: if the provided hash algorithm is not supported by hashlib; or its digest size is shorter
                than twice the prime order's bit-length.
        """
        self.hash_algo: str = hash_algorithm
        self.order: int = prime_order

        self.bit_length: int = prime_order.bit_length()  # e.g., 253 bits for the Ed25519 group order
        self.digest_bit_length: int = hashlib.new(self.hash_algo).digest_size * 8

        # Disallow digests too short for an (almost) unbiased wide reduction.
        if self.digest_bit_length < 2 * self.bit_length:
            raise ValueError(
                f"Unable to construct scalar-reducing hasher for prime with bit-length: {self.bit_length}, as the "
                f"'{self.hash_algo}' hash algorithm's digest size (bits): {self.digest_bit_length} is less than twice "
                f"the prime's bit-length"
            )

        self.tag_prefix: bytes = b''
        if domain_tag is not None:
            tag_digest: bytes = hashlib.new(self.hash_algo, domain_tag).digest()
            self.tag_prefix = tag_digest + tag_digest

        self._hasher = None

    def update(self, message: bytes) -> ScalarReducingHasher:
        if self._hasher is None:
            self._hasher = hashlib.new(self.hash_algo, self.tag_prefix)

        self._hasher.update(message)

        return self

    def intdigest(self) -> int:
        if self._hasher is None:
            raise InvalidHasherStateException(
                f"Unable to produce {type(self).__name__} integer digest -- update(bytes) must be called at least once "
                f"prior to calling intdigest()."
            )

        return self._reduce(self._hasher.digest())

    def _reduce(self, full_hash_bytes: bytes) -> int:
        full_hash: int = int.from_bytes(full_hash_bytes, 'little')

        return full_hash % self.order
