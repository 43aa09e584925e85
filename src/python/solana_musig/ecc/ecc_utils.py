"""
Scalar field & group arithmetic helpers for the twisted Edwards curve Ed25519, including the RFC 8032 point & scalar
encodings used by Solana.
"""
from __future__ import annotations

import functools
import operator

from typing import Iterable

import attrs

from Cryptodome.PublicKey import ECC
from Cryptodome.Signature import eddsa
from Cryptodome.Util import number

from solana_musig import SCALAR_LENGTH
from solana_musig.ecc import (
    ED25519_CURVE_NAME, ED25519_ORDER, ED25519_COFACTOR, ED25519_BASE_POINT_X, ED25519_BASE_POINT_Y,
    ED25519_POINT_ENCODING_LENGTH
)
from solana_musig.ecc.ecc_exceptions import InvalidECCPointException, InvalidECCPublicKeyException


@attrs.define(slots=True, frozen=True)
class EdwardsCurveConfig:
    """
    Parameters of a twisted Edwards elliptic curve supported by PyCryptodome, with the scalar (mod `L`) & point
    operations needed by Schnorr-family signature schemes.
    """
    curve: str
    order: int
    cofactor: int
    base_point_x: int
    base_point_y: int

    @classmethod
    def ed25519(cls) -> EdwardsCurveConfig:
        return cls(
            curve=ED25519_CURVE_NAME,
            order=ED25519_ORDER,
            cofactor=ED25519_COFACTOR,
            base_point_x=ED25519_BASE_POINT_X,
            base_point_y=ED25519_BASE_POINT_Y
        )

    @property
    def base_point(self) -> ECC.EccPoint:
        """Returns the curve's base point `G`, which generates the prime-order subgroup `<G>` of order `L`."""
        return ECC.EccPoint(self.base_point_x, self.base_point_y, curve=self.curve)

    def has_curve_name(self, curve_name: str) -> bool:
        return curve_name.lower() == self.curve.lower()

    # Scalars:

    def reduce_scalar(self, value: int) -> int:
        return value % self.order

    def random_scalar(self) -> int:
        """Returns a uniformly random nonzero scalar in `[1, L)`, drawn from the OS-backed CSPRNG."""
        return number.getRandomRange(1, self.order)

    @staticmethod
    def encode_scalar(scalar: int) -> bytes:
        """Encodes a scalar as 32 little-endian bytes."""
        return scalar.to_bytes(SCALAR_LENGTH, 'little')

    def decode_scalar(self, encoded_scalar: bytes) -> int:
        """
        Decodes a 32-byte little-endian scalar.

        :raises ValueError: if the encoding has the wrong length, or isn't canonical (i.e., `s >= L`).
        """
        if len(encoded_scalar) != SCALAR_LENGTH:
            raise ValueError(
                f"Invalid encoded scalar length: {len(encoded_scalar)} [expected_length={SCALAR_LENGTH}]"
            )

        scalar: int = int.from_bytes(encoded_scalar, 'little')
        if scalar >= self.order:
            raise ValueError(
                f"Non-canonical encoded scalar -- scalar must be less than the group order [curve={self.curve}]"
            )

        return scalar

    # Points:

    def scalar_base_mult(self, scalar: int) -> ECC.EccPoint:
        """Returns `s*G`."""
        return self.base_point * self.reduce_scalar(scalar)

    @staticmethod
    def sum_points(points: Iterable[ECC.EccPoint]) -> ECC.EccPoint:
        """Returns the group sum of a non-empty sequence of points, added in iteration order."""
        return functools.reduce(operator.add, points)

    @staticmethod
    def is_identity(point: ECC.EccPoint) -> bool:
        """Returns whether the point is the neutral element `(0, 1)` of the Edwards group."""
        return int(point.x) == 0 and int(point.y) == 1

    def has_small_order(self, point: ECC.EccPoint) -> bool:
        """Returns whether the point lies in the curve's small (torsion) subgroup, the identity included."""
        return self.is_identity(point * self.cofactor)

    def is_in_prime_order_subgroup(self, point: ECC.EccPoint) -> bool:
        """Returns whether the point lies in `<G>`, i.e., has no small (torsion) component: `L*P == 0`."""
        return self.is_identity(point * self.order)

    @staticmethod
    def encode_point(point: ECC.EccPoint) -> bytes:
        """Encodes a point per RFC 8032: `y` in little-endian, with the least-significant bit of `x` in bit 255."""
        x: int = int(point.x)
        y: int = int(point.y)

        return (y | ((x & 1) << 255)).to_bytes(ED25519_POINT_ENCODING_LENGTH, 'little')

    def decode_point(self, encoded_point: bytes) -> ECC.EccPoint:
        """
        Decodes an RFC 8032 encoded point, rejecting encodings that are malformed or non-canonical, and points that
        are the identity, of small order, or outside the prime-order subgroup `<G>` (mixed-order points `x*G + T`).

        :raises InvalidECCPointException: if the encoding is malformed, non-canonical or not a point on the curve.
        :raises InvalidECCPublicKeyException: if the decoded point is the identity, has small order, or has a torsion
                component.
        """
        encoded_point = bytes(encoded_point)
        if len(encoded_point) != ED25519_POINT_ENCODING_LENGTH:
            raise InvalidECCPointException(
                self.curve, encoded_point, f"Invalid encoded point length: {len(encoded_point)}"
            )

        try:
            point: ECC.EccPoint = eddsa.import_public_key(encoded_point).pointQ
        except ValueError as ve:
            raise InvalidECCPointException(self.curve, encoded_point, f"Unable to decode point: {ve}") from ve

        if self.encode_point(point) != encoded_point:
            raise InvalidECCPointException(self.curve, encoded_point, "Non-canonical point encoding")
        if self.is_identity(point):
            raise InvalidECCPublicKeyException(
                f"Decoded ECC point is invalid -- point equals the identity element [curve={self.curve}]"
            )
        if self.has_small_order(point):
            raise InvalidECCPublicKeyException(
                f"Decoded ECC point is invalid -- point has small order [curve={self.curve}]"
            )
        if not self.is_in_prime_order_subgroup(point):
            raise InvalidECCPublicKeyException(
                f"Decoded ECC point is invalid -- point isn't in the prime-order subgroup [curve={self.curve}]"
            )

        return point

    def verify_ecc_point(self, encoded_point: bytes) -> bool:
        """Returns whether the provided encoding is a valid, non-degenerate point on the configured curve."""
        try:
            self.decode_point(encoded_point)
        except (InvalidECCPointException, InvalidECCPublicKeyException):
            return False
        else:
            return True

    def ecc_point_to_pubkey(self, point: ECC.EccPoint) -> ECC.EccKey:
        """Converts an ECC point to an EdDSA public-key ``EccKey`` object, e.g. for signature verification."""
        return eddsa.import_public_key(self.encode_point(point))
