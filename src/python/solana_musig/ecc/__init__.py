"""Common constants used in the 'solana_musig.ecc' package."""

ED25519_CURVE_NAME: str = 'Ed25519'
"""Canonical (PyCryptodome) name of the twisted Edwards curve used by Solana accounts."""

ED25519_ORDER: int = 2 ** 252 + 27742317777372353535851937790883648493
"""Prime order `L` of the Ed25519 base point's subgroup."""

ED25519_COFACTOR: int = 8

ED25519_BASE_POINT_X: int = 15112221349535400772501151409588531511454012693041857206046113283949847762202
ED25519_BASE_POINT_Y: int = 46316835694926478169428394003475163141307993866256225615783033603165251855960

ED25519_POINT_ENCODING_LENGTH: int = 32
"""Length (bytes) of the RFC 8032 point encoding: little-endian `y`, with the sign of `x` in the top bit."""

DEFAULT_EDDSA_MODE: str = 'rfc8032'
"""PyCryptodome EdDSA mode for pure (non-prehashed) Ed25519 signatures, as verified by the Solana runtime."""
