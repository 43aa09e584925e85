"""Common constants used in the 'solana_musig' package."""

TEXT_ENCODING: str = 'utf-8'
"""Encoding used for memo strings & other textual inputs that are hashed or signed."""

PUBLIC_KEY_LENGTH: int = 32
"""Length (bytes) of an RFC 8032 encoded Ed25519 public key (i.e., a Solana address)."""

SCALAR_LENGTH: int = 32
"""Length (bytes) of a little-endian encoded scalar modulo the Ed25519 group order."""

SIGNATURE_LENGTH: int = 64
"""Length (bytes) of an Ed25519 signature `(R, s)`."""

KEYPAIR_LENGTH: int = 64
"""Length (bytes) of a Solana keypair, i.e. the 32-byte private seed followed by the 32-byte public key."""
