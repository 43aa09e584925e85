"""
Classes providing support for single-party Ed25519 (i.e., Schnorr over edwards25519) digital signatures, and for the
Solana key & address encodings.
"""
from __future__ import annotations

import hashlib

import base58

from Cryptodome.PublicKey import ECC
from Cryptodome.Signature import eddsa

from solana_musig import KEYPAIR_LENGTH, PUBLIC_KEY_LENGTH, SIGNATURE_LENGTH
from solana_musig.ecc import DEFAULT_EDDSA_MODE
from solana_musig.ecc.ecc_exceptions import (
    InvalidECCPointException, InvalidECCPublicKeyException, IncorrectECCCurveException
)
from solana_musig.ecc.ecc_utils import EdwardsCurveConfig


class SchnorrContext:
    """
    Configuration parameters for Ed25519 Schnorr digital signatures: the ECC parameters of the edwards25519 curve.
    """
    DEFAULT_HASH_ALGO: str = hashlib.sha512().name  # Note: fixed to SHA-512 by RFC 8032 for Ed25519.

    ecc_curve_config: EdwardsCurveConfig
    q: int

    def __init__(self, ecc_curve_config: EdwardsCurveConfig | None = None):
        self.ecc_curve_config = ecc_curve_config if ecc_curve_config is not None else EdwardsCurveConfig.ed25519()
        self.q: int = self.ecc_curve_config.order

    def encode_ecc_point(self, ecc_point: ECC.EccPoint) -> bytes:
        return self.ecc_curve_config.encode_point(ecc_point)

    def generate_key_pair(self) -> ECC.EccKey:
        return ECC.generate(curve=self.ecc_curve_config.curve)


class SchnorrKeyPair:
    ecc_key_pair: ECC.EccKey
    context: SchnorrContext

    def __init__(self, context: SchnorrContext, ecc_key_pair: ECC.EccKey):
        # Checks for arguments' validity:
        if not context.ecc_curve_config.has_curve_name(ecc_key_pair.curve):
            raise IncorrectECCCurveException(
                expected_ecc_curve=context.ecc_curve_config.curve,
                provided_ecc_curve=ecc_key_pair.curve,
                message="The Ed25519 key-pair's elliptic curve must match that of the provided Schnorr context"
            )
        if not ecc_key_pair.has_private():
            raise ValueError("No Ed25519 private key was provided.")
        if context.ecc_curve_config.is_identity(ecc_key_pair.pointQ):
            raise ValueError(
                f"The provided Ed25519 public key is invalid, as it equals the configured elliptic curve's identity "
                f"element [ecc_curve='{context.ecc_curve_config.curve}']"
            )

        self.context = context
        self.ecc_key_pair = ecc_key_pair

    @classmethod
    def generate(cls, context: SchnorrContext) -> SchnorrKeyPair:
        ecc_key_pair: ECC.EccKey = context.generate_key_pair()

        return SchnorrKeyPair(context, ecc_key_pair)

    @classmethod
    def from_keypair_bytes(cls, context: SchnorrContext, keypair_bytes: bytes) -> SchnorrKeyPair:
        """
        Imports a Solana keypair, i.e. the 32-byte private seed followed by the 32-byte encoded public key.

        :raises ValueError: if the keypair has the wrong length, or its public key doesn't match its private seed.
        """
        if len(keypair_bytes) != KEYPAIR_LENGTH:
            raise ValueError(
                f"Invalid Solana keypair length: {len(keypair_bytes)} [expected_length={KEYPAIR_LENGTH}]"
            )

        seed: bytes = bytes(keypair_bytes[:PUBLIC_KEY_LENGTH])
        ecc_key_pair: ECC.EccKey = eddsa.import_private_key(seed)

        if context.encode_ecc_point(ecc_key_pair.pointQ) != bytes(keypair_bytes[PUBLIC_KEY_LENGTH:]):
            raise ValueError("Invalid Solana keypair -- the public key doesn't match the private seed.")

        return SchnorrKeyPair(context, ecc_key_pair)

    @classmethod
    def from_base58(cls, context: SchnorrContext, encoded_keypair: str) -> SchnorrKeyPair:
        try:
            keypair_bytes: bytes = base58.b58decode(encoded_keypair.strip())
        except ValueError as ve:
            raise ValueError(f"Invalid base58-encoded Solana keypair -- caused by: {ve}") from ve

        return cls.from_keypair_bytes(context, keypair_bytes)

    @property
    def public_key(self) -> SchnorrPublicKey:
        return SchnorrPublicKey(self.context, self.ecc_key_pair.public_key())

    @property
    def private_key_scalar(self) -> int:
        """Returns the (clamped, hashed-seed) private scalar `x`, reduced modulo the group order `L`."""
        return self.context.ecc_curve_config.reduce_scalar(int(self.ecc_key_pair.d))

    def export_keypair_bytes(self) -> bytes:
        return self.ecc_key_pair.seed + self.public_key.export_key()

    def to_base58(self) -> str:
        return base58.b58encode(self.export_keypair_bytes()).decode('ascii')

    def sign(self, message: bytes) -> SchnorrSignature:
        """
        Returns a standard (RFC 8032) Ed25519 signature for the provided message, constructed using the key-pair's
        private key.
        <p>
        Using the deterministic nonce `r := H(prefix || m)` & associated nonce point `R := r*G`, the signature over
        message `m` is calculated for public/private key-pair `(A, x)` and group order `L` as:
            `s := r + H(R || A || m)*x mod L`,

        where `H(...)` is SHA-512 interpreted as a little-endian integer.
        <p>
        The complete Ed25519 signature is then the tuple: `(R, s)`
        :param message: a message to sign, provided as a byte string.
        :return: an Ed25519 signature for the provided message, constructed using the key-pair's private key.
        """
        signer = eddsa.new(self.ecc_key_pair, DEFAULT_EDDSA_MODE)

        return SchnorrSignature.from_bytes(self.context, signer.sign(message))


class SchnorrPublicKey:
    public_ecc_key: ECC.EccKey
    context: SchnorrContext

    def __init__(self, context: SchnorrContext, public_ecc_key: ECC.EccKey):
        # Checks for arguments' validity:
        if not context.ecc_curve_config.has_curve_name(public_ecc_key.curve):
            raise IncorrectECCCurveException(
                expected_ecc_curve=context.ecc_curve_config.curve,
                provided_ecc_curve=public_ecc_key.curve,
                message="The Ed25519 public key's elliptic curve must match that of the provided Schnorr context"
            )
        if public_ecc_key.has_private():
            raise ValueError(
                "An Ed25519 private key should not be provided, when constructing an Ed25519 public key."
            )
        if context.ecc_curve_config.is_identity(public_ecc_key.pointQ):
            raise ValueError(
                f"The provided Ed25519 public key is invalid, as it equals the configured elliptic curve's identity "
                f"element [ecc_curve='{context.ecc_curve_config.curve}']"
            )

        self.context = context
        self.public_ecc_key = public_ecc_key

    @classmethod
    def import_key(cls, context: SchnorrContext, encoded_public_key: bytes) -> SchnorrPublicKey:
        try:
            public_point: ECC.EccPoint = context.ecc_curve_config.decode_point(encoded_public_key)
        except InvalidECCPointException as iepe:
            raise InvalidECCPublicKeyException(
                f"Unable to decode Ed25519 public key from encoded ECC point -- Invalid point encoding or point not on "
                f"expected elliptic curve [curve={context.ecc_curve_config.curve}]"
            ) from iepe

        return cls(context, context.ecc_curve_config.ecc_point_to_pubkey(public_point))

    @classmethod
    def from_base58(cls, context: SchnorrContext, address: str) -> SchnorrPublicKey:
        try:
            encoded_public_key: bytes = base58.b58decode(address.strip())
        except ValueError as ve:
            raise InvalidECCPublicKeyException(f"Invalid base58-encoded Solana address: '{address}'") from ve

        return cls.import_key(context, encoded_public_key)

    @property
    def public_key_point(self) -> ECC.EccPoint:
        return self.public_ecc_key.pointQ

    def export_key(self) -> bytes:
        return self.context.encode_ecc_point(self.public_ecc_key.pointQ)

    def to_base58(self) -> str:
        return base58.b58encode(self.export_key()).decode('ascii')

    def verify_signature(self, schnorr_signature: SchnorrSignature, message: bytes) -> bool:
        """Verifies a standard (RFC 8032) Ed25519 signature over the message, using this public key."""
        verifier = eddsa.new(self.public_ecc_key, DEFAULT_EDDSA_MODE)
        try:
            verifier.verify(message, schnorr_signature.to_bytes())
        except ValueError:
            return False
        else:
            return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SchnorrPublicKey):
            return NotImplemented
        return self.export_key() == other.export_key()

    def __hash__(self) -> int:
        return hash(self.export_key())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_base58()})"


class SchnorrSignature:
    """
    Represents an Ed25519 Schnorr digital signature. Supports encoding/decoding to/from the standard 64-byte encoding
    of its `(R, s)` tuple (i.e., nonce point & signature scalar), and to/from base58 text.
    """
    context: SchnorrContext
    public_nonce: ECC.EccPoint
    signature: int

    def __init__(self, context: SchnorrContext, nonce_point: ECC.EccPoint, signature: int):
        self.context = context
        self.public_nonce = nonce_point
        self.signature = signature

    @classmethod
    def from_bytes(cls, context: SchnorrContext, signature_bytes: bytes) -> SchnorrSignature:
        if len(signature_bytes) != SIGNATURE_LENGTH:
            raise ValueError(
                f"Invalid Ed25519 signature length: {len(signature_bytes)} [expected_length={SIGNATURE_LENGTH}]"
            )

        try:
            public_nonce: ECC.EccPoint = context.ecc_curve_config.decode_point(signature_bytes[:PUBLIC_KEY_LENGTH])
        except (InvalidECCPointException, InvalidECCPublicKeyException) as ee:
            raise ValueError(f"Invalid Ed25519 signature nonce point -- caused by: {ee}") from ee

        signature: int = context.ecc_curve_config.decode_scalar(signature_bytes[PUBLIC_KEY_LENGTH:])

        return SchnorrSignature(context, public_nonce, signature)

    @classmethod
    def from_string_encoding(cls, encoded_schnorr_signature: str, context: SchnorrContext) -> SchnorrSignature:
        try:
            signature_bytes: bytes = base58.b58decode(encoded_schnorr_signature.strip())
        except ValueError as ve:
            raise ValueError(f"Invalid base58-encoded Ed25519 signature -- caused by: {ve}") from ve

        return cls.from_bytes(context, signature_bytes)

    def to_bytes(self) -> bytes:
        return (
            self.context.encode_ecc_point(self.public_nonce)          # R (32 bytes)
            + self.context.ecc_curve_config.encode_scalar(self.signature)  # s (32 bytes, little-endian)
        )

    def encode_as_string(self) -> str:
        """Encodes this signature's 64-byte `(R, s)` encoding in base58, i.e. as a Solana transaction signature."""
        return base58.b58encode(self.to_bytes()).decode('ascii')

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SchnorrSignature):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash(self.to_bytes())
