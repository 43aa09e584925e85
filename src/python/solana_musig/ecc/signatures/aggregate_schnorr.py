"""
Provides an N-of-N aggregate (MuSig2-style) Ed25519 Schnorr signing protocol, in which N parties jointly produce one
standard Ed25519 signature that verifies under an aggregated public key, without any party learning another party's
private key.

- Key aggregation binds every key of the set via per-key coefficients, with protection against rogue-key (key
  substitution) attacks: `Q := sum(a_i * X_i)`, where `a_i := H_agg(H(X_1 || ... || X_n) || X_i)`.
- Two signing rounds: each signer first publishes two public nonce points `(R1_i, R2_i)` (round 1), then, given all
  parties' nonce commitments & the message, publishes a partial signature (round 2).
- Partial signatures sum to a standard RFC 8032 Ed25519 signature `(R, s)`, which is verified against the aggregated
  public key before it is released.
"""
from __future__ import annotations

import enum
import hashlib
import hmac
import logging

from typing import Optional, Sequence

import attrs
import base58

from Cryptodome.PublicKey import ECC

from solana_musig.ecc.ecc_exceptions import InvalidECCPointException, InvalidECCPublicKeyException
from solana_musig.ecc.ecc_utils import EdwardsCurveConfig
from solana_musig.ecc.signatures.schnorr import SchnorrContext, SchnorrKeyPair, SchnorrPublicKey, SchnorrSignature
from solana_musig.exceptions import (
    IncompleteOrMismatchedNonceSetException, InvalidAggregateSignatureException, InvalidKeySetException,
    MalformedMessageException, NonceAlreadyConsumedException
)
from solana_musig.hashing import ScalarReducingHasher
from solana_musig.wire_codec import WireCodec, WireTag

logger = logging.getLogger(__name__)


class KeyOrdering(enum.Enum):
    """
    Canonical ordering of the public keys used for key aggregation.
    <p>
    ``SORTED`` sorts the keys by their encoding, so that aggregation is invariant under permutation of the provided key
    list. ``AS_PROVIDED`` trusts the caller to supply the same order every time; a different order then yields a
    different aggregated key (and address).</p>
    """
    SORTED = 'sorted'
    AS_PROVIDED = 'as-provided'


class AggregateSchnorrContext:
    """
    Configuration parameters for N-of-N aggregate Ed25519 Schnorr signatures, including ECC parameters, the key
    ordering used for key aggregation, and the key & nonce coefficient hash algorithm.
    """
    DEFAULT_HASH_ALGO: str = hashlib.sha512().name  # Note: 512-bit digest req'd for wide reduction mod L.

    KEY_AGG_LIST_TAG: bytes = b'solana-musig/KeyAgg list'
    KEY_AGG_COEFFICIENT_TAG: bytes = b'solana-musig/KeyAgg coefficient'
    NONCE_COEFFICIENT_TAG: bytes = b'solana-musig/nonce coefficient'

    ecc_curve_config: EdwardsCurveConfig
    q: int
    key_ordering: KeyOrdering
    key_hash_algo: str

    def __init__(
            self,
            ecc_curve_config: Optional[EdwardsCurveConfig] = None,
            key_ordering: KeyOrdering = KeyOrdering.SORTED,
            key_hash_algorithm: str = DEFAULT_HASH_ALGO
    ):
        self.ecc_curve_config = ecc_curve_config if ecc_curve_config is not None else EdwardsCurveConfig.ed25519()
        self.q: int = self.ecc_curve_config.order
        self.key_ordering = key_ordering
        self.key_hash_algo: str = key_hash_algorithm

    @property
    def curve_order(self) -> int:
        """Returns the configured ECC curve group's (``<G>``) order `L`."""
        return self.ecc_curve_config.order

    def as_schnorr_context(self) -> SchnorrContext:
        """
        Returns this aggregate Schnorr context converted to a single-party Schnorr context.
        <p>
        This is useful for construction of ``SchnorrSignature`` instances, which are agnostic re: whether they were
        constructed via the single-party signing algorithm or the aggregate signing protocol. </p>
        """
        return SchnorrContext(self.ecc_curve_config)

    def encode_ecc_point(self, ecc_point: ECC.EccPoint) -> bytes:
        """Encodes an ECC point, using the 32-byte RFC 8032 point encoding."""
        return self.ecc_curve_config.encode_point(ecc_point)

    def canonical_key_order(self, encoded_public_keys: Sequence[bytes]) -> list[bytes]:
        match self.key_ordering:
            case KeyOrdering.SORTED:
                return sorted(encoded_public_keys)
            case KeyOrdering.AS_PROVIDED:
                return list(encoded_public_keys)
            case unsupported:
                raise ValueError(f"Unsupported key ordering configured for aggregate Schnorr context: {unsupported}")

    def key_coefficient_hasher(self) -> ScalarReducingHasher:
        return ScalarReducingHasher(self.q, self.key_hash_algo, domain_tag=self.KEY_AGG_COEFFICIENT_TAG)

    def nonce_coefficient_hasher(self) -> ScalarReducingHasher:
        return ScalarReducingHasher(self.q, self.key_hash_algo, domain_tag=self.NONCE_COEFFICIENT_TAG)

    def challenge_hasher(self) -> ScalarReducingHasher:
        """Returns the RFC 8032 Ed25519 challenge hasher: untagged SHA-512, read little-endian & reduced mod `L`."""
        return ScalarReducingHasher(self.q, SchnorrContext.DEFAULT_HASH_ALGO)


def _encode_public_key(public_key: SchnorrPublicKey | bytes) -> bytes:
    if isinstance(public_key, SchnorrPublicKey):
        return public_key.export_key()
    return bytes(public_key)


@attrs.define(slots=True, frozen=True)
class AggregatedKey:
    """
    An aggregated public key `Q := sum(a_i * X_i)`, together with the canonically ordered public keys `X_i` it was
    derived from and their binding coefficients `a_i`.
    """
    context: AggregateSchnorrContext = attrs.field(eq=False, repr=False)
    public_keys: tuple[bytes, ...]
    coefficients: tuple[int, ...] = attrs.field(repr=False)
    aggregated_point: ECC.EccPoint = attrs.field(repr=False)

    @property
    def size(self) -> int:
        return len(self.public_keys)

    @property
    def encoded(self) -> bytes:
        return self.context.encode_ecc_point(self.aggregated_point)

    @property
    def address(self) -> str:
        """Returns the aggregated public key as a base58 Solana address."""
        return base58.b58encode(self.encoded).decode('ascii')

    @property
    def public_key(self) -> SchnorrPublicKey:
        schnorr_context: SchnorrContext = self.context.as_schnorr_context()
        public_ecc_key: ECC.EccKey = self.context.ecc_curve_config.ecc_point_to_pubkey(self.aggregated_point)

        return SchnorrPublicKey(schnorr_context, public_ecc_key)

    def index_of(self, public_key: SchnorrPublicKey | bytes) -> int:
        encoded_public_key: bytes = _encode_public_key(public_key)
        try:
            return self.public_keys.index(encoded_public_key)
        except ValueError as ve:
            raise InvalidKeySetException(
                f"Public key is not a member of the aggregated key's key set "
                f"[public_key={base58.b58encode(encoded_public_key).decode('ascii')}, aggregated_key={self.address}]"
            ) from ve

    def coefficient_for(self, public_key: SchnorrPublicKey | bytes) -> int:
        """Returns the binding coefficient `a_i` of a member public key `X_i`."""
        return self.coefficients[self.index_of(public_key)]


class KeyAggregator:
    MIN_KEYS: int = 2

    def __init__(self, aggregate_context: AggregateSchnorrContext):
        self.context = aggregate_context

    def aggregate(self, public_keys: Sequence[SchnorrPublicKey | bytes]) -> AggregatedKey:
        """
        Aggregates a set of public keys into one aggregated public key, with a binding coefficient per key.
        <p>
        With the keys `X_1, ..., X_n` in canonical order (see ``KeyOrdering``), the key list hash is
        `L := H(X_1 || ... || X_n)`, each key's coefficient is `a_i := H'(L || X_i) mod q`, and the aggregated key is
        `Q := a_1*X_1 + ... + a_n*X_n`. Hashing the whole key list into every coefficient prevents a party from
        choosing its key as a function of the others' keys so as to cancel them out (a rogue-key attack).</p>

        :param public_keys: two or more distinct public keys (``SchnorrPublicKey`` or 32-byte encodings).
        :return: the aggregated public key, including the canonically ordered keys & their coefficients.
        :raises InvalidKeySetException: if fewer than 2 keys or duplicate keys are provided, a key is not a valid
                non-degenerate curve point, or the aggregated key is degenerate.
        """
        encoded_public_keys: list[bytes] = [_encode_public_key(public_key) for public_key in public_keys]

        if len(encoded_public_keys) < self.MIN_KEYS:
            raise InvalidKeySetException(
                f"Key aggregation requires at least [{self.MIN_KEYS}] public keys [provided_keys="
                f"{len(encoded_public_keys)}]"
            )
        if len(set(encoded_public_keys)) != len(encoded_public_keys):
            raise InvalidKeySetException("Key aggregation requires distinct public keys -- duplicate key provided.")

        public_points: dict[bytes, ECC.EccPoint] = {}
        for encoded_public_key in encoded_public_keys:
            try:
                public_points[encoded_public_key] = self.context.ecc_curve_config.decode_point(encoded_public_key)
            except (InvalidECCPointException, InvalidECCPublicKeyException) as ee:
                raise InvalidKeySetException(
                    f"Invalid public key provided for key aggregation "
                    f"[public_key={base58.b58encode(encoded_public_key).decode('ascii')}] -- caused by: {ee.msg}"
                ) from ee

        ordered_public_keys: list[bytes] = self.context.canonical_key_order(encoded_public_keys)

        # Hash the canonically ordered key list: "L := H(X_1 || ... || X_n)".
        keys_inner_hasher = hashlib.new(self.context.key_hash_algo, self.context.KEY_AGG_LIST_TAG)
        for encoded_public_key in ordered_public_keys:
            keys_inner_hasher.update(encoded_public_key)
        key_list_hash: bytes = keys_inner_hasher.digest()

        coefficients: list[int] = []
        for encoded_public_key in ordered_public_keys:
            # Calculate the key's binding coefficient: "a_i := H'(L || X_i) mod q".
            coefficient: int = self.context.key_coefficient_hasher().update(
                key_list_hash
            ).update(
                encoded_public_key
            ).intdigest()

            if coefficient == 0:
                raise InvalidKeySetException("Degenerate key aggregation coefficient -- key set must be changed.")
            coefficients.append(coefficient)

        # Calculate the aggregated public key: "Q := a_1*X_1 + ... + a_n*X_n".
        aggregated_point: ECC.EccPoint = self.context.ecc_curve_config.sum_points(
            public_points[encoded_public_key] * coefficient
            for encoded_public_key, coefficient in zip(ordered_public_keys, coefficients)
        )

        # Ensure the aggregated public key is usable as an Ed25519 public key.
        if self.context.ecc_curve_config.has_small_order(aggregated_point):
            raise InvalidKeySetException(
                "The aggregated public key is degenerate (identity or small order) -- key set must be changed."
            )

        aggregated_key = AggregatedKey(
            context=self.context,
            public_keys=tuple(ordered_public_keys),
            coefficients=tuple(coefficients),
            aggregated_point=aggregated_point
        )
        logger.debug("Aggregated %d public keys into %s", aggregated_key.size, aggregated_key.address)

        return aggregated_key


@attrs.define(slots=True, frozen=True)
class NonceCommitment:
    """
    A signer's public nonce commitment (`AggMessage1`): its public key & public nonce points `R1_i := r1_i*G`,
    `R2_i := r2_i*G`, broadcast to all other parties in round 1.
    """
    sender: bytes
    first_public_nonce: ECC.EccPoint
    second_public_nonce: ECC.EccPoint

    @classmethod
    def from_bytes(cls, record: bytes, context: Optional[AggregateSchnorrContext] = None) -> NonceCommitment:
        curve_config: EdwardsCurveConfig = _curve_config(context)
        sender, first_nonce, second_nonce = WireCodec.decode_record(WireTag.AGG_MESSAGE_1, record)
        _decode_wire_point(curve_config, sender, "sender public key")

        return NonceCommitment(
            sender=sender,
            first_public_nonce=_decode_wire_point(curve_config, first_nonce, "first public nonce"),
            second_public_nonce=_decode_wire_point(curve_config, second_nonce, "second public nonce")
        )

    @classmethod
    def from_string_encoding(
            cls,
            encoded_commitment: str,
            context: Optional[AggregateSchnorrContext] = None
    ) -> NonceCommitment:
        return cls.from_bytes(WireCodec.from_text(encoded_commitment), context)

    def to_bytes(self) -> bytes:
        return WireCodec.encode_record(WireTag.AGG_MESSAGE_1, [
            self.sender,
            EdwardsCurveConfig.encode_point(self.first_public_nonce),
            EdwardsCurveConfig.encode_point(self.second_public_nonce)
        ])

    def encode_as_string(self) -> str:
        return WireCodec.to_text(self.to_bytes())


class SecretNonceState:
    """
    A signer's secret nonces `(r1_i, r2_i)` (`SecretAggStepOne`), matching its published ``NonceCommitment``.
    <p>
    Single-use: the nonces are released exactly once via ``consume()``, after which the state can neither sign nor be
    encoded again. The nonces are held in a mutable buffer, which is overwritten with zeros on consumption, on
    ``destroy()`` and when the object is garbage collected. The string encoding exists only to carry the state across
    the round 1 to round 2 process boundary of the same party, and must never be shared with other parties.</p>
    """
    owner: bytes

    def __init__(self, owner: bytes, first_secret_nonce: int, second_secret_nonce: int):
        self.owner = bytes(owner)
        self._secret_nonces = bytearray(
            EdwardsCurveConfig.encode_scalar(first_secret_nonce) + EdwardsCurveConfig.encode_scalar(second_secret_nonce)
        )
        self._consumed = False

    @property
    def is_consumed(self) -> bool:
        return self._consumed

    def public_nonces(self, curve_config: EdwardsCurveConfig) -> tuple[ECC.EccPoint, ECC.EccPoint]:
        """Returns the public nonce points `(r1*G, r2*G)` matching these secret nonces."""
        first_secret_nonce, second_secret_nonce = self._read_secret_nonces()

        return curve_config.scalar_base_mult(first_secret_nonce), curve_config.scalar_base_mult(second_secret_nonce)

    def consume(self) -> tuple[int, int]:
        """
        Releases the secret nonces for signing, exactly once, and wipes them from this state.

        :raises NonceAlreadyConsumedException: if the secret nonces were already consumed (or destroyed).
        """
        secret_nonces: tuple[int, int] = self._read_secret_nonces()
        self.destroy()

        return secret_nonces

    def destroy(self) -> None:
        """Overwrites the secret nonces in memory with zeros, and marks this state as consumed."""
        for i in range(len(self._secret_nonces)):
            self._secret_nonces[i] = 0
        self._consumed = True

    def to_bytes(self) -> bytes:
        if self._consumed:
            raise NonceAlreadyConsumedException("Unable to encode a secret nonce state which was already consumed.")

        return WireCodec.encode_record(WireTag.SECRET_AGG_STEP_ONE, [
            self.owner, self._secret_nonces[:32], self._secret_nonces[32:]
        ])

    def encode_as_string(self) -> str:
        return WireCodec.to_text(self.to_bytes())

    @classmethod
    def from_bytes(cls, record: bytes, context: Optional[AggregateSchnorrContext] = None) -> SecretNonceState:
        curve_config: EdwardsCurveConfig = _curve_config(context)
        owner, first_nonce, second_nonce = WireCodec.decode_record(WireTag.SECRET_AGG_STEP_ONE, record)

        _decode_wire_point(curve_config, owner, "owner public key")
        first_secret_nonce: int = _decode_wire_scalar(curve_config, first_nonce, "first secret nonce")
        second_secret_nonce: int = _decode_wire_scalar(curve_config, second_nonce, "second secret nonce")
        if first_secret_nonce == 0 or second_secret_nonce == 0:
            raise MalformedMessageException("Invalid secret nonce state -- secret nonces must be nonzero.")

        return SecretNonceState(owner, first_secret_nonce, second_secret_nonce)

    @classmethod
    def from_string_encoding(
            cls,
            encoded_state: str,
            context: Optional[AggregateSchnorrContext] = None
    ) -> SecretNonceState:
        return cls.from_bytes(WireCodec.from_text(encoded_state), context)

    def _read_secret_nonces(self) -> tuple[int, int]:
        if self._consumed:
            raise NonceAlreadyConsumedException(
                "Secret nonce state was already consumed -- a fresh round 1 (new nonces) is required for each signing "
                "session."
            )

        return (
            int.from_bytes(self._secret_nonces[:32], 'little'),
            int.from_bytes(self._secret_nonces[32:], 'little')
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretNonceState):
            return NotImplemented
        return (
            self.owner == other.owner
            and self._consumed == other._consumed
            and hmac.compare_digest(self._secret_nonces, other._secret_nonces)
        )

    def __repr__(self) -> str:
        owner_address: str = base58.b58encode(self.owner).decode('ascii')
        return f"{type(self).__name__}(owner={owner_address}, consumed={self._consumed})"

    def __del__(self):
        secret_nonces: Optional[bytearray] = getattr(self, '_secret_nonces', None)
        if secret_nonces is not None:
            for i in range(len(secret_nonces)):
                secret_nonces[i] = 0


@attrs.define(slots=True, frozen=True)
class PartialSignature:
    """A signer's partial signature: the aggregated nonce `R` & its signature share `s_i`, broadcast in round 2."""
    aggregated_nonce: ECC.EccPoint
    signature_share: int

    @classmethod
    def from_bytes(cls, record: bytes, context: Optional[AggregateSchnorrContext] = None) -> PartialSignature:
        curve_config: EdwardsCurveConfig = _curve_config(context)
        aggregated_nonce, signature_share = WireCodec.decode_record(WireTag.PARTIAL_SIGNATURE, record)

        return PartialSignature(
            aggregated_nonce=_decode_wire_point(curve_config, aggregated_nonce, "aggregated nonce"),
            signature_share=_decode_wire_scalar(curve_config, signature_share, "signature share")
        )

    @classmethod
    def from_string_encoding(
            cls,
            encoded_signature: str,
            context: Optional[AggregateSchnorrContext] = None
    ) -> PartialSignature:
        return cls.from_bytes(WireCodec.from_text(encoded_signature), context)

    def to_bytes(self) -> bytes:
        return WireCodec.encode_record(WireTag.PARTIAL_SIGNATURE, [
            EdwardsCurveConfig.encode_point(self.aggregated_nonce),
            EdwardsCurveConfig.encode_scalar(self.signature_share)
        ])

    def encode_as_string(self) -> str:
        return WireCodec.to_text(self.to_bytes())


def _curve_config(context: Optional[AggregateSchnorrContext]) -> EdwardsCurveConfig:
    return context.ecc_curve_config if context is not None else EdwardsCurveConfig.ed25519()


def _decode_wire_point(curve_config: EdwardsCurveConfig, encoded_point: bytes, field_name: str) -> ECC.EccPoint:
    try:
        return curve_config.decode_point(encoded_point)
    except (InvalidECCPointException, InvalidECCPublicKeyException) as ee:
        raise MalformedMessageException(f"Invalid {field_name} in protocol message -- caused by: {ee.msg}") from ee


def _decode_wire_scalar(curve_config: EdwardsCurveConfig, encoded_scalar: bytes, field_name: str) -> int:
    try:
        return curve_config.decode_scalar(encoded_scalar)
    except ValueError as ve:
        raise MalformedMessageException(f"Invalid {field_name} in protocol message -- caused by: {ve}") from ve


class NonceStage:
    """Round 1 of the aggregate signing protocol: generation of a signer's fresh nonce pair."""

    def __init__(self, aggregate_context: AggregateSchnorrContext):
        self.context = aggregate_context

    def begin_round1(self, key_pair: SchnorrKeyPair) -> tuple[NonceCommitment, SecretNonceState]:
        """
        Draws two fresh, independent, uniformly random nonzero nonces `r1, r2` from the CSPRNG, returning the public
        nonce commitment `(X_i, r1*G, r2*G)` to be broadcast, and the secret nonce state to be kept private.
        <p>
        The nonces don't depend on the message. Each returned secret nonce state must be used for exactly one signing
        session; this stage keeps no record of past sessions.</p>
        """
        first_secret_nonce: int = self.context.ecc_curve_config.random_scalar()   # r1
        second_secret_nonce: int = self.context.ecc_curve_config.random_scalar()  # r2
        sender: bytes = key_pair.public_key.export_key()

        commitment = NonceCommitment(
            sender=sender,
            first_public_nonce=self.context.ecc_curve_config.scalar_base_mult(first_secret_nonce),    # R1 := r1*G
            second_public_nonce=self.context.ecc_curve_config.scalar_base_mult(second_secret_nonce)   # R2 := r2*G
        )
        logger.debug("Generated round 1 nonce commitment for signer %s", base58.b58encode(sender).decode('ascii'))

        return commitment, SecretNonceState(sender, first_secret_nonce, second_secret_nonce)


@attrs.define(slots=True, frozen=True)
class SessionValues:
    """Values of a signing session, which every signer & the aggregator derive identically."""
    first_aggregated_nonce: ECC.EccPoint   # R1 := sum(R1_i)
    second_aggregated_nonce: ECC.EccPoint  # R2 := sum(R2_i)
    nonce_coefficient: int                 # b := H_non(Q || R1 || R2 || m)
    aggregated_nonce: ECC.EccPoint         # R := R1 + b*R2
    challenge: int                         # c := H(R || Q || m)


class SigningStage:
    """Round 2 of the aggregate signing protocol: computation of a signer's partial signature."""

    def __init__(self, aggregate_context: AggregateSchnorrContext):
        self.context = aggregate_context

    def order_nonce_commitments(
            self,
            aggregated_key: AggregatedKey,
            all_public_nonces: Sequence[NonceCommitment]
    ) -> list[NonceCommitment]:
        """
        Returns the nonce commitments in the aggregated key's canonical key order.

        :raises IncompleteOrMismatchedNonceSetException: unless there is exactly one commitment per member key of the
                aggregated key, and no commitment from any other sender.
        """
        commitments_by_sender: dict[bytes, NonceCommitment] = {}
        for commitment in all_public_nonces:
            sender_address: str = base58.b58encode(commitment.sender).decode('ascii')
            if commitment.sender not in aggregated_key.public_keys:
                raise IncompleteOrMismatchedNonceSetException(
                    f"Nonce commitment received from a signer outside the session's key set [sender={sender_address}]"
                )
            if commitment.sender in commitments_by_sender:
                raise IncompleteOrMismatchedNonceSetException(
                    f"More than one nonce commitment received from the same signer [sender={sender_address}]"
                )
            commitments_by_sender[commitment.sender] = commitment

        missing_signers: list[str] = [
            base58.b58encode(public_key).decode('ascii')
            for public_key in aggregated_key.public_keys if public_key not in commitments_by_sender
        ]
        if missing_signers:
            raise IncompleteOrMismatchedNonceSetException(
                f"Missing nonce commitments from [{len(missing_signers)}] signer(s) of the session's key set "
                f"[missing_signers={missing_signers}]"
            )

        return [commitments_by_sender[public_key] for public_key in aggregated_key.public_keys]

    def session_values(
            self,
            aggregated_key: AggregatedKey,
            ordered_commitments: Sequence[NonceCommitment],
            message: bytes
    ) -> SessionValues:
        curve_config: EdwardsCurveConfig = self.context.ecc_curve_config

        # Aggregate the signers' public nonces, in canonical key order: "R1 := sum(R1_i)", "R2 := sum(R2_i)".
        first_aggregated_nonce: ECC.EccPoint = curve_config.sum_points(
            commitment.first_public_nonce for commitment in ordered_commitments
        )
        second_aggregated_nonce: ECC.EccPoint = curve_config.sum_points(
            commitment.second_public_nonce for commitment in ordered_commitments
        )

        # Calc. the nonce coefficient binding both nonces to the key & message: "b := H_non(Q || R1 || R2 || m)".
        nonce_coefficient: int = self.context.nonce_coefficient_hasher().update(
            aggregated_key.encoded
        ).update(
            curve_config.encode_point(first_aggregated_nonce)
        ).update(
            curve_config.encode_point(second_aggregated_nonce)
        ).update(message).intdigest()

        # Calc. the aggregated nonce: "R := R1 + b*R2".
        aggregated_nonce: ECC.EccPoint = first_aggregated_nonce + (second_aggregated_nonce * nonce_coefficient)

        # Calc. the Ed25519 (Fiat-Shamir) challenge: "c := H(R || Q || m) mod q".
        challenge: int = self.context.challenge_hasher().update(
            curve_config.encode_point(aggregated_nonce)
        ).update(
            aggregated_key.encoded
        ).update(message).intdigest()

        return SessionValues(
            first_aggregated_nonce=first_aggregated_nonce,
            second_aggregated_nonce=second_aggregated_nonce,
            nonce_coefficient=nonce_coefficient,
            aggregated_nonce=aggregated_nonce,
            challenge=challenge
        )

    def sign_round2(
            self,
            key_pair: SchnorrKeyPair,
            own_coefficient: Optional[int],
            secret_nonce_state: SecretNonceState,
            all_public_nonces: Sequence[NonceCommitment],
            aggregated_key: AggregatedKey,
            message: bytes
    ) -> PartialSignature:
        """
        Calculates the signer's partial signature for the provided message, consuming its secret nonce state.
        <p>
        Given the secret nonces `(r1, r2)`, the private key `x_i` and its binding coefficient `a_i`, the partial
        signature is: `s_i := r1 + b*r2 + c*a_i*x_i mod q`, where `b` & `c` are the nonce coefficient & challenge
        derived from all parties' nonce commitments (see ``session_values``). If any party signs a different message,
        its challenge differs, and the aggregated signature fails verification.</p>

        :param key_pair: the signer's Ed25519 key-pair.
        :param own_coefficient: the signer's binding coefficient, or None to look it up in the aggregated key.
        :param secret_nonce_state: the signer's secret nonce state from round 1, which is consumed.
        :param all_public_nonces: all signers' nonce commitments (including the signer's own), in any order.
        :param aggregated_key: the session's aggregated public key.
        :param message: the exact message (serialized transaction message) agreed by all parties.
        :return: the signer's partial signature.
        :raises NonceAlreadyConsumedException: if the secret nonce state was already used.
        :raises IncompleteOrMismatchedNonceSetException: if the nonce commitments don't match the key set, or the
                signer's own commitment doesn't match its secret nonce state.
        :raises InvalidKeySetException: if the signer isn't a member of the key set, or the provided coefficient
                doesn't match the aggregated key.
        """
        if secret_nonce_state.is_consumed:
            raise NonceAlreadyConsumedException(
                "Secret nonce state was already consumed -- a fresh round 1 (new nonces) is required for each signing "
                "session."
            )

        signer_public_key: bytes = key_pair.public_key.export_key()
        signer_index: int = aggregated_key.index_of(signer_public_key)
        expected_coefficient: int = aggregated_key.coefficients[signer_index]
        if own_coefficient is not None and own_coefficient != expected_coefficient:
            raise InvalidKeySetException(
                "The provided binding coefficient doesn't match the signer's coefficient in the aggregated key."
            )

        if secret_nonce_state.owner != signer_public_key:
            raise IncompleteOrMismatchedNonceSetException(
                "The secret nonce state was generated by a different signer than the signing key-pair."
            )

        ordered_commitments: list[NonceCommitment] = self.order_nonce_commitments(aggregated_key, all_public_nonces)

        # Ensure the signer's own published commitment matches its secret nonces.
        own_commitment: NonceCommitment = ordered_commitments[signer_index]
        first_public_nonce, second_public_nonce = secret_nonce_state.public_nonces(self.context.ecc_curve_config)
        if (own_commitment.first_public_nonce != first_public_nonce
                or own_commitment.second_public_nonce != second_public_nonce):
            raise IncompleteOrMismatchedNonceSetException(
                "The signer's own nonce commitment in the nonce set doesn't match its secret nonce state."
            )

        session_values: SessionValues = self.session_values(aggregated_key, ordered_commitments, message)

        first_secret_nonce, second_secret_nonce = secret_nonce_state.consume()

        # Calc. the signer's partial signature: "s_i := r1 + b*r2 + c*a_i*x_i mod q".
        signature_share: int = (
            first_secret_nonce
            + session_values.nonce_coefficient * second_secret_nonce
            + session_values.challenge * expected_coefficient * key_pair.private_key_scalar
        ) % self.context.curve_order

        logger.debug(
            "Computed partial signature for signer %s, aggregated key %s",
            base58.b58encode(signer_public_key).decode('ascii'), aggregated_key.address
        )

        return PartialSignature(session_values.aggregated_nonce, signature_share)


class Aggregator:
    """Final step of the aggregate signing protocol: summation & mandatory verification of the partial signatures."""

    def __init__(self, aggregate_context: AggregateSchnorrContext):
        self.context = aggregate_context

    def finalize(
            self,
            aggregated_nonce: Optional[ECC.EccPoint],
            partial_signatures: Sequence[PartialSignature],
            aggregated_key: AggregatedKey,
            message: bytes
    ) -> SchnorrSignature:
        """
        Sums the partial signatures into a standard Ed25519 signature `(R, s := sum(s_i) mod q)`, which is verified
        against the aggregated public key & message before it is returned.

        :param aggregated_nonce: the session's aggregated nonce `R`, or None to take it from the partial signatures.
        :param partial_signatures: one partial signature per member of the aggregated key's key set.
        :param aggregated_key: the session's aggregated public key.
        :param message: the exact message signed by all parties.
        :return: the verified aggregate signature.
        :raises InvalidAggregateSignatureException: if the number of partial signatures doesn't match the key set,
                the partial signatures disagree on the aggregated nonce, or the signature doesn't verify.
        """
        if len(partial_signatures) != aggregated_key.size:
            raise InvalidAggregateSignatureException(
                f"Expected one partial signature per signer [expected={aggregated_key.size}, "
                f"received={len(partial_signatures)}]"
            )

        if aggregated_nonce is None:
            aggregated_nonce = partial_signatures[0].aggregated_nonce
        if any(partial_signature.aggregated_nonce != aggregated_nonce for partial_signature in partial_signatures):
            raise InvalidAggregateSignatureException(
                "Partial signatures disagree on the aggregated nonce -- signers didn't use the same nonce commitments."
            )

        # Calc. the aggregate signature's scalar: "s := s_1 + ... + s_n mod q".
        signature_scalar: int = sum(
            partial_signature.signature_share for partial_signature in partial_signatures
        ) % self.context.curve_order

        signature = SchnorrSignature(self.context.as_schnorr_context(), aggregated_nonce, signature_scalar)

        if not self.verify(signature, aggregated_key, message):
            raise InvalidAggregateSignatureException(
                f"Aggregated signature failed verification for aggregated key {aggregated_key.address} -- a partial "
                f"signature is invalid, or the signers disagreed on the session's parameters."
            )
        logger.debug("Aggregated & verified signature for aggregated key %s", aggregated_key.address)

        return signature

    @staticmethod
    def verify(signature: SchnorrSignature, aggregated_key: AggregatedKey, message: bytes) -> bool:
        """
        Verifies the signature as a standard RFC 8032 Ed25519 signature under the aggregated public key, and against
        the cofactorless equation `s*G == R + c*Q` enforced by Solana validators (ed25519-dalek `verify_strict`).
        <p>
        The RFC 8032 check is cofactored (`8*s*G == 8*R + 8*c*Q`), so on its own it accepts a nonce `R` carrying a small
        torsion component, which the network rejects.</p>
        """
        if not aggregated_key.public_key.verify_signature(signature, message):
            return False

        curve_config: EdwardsCurveConfig = aggregated_key.context.ecc_curve_config
        challenge: int = aggregated_key.context.challenge_hasher().update(
            curve_config.encode_point(signature.public_nonce)
        ).update(
            aggregated_key.encoded
        ).update(message).intdigest()

        return curve_config.scalar_base_mult(signature.signature) == (
            signature.public_nonce + aggregated_key.aggregated_point * challenge
        )
