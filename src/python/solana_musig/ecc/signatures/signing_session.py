"""
An explicit state machine for one party's view of an aggregate signing session. Each transition is a pure function
returning the session's next (immutable) state, and refuses to run from any phase but the expected one.
<p>
This is the library-level session API, for callers that hold one party's whole session in a single process. The
command line runs each round in a separate process, so it uses the protocol stages of ``aggregate_schnorr`` directly
and carries the secret nonce state between rounds in its ``SecretAggStepOne`` wire encoding.</p>
"""
from __future__ import annotations

import enum
import logging

from typing import Optional, Sequence

import attrs

from solana_musig.ecc.signatures.aggregate_schnorr import (
    AggregateSchnorrContext, AggregatedKey, Aggregator, KeyAggregator, NonceCommitment, NonceStage, PartialSignature,
    SecretNonceState, SigningStage
)
from solana_musig.ecc.signatures.schnorr import SchnorrKeyPair, SchnorrPublicKey, SchnorrSignature
from solana_musig.exceptions import InvalidSessionStateException

logger = logging.getLogger(__name__)


class SessionPhase(enum.Enum):
    KEYS_AGGREGATED = 1
    ROUND1_PUBLISHED = 2
    ROUND2_PUBLISHED = 3
    FINALIZED = 4


@attrs.define(slots=True, frozen=True)
class SigningSessionState:
    context: AggregateSchnorrContext = attrs.field(eq=False, repr=False)
    aggregated_key: AggregatedKey
    phase: SessionPhase
    nonce_commitment: Optional[NonceCommitment] = None
    secret_nonce_state: Optional[SecretNonceState] = attrs.field(default=None, eq=False, repr=False)
    partial_signature: Optional[PartialSignature] = None
    signature: Optional[SchnorrSignature] = attrs.field(default=None, eq=False)


def _require_phase(state: SigningSessionState, *expected_phases: SessionPhase) -> None:
    if state.phase not in expected_phases:
        expected: str = ', '.join(phase.name for phase in expected_phases)
        raise InvalidSessionStateException(
            f"Invalid signing session transition from phase {state.phase.name} [expected_phases={expected}]"
        )


def _log_transition(state: SigningSessionState, next_phase: SessionPhase) -> None:
    logger.debug("Signing session for %s entered phase %s", state.aggregated_key.address, next_phase.name)


def start_session(
        context: AggregateSchnorrContext,
        public_keys: Sequence[SchnorrPublicKey | bytes]
) -> SigningSessionState:
    """Aggregates the session's key set, returning a session in phase ``KEYS_AGGREGATED``."""
    aggregated_key: AggregatedKey = KeyAggregator(context).aggregate(public_keys)

    return SigningSessionState(context=context, aggregated_key=aggregated_key, phase=SessionPhase.KEYS_AGGREGATED)


def publish_round1(state: SigningSessionState, key_pair: SchnorrKeyPair) -> SigningSessionState:
    """Generates the party's fresh nonces, returning a session in phase ``ROUND1_PUBLISHED``."""
    _require_phase(state, SessionPhase.KEYS_AGGREGATED)
    state.aggregated_key.index_of(key_pair.public_key)

    nonce_commitment, secret_nonce_state = NonceStage(state.context).begin_round1(key_pair)
    _log_transition(state, SessionPhase.ROUND1_PUBLISHED)

    return attrs.evolve(
        state,
        phase=SessionPhase.ROUND1_PUBLISHED,
        nonce_commitment=nonce_commitment,
        secret_nonce_state=secret_nonce_state
    )


def publish_round2(
        state: SigningSessionState,
        key_pair: SchnorrKeyPair,
        all_public_nonces: Sequence[NonceCommitment],
        message: bytes
) -> SigningSessionState:
    """
    Computes the party's partial signature, consuming the session's secret nonce state.

    :raises InvalidSessionStateException: unless the session is in phase ``ROUND1_PUBLISHED``.
    """
    _require_phase(state, SessionPhase.ROUND1_PUBLISHED)

    partial_signature: PartialSignature = SigningStage(state.context).sign_round2(
        key_pair, None, state.secret_nonce_state, all_public_nonces, state.aggregated_key, message
    )
    _log_transition(state, SessionPhase.ROUND2_PUBLISHED)

    return attrs.evolve(
        state,
        phase=SessionPhase.ROUND2_PUBLISHED,
        secret_nonce_state=None,
        partial_signature=partial_signature
    )


def finalize_session(
        state: SigningSessionState,
        partial_signatures: Sequence[PartialSignature],
        message: bytes
) -> SigningSessionState:
    """
    Aggregates & verifies all parties' partial signatures. May be run by a signing party (after round 2), or by a
    non-signing aggregator directly after key aggregation.

    :raises InvalidSessionStateException: unless the session is in phase ``KEYS_AGGREGATED`` or ``ROUND2_PUBLISHED``.
    """
    _require_phase(state, SessionPhase.KEYS_AGGREGATED, SessionPhase.ROUND2_PUBLISHED)

    aggregated_nonce = state.partial_signature.aggregated_nonce if state.partial_signature is not None else None
    signature: SchnorrSignature = Aggregator(state.context).finalize(
        aggregated_nonce, partial_signatures, state.aggregated_key, message
    )
    _log_transition(state, SessionPhase.FINALIZED)

    return attrs.evolve(state, phase=SessionPhase.FINALIZED, signature=signature)
