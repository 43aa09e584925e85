import unittest

from typing import Optional, Sequence

from Cryptodome.Signature import eddsa

from solana_musig.ecc import ED25519_ORDER
from solana_musig.ecc.signatures.aggregate_schnorr import (
    AggregateSchnorrContext, AggregatedKey, Aggregator, KeyAggregator, KeyOrdering, NonceCommitment, NonceStage,
    PartialSignature, SecretNonceState, SigningStage
)
from solana_musig.ecc.signatures.schnorr import SchnorrKeyPair, SchnorrSignature
from solana_musig.exceptions import (
    IncompleteOrMismatchedNonceSetException, InvalidAggregateSignatureException, InvalidKeySetException,
    NonceAlreadyConsumedException
)
from solana_musig.solana.transaction import TransferParameters, sol_to_lamports

# RFC 8032 encoding of a torsion point of order 8.
ORDER_8_POINT: bytes = bytes.fromhex('26e8958fc2b227b045c3f489f2ef98f0d5dfac05d3c63339b13802886d53fc05')


class KeyAggregationTests(unittest.TestCase):
    context = AggregateSchnorrContext()

    def _public_keys(self, n: int) -> list[bytes]:
        return [
            SchnorrKeyPair.generate(self.context.as_schnorr_context()).public_key.export_key() for _ in range(n)
        ]

    def test_key_aggregation_is_deterministic(self):
        public_keys: list[bytes] = self._public_keys(3)

        first_key: AggregatedKey = KeyAggregator(self.context).aggregate(public_keys)
        second_key: AggregatedKey = KeyAggregator(AggregateSchnorrContext()).aggregate(public_keys)

        self.assertEqual(first_key.address, second_key.address)
        self.assertEqual(first_key.coefficients, second_key.coefficients)
        self.assertEqual(first_key.size, 3)
        self.assertTrue(all(0 < coefficient < ED25519_ORDER for coefficient in first_key.coefficients))

    def test_sorted_key_aggregation_is_permutation_invariant(self):
        public_keys: list[bytes] = self._public_keys(3)
        aggregator = KeyAggregator(AggregateSchnorrContext(key_ordering=KeyOrdering.SORTED))

        aggregated_key: AggregatedKey = aggregator.aggregate(public_keys)
        permuted_key: AggregatedKey = aggregator.aggregate([public_keys[2], public_keys[0], public_keys[1]])

        self.assertEqual(permuted_key.address, aggregated_key.address)
        self.assertEqual(list(aggregated_key.public_keys), sorted(public_keys))

    def test_as_provided_key_aggregation_is_order_sensitive(self):
        public_keys: list[bytes] = self._public_keys(2)
        aggregator = KeyAggregator(AggregateSchnorrContext(key_ordering=KeyOrdering.AS_PROVIDED))

        aggregated_key: AggregatedKey = aggregator.aggregate(public_keys)
        reversed_key: AggregatedKey = aggregator.aggregate(list(reversed(public_keys)))

        self.assertNotEqual(reversed_key.address, aggregated_key.address)
        self.assertEqual(list(aggregated_key.public_keys), public_keys)

    def test_aggregated_key_coefficients(self):
        public_keys: list[bytes] = self._public_keys(2)
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate(public_keys)

        for public_key in public_keys:
            self.assertEqual(
                aggregated_key.coefficient_for(public_key),
                aggregated_key.coefficients[aggregated_key.public_keys.index(public_key)]
            )
        with self.assertRaises(InvalidKeySetException):
            aggregated_key.coefficient_for(self._public_keys(1)[0])

    def test_aggregated_key_is_usable_as_public_key(self):
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate(self._public_keys(2))

        self.assertEqual(aggregated_key.public_key.to_base58(), aggregated_key.address)
        self.assertEqual(len(aggregated_key.encoded), 32)

    def test_too_few_keys_are_rejected(self):
        with self.assertRaises(InvalidKeySetException):
            KeyAggregator(self.context).aggregate(self._public_keys(1))
        with self.assertRaises(InvalidKeySetException):
            KeyAggregator(self.context).aggregate([])

    def test_duplicate_keys_are_rejected(self):
        public_keys: list[bytes] = self._public_keys(2)

        with self.assertRaises(InvalidKeySetException):
            KeyAggregator(self.context).aggregate(public_keys + [public_keys[0]])

    def test_invalid_keys_are_rejected(self):
        public_keys: list[bytes] = self._public_keys(2)

        for invalid_key in [b'\x01' + bytes(31), bytes.fromhex('ec' + 'ff' * 30 + '7f'), bytes(31)]:
            with self.subTest(invalid_key=invalid_key.hex()):
                with self.assertRaises(InvalidKeySetException):
                    KeyAggregator(self.context).aggregate(public_keys + [invalid_key])

    def test_keys_with_torsion_component_are_rejected(self):
        public_keys: list[bytes] = self._public_keys(2)
        curve_config = self.context.ecc_curve_config
        torsioned_key: bytes = curve_config.encode_point(
            curve_config.decode_point(public_keys[1]) + eddsa.import_public_key(ORDER_8_POINT).pointQ
        )

        with self.assertRaises(InvalidKeySetException):
            KeyAggregator(self.context).aggregate([public_keys[0], torsioned_key])


class AggregateSchnorrSigningTests(unittest.TestCase):
    """Integration tests for N-of-N aggregate Ed25519 signing, from key aggregation to the verified signature."""
    context = AggregateSchnorrContext()
    recent_blockhash: bytes = bytes(range(32))

    def _key_pairs(self, n: int) -> list[SchnorrKeyPair]:
        return [SchnorrKeyPair.generate(self.context.as_schnorr_context()) for _ in range(n)]

    def _transfer_message(self, aggregated_key: AggregatedKey, recipient: bytes, amount: str) -> bytes:
        parameters = TransferParameters(
            recipient=recipient,
            lamports=sol_to_lamports(amount),
            recent_blockhash=self.recent_blockhash,
            memo=None
        )
        return parameters.compile_message(aggregated_key.encoded)

    def _run_round1(
            self,
            key_pairs: Sequence[SchnorrKeyPair]
    ) -> tuple[list[NonceCommitment], list[SecretNonceState]]:
        round1_outputs = [NonceStage(self.context).begin_round1(key_pair) for key_pair in key_pairs]
        return [commitment for commitment, _ in round1_outputs], [secret_state for _, secret_state in round1_outputs]

    def _run_session(
            self,
            key_pairs: Sequence[SchnorrKeyPair],
            messages: Sequence[bytes],
            aggregated_key: Optional[AggregatedKey] = None
    ) -> tuple[AggregatedKey, list[PartialSignature]]:
        if aggregated_key is None:
            aggregated_key = KeyAggregator(self.context).aggregate([key_pair.public_key for key_pair in key_pairs])
        commitments, secret_states = self._run_round1(key_pairs)

        # Protocol: all parties' nonce commitments are broadcast, in arbitrary order.
        received_commitments: list[NonceCommitment] = list(reversed(commitments))

        partial_signatures: list[PartialSignature] = [
            SigningStage(self.context).sign_round2(
                key_pair, None, secret_state, received_commitments, aggregated_key, message
            )
            for key_pair, secret_state, message in zip(key_pairs, secret_states, messages)
        ]
        return aggregated_key, partial_signatures

    def _assert_standard_Ed25519_signature(
            self,
            signature: SchnorrSignature,
            aggregated_key: AggregatedKey,
            message: bytes
    ):
        verifier = eddsa.new(eddsa.import_public_key(aggregated_key.encoded), 'rfc8032')
        verifier.verify(message, signature.to_bytes())

    def test_two_party_aggregate_signing(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(2)
        message: bytes = b'No one expects the Inquisition!'

        aggregated_key, partial_signatures = self._run_session(key_pairs, [message, message])
        signature: SchnorrSignature = Aggregator(self.context).finalize(
            None, partial_signatures, aggregated_key, message
        )

        self.assertTrue(aggregated_key.public_key.verify_signature(signature, message))
        self.assertTrue(Aggregator.verify(signature, aggregated_key, message))
        self._assert_standard_Ed25519_signature(signature, aggregated_key, message)
        self.assertFalse(Aggregator.verify(signature, aggregated_key, message + b'!'))

    def test_three_party_aggregate_signing_of_transfer(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(3)
        recipient: bytes = self._key_pairs(1)[0].public_key.export_key()
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate(
            [key_pair.public_key for key_pair in key_pairs]
        )
        message: bytes = self._transfer_message(aggregated_key, recipient, '1.5')

        _, partial_signatures = self._run_session(key_pairs, [message] * 3, aggregated_key)
        aggregated_nonce = partial_signatures[0].aggregated_nonce
        signature: SchnorrSignature = Aggregator(self.context).finalize(
            aggregated_nonce, list(reversed(partial_signatures)), aggregated_key, message
        )

        self.assertEqual(signature.public_nonce, aggregated_nonce)
        self._assert_standard_Ed25519_signature(signature, aggregated_key, message)

    def test_partial_signatures_agree_on_aggregated_nonce(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(3)

        _, partial_signatures = self._run_session(key_pairs, [b'foo'] * 3)

        self.assertTrue(all(
            partial_signature.aggregated_nonce == partial_signatures[0].aggregated_nonce
            for partial_signature in partial_signatures
        ))

    def test_tampered_partial_signature_fails_aggregation(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(3)
        message: bytes = b'foo'
        aggregated_key, partial_signatures = self._run_session(key_pairs, [message] * 3)

        for i, partial_signature in enumerate(partial_signatures):
            for bit in [0, 7, 100, 251]:
                tampered_signatures: list[PartialSignature] = list(partial_signatures)
                tampered_signatures[i] = PartialSignature(
                    partial_signature.aggregated_nonce,
                    (partial_signature.signature_share ^ (1 << bit)) % ED25519_ORDER
                )
                with self.subTest(signer=i, bit=bit):
                    with self.assertRaises(InvalidAggregateSignatureException):
                        Aggregator(self.context).finalize(None, tampered_signatures, aggregated_key, message)

    def test_disagreement_on_amount_fails_aggregation(self):
        alice, bob = self._key_pairs(2)
        recipient: bytes = self._key_pairs(1)[0].public_key.export_key()
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate([alice.public_key, bob.public_key])

        agreed_message: bytes = self._transfer_message(aggregated_key, recipient, '1.5')
        altered_message: bytes = self._transfer_message(aggregated_key, recipient, '1.6')
        self.assertNotEqual(altered_message, agreed_message)

        _, partial_signatures = self._run_session([alice, bob], [agreed_message, altered_message], aggregated_key)

        with self.assertRaises(InvalidAggregateSignatureException):
            Aggregator(self.context).finalize(None, partial_signatures, aggregated_key, agreed_message)

    def test_disagreement_on_transfer_details_fails_aggregation(self):
        alice, bob = self._key_pairs(2)
        recipient: bytes = self._key_pairs(1)[0].public_key.export_key()
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate([alice.public_key, bob.public_key])
        agreed_parameters = TransferParameters(recipient, sol_to_lamports('1.5'), self.recent_blockhash, None)

        altered_parameters: list[TransferParameters] = [
            TransferParameters(self._key_pairs(1)[0].public_key.export_key(), agreed_parameters.lamports,
                               self.recent_blockhash, None),
            TransferParameters(recipient, agreed_parameters.lamports, self.recent_blockhash, 'memo'),
            TransferParameters(recipient, agreed_parameters.lamports, bytes(32), None),
        ]
        agreed_message: bytes = agreed_parameters.compile_message(aggregated_key.encoded)

        for parameters in altered_parameters:
            altered_message: bytes = parameters.compile_message(aggregated_key.encoded)
            _, partial_signatures = self._run_session([alice, bob], [agreed_message, altered_message], aggregated_key)

            with self.subTest(parameters=parameters):
                with self.assertRaises(InvalidAggregateSignatureException):
                    Aggregator(self.context).finalize(None, partial_signatures, aggregated_key, agreed_message)

    def test_aggregated_nonce_with_torsion_component_fails_aggregation(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(2)
        message: bytes = b'foo'
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate(
            [key_pair.public_key for key_pair in key_pairs]
        )
        commitments, secret_states = self._run_round1(key_pairs)
        signing_stage = SigningStage(self.context)

        # The second signer adds an order 8 point to its first public nonce, which shifts the aggregated nonce.
        commitments[1] = NonceCommitment(
            commitments[1].sender,
            commitments[1].first_public_nonce + eddsa.import_public_key(ORDER_8_POINT).pointQ,
            commitments[1].second_public_nonce
        )
        first_partial_signature: PartialSignature = signing_stage.sign_round2(
            key_pairs[0], None, secret_states[0], commitments, aggregated_key, message
        )

        session_values = signing_stage.session_values(
            aggregated_key, signing_stage.order_nonce_commitments(aggregated_key, commitments), message
        )
        first_secret_nonce, second_secret_nonce = secret_states[1].consume()
        second_partial_signature = PartialSignature(
            session_values.aggregated_nonce,
            (
                first_secret_nonce
                + session_values.nonce_coefficient * second_secret_nonce
                + session_values.challenge * aggregated_key.coefficient_for(key_pairs[1].public_key)
                * key_pairs[1].private_key_scalar
            ) % ED25519_ORDER
        )
        partial_signatures: list[PartialSignature] = [first_partial_signature, second_partial_signature]

        # The signature passes the cofactored RFC 8032 check, but not the cofactorless check of Solana validators.
        signature = SchnorrSignature(
            self.context.as_schnorr_context(),
            session_values.aggregated_nonce,
            sum(partial_signature.signature_share for partial_signature in partial_signatures) % ED25519_ORDER
        )
        self.assertTrue(aggregated_key.public_key.verify_signature(signature, message))
        self.assertFalse(Aggregator.verify(signature, aggregated_key, message))

        with self.assertRaises(InvalidAggregateSignatureException):
            Aggregator(self.context).finalize(None, partial_signatures, aggregated_key, message)

    def test_wrong_number_of_partial_signatures_fails_aggregation(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(3)
        aggregated_key, partial_signatures = self._run_session(key_pairs, [b'foo'] * 3)

        with self.assertRaises(InvalidAggregateSignatureException):
            Aggregator(self.context).finalize(None, partial_signatures[:2], aggregated_key, b'foo')
        with self.assertRaises(InvalidAggregateSignatureException):
            Aggregator(self.context).finalize(None, partial_signatures + partial_signatures[:1], aggregated_key, b'foo')

    def test_secret_nonce_state_reuse_is_rejected(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(2)
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate(
            [key_pair.public_key for key_pair in key_pairs]
        )
        commitments, secret_states = self._run_round1(key_pairs)
        signing_stage = SigningStage(self.context)

        signing_stage.sign_round2(key_pairs[0], None, secret_states[0], commitments, aggregated_key, b'foo')
        self.assertTrue(secret_states[0].is_consumed)

        with self.assertRaises(NonceAlreadyConsumedException):
            signing_stage.sign_round2(key_pairs[0], None, secret_states[0], commitments, aggregated_key, b'bar')
        with self.assertRaises(NonceAlreadyConsumedException):
            secret_states[0].consume()

    def test_destroyed_secret_nonce_state_cannot_sign(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(2)
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate(
            [key_pair.public_key for key_pair in key_pairs]
        )
        commitments, secret_states = self._run_round1(key_pairs)
        secret_states[1].destroy()

        with self.assertRaises(NonceAlreadyConsumedException):
            SigningStage(self.context).sign_round2(
                key_pairs[1], None, secret_states[1], commitments, aggregated_key, b'foo'
            )

    def test_mismatched_nonce_sets_are_rejected(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(3)
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate(
            [key_pair.public_key for key_pair in key_pairs]
        )
        commitments, secret_states = self._run_round1(key_pairs)
        outsider_commitment, _ = NonceStage(self.context).begin_round1(self._key_pairs(1)[0])
        replaced_commitment, _ = NonceStage(self.context).begin_round1(key_pairs[0])

        mismatched_nonce_sets: dict[str, list[NonceCommitment]] = {
            'missing': commitments[:2],
            'outsider': commitments[:2] + [outsider_commitment],
            'extra': commitments + [outsider_commitment],
            'duplicate': commitments + [commitments[1]],
            'replaced own commitment': [replaced_commitment] + commitments[1:],
        }

        for description, nonce_set in mismatched_nonce_sets.items():
            with self.subTest(description):
                with self.assertRaises(IncompleteOrMismatchedNonceSetException):
                    SigningStage(self.context).sign_round2(
                        key_pairs[0], None, secret_states[0], nonce_set, aggregated_key, b'foo'
                    )
                # Failed validation leaves the secret nonce state usable.
                self.assertFalse(secret_states[0].is_consumed)

    def test_secret_nonce_state_of_other_signer_is_rejected(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(2)
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate(
            [key_pair.public_key for key_pair in key_pairs]
        )
        commitments, secret_states = self._run_round1(key_pairs)

        with self.assertRaises(IncompleteOrMismatchedNonceSetException):
            SigningStage(self.context).sign_round2(
                key_pairs[0], None, secret_states[1], commitments, aggregated_key, b'foo'
            )

    def test_signer_outside_key_set_is_rejected(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(2)
        outsider: SchnorrKeyPair = self._key_pairs(1)[0]
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate(
            [key_pair.public_key for key_pair in key_pairs]
        )
        commitments, _ = self._run_round1(key_pairs)
        _, outsider_secret_state = NonceStage(self.context).begin_round1(outsider)

        with self.assertRaises(InvalidKeySetException):
            SigningStage(self.context).sign_round2(
                outsider, None, outsider_secret_state, commitments, aggregated_key, b'foo'
            )

    def test_mismatched_own_coefficient_is_rejected(self):
        key_pairs: list[SchnorrKeyPair] = self._key_pairs(2)
        aggregated_key: AggregatedKey = KeyAggregator(self.context).aggregate(
            [key_pair.public_key for key_pair in key_pairs]
        )
        commitments, secret_states = self._run_round1(key_pairs)
        own_coefficient: int = aggregated_key.coefficient_for(key_pairs[0].public_key)

        with self.assertRaises(InvalidKeySetException):
            SigningStage(self.context).sign_round2(
                key_pairs[0], own_coefficient + 1, secret_states[0], commitments, aggregated_key, b'foo'
            )

        partial_signature: PartialSignature = SigningStage(self.context).sign_round2(
            key_pairs[0], own_coefficient, secret_states[0], commitments, aggregated_key, b'foo'
        )
        self.assertLess(partial_signature.signature_share, ED25519_ORDER)


if __name__ == '__main__':
    unittest.main()
