"""
Compilation of the Solana (legacy) transaction messages that parties sign: a SOL transfer from the payer, optionally
with an SPL memo, and assembly of the signed wire transaction.
"""
from __future__ import annotations

import decimal
import struct

from decimal import Decimal
from typing import Optional

import attrs
import base58

from solana_musig import PUBLIC_KEY_LENGTH, SIGNATURE_LENGTH, TEXT_ENCODING
from solana_musig.solana import LAMPORTS_PER_SOL, MEMO_PROGRAM_ID, SYSTEM_PROGRAM_ID, SYSTEM_TRANSFER_INSTRUCTION_INDEX

BLOCKHASH_LENGTH: int = 32
MAX_LAMPORTS: int = 2 ** 64 - 1


def sol_to_lamports(amount: str | int | float | Decimal) -> int:
    """
    Converts an amount of SOL to lamports, exactly (via its decimal representation).

    :raises ValueError: if the amount is malformed, negative, too large, or not a whole number of lamports.
    """
    try:
        sol_amount: Decimal = Decimal(str(amount).strip())
    except decimal.InvalidOperation as io:
        raise ValueError(f"Invalid SOL amount: '{amount}'") from io

    if not sol_amount.is_finite() or sol_amount < 0:
        raise ValueError(f"Invalid SOL amount: '{amount}' -- amount must be a non-negative number")

    lamports: Decimal = sol_amount * LAMPORTS_PER_SOL
    if lamports != lamports.to_integral_value():
        raise ValueError(f"Invalid SOL amount: '{amount}' -- amount must be a whole number of lamports")
    if lamports > MAX_LAMPORTS:
        raise ValueError(f"Invalid SOL amount: '{amount}' -- amount exceeds the maximum transferable lamports")

    return int(lamports)


def decode_address(address: str | bytes) -> bytes:
    """Decodes a base58 Solana address (or passes through its 32-byte encoding)."""
    if isinstance(address, (bytes, bytearray)):
        encoded_address: bytes = bytes(address)
    else:
        try:
            encoded_address = base58.b58decode(address.strip())
        except ValueError as ve:
            raise ValueError(f"Invalid base58-encoded Solana address: '{address}'") from ve

    if len(encoded_address) != PUBLIC_KEY_LENGTH:
        raise ValueError(
            f"Invalid Solana address length: {len(encoded_address)} [expected_length={PUBLIC_KEY_LENGTH}]"
        )
    return encoded_address


def decode_blockhash(blockhash: str) -> bytes:
    try:
        encoded_blockhash: bytes = base58.b58decode(blockhash.strip())
    except ValueError as ve:
        raise ValueError(f"Invalid base58-encoded block hash: '{blockhash}'") from ve

    if len(encoded_blockhash) != BLOCKHASH_LENGTH:
        raise ValueError(
            f"Invalid block hash length: {len(encoded_blockhash)} [expected_length={BLOCKHASH_LENGTH}]"
        )
    return encoded_blockhash


def encode_compact_u16(value: int) -> bytes:
    """Encodes a length prefix in Solana's "compact-u16" format: little-endian base-128 groups, of 1 to 3 bytes."""
    if not 0 <= value <= 0xffff:
        raise ValueError(f"Value out of range for compact-u16 encoding: {value}")

    encoded = bytearray()
    while True:
        byte: int = value & 0x7f
        value >>= 7
        if value == 0:
            encoded.append(byte)
            return bytes(encoded)
        encoded.append(byte | 0x80)


@attrs.define(slots=True, frozen=True)
class TransferParameters:
    """
    The transaction details all parties must agree on exactly: recipient, amount, memo & recent block hash. Any
    difference yields a different message, and hence a failed aggregate signature.
    """
    recipient: bytes = attrs.field(converter=decode_address)
    lamports: int = attrs.field()
    recent_blockhash: bytes = attrs.field()
    memo: Optional[str] = None

    @lamports.validator
    def _check_lamports(self, attribute, value: int) -> None:
        if not 0 <= value <= MAX_LAMPORTS:
            raise ValueError(f"Invalid transfer amount: {value} lamports")

    @recent_blockhash.validator
    def _check_recent_blockhash(self, attribute, value: bytes) -> None:
        if len(value) != BLOCKHASH_LENGTH:
            raise ValueError(f"Invalid block hash length: {len(value)} [expected_length={BLOCKHASH_LENGTH}]")

    def compile_message(self, sender: str | bytes) -> bytes:
        """
        Compiles the legacy Solana message transferring ``lamports`` from the sender (the fee payer & only signer) to
        the recipient, followed by a memo instruction if a memo is set.
        <p>
        Accounts are ordered as: writable signers, writable non-signers, read-only non-signers (sorted by address).
        </p>
        """
        payer: bytes = decode_address(sender)
        system_program: bytes = base58.b58decode(SYSTEM_PROGRAM_ID)
        memo_program: bytes = base58.b58decode(MEMO_PROGRAM_ID)

        writable_accounts: list[bytes] = [payer] if self.recipient == payer else [payer, self.recipient]
        readonly_accounts: list[bytes] = [system_program] if self.memo is None else [system_program, memo_program]
        account_keys: list[bytes] = writable_accounts + sorted(readonly_accounts)

        # Header: "(num_required_signatures, num_readonly_signed_accounts, num_readonly_unsigned_accounts)".
        header: bytes = bytes([1, 0, len(readonly_accounts)])

        transfer_data: bytes = struct.pack('<IQ', SYSTEM_TRANSFER_INSTRUCTION_INDEX, self.lamports)
        instructions: list[bytes] = [
            self._compile_instruction(
                account_keys.index(system_program),
                [account_keys.index(payer), account_keys.index(self.recipient)],
                transfer_data
            )
        ]
        if self.memo is not None:
            instructions.append(self._compile_instruction(
                account_keys.index(memo_program), [account_keys.index(payer)], self.memo.encode(TEXT_ENCODING)
            ))

        return (
            header
            + encode_compact_u16(len(account_keys)) + b''.join(account_keys)
            + self.recent_blockhash
            + encode_compact_u16(len(instructions)) + b''.join(instructions)
        )

    @staticmethod
    def _compile_instruction(program_id_index: int, account_indices: list[int], data: bytes) -> bytes:
        return (
            bytes([program_id_index])
            + encode_compact_u16(len(account_indices)) + bytes(account_indices)
            + encode_compact_u16(len(data)) + data
        )


def build_transaction(message: bytes, signature: bytes) -> bytes:
    """Assembles a single-signer wire transaction: "compact-u16(1) || signature || message"."""
    if len(signature) != SIGNATURE_LENGTH:
        raise ValueError(f"Invalid Ed25519 signature length: {len(signature)} [expected_length={SIGNATURE_LENGTH}]")

    return encode_compact_u16(1) + bytes(signature) + message
