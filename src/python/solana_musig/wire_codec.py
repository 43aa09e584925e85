"""
Canonical encoding of the aggregate signing protocol's messages, which are exchanged out-of-band between parties.

Each message is a fixed-width binary record: a 1-byte type tag followed by a fixed-length payload of group elements
(32-byte RFC 8032 points) and scalars (32-byte little-endian). Records are transcribed as base58 text, whose alphabet
omits the ambiguous characters `0`, `O`, `I` and `l`.
"""
from __future__ import annotations

import enum

from typing import Sequence

import base58

from solana_musig.exceptions import MalformedMessageException


class WireTag(enum.IntEnum):
    """Type tags of the protocol's wire messages."""
    AGG_MESSAGE_1 = 0        # public nonce commitment (round 1 broadcast)
    PARTIAL_SIGNATURE = 1    # partial signature (round 2 broadcast)
    SECRET_AGG_STEP_ONE = 2  # secret nonce state (local carry-over from round 1 to round 2)


class WireCodec:
    TAG_LENGTH: int = 1
    FIELD_LENGTH: int = 32
    PAYLOAD_FIELDS: dict[WireTag, int] = {
        WireTag.AGG_MESSAGE_1: 3,        # sender public key, R1, R2
        WireTag.PARTIAL_SIGNATURE: 2,    # aggregated nonce R, s
        WireTag.SECRET_AGG_STEP_ONE: 3,  # owner public key, r1, r2
    }

    @classmethod
    def record_length(cls, tag: WireTag) -> int:
        return cls.TAG_LENGTH + cls.PAYLOAD_FIELDS[tag] * cls.FIELD_LENGTH

    @classmethod
    def encode_record(cls, tag: WireTag, fields: Sequence[bytes | bytearray]) -> bytes:
        """Concatenates the tag & the fixed-width payload fields into a binary record."""
        if len(fields) != cls.PAYLOAD_FIELDS[tag] or any(len(field) != cls.FIELD_LENGTH for field in fields):
            raise ValueError(
                f"Invalid payload fields for {tag.name} record -- expected [{cls.PAYLOAD_FIELDS[tag]}] fields of "
                f"[{cls.FIELD_LENGTH}] bytes each"
            )

        return bytes([tag]) + b''.join(bytes(field) for field in fields)

    @classmethod
    def decode_record(cls, tag: WireTag, record: bytes) -> list[bytes]:
        """
        Splits a binary record into its payload fields, after checking its length & type tag.

        :raises MalformedMessageException: if the record has the wrong length or type tag.
        """
        expected_length: int = cls.record_length(tag)
        if len(record) != expected_length:
            raise MalformedMessageException(
                f"Invalid {tag.name} record length: {len(record)} [expected_length={expected_length}]"
            )
        if record[0] != tag:
            raise MalformedMessageException(
                f"Unexpected message type tag: {record[0]} [expected_tag={int(tag)} ({tag.name})]"
            )

        payload: bytes = record[cls.TAG_LENGTH:]
        return [
            payload[offset:offset + cls.FIELD_LENGTH] for offset in range(0, len(payload), cls.FIELD_LENGTH)
        ]

    @staticmethod
    def to_text(record: bytes) -> str:
        return base58.b58encode(record).decode('ascii')

    @staticmethod
    def from_text(text: str) -> bytes:
        """
        Decodes base58 text into a binary record.

        :raises MalformedMessageException: if the text contains characters outside the base58 alphabet.
        """
        try:
            return base58.b58decode(text.strip())
        except ValueError as ve:  # includes non-ASCII input (UnicodeEncodeError)
            raise MalformedMessageException(f"Invalid base58 text encoding of protocol message: {ve}") from ve

    @classmethod
    def encode(cls, tag: WireTag, fields: Sequence[bytes | bytearray]) -> str:
        return cls.to_text(cls.encode_record(tag, fields))

    @classmethod
    def decode(cls, tag: WireTag, text: str) -> list[bytes]:
        return cls.decode_record(tag, cls.from_text(text))
