"""Custom exception classes raised by the aggregate signing protocol & its supporting classes."""


class InvalidHasherStateException(Exception):
    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg

    def __repr__(self) -> str:
        return f"{type(self).__name__}: {self.msg}"


class AggregateSigningException(Exception):
    """Base class of the typed, caller-recoverable failures of the aggregate signing protocol."""

    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg

    def __repr__(self) -> str:
        return f"{type(self).__name__}: {self.msg}"


class InvalidKeySetException(AggregateSigningException):
    """Too few keys, duplicate keys, or a degenerate/invalid public key was supplied for key aggregation."""


class MalformedMessageException(AggregateSigningException):
    """A protocol message could not be decoded (bad length, tag, alphabet, group element or scalar)."""


class IncompleteOrMismatchedNonceSetException(AggregateSigningException):
    """The public nonce commitments don't match the session's key set, exactly one commitment per key."""


class NonceAlreadyConsumedException(AggregateSigningException):
    """A secret nonce state was used for signing more than once."""


class InvalidAggregateSignatureException(AggregateSigningException):
    """The aggregated signature failed verification against the aggregated public key & message."""


class InvalidSessionStateException(AggregateSigningException):
    """A signing session transition was attempted from the wrong phase."""


class WrongNetworkException(ValueError):
    def __init__(self, network_name: str):
        super().__init__(
            f"Unknown Solana network: '{network_name}' -- expected one of: mainnet, testnet, devnet, local"
        )
        self.network_name = network_name
        self.msg = str(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}: {self.msg}"
