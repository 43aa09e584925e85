"""Exceptions raised on invalid Ed25519 points, keys & curves."""

from typing import Optional


class ECCException(Exception):
    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg

    def __repr__(self) -> str:
        return f"{type(self).__name__}: {self.msg}"


class InvalidECCPublicKeyException(ECCException):
    """A decoded point can't serve as a public key or nonce (identity or small-order point)."""


class InvalidECCPointException(ECCException):
    """A 32-byte point encoding is malformed, non-canonical, or doesn't decode to a curve point."""

    def __init__(self, curve: str, encoded_point: bytes, reason: Optional[str] = None):
        summary: str = reason if reason is not None else "Invalid encoded ECC point"
        super().__init__(f"{summary} [curve={curve}, encoded_point={bytes(encoded_point).hex()}]")
        self.curve = curve
        self.encoded_point = bytes(encoded_point)


class IncorrectECCCurveException(ECCException):
    def __init__(self, expected_ecc_curve: str, provided_ecc_curve: str, message: Optional[str] = None):
        curves: str = f"expected_curve='{expected_ecc_curve}', provided_curve='{provided_ecc_curve}'"
        super().__init__(f"{message or 'Incorrect ECC curve'} [{curves}]")
        self.expected_ecc_curve = expected_ecc_curve
        self.provided_ecc_curve = provided_ecc_curve
