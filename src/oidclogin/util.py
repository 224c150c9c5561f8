"""General utility functions."""

from __future__ import annotations

import base64
import os

__all__ = [
    "add_padding",
    "base64_to_number",
    "base64url_decode",
    "random_128_bits",
]


def add_padding(encoded: str) -> str:
    """Add padding to base64 encoded bytes.

    Parameters
    ----------
    encoded
        A base64-encoded string, possibly with the padding removed.

    Returns
    -------
    str
        A correctly-padded version of the encoded string.
    """
    underflow = len(encoded) % 4
    if underflow:
        return encoded + ("=" * (4 - underflow))
    else:
        return encoded


def base64url_decode(data: str) -> bytes:
    """Decode URL-safe base64 without padding, as used in JWT segments.

    Parameters
    ----------
    data
        Encoded segment.

    Returns
    -------
    bytes
        Decoded bytes.

    Raises
    ------
    ValueError
        Raised if the data is not valid URL-safe base64.
    """
    return base64.urlsafe_b64decode(add_padding(data).encode())


def base64_to_number(data: str) -> int:
    """Convert base64-encoded bytes to an integer.

    Parameters
    ----------
    data
        Base64-encoded number, possibly without padding.

    Returns
    -------
    int
        The result converted to a number.  Note that Python ints can be
        arbitrarily large.

    Notes
    -----
    Used for converting the modulus and exponent in a JWKS to integers in
    preparation for turning them into a public key.
    """
    return int.from_bytes(base64url_decode(data), byteorder="big")


def random_128_bits() -> str:
    """Generate random 128 bits encoded in base64 without padding."""
    return base64.urlsafe_b64encode(os.urandom(16)).decode().rstrip("=")
