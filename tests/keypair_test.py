"""Test RSA keypair handling in the mock provider."""

import pytest
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    load_pem_public_key,
)

from oidclogin.util import base64_to_number

from .support.keypair import RSAKeyPair, number_to_base64


def test_import() -> None:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    serialized_key = key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    )
    keypair = RSAKeyPair.from_pem(serialized_key)
    public_numbers = keypair.private_key.public_key().public_numbers()
    assert public_numbers == key.public_key().public_numbers()
    assert keypair.private_key_as_pem() == serialized_key


def test_unsupported_key_type() -> None:
    key = Ed25519PrivateKey.generate()
    serialized_key = key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    )

    with pytest.raises(UnsupportedAlgorithm):
        RSAKeyPair.from_pem(serialized_key)


def test_public_key() -> None:
    keypair = RSAKeyPair.generate()
    public_numbers = keypair.private_key.public_key().public_numbers()

    jwk = keypair.public_key_as_jwk("some-kid")
    assert jwk.kid == "some-kid"
    assert jwk.kty == "RSA"
    assert jwk.use == "sig"
    assert jwk.alg == "RS256"
    assert jwk.n
    assert base64_to_number(jwk.n) == public_numbers.n
    assert jwk.e == "AQAB"
    assert keypair.public_key_as_jwks("some-kid").keys == [jwk]

    public_key = load_pem_public_key(keypair.public_key_as_pem())
    assert isinstance(public_key, rsa.RSAPublicKey)
    assert public_key.public_numbers() == public_numbers


def test_number_to_base64() -> None:
    assert number_to_base64(0) == b"AA"
    assert number_to_base64(65537) == b"AQAB"

    for n in (1, 65535, 65536, 2147483648, 18446744073709551616):
        assert base64_to_number(number_to_base64(n).decode()) == n
