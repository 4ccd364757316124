"""Shared fixtures for auth tests: a freshly generated self-signed certificate."""

import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID


@pytest.fixture(scope="session")
def key_and_certificate() -> tuple[rsa.RSAPrivateKey, x509.Certificate]:
    """Return an RSA key and a self-signed certificate for it."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "sharepoint-uploader-test")])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return key, certificate


@pytest.fixture(scope="session")
def thumbprint(key_and_certificate: tuple[rsa.RSAPrivateKey, x509.Certificate]) -> str:
    _, certificate = key_and_certificate
    return certificate.fingerprint(hashes.SHA1()).hex().upper()
