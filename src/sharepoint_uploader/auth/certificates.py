"""Load certificates with private keys for app-only authentication."""

from __future__ import annotations

import base64
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from sharepoint_uploader.exceptions import CertificateError

logger = logging.getLogger(__name__)

_PKCS12_SUFFIXES = frozenset({".pfx", ".p12"})
_PEM_SUFFIXES = frozenset({".pem", ".crt", ".cer"})

_PEM_CERTIFICATE = re.compile(
    rb"-----BEGIN CERTIFICATE-----.+?-----END CERTIFICATE-----", re.DOTALL
)
_PEM_PRIVATE_KEY = re.compile(
    rb"-----BEGIN ([A-Z ]*)PRIVATE KEY-----.+?-----END \1PRIVATE KEY-----", re.DOTALL
)

# Directories standing in for the well-known certificate store locations.
STORE_LOCATIONS: dict[str, Path] = {
    "currentuser": Path.home() / ".certificates",
    "localmachine": Path("/etc/certificates"),
}


@dataclass(frozen=True)
class CertificateData:
    """A certificate together with its private key, ready for MSAL or JWT signing.

    Attributes:
        private_key_pem: Unencrypted PKCS#8 PEM private key.
        thumbprint: Upper-case hex SHA-1 fingerprint of the certificate.
        certificate_pem: PEM encoding of the public certificate.
    """

    private_key_pem: bytes
    thumbprint: str
    certificate_pem: bytes

    @property
    def x5t(self) -> str:
        """Base64url-encoded SHA-1 thumbprint, as used in the JWT ``x5t`` header."""
        raw = bytes.fromhex(self.thumbprint)
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def normalize_thumbprint(thumbprint: str) -> str:
    """Strip separators and whitespace from a thumbprint and upper-case it."""
    return "".join(c for c in thumbprint if c not in " :\t\u200e").upper()


def load_certificate_file(path: str | Path, password: str | None = None) -> CertificateData:
    """Load a certificate and private key from a PKCS#12 or PEM file.

    Args:
        path: Path of a ``.pfx``/``.p12`` bundle or a PEM file holding both the
            certificate and its private key.
        password: Password protecting the bundle or key, if any.

    Returns:
        CertificateData for the certificate.

    Raises:
        CertificateError: If the file cannot be read or parsed, or carries no
            private key.
    """
    cert_path = Path(path)
    logger.info("[load_certificate_file] loading certificate; path:%s", cert_path)
    try:
        data = cert_path.read_bytes()
    except OSError as exc:
        raise CertificateError(f"Certificate could not be read: {cert_path}: {exc}") from exc

    secret = password.encode("utf-8") if password else None
    try:
        if cert_path.suffix.lower() in _PKCS12_SUFFIXES:
            key, certificate = _load_pkcs12(data, secret)
        else:
            key, certificate = _load_pem(data, secret)
    except (ValueError, TypeError) as exc:
        raise CertificateError(f"Certificate could not be loaded: {cert_path}: {exc}") from exc

    if certificate is None:
        raise CertificateError(f"Certificate file contains no certificate: {cert_path}")
    if key is None:
        raise CertificateError(f"Certificate does not contain a private key: {cert_path}")
    return _certificate_data(certificate, key)


def load_certificate_from_store(
    thumbprint: str,
    store_name: str = "My",
    store_location: str = "CurrentUser",
    password: str | None = None,
) -> CertificateData:
    """Find a certificate by thumbprint in a file-backed certificate store.

    A store is a directory ``<location>/<store_name>`` of PKCS#12 and PEM
    files. ``CurrentUser`` and ``LocalMachine`` map onto the directories in
    STORE_LOCATIONS; any other location is used as a directory path. Expired
    certificates are not filtered out.

    Args:
        thumbprint: SHA-1 thumbprint; case, spaces and colons are ignored.
        store_name: Store (sub-directory) name.
        store_location: Store location alias or directory.
        password: Password for protected files in the store.

    Returns:
        CertificateData for the matching certificate.

    Raises:
        CertificateError: If no certificate matches or the match has no
            private key.
    """
    wanted = normalize_thumbprint(thumbprint)
    location = STORE_LOCATIONS.get(store_location.lower(), Path(store_location))
    store_dir = location / store_name
    logger.info(
        "[load_certificate_from_store] searching store; store:%s;location:%s;thumbprint:%s",
        store_name,
        store_location,
        wanted,
    )
    if not store_dir.is_dir():
        raise CertificateError(f"Certificate store not found: {store_dir}")

    for candidate in sorted(store_dir.iterdir()):
        suffix = candidate.suffix.lower()
        if suffix not in _PKCS12_SUFFIXES | _PEM_SUFFIXES:
            continue
        found = _thumbprint_of(candidate, password)
        if found != wanted:
            continue
        return load_certificate_file(candidate, password)

    raise CertificateError(
        f"No certificate with thumbprint {wanted} in store {store_name!r} ({store_location})"
    )


def _thumbprint_of(path: Path, password: str | None) -> str | None:
    """Return the thumbprint of the certificate in ``path``, or None if unreadable."""
    secret = password.encode("utf-8") if password else None
    try:
        data = path.read_bytes()
        if path.suffix.lower() in _PKCS12_SUFFIXES:
            _, certificate = _load_pkcs12(data, secret)
        else:
            _, certificate = _load_pem(data, secret)
    except (OSError, ValueError, TypeError):
        logger.debug("[_thumbprint_of] skipping unreadable store entry; path:%s", path)
        return None
    if certificate is None:
        return None
    return certificate.fingerprint(hashes.SHA1()).hex().upper()  # noqa: S303


def _pem_block(data: bytes, pattern: re.Pattern[bytes]) -> bytes | None:
    match = pattern.search(data)
    return match.group(0) if match else None


def _load_pkcs12(
    data: bytes, secret: bytes | None
) -> tuple[object | None, x509.Certificate | None]:
    """Load the private key and certificate from a PKCS#12 bundle.

    A bundle without a key keeps its certificate among the additional
    certificates, so the first of those is used when there is no main one.
    """
    bundle = pkcs12.load_pkcs12(data, secret)
    entry = bundle.cert
    if entry is None and bundle.additional_certs:
        entry = bundle.additional_certs[0]
    return bundle.key, entry.certificate if entry is not None else None


def _load_pem(data: bytes, secret: bytes | None) -> tuple[object | None, x509.Certificate | None]:
    """Load the first private key and first certificate found in PEM data."""
    cert_block = _pem_block(data, _PEM_CERTIFICATE)
    key_block = _pem_block(data, _PEM_PRIVATE_KEY)
    certificate = x509.load_pem_x509_certificate(cert_block) if cert_block else None
    key = None
    if key_block:
        # Unencrypted keys must be loaded without a password.
        password = secret if b"ENCRYPTED" in key_block else None
        key = serialization.load_pem_private_key(key_block, password=password)
    return key, certificate


def _certificate_data(certificate: x509.Certificate, key: object) -> CertificateData:
    key_pem = key.private_bytes(  # type: ignore[attr-defined]
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return CertificateData(
        private_key_pem=key_pem,
        thumbprint=certificate.fingerprint(hashes.SHA1()).hex().upper(),  # noqa: S303
        certificate_pem=certificate.public_bytes(serialization.Encoding.PEM),
    )
