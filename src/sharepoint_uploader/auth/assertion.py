"""Signed JWT client assertions for the OAuth2 client-credentials grant."""

from __future__ import annotations

import time
import uuid

import jwt

from sharepoint_uploader.auth.certificates import CertificateData

ASSERTION_LIFETIME_SECONDS = 3600
CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"


def build_client_assertion(
    certificate: CertificateData,
    client_id: str,
    token_endpoint: str,
    now: float | None = None,
) -> str:
    """Build an RS256-signed client assertion for ``token_endpoint``.

    Args:
        certificate: Certificate whose private key signs the assertion.
        client_id: Application (client) id; used as issuer and subject.
        token_endpoint: Token endpoint URL; used as audience.
        now: Issue time as a UNIX timestamp; defaults to the current time.

    Returns:
        Compact-serialized JWT.
    """
    issued_at = int(now if now is not None else time.time())
    claims = {
        "aud": token_endpoint,
        "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
        "iss": client_id,
        "jti": str(uuid.uuid4()),
        "nbf": issued_at,
        "sub": client_id,
    }
    return jwt.encode(
        claims,
        certificate.private_key_pem,
        algorithm="RS256",
        headers={"x5t": certificate.x5t},
    )
