"""Bearer token acquisition strategies behind one CredentialProvider interface."""

from __future__ import annotations

import functools
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib import request as urllib_request
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode

import msal

from sharepoint_uploader.auth.assertion import CLIENT_ASSERTION_TYPE, build_client_assertion
from sharepoint_uploader.auth.certificates import (
    CertificateData,
    load_certificate_file,
    load_certificate_from_store,
)
from sharepoint_uploader.auth.record import (
    AuthenticationRecord,
    load_authentication_record,
    save_authentication_record,
)
from sharepoint_uploader.config import DEFAULT_LOGIN_ENDPOINT, AuthMode
from sharepoint_uploader.exceptions import AuthFailure, CertificateError
from sharepoint_uploader.graph.client import DEFAULT_GRAPH_ENDPOINT

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from sharepoint_uploader.config import UploaderConfig

logger = logging.getLogger(__name__)

# Delegated permissions requested for a signed-in user.
DELEGATED_PERMISSIONS = ("Files.ReadWrite.All", "Sites.ReadWrite.All")

# Tokens this close to expiry are treated as expired.
TOKEN_REFRESH_MARGIN_SECONDS = 300

# Used when a token response omits expires_in.
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


def authority_url(tenant_id: str, login_endpoint: str = DEFAULT_LOGIN_ENDPOINT) -> str:
    return f"https://{login_endpoint}/{tenant_id}"


def app_only_scopes(graph_endpoint: str = DEFAULT_GRAPH_ENDPOINT) -> list[str]:
    return [f"https://{graph_endpoint}/.default"]


def delegated_scopes(graph_endpoint: str = DEFAULT_GRAPH_ENDPOINT) -> list[str]:
    return [f"https://{graph_endpoint}/{permission}" for permission in DELEGATED_PERMISSIONS]


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and the UNIX time it expires at."""

    token: str
    expires_on: float

    def is_expired(
        self,
        margin_seconds: float = TOKEN_REFRESH_MARGIN_SECONDS,
        now: float | None = None,
    ) -> bool:
        current = time.time() if now is None else now
        return current >= self.expires_on - margin_seconds


def token_from_result(result: dict[str, Any] | None, strategy: str) -> AccessToken:
    """Convert an OAuth2 token response into an AccessToken.

    Raises:
        AuthFailure: If the response carries no access token.
    """
    result = result or {}
    if "access_token" not in result:
        error = result.get("error", "unknown_error")
        description = result.get("error_description", "No description provided")
        logger.error(
            "[token_from_result] token acquisition failed; strategy:%s;error:%s", strategy, error
        )
        raise AuthFailure(f"{strategy} token acquisition failed: {error}: {description}")
    expires_in = int(result.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
    return AccessToken(token=str(result["access_token"]), expires_on=time.time() + expires_in)


class CredentialProvider(ABC):
    """Produces bearer tokens and reuses them until they near expiry."""

    name = "credential"

    def __init__(
        self,
        default_scopes: Sequence[str] = (),
        log: logging.Logger | None = None,
    ) -> None:
        self._default_scopes = tuple(default_scopes)
        self._logger = log or logger
        self._tokens: dict[tuple[str, ...], AccessToken] = {}

    @property
    def default_scopes(self) -> tuple[str, ...]:
        return self._default_scopes

    def acquire(self, scopes: Sequence[str] | None = None) -> AccessToken:
        """Return a valid token for ``scopes``, acquiring a new one only when needed.

        Args:
            scopes: Scopes to request; None or empty uses the provider's defaults.

        Returns:
            A token that is not about to expire.

        Raises:
            AuthFailure: If the token cannot be acquired.
        """
        key = tuple(scopes) if scopes else self._default_scopes
        cached = self._tokens.get(key)
        if cached is not None and not cached.is_expired():
            return cached

        token = self._acquire_new(list(key))
        self._tokens[key] = token
        self._logger.info("[acquire] token acquired; strategy:%s", self.name)
        return token

    @abstractmethod
    def _acquire_new(self, scopes: list[str]) -> AccessToken:
        """Acquire a fresh token from the identity provider."""


class CertificateCredentialProvider(CredentialProvider):
    """App-only token obtained with a certificate-signed client assertion via MSAL."""

    name = "certificate"

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        certificate_loader: Callable[[], CertificateData],
        login_endpoint: str = DEFAULT_LOGIN_ENDPOINT,
        graph_endpoint: str = DEFAULT_GRAPH_ENDPOINT,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialise the provider.

        Args:
            tenant_id: Azure AD tenant ID.
            client_id: Azure AD application (client) ID.
            certificate_loader: Returns the certificate with its private key.
                Called on first use so a broken certificate surfaces as an
                AuthFailure at acquisition time.
            login_endpoint: Azure AD login host.
            graph_endpoint: Graph host the token is for.
            log: Logger to report through; defaults to the module logger.
        """
        super().__init__(app_only_scopes(graph_endpoint), log)
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._certificate_loader = certificate_loader
        self._authority = authority_url(tenant_id, login_endpoint)
        self._app: msal.ConfidentialClientApplication | None = None

    def _application(self) -> msal.ConfidentialClientApplication:
        if self._app is None:
            certificate = self._certificate_loader()
            self._logger.info(
                "[_application] using certificate; thumbprint:%s", certificate.thumbprint
            )
            try:
                self._app = msal.ConfidentialClientApplication(
                    client_id=self._client_id,
                    client_credential={
                        "private_key": certificate.private_key_pem.decode("ascii"),
                        "thumbprint": certificate.thumbprint,
                    },
                    authority=self._authority,
                )
            except (ValueError, OSError) as exc:
                raise AuthFailure(f"{self.name} credential could not be created: {exc}") from exc
        return self._app

    def _acquire_new(self, scopes: list[str]) -> AccessToken:
        app = self._application()
        try:
            result = app.acquire_token_for_client(scopes=scopes)
        except (ValueError, OSError) as exc:
            raise AuthFailure(f"{self.name} token acquisition failed: {exc}") from exc
        return token_from_result(result, self.name)


class InteractiveCredentialProvider(CredentialProvider):
    """Delegated user token; interactive login once, then silent refresh from a record.

    The first login opens the system browser with a local ``http://localhost``
    redirect listener and blocks until the user completes it. The resulting
    authentication record (including the MSAL token cache) is written to
    ``auth_record_file`` so later runs refresh silently until the refresh
    token itself expires.
    """

    name = "interactive"

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        auth_record_file: str,
        login_endpoint: str = DEFAULT_LOGIN_ENDPOINT,
        graph_endpoint: str = DEFAULT_GRAPH_ENDPOINT,
        redirect_port: int | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        super().__init__(delegated_scopes(graph_endpoint), log)
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._auth_record_file = auth_record_file
        self._authority = authority_url(tenant_id, login_endpoint)
        self._redirect_port = redirect_port
        self._cache: msal.SerializableTokenCache | None = None
        self._app: msal.PublicClientApplication | None = None
        self._record: AuthenticationRecord | None = None

    def _application(self) -> msal.PublicClientApplication:
        if self._app is None:
            self._cache = msal.SerializableTokenCache()
            self._record = load_authentication_record(
                self._auth_record_file, self._tenant_id, self._client_id
            )
            if self._record is not None:
                try:
                    self._cache.deserialize(self._record.token_cache)
                except ValueError:
                    self._logger.warning(
                        "[_application] token cache in record is corrupt; path:%s",
                        self._auth_record_file,
                    )
                    self._cache = msal.SerializableTokenCache()
                    self._record = None
            self._app = msal.PublicClientApplication(
                client_id=self._client_id,
                authority=self._authority,
                token_cache=self._cache,
            )
        return self._app

    def _acquire_new(self, scopes: list[str]) -> AccessToken:
        app = self._application()
        if self._record is not None:
            try:
                result = self._acquire_silent(app, self._record, scopes)
            except (ValueError, OSError) as exc:
                raise AuthFailure(f"{self.name} silent refresh failed: {exc}") from exc
            if result is not None and "access_token" in result:
                token = token_from_result(result, self.name)
                if self._cache is not None and self._cache.has_state_changed:
                    self._persist(self._record.home_account_id, self._record.username)
                return token
            self._logger.warning(
                "[_acquire_new] silent refresh failed, falling back to interactive login;"
                " error:%s",
                (result or {}).get("error", "no_cached_token"),
            )

        self._logger.warning("[_acquire_new] interactive login required; opening browser")
        try:
            result = app.acquire_token_interactive(
                scopes,
                prompt=msal.Prompt.SELECT_ACCOUNT,
                port=self._redirect_port,
            )
        except (ValueError, OSError) as exc:
            raise AuthFailure(f"{self.name} login failed: {exc}") from exc
        token = token_from_result(result, self.name)
        self._remember_login(app, result)
        return token

    def _acquire_silent(
        self,
        app: msal.PublicClientApplication,
        record: AuthenticationRecord,
        scopes: list[str],
    ) -> dict[str, Any] | None:
        accounts = app.get_accounts(username=record.username)
        account = next(
            (a for a in accounts if a.get("home_account_id") == record.home_account_id),
            None,
        )
        if account is None:
            self._logger.info("[_acquire_silent] account from record not in cache")
            return None
        return app.acquire_token_silent_with_error(scopes, account=account)

    def _remember_login(self, app: msal.PublicClientApplication, result: dict[str, Any]) -> None:
        """Persist an authentication record for the account that just signed in."""
        claims = result.get("id_token_claims") or {}
        username = claims.get("preferred_username")
        accounts = app.get_accounts(username=username) if username else app.get_accounts()
        if not accounts:
            self._logger.warning("[_remember_login] no account in cache; record not saved")
            return
        account = accounts[0]
        self._persist(account.get("home_account_id", ""), account.get("username", ""))

    def _persist(self, home_account_id: str, username: str) -> None:
        if self._cache is None:
            return
        record = AuthenticationRecord(
            tenant_id=self._tenant_id,
            client_id=self._client_id,
            authority=self._authority,
            home_account_id=home_account_id,
            username=username,
            token_cache=self._cache.serialize(),
        )
        try:
            save_authentication_record(self._auth_record_file, record)
        except OSError as exc:
            self._logger.warning(
                "[_persist] could not save authentication record; path:%s;error:%s",
                self._auth_record_file,
                exc,
            )
            return
        self._record = record


class ClientAssertionCredentialProvider(CredentialProvider):
    """App-only token from a raw client-credentials request with a hand-built JWT."""

    name = "client_assertion"

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        certificate_loader: Callable[[], CertificateData],
        login_endpoint: str = DEFAULT_LOGIN_ENDPOINT,
        graph_endpoint: str = DEFAULT_GRAPH_ENDPOINT,
        log: logging.Logger | None = None,
    ) -> None:
        super().__init__(app_only_scopes(graph_endpoint), log)
        self._client_id = client_id
        self._certificate_loader = certificate_loader
        self._token_endpoint = f"{authority_url(tenant_id, login_endpoint)}/oauth2/v2.0/token"

    @property
    def token_endpoint(self) -> str:
        return self._token_endpoint

    def _acquire_new(self, scopes: list[str]) -> AccessToken:
        certificate = self._certificate_loader()
        assertion = build_client_assertion(certificate, self._client_id, self._token_endpoint)
        form = urlencode(
            {
                "client_id": self._client_id,
                "scope": " ".join(scopes),
                "grant_type": "client_credentials",
                "client_assertion_type": CLIENT_ASSERTION_TYPE,
                "client_assertion": assertion,
            }
        ).encode("ascii")
        req = urllib_request.Request(
            self._token_endpoint,
            data=form,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            method="POST",
        )
        try:
            with urllib_request.urlopen(req) as resp:
                result = json.loads(resp.read())
        except HTTPError as exc:
            result = _error_result(exc)
        except URLError as exc:
            raise AuthFailure(f"{self.name} token request failed: {exc.reason}") from exc
        except (ValueError, OSError) as exc:
            raise AuthFailure(f"{self.name} token response could not be read: {exc}") from exc
        return token_from_result(result, self.name)


class ChainedCredentialProvider(CredentialProvider):
    """Tries each provider in order; the first one that succeeds is kept for the run."""

    name = "chained"

    def __init__(
        self,
        providers: Sequence[CredentialProvider],
        log: logging.Logger | None = None,
    ) -> None:
        if not providers:
            raise ValueError("at least one credential provider is required")
        super().__init__((), log)
        self._providers = list(providers)
        self._active: CredentialProvider | None = None

    def _acquire_new(self, scopes: list[str]) -> AccessToken:
        requested = scopes or None
        if self._active is not None:
            return self._active.acquire(requested)

        failures: list[str] = []
        for provider in self._providers:
            try:
                token = provider.acquire(requested)
            except AuthFailure as exc:
                self._logger.warning(
                    "[_acquire_new] strategy unavailable; strategy:%s;error:%s", provider.name, exc
                )
                failures.append(f"{provider.name}: {exc}")
                continue
            self._active = provider
            self._logger.info("[_acquire_new] using strategy; strategy:%s", provider.name)
            return token

        raise AuthFailure("All credential strategies failed: " + "; ".join(failures))


def _error_result(exc: HTTPError) -> dict[str, Any]:
    """Decode an OAuth2 error response, falling back to the HTTP status."""
    try:
        result = json.loads(exc.read())
    except ValueError:
        result = None
    if isinstance(result, dict):
        return result
    return {"error": f"http_{exc.code}", "error_description": str(exc.reason)}


def certificate_loader_from_config(config: UploaderConfig) -> Callable[[], CertificateData]:
    """Return a loader for the certificate the configuration points at."""
    if config.certificate_path:
        return functools.partial(
            load_certificate_file, config.certificate_path, config.certificate_password
        )
    if not config.certificate_thumbprint:
        return _no_certificate
    return functools.partial(
        load_certificate_from_store,
        config.certificate_thumbprint,
        config.store_name,
        config.store_location,
        config.certificate_password,
    )


def credential_provider_from_config(
    config: UploaderConfig,
    log: logging.Logger | None = None,
) -> CredentialProvider:
    """Construct the CredentialProvider selected by the configuration.

    Args:
        config: Validated application configuration.
        log: Logger injected into the provider(s).

    Returns:
        Configured CredentialProvider instance.
    """
    mode = config.effective_auth_mode

    def certificate() -> CertificateCredentialProvider:
        return CertificateCredentialProvider(
            tenant_id=config.tenant_id,
            client_id=config.client_id,
            certificate_loader=certificate_loader_from_config(config),
            login_endpoint=config.login_endpoint,
            graph_endpoint=config.graph_endpoint,
            log=log,
        )

    def interactive() -> InteractiveCredentialProvider:
        return InteractiveCredentialProvider(
            tenant_id=config.tenant_id,
            client_id=config.client_id,
            auth_record_file=config.auth_record_file,
            login_endpoint=config.login_endpoint,
            graph_endpoint=config.graph_endpoint,
            redirect_port=config.redirect_port,
            log=log,
        )

    if mode is AuthMode.CERTIFICATE:
        return certificate()
    if mode is AuthMode.INTERACTIVE:
        return interactive()
    if mode is AuthMode.CHAINED:
        return ChainedCredentialProvider([certificate(), interactive()], log=log)
    return ClientAssertionCredentialProvider(
        tenant_id=config.tenant_id,
        client_id=config.client_id,
        certificate_loader=certificate_loader_from_config(config),
        login_endpoint=config.login_endpoint,
        graph_endpoint=config.graph_endpoint,
        log=log,
    )


def _no_certificate() -> CertificateData:
    raise CertificateError("No certificate configured (set a certificate path or thumbprint)")
