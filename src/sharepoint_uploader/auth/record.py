"""Persisted authentication record for silent re-authentication across runs."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

RECORD_VERSION = 1

_FIELD_VERSION = "version"


@dataclass(frozen=True)
class AuthenticationRecord:
    """Everything needed to reacquire a user token without prompting.

    Attributes:
        tenant_id: Tenant that issued the login.
        client_id: Application the user consented to.
        authority: Authority URL the login was performed against.
        home_account_id: MSAL account identifier of the signed-in user.
        username: User principal name of the signed-in user.
        token_cache: Serialized MSAL token cache holding the refresh token.
    """

    tenant_id: str
    client_id: str
    authority: str
    home_account_id: str
    username: str
    token_cache: str

    def to_json(self) -> str:
        return json.dumps({_FIELD_VERSION: RECORD_VERSION, **asdict(self)}, indent=2)

    @classmethod
    def from_json(cls, text: str) -> AuthenticationRecord:
        """Parse a record written by ``to_json``.

        Raises:
            ValueError: If the text is not a record of a supported version.
        """
        raw = json.loads(text)
        if not isinstance(raw, dict) or raw.get(_FIELD_VERSION) != RECORD_VERSION:
            raise ValueError("unsupported authentication record format")
        try:
            return cls(
                tenant_id=str(raw["tenant_id"]),
                client_id=str(raw["client_id"]),
                authority=str(raw["authority"]),
                home_account_id=str(raw["home_account_id"]),
                username=str(raw["username"]),
                token_cache=str(raw["token_cache"]),
            )
        except KeyError as exc:
            raise ValueError(f"authentication record is missing {exc}") from exc


def load_authentication_record(
    path: str | Path,
    tenant_id: str,
    client_id: str,
) -> AuthenticationRecord | None:
    """Read the record at ``path`` if it is usable for this tenant and client.

    An absent, unreadable, malformed or mismatched record is treated as no
    record at all, which makes the caller fall back to interactive login.

    Args:
        path: Record file location.
        tenant_id: Tenant of the active configuration.
        client_id: Client of the active configuration.

    Returns:
        The record, or None.
    """
    record_path = Path(path)
    if not record_path.exists():
        logger.info("[load_authentication_record] no record found; path:%s", record_path)
        return None

    try:
        record = AuthenticationRecord.from_json(record_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning(
            "[load_authentication_record] ignoring unreadable record; path:%s;error:%s",
            record_path,
            exc,
        )
        return None

    if record.tenant_id != tenant_id or record.client_id != client_id:
        logger.warning(
            "[load_authentication_record] ignoring record issued for another app;"
            " path:%s;tenant_id:%s;client_id:%s",
            record_path,
            record.tenant_id,
            record.client_id,
        )
        return None
    return record


def save_authentication_record(path: str | Path, record: AuthenticationRecord) -> None:
    """Write ``record`` to ``path``, replacing any previous record."""
    record_path = Path(path)
    record_path.parent.mkdir(parents=True, exist_ok=True)
    record_path.write_text(record.to_json(), encoding="utf-8")
    logger.info(
        "[save_authentication_record] saved record; path:%s;username:%s",
        record_path,
        record.username,
    )
