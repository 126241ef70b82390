"""Connection store for saved and recently used connection profiles."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqldialog.domains.connections.domain.contracts import ConnectionKind, StoredConnection
from sqldialog.domains.connections.domain.errors import ConnectionStoreError
from sqldialog.domains.connections.domain.profile import ConnectionProfile, FieldName
from sqldialog.shared.core.store import JSONFileStore, get_config_dir

if TYPE_CHECKING:
    from sqldialog.domains.connections.app.credentials import CredentialsService

logger = logging.getLogger(__name__)

PROFILE_ID = "id"
MAX_RECENT_CONNECTIONS = 5

# Persisted in place of a connection string whose password lives in the keyring.
CONNECTION_STRING_KEY_PREFIX = "sqldialog:connectionString:"

# Fields that identify a connection when a profile carries no id.
_IDENTITY_FIELDS = (
    FieldName.PROFILE_NAME,
    FieldName.SERVER,
    FieldName.DATABASE,
    FieldName.AUTHENTICATION_TYPE,
    FieldName.USER,
    FieldName.ACCOUNT_ID,
    FieldName.CONNECTION_STRING,
)

# Never written to the JSON file.
_TRANSIENT_FIELDS = (FieldName.PASSWORD, FieldName.DISPLAY_NAME)


def _same_connection(a: ConnectionProfile, b: ConnectionProfile) -> bool:
    a_id, b_id = a.get(PROFILE_ID), b.get(PROFILE_ID)
    if a_id and b_id:
        return bool(a_id == b_id)
    return all(a.get(name) == b.get(name) for name in _IDENTITY_FIELDS)


class JSONConnectionStore(JSONFileStore):
    """Store for saved and recently used connections.

    Profiles are stored in ~/.sqldialog/connections.json under "saved" and
    "recent". Secrets are stored separately via the CredentialsService:
    the password for parameter profiles, and the whole connection string
    for connection string profiles.
    """

    _instance: JSONConnectionStore | None = None

    def __init__(
        self,
        credentials_service: CredentialsService | None = None,
        file_path: Path | None = None,
        max_recent: int = MAX_RECENT_CONNECTIONS,
    ) -> None:
        super().__init__(file_path or get_config_dir() / "connections.json")
        self._credentials_service = credentials_service
        self._max_recent = max_recent

    @property
    def credentials_service(self) -> CredentialsService:
        """Get the credentials service (lazy-loaded)."""
        if self._credentials_service is None:
            from sqldialog.domains.connections.app.credentials import get_credentials_service

            return get_credentials_service()
        return self._credentials_service

    @classmethod
    def get_instance(cls) -> JSONConnectionStore:
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    # File access

    def _load_lists(self) -> tuple[list[ConnectionProfile], list[ConnectionProfile]]:
        data = self._read_json()
        if data is None:
            return [], []
        if not isinstance(data, dict):
            raise ConnectionStoreError(f"Unexpected connection store format in {self.file_path}")
        return self._parse_list(data.get("saved")), self._parse_list(data.get("recent"))

    def _parse_list(self, raw: Any) -> list[ConnectionProfile]:
        if not isinstance(raw, list):
            return []
        profiles = []
        for entry in raw:
            if not isinstance(entry, dict):
                logger.warning("Skipping malformed connection entry in %s", self.file_path)
                continue
            profiles.append(ConnectionProfile.from_dict(entry))
        return profiles

    def _save_lists(self, saved: list[ConnectionProfile], recent: list[ConnectionProfile]) -> None:
        self._write_json(
            {
                "saved": [self._to_persisted_dict(p) for p in saved],
                "recent": [self._to_persisted_dict(p) for p in recent],
            }
        )

    @staticmethod
    def _to_persisted_dict(profile: ConnectionProfile) -> dict[str, Any]:
        data = profile.to_dict(drop_unset=True)
        for name in _TRANSIENT_FIELDS:
            data.pop(name, None)
        return data

    def _prepare_for_storage(self, profile: ConnectionProfile) -> ConnectionProfile:
        """Assign an id and move the profile's secret into the credentials service."""
        stored = profile.copy()
        profile_id = stored.get(PROFILE_ID) or uuid.uuid4().hex
        stored.set(PROFILE_ID, profile_id)

        connection_string = stored.connection_string
        if connection_string and not connection_string.startswith(CONNECTION_STRING_KEY_PREFIX):
            self.credentials_service.set_password(profile_id, connection_string)
            if "password=" in connection_string.lower():
                stored.set(FieldName.CONNECTION_STRING, f"{CONNECTION_STRING_KEY_PREFIX}{profile_id}")
        elif not connection_string:
            password = stored.get(FieldName.PASSWORD) if stored.get(FieldName.SAVE_PASSWORD) else None
            self.credentials_service.set_password(profile_id, password)
        return stored

    # Queries

    def load_all_connections(self, include_recents: bool) -> list[StoredConnection]:
        """Saved connections followed by recent ones, tagged by list."""
        saved, recent = self._load_lists()
        result = [StoredConnection(profile=p, kind=ConnectionKind.SAVED) for p in saved]
        if include_recents:
            result.extend(StoredConnection(profile=p, kind=ConnectionKind.RECENT) for p in recent)
        return result

    def get_by_name(self, name: str) -> ConnectionProfile | None:
        saved, _ = self._load_lists()
        return next((p for p in saved if p.display_name == name), None)

    async def lookup_password(self, profile: ConnectionProfile, is_connection_string: bool) -> str | None:
        """Return the stored secret: a password, or a full connection string."""
        profile_id = profile.get(PROFILE_ID)
        if profile_id:
            return self.credentials_service.get_password(str(profile_id))
        if is_connection_string:
            return profile.connection_string or None
        return None

    # Mutations

    async def save_profile(self, profile: ConnectionProfile) -> ConnectionProfile:
        """Add or replace a saved profile and return the stored copy."""
        saved, recent = self._load_lists()
        stored = self._prepare_for_storage(profile)
        saved = [p for p in saved if not _same_connection(p, stored)]
        saved.append(stored)
        self._save_lists(saved, recent)
        return stored

    async def add_recently_used(self, profile: ConnectionProfile) -> None:
        saved, recent = self._load_lists()
        stored = self._prepare_for_storage(profile)
        recent = [p for p in recent if not _same_connection(p, stored)]
        recent.insert(0, stored)
        for dropped in recent[self._max_recent :]:
            if not any(_same_connection(dropped, p) for p in saved):
                self.credentials_service.delete_password(str(dropped.get(PROFILE_ID)))
        self._save_lists(saved, recent[: self._max_recent])

    async def remove_profile(self, profile: ConnectionProfile) -> bool:
        """Remove a saved profile and its secret; False if it was not saved."""
        saved, recent = self._load_lists()
        remaining = [p for p in saved if not _same_connection(p, profile)]
        if len(remaining) == len(saved):
            return False
        removed = [p for p in saved if _same_connection(p, profile)]
        for entry in removed:
            if not any(_same_connection(entry, p) for p in recent):
                self.credentials_service.delete_password(str(entry.get(PROFILE_ID)))
        self._save_lists(remaining, recent)
        return True

    async def remove_recently_used(self, profile: ConnectionProfile) -> None:
        saved, recent = self._load_lists()
        remaining = [p for p in recent if not _same_connection(p, profile)]
        if len(remaining) != len(recent):
            self._save_lists(saved, remaining)
