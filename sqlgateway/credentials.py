import threading
from typing import Dict, Iterable, Optional

from sqlgateway.errors import NoActiveCredential
from sqlgateway.models import CredentialInfo, CredentialSet, DatabaseInfo


class CredentialStore:
    """Single-slot store holding the one active credential set."""

    def __init__(self, credential: Optional[CredentialSet] = None):
        self._active = credential
        self._lock = threading.Lock()

    def set_active(self, credential: CredentialSet) -> None:
        with self._lock:
            self._active = credential

    def get_active(self) -> Optional[CredentialSet]:
        with self._lock:
            return self._active

    def require_active(self) -> CredentialSet:
        credential = self.get_active()
        if credential is None:
            raise NoActiveCredential()
        return credential

    def clear(self) -> bool:
        with self._lock:
            had_credential = self._active is not None
            self._active = None
        return had_credential

    def describe_active(self) -> Optional[CredentialInfo]:
        """Safe projection of the active credential, without the token."""
        credential = self.get_active()
        if credential is None:
            return None
        return CredentialInfo(name=credential.name, account_id=credential.account_id)


class DatabaseRegistry:
    """Mirror of database id -> metadata discovered through the remote service."""

    def __init__(self):
        self._databases: Dict[str, DatabaseInfo] = {}
        self._lock = threading.Lock()

    def mirror(self, databases: Iterable[DatabaseInfo]) -> None:
        with self._lock:
            for database in databases:
                self._databases[database.uuid] = database

    def get(self, database_id: str) -> Optional[DatabaseInfo]:
        with self._lock:
            return self._databases.get(database_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._databases)
