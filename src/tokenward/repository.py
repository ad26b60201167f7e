# Authorization Repository — durable storage of authorization records.
# Created: 2026-10-19

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import stat
import urllib.parse
from pathlib import Path
from typing import Protocol, runtime_checkable

from tokenward.config import get_config_dir
from tokenward.models import Authorization

logger = logging.getLogger(__name__)

__all__ = [
    "AuthorizationRepositoryProtocol",
    "InMemoryAuthorizationRepository",
    "FileAuthorizationRepository",
]


@runtime_checkable
class AuthorizationRepositoryProtocol(Protocol):
    """Passive store of Authorization records keyed by authorization id."""

    async def find(self, authorization_id: str) -> Authorization | None:
        """Get a record by id."""
        ...

    async def save(self, authorization: Authorization) -> None:
        """Insert or update a record."""
        ...

    async def delete(self, authorization_id: str) -> bool:
        """Delete a record. Returns True if deleted."""
        ...

    async def replace(self, authorization: Authorization) -> Authorization | None:
        """Delete any record under the same id and insert *authorization*.

        Returns the record that was replaced, if any.
        """
        ...


class InMemoryAuthorizationRepository:
    """Dict-backed repository. Records are copied in and out."""

    def __init__(self):
        self._records: dict[str, Authorization] = {}
        self._lock = asyncio.Lock()

    async def find(self, authorization_id: str) -> Authorization | None:
        record = self._records.get(authorization_id)
        return copy.deepcopy(record) if record is not None else None

    async def save(self, authorization: Authorization) -> None:
        async with self._lock:
            self._records[authorization.authorization_id] = copy.deepcopy(authorization)

    async def delete(self, authorization_id: str) -> bool:
        async with self._lock:
            return self._records.pop(authorization_id, None) is not None

    async def replace(self, authorization: Authorization) -> Authorization | None:
        async with self._lock:
            old = self._records.pop(authorization.authorization_id, None)
            self._records[authorization.authorization_id] = copy.deepcopy(authorization)
            return old

    def list_ids(self) -> list[str]:
        return list(self._records)


def _default_records_dir() -> Path:
    d = get_config_dir() / "authorizations"
    d.mkdir(exist_ok=True)
    return d


class FileAuthorizationRepository:
    """File-based repository at ``<config_dir>/authorizations/{id}.json``.

    Files are chmod 0600 (owner-only read/write). Writes go through a
    temporary file and ``os.replace`` so a reader never sees a partial record.
    """

    def __init__(self, directory: Path | None = None):
        self._directory = directory
        self._lock = asyncio.Lock()

    def _get_dir(self) -> Path:
        if self._directory is not None:
            self._directory.mkdir(parents=True, exist_ok=True)
            return self._directory
        return _default_records_dir()

    def _path(self, authorization_id: str) -> Path:
        return self._get_dir() / f"{urllib.parse.quote(authorization_id, safe='')}.json"

    def _write(self, authorization: Authorization) -> None:
        path = self._path(authorization.authorization_id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(authorization.to_dict(), indent=2))
        os.chmod(tmp, stat.S_IRUSR | stat.S_IWUSR)
        os.replace(tmp, path)

    async def find(self, authorization_id: str) -> Authorization | None:
        path = self._path(authorization_id)
        if not path.exists():
            return None
        try:
            return Authorization.from_dict(json.loads(path.read_text()))
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Failed to load authorization %s: %s", authorization_id, e)
            return None

    async def save(self, authorization: Authorization) -> None:
        async with self._lock:
            self._write(authorization)
        logger.debug("Saved authorization %s", authorization.authorization_id)

    async def delete(self, authorization_id: str) -> bool:
        async with self._lock:
            path = self._path(authorization_id)
            if path.exists():
                path.unlink()
                logger.info("Deleted authorization %s", authorization_id)
                return True
            return False

    async def replace(self, authorization: Authorization) -> Authorization | None:
        async with self._lock:
            old = await self.find(authorization.authorization_id)
            # os.replace swaps the file in one step; the old record is never merged
            self._write(authorization)
        return old

    def list_ids(self) -> list[str]:
        return [urllib.parse.unquote(f.stem) for f in self._get_dir().glob("*.json")]
