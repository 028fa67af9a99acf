"""Single-slot result handoff between two independent processes.

The bridge owns two keys in a shared namespace: the encoded payload and a
"pending" flag. Each key is written atomically on its own, but the pair is
not: a reader running concurrently with ``save`` can observe the flag and
payload from different writes. The slot is last-write-wins and is not a
queue; an unread payload is overwritten by the next ``save``.
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

from .errors import EncodingFailure, StorageUnavailable
from .operations.codec import decode_response, encode_response
from .operations.types import Response

DEFAULT_NAMESPACE = "group.docrelay.shared"
RESULT_KEY = "latest_result"
HAS_RESULT_FLAG_KEY = "has_shared_result"

_TRUE = "true"
_FALSE = "false"


class KeyValueStore(Protocol):
    """Durable string store addressed by key; raises ``StorageUnavailable``."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryKeyValueStore:
    """In-process store, mainly for tests and single-process use."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        self._require_available()
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._require_available()
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._require_available()
        self._values.pop(key, None)

    def _require_available(self) -> None:
        if not self.available:
            raise StorageUnavailable("In-memory store is marked unavailable")


class FileKeyValueStore:
    """One file per key inside a namespace directory shared by both processes."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()

    @classmethod
    def for_namespace(cls, base_dir: Path, namespace: str = DEFAULT_NAMESPACE) -> "FileKeyValueStore":
        return cls(Path(base_dir).expanduser() / namespace)

    def provision(self) -> None:
        """Create the namespace directory; until then the store is unreachable."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot create shared namespace {self.root}: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageUnavailable(f"Cannot read {path}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", dir=str(self.root))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageUnavailable(f"Cannot write {path}: {exc}") from exc

    def remove(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot remove {path}: {exc}") from exc

    def _path_for(self, key: str) -> Path:
        if not self.root.is_dir():
            raise StorageUnavailable(f"Shared namespace is not provisioned: {self.root}")
        return self.root / key


class ResultBridge:
    """Last-write-wins slot holding at most one unread response."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        result_key: str = RESULT_KEY,
        flag_key: str = HAS_RESULT_FLAG_KEY,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self.result_key = result_key
        self.flag_key = flag_key
        self._logger = logger or logging.getLogger(__name__)

    def save(self, response: Response) -> bool:
        """Overwrite the slot with ``response``; False if it cannot be stored."""
        try:
            payload = encode_response(response)
        except EncodingFailure as exc:
            self._logger.warning("Cannot encode result for the bridge: %s", exc)
            return False

        try:
            self._store.set(self.result_key, payload)
            self._store.set(self.flag_key, _TRUE)
        except StorageUnavailable as exc:
            self._logger.warning("Shared result store unavailable: %s", exc)
            return False

        self._logger.debug("bridge-save", extra={"bridge": {"operation": response.operation.value}})
        return True

    def load(self, auto_consume: bool = True) -> Optional[Response]:
        """Return the pending response, if any.

        A payload that cannot be decoded is marked read so it cannot wedge the
        slot; the caller just sees no result.
        """
        try:
            if not self._pending():
                return None
            payload = self._store.get(self.result_key)
        except StorageUnavailable as exc:
            self._logger.warning("Shared result store unavailable: %s", exc)
            return None
        if payload is None:
            return None

        try:
            response = decode_response(payload)
        except EncodingFailure as exc:
            self._logger.warning("Discarding undecodable shared result: %s", exc)
            self._mark_as_read_quietly()
            return None

        if auto_consume:
            self._mark_as_read_quietly()
        self._logger.debug("bridge-load", extra={"bridge": {"operation": response.operation.value}})
        return response

    def peek_has_result(self) -> bool:
        try:
            return self._pending()
        except StorageUnavailable:
            return False

    def mark_as_read(self) -> None:
        self._store.set(self.flag_key, _FALSE)

    def clear(self) -> bool:
        """Drop the payload and the pending flag; False if the store is unreachable."""
        try:
            self._store.remove(self.result_key)
            self._store.set(self.flag_key, _FALSE)
        except StorageUnavailable as exc:
            self._logger.warning("Shared result store unavailable: %s", exc)
            return False
        return True

    def _pending(self) -> bool:
        return self._store.get(self.flag_key) == _TRUE

    def _mark_as_read_quietly(self) -> None:
        try:
            self.mark_as_read()
        except StorageUnavailable as exc:
            self._logger.warning("Cannot mark shared result as read: %s", exc)
