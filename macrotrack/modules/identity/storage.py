"""
Local identity cache: a single slot holding the anonymous profile id.

Every backend must be safe to use when no storage is available: reads come
back empty and writes are dropped. None of the methods raise.
"""
import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from macrotrack.config import settings

logger = logging.getLogger(__name__)

ANON_PROFILE_KEY = "anon_profile_id"


class IdentityStorage:
    """get/set/remove for the cached anonymous profile id."""

    key: str = ANON_PROFILE_KEY

    def get(self) -> Optional[str]:
        try:
            value = self._read()
        except Exception as e:
            logger.debug(f"Identity storage read failed, treating as empty: {e}")
            return None
        return value or None

    def set(self, value: str) -> None:
        try:
            self._write(value)
        except Exception as e:
            logger.debug(f"Identity storage write dropped: {e}")

    def remove(self) -> None:
        try:
            self._delete()
        except Exception as e:
            logger.debug(f"Identity storage remove dropped: {e}")

    def _read(self) -> Optional[str]:
        raise NotImplementedError

    def _write(self, value: str) -> None:
        raise NotImplementedError

    def _delete(self) -> None:
        raise NotImplementedError


class NullStorage(IdentityStorage):
    """No storage available."""

    def _read(self) -> Optional[str]:
        return None

    def _write(self, value: str) -> None:
        return None

    def _delete(self) -> None:
        return None


class MemoryStorage(IdentityStorage):
    def __init__(self, initial: Optional[str] = None):
        self._data: Dict[str, str] = {}
        if initial:
            self._data[self.key] = initial

    def _read(self) -> Optional[str]:
        return self._data.get(self.key)

    def _write(self, value: str) -> None:
        self._data[self.key] = value

    def _delete(self) -> None:
        self._data.pop(self.key, None)


class FileStorage(IdentityStorage):
    """JSON key/value file; survives process restarts like browser local storage."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(os.path.expanduser(path or settings.anon_storage_path))

    def _load(self) -> dict:
        if not self.path.is_file():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f)
        tmp_path.replace(self.path)

    def _read(self) -> Optional[str]:
        value = self._load().get(self.key)
        return value if isinstance(value, str) else None

    def _write(self, value: str) -> None:
        data = self._load()
        data[self.key] = value
        self._save(data)

    def _delete(self) -> None:
        data = self._load()
        if self.key in data:
            del data[self.key]
            self._save(data)


class CookieStorage(IdentityStorage):
    """
    Request cookie in, Set-Cookie out. Used by the HTTP API so the guest id
    lives in the browser between requests.

    Writes are also reflected locally so reads later in the same request see them.
    """

    def __init__(self, request=None, response=None, cookie_name: str = ANON_PROFILE_KEY,
                 max_age: int = 30 * 24 * 60 * 60, secure: bool = False):
        self.request = request
        self.response = response
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.secure = secure
        self._pending: Optional[str] = None
        self._removed = False

    def _read(self) -> Optional[str]:
        if self._removed:
            return None
        if self._pending:
            return self._pending
        if self.request is None:
            return None
        return self.request.cookies.get(self.cookie_name)

    def _write(self, value: str) -> None:
        self._pending = value
        self._removed = False
        if self.response is not None:
            self.response.set_cookie(
                self.cookie_name,
                value,
                max_age=self.max_age,
                httponly=True,
                samesite="lax",
                secure=self.secure,
            )

    def _delete(self) -> None:
        self._pending = None
        self._removed = True
        if self.response is not None:
            self.response.delete_cookie(self.cookie_name)
