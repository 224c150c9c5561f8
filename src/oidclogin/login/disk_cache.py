"""Token cache stored in the user's home directory."""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import structlog
from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from ..config import OIDCConfig
from ..constants import DEFAULT_TOKEN_CACHE_PATH
from ..exceptions import CacheError
from ..models.token import Token
from .cache import TokenCache

__all__ = ["DiskTokenCache"]


class DiskTokenCache(TokenCache):
    """Store tokens as JSON files on local disk.

    Each combination of invoking program and client ID gets its own file,
    so several tools can share the cache directory.  Files are never
    cleaned up, including when a tool switches to a different client ID.

    Parameters
    ----------
    config
        Configuration of the client whose tokens are stored.
    path
        Directory holding the cache files.  Environment variables in the
        path are expanded.
    tool_name
        Name of the invoking program used in the file name.  Defaults to
        the base name of ``sys.argv[0]``.
    logger
        Logger for any log messages.
    """

    def __init__(
        self,
        config: OIDCConfig,
        path: str = DEFAULT_TOKEN_CACHE_PATH,
        *,
        tool_name: str | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._store_path = Path(os.path.expandvars(path))
        self._tool_name = tool_name or Path(sys.argv[0]).name
        self._logger = logger or structlog.get_logger("oidclogin")

    @property
    def config(self) -> OIDCConfig:
        return self._config

    @property
    def token_path(self) -> Path:
        """Path to the file holding the token."""
        name = f"token_{self._tool_name}_{self._config.client_id}"
        return self._store_path / name

    async def get_token(self) -> Token | None:
        return await asyncio.to_thread(self._read)

    async def save_token(self, token: Token) -> None:
        await asyncio.to_thread(self._write, token)

    def _create_store_dir(self) -> None:
        try:
            self._store_path.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Failed to create token cache directory: {e!s}"
            raise CacheError(msg) from e

    def _read(self) -> Token | None:
        self._create_store_dir()
        path = self.token_path
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            self._logger.debug("No cached token", path=str(path))
            return None
        except OSError as e:
            raise CacheError(f"Failed to read cached token: {e!s}") from e
        try:
            return Token.model_validate_json(data)
        except ValidationError as e:
            msg = f"Failed to parse cached token in {path}: {e!s}"
            raise CacheError(msg) from e

    def _write(self, token: Token) -> None:
        self._create_store_dir()
        path = self.token_path
        flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
        try:
            fd = os.open(path, flags, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(token.model_dump_json())
        except OSError as e:
            raise CacheError(f"Failed to cache token: {e!s}") from e
        self._logger.debug("Saved token to cache", path=str(path))
