"""Bridge token and config overrides loaded from a private dotenv file.

Values land in the process environment, so the file may hold the bridge
bearer token (COMBATAGENT_BRIDGE_TOKEN) next to any COMBATAGENT_* override
the config loader picks up.
"""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterator
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BRIDGE_TOKEN_ENV = "COMBATAGENT_BRIDGE_TOKEN"
ENV_FILE_VAR = "COMBATAGENT_ENV_FILE"
DOTENV_NAME = ".env"

# Group and other bits must be clear; the token grants keyboard access.
_SHARED_MODE_BITS = stat.S_IRWXG | stat.S_IRWXO


def _package_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _default_candidates(base_dir: Path) -> Iterator[Path]:
    yield base_dir / DOTENV_NAME
    yield _package_root() / DOTENV_NAME


def _explicit_env_file(env_file: str | Path | None, base_dir: Path) -> Path | None:
    """Path named by the caller or by COMBATAGENT_ENV_FILE, anchored at base_dir."""
    named = env_file or os.environ.get(ENV_FILE_VAR)
    if not named:
        return None
    path = Path(named).expanduser()
    return (path if path.is_absolute() else base_dir / path).resolve()


def _check_private(path: Path) -> None:
    """Refuse a token file other local users could read or swap out."""
    if os.name == "nt":
        return

    if path.is_symlink():
        raise PermissionError(f"Bridge token file must not be a symlink: {path}")

    info = path.stat()
    getuid = getattr(os, "getuid", None)
    if getuid is not None and info.st_uid != getuid():
        raise PermissionError(f"Bridge token file is owned by another user: {path}")

    if info.st_mode & _SHARED_MODE_BITS:
        raise PermissionError(
            f"Bridge token file {path} is readable by others (mode "
            f"{stat.filemode(info.st_mode)}); run chmod 600 on it."
        )


def load_environment_secrets(
    env_file: str | Path | None = None,
    *,
    override: bool = False,
    strict: bool = True,
    start_dir: Path | None = None,
) -> Path | None:
    """Load the dotenv file carrying the bridge token into the environment.

    An explicit ``env_file`` (or COMBATAGENT_ENV_FILE) wins; otherwise the
    first existing ``.env`` in ``start_dir`` or the package root is used.
    A named file that does not exist raises only when ``strict`` is set.

    Returns:
        The file that was loaded, or None when there was nothing to load.
    """
    base_dir = (start_dir or Path.cwd()).resolve()
    path = _explicit_env_file(env_file, base_dir)

    if path is None:
        path = next((p.resolve() for p in _default_candidates(base_dir) if p.exists()), None)
        if path is None:
            return None
    elif not path.exists():
        if strict:
            raise FileNotFoundError(f"Bridge token file not found: {path}")
        return None

    if not path.is_file():
        raise ValueError(f"Bridge token path is not a regular file: {path}")

    _check_private(path)
    load_dotenv(dotenv_path=path, override=override)
    logger.debug("Loaded environment from %s", path)
    return path


def get_bridge_token() -> str | None:
    """Bearer token for the actuation bridge, if one is configured."""
    token = os.environ.get(BRIDGE_TOKEN_ENV, "").strip()
    return token or None
