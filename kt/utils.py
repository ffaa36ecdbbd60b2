"""Paths and environment configuration for kt."""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_HOST = "http://127.0.0.1:11434"
DEFAULT_EMBED_MODEL = "nomic-embed-text"
DEFAULT_EMBED_DIMENSION = 768
DEFAULT_SUMMARY_MODEL = "claude-sonnet-4-5-20250929"

VAULT_DIR_NAME = ".kt"
DB_FILENAME = "kt.db"


def get_kt_home() -> Path:
    """Directory holding the database and logs.

    KT_DATA_DIR wins; otherwise ~/.kt. Falls back to a temp directory when
    the home directory is not writable (sandboxed/container/CI).
    """
    env_dir = os.environ.get("KT_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()

    home = Path.home() / ".kt"
    try:
        home.mkdir(parents=True, exist_ok=True)
        return home
    except OSError as e:
        fallback = Path(tempfile.gettempdir()) / ".kt"
        logger.warning(f"Cannot write to {home} ({e}), falling back to {fallback}")
        return fallback


def default_db_path() -> Path:
    """KT_DB_PATH, or kt.db inside the kt home directory."""
    env_path = os.environ.get("KT_DB_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return get_kt_home() / DB_FILENAME


def find_vault_root(start: Optional[Path] = None) -> Optional[Path]:
    """Nearest directory at or above ``start`` holding a ``.kt/kt.db`` vault.

    The global kt home is not a vault, so a plain ~/.kt/kt.db never matches.
    """
    directory = Path(start or Path.cwd()).resolve()
    global_home = get_kt_home().resolve()
    for candidate in (directory, *directory.parents):
        vault_dir = candidate / VAULT_DIR_NAME
        if vault_dir.resolve() == global_home:
            continue
        if (vault_dir / DB_FILENAME).is_file():
            return candidate
    return None


def resolve_db_path(cwd: Optional[Path] = None) -> Path:
    """Database for commands run from ``cwd``.

    KT_DB_PATH overrides everything, then the nearest vault walking up from
    cwd, then the global database.
    """
    if os.environ.get("KT_DB_PATH"):
        return default_db_path()
    vault_root = find_vault_root(cwd)
    if vault_root is not None:
        return vault_root / VAULT_DIR_NAME / DB_FILENAME
    return default_db_path()


@dataclass
class KtConfig:
    """Runtime settings resolved from the environment."""

    db_path: Path
    ollama_host: str = DEFAULT_OLLAMA_HOST
    embed_model: str = DEFAULT_EMBED_MODEL
    embed_dimension: int = DEFAULT_EMBED_DIMENSION
    summary_model: str = DEFAULT_SUMMARY_MODEL
    log_level: str = "INFO"
    api_key: Optional[str] = None
    vault_root: Optional[Path] = None

    @classmethod
    def from_env(cls, db_path: Optional[Path] = None, cwd: Optional[Path] = None) -> "KtConfig":
        """Settings from KT_* variables. An explicit db_path bypasses vault lookup."""
        vault_root = None
        if db_path is None:
            db_path = resolve_db_path(cwd)
            if not os.environ.get("KT_DB_PATH"):
                vault_root = find_vault_root(cwd)

        dimension = os.environ.get("KT_EMBED_DIMENSION")
        try:
            embed_dimension = int(dimension) if dimension else DEFAULT_EMBED_DIMENSION
        except ValueError:
            logger.warning(f"Ignoring invalid KT_EMBED_DIMENSION={dimension!r}")
            embed_dimension = DEFAULT_EMBED_DIMENSION

        return cls(
            db_path=db_path,
            ollama_host=os.environ.get("KT_OLLAMA_HOST", DEFAULT_OLLAMA_HOST),
            embed_model=os.environ.get("KT_EMBED_MODEL", DEFAULT_EMBED_MODEL),
            embed_dimension=embed_dimension,
            summary_model=os.environ.get("KT_SUMMARY_MODEL", DEFAULT_SUMMARY_MODEL),
            log_level=os.environ.get("KT_LOG_LEVEL", "INFO"),
            api_key=os.environ.get("CLAUDE_API_KEY") or os.environ.get("ANTHROPIC_API_KEY"),
            vault_root=vault_root,
        )
