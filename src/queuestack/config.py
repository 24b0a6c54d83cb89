"""Configuration loading from TOML files and environment variables.

Priority: environment variables > project ``.queuestack`` > global
``~/.config/queuestack/config`` > defaults.  The result is a plain
:class:`Config` value that is passed explicitly to the storage engine.
"""

from __future__ import annotations

import logging
import os
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from queuestack.errors import IoFailureError, NoAuthorError, NotFoundError, QueueStackError
from queuestack.ids import DEFAULT_PATTERN, parse_pattern
from queuestack.layout import StackLayout
from queuestack.movers import Mover

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILE = ".queuestack"
_GLOBAL_CONFIG_DIR = "queuestack"
_GLOBAL_CONFIG_FILE = "config"
_KEYS = (
    "user_name",
    "use_git_user",
    "id_pattern",
    "stack_dir",
    "archive_dir",
    "template_dir",
    "log_level",
)


@dataclass
class Config:
    """Resolved configuration for one project."""

    project_root: Path
    user_name: str | None = None
    use_git_user: bool = True
    id_pattern: str = DEFAULT_PATTERN
    stack_dir: str = "queuestack"
    archive_dir: str = "archive"
    template_dir: str = ".templates"
    log_level: str = "WARNING"

    @property
    def stack_path(self) -> Path:
        return self.project_root / self.stack_dir

    @property
    def archive_path(self) -> Path:
        return self.stack_path / self.archive_dir

    @property
    def template_path(self) -> Path:
        return self.stack_path / self.template_dir

    @property
    def layout(self) -> StackLayout:
        return StackLayout(self.stack_path, self.archive_dir, self.template_dir)

    def relative_path(self, path: Path) -> Path:
        """*path* relative to the project root when inside it, unchanged otherwise."""
        try:
            return Path(path).relative_to(self.project_root)
        except ValueError:
            return Path(path)


def global_config_path() -> Path:
    base = os.getenv("XDG_CONFIG_HOME")
    config_home = Path(base) if base else Path.home() / ".config"
    return config_home / _GLOBAL_CONFIG_DIR / _GLOBAL_CONFIG_FILE


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk upward from *start* (default: cwd) to the directory holding ``.queuestack``."""
    current = Path(start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / PROJECT_CONFIG_FILE).is_file():
            return candidate
    return None


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise IoFailureError(path, exc, "read") from exc
    except tomllib.TOMLDecodeError as exc:
        raise QueueStackError(f"Invalid config file {path}: {exc}", {"path": path}) from exc


def load_config(
    project_root: Path | None = None,
    global_path: Path | None = None,
) -> Config:
    """Load and merge configuration for the project at *project_root*.

    When *project_root* is omitted it is discovered with
    :func:`find_project_root`.  The id pattern is validated here so a bad
    pattern fails before anything is created.
    """
    root = Path(project_root) if project_root else find_project_root()
    if root is None:
        raise NotFoundError(PROJECT_CONFIG_FILE, "project config")

    data: dict[str, Any] = {}
    for source in (global_path or global_config_path(), root / PROJECT_CONFIG_FILE):
        file_data = _read_toml(source)
        data.update({k: v for k, v in file_data.items() if k in _KEYS})
        if file_data:
            logger.debug("loaded config from %s", source)

    config = Config(
        project_root=root,
        user_name=os.getenv("QUEUESTACK_USER_NAME", data.get("user_name")),
        use_git_user=bool(data.get("use_git_user", True)),
        id_pattern=os.getenv("QUEUESTACK_ID_PATTERN", data.get("id_pattern", DEFAULT_PATTERN)),
        stack_dir=data.get("stack_dir", "queuestack"),
        archive_dir=data.get("archive_dir", "archive"),
        template_dir=data.get("template_dir", ".templates"),
        log_level=os.getenv("QUEUESTACK_LOG_LEVEL", data.get("log_level", "WARNING")),
    )
    parse_pattern(config.id_pattern)
    if config.archive_dir == config.template_dir:
        raise QueueStackError("archive_dir and template_dir must differ")
    return config


def init_project(root: Path, **overrides: str) -> Config:
    """Create ``.queuestack`` and the stack directories under *root*.

    *overrides* are written to the project file (e.g. ``stack_dir="issues"``).
    An existing project file is left untouched.
    """
    root = Path(root)
    config_file = root / PROJECT_CONFIG_FILE
    try:
        if not config_file.exists():
            lines = [f'{key} = "{value}"' for key, value in overrides.items() if key in _KEYS]
            config_file.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
        config = load_config(root)
        config.stack_path.mkdir(parents=True, exist_ok=True)
        config.archive_path.mkdir(exist_ok=True)
        config.template_path.mkdir(exist_ok=True)
    except OSError as exc:
        raise IoFailureError(root, exc, "initialize project in") from exc
    return config


def resolve_author(config: Config, mover: Mover) -> str:
    """``user_name`` from config, else the VCS user name, else :class:`NoAuthorError`."""
    if config.user_name and config.user_name.strip():
        return config.user_name.strip()
    if config.use_git_user:
        name = mover.current_user_name()
        if name:
            return name
    raise NoAuthorError()


def configure_logging(level: str = "WARNING") -> None:
    """Attach a stderr handler to the ``queuestack`` logger (idempotent)."""
    pkg_logger = logging.getLogger("queuestack")
    pkg_logger.setLevel(level.upper())
    if not any(isinstance(h, logging.StreamHandler) for h in pkg_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")
        )
        pkg_logger.addHandler(handler)
