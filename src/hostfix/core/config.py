"""Configuration management for hostfix (hostfix.toml parsing + defaults)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]


STATE_DIR_ENV = "HOSTFIX_STATE_DIR"
CONFIG_FILENAME = "hostfix.toml"


@dataclass
class ConfigCopySpec:
    check_id: str
    source: Path
    dest: Path


@dataclass
class SymlinkSpec:
    check_id: str
    target: Path
    link: Path


@dataclass
class GeneralConfig:
    home: Path = field(default_factory=Path.home)
    shell_rc: str = ".zshrc"


@dataclass
class FixConfig:
    path_dirs: list[str] = field(
        default_factory=lambda: [
            "$HOME/.local/bin",
            "$HOME/.cargo/bin",
            "$HOME/.bun/bin",
        ]
    )
    shell_init: str = ".hostfix/zsh/hostfix.zshrc"
    diagnostic_timeout: float = 60.0
    prompt: bool = False
    config_copies: list[ConfigCopySpec] = field(default_factory=list)
    symlinks: list[SymlinkSpec] = field(default_factory=list)


@dataclass
class UndoConfig:
    command_timeout: float = 30.0


@dataclass
class HostfixConfig:
    """Complete hostfix configuration."""

    general: GeneralConfig = field(default_factory=GeneralConfig)
    fix: FixConfig = field(default_factory=FixConfig)
    undo: UndoConfig = field(default_factory=UndoConfig)

    @property
    def shell_rc_path(self) -> Path:
        return _under_home(self.general.shell_rc, self.general.home)

    @property
    def shell_init_path(self) -> Path:
        return _under_home(self.fix.shell_init, self.general.home)


@dataclass
class StatePaths:
    """Locations of every file the engine keeps in its state directory."""

    state_dir: Path

    @property
    def changes_file(self) -> Path:
        return self.state_dir / "changes.jsonl"

    @property
    def undos_file(self) -> Path:
        return self.state_dir / "undos.jsonl"

    @property
    def backups_dir(self) -> Path:
        return self.state_dir / "backups"

    @property
    def lock_file(self) -> Path:
        return self.state_dir / ".lock"

    @property
    def session_file(self) -> Path:
        return self.state_dir / ".session"

    @property
    def integrity_file(self) -> Path:
        return self.state_dir / ".integrity"


def get_state_dir(state_dir: Path | None = None) -> Path:
    """Get or create the state directory.

    Resolution order: explicit argument, ``$HOSTFIX_STATE_DIR``,
    ``~/.hostfix/state``.
    """
    if state_dir is None:
        env = os.environ.get(STATE_DIR_ENV)
        state_dir = Path(env) if env else Path.home() / ".hostfix" / "state"
    state_dir = state_dir.expanduser()
    state_dir.mkdir(parents=True, exist_ok=True)
    (state_dir / "backups").mkdir(exist_ok=True)
    return state_dir


def load_config(state_dir: Path | None = None) -> HostfixConfig:
    """Load configuration from hostfix.toml if present, otherwise return defaults."""
    config = HostfixConfig()

    state_dir = get_state_dir(state_dir)
    config_file = state_dir / CONFIG_FILENAME
    if not config_file.exists():
        return config

    with open(config_file, "rb") as f:
        data = tomllib.load(f)

    if "general" in data:
        gen = data["general"]
        if "home" in gen:
            config.general.home = Path(gen["home"]).expanduser()
        if "shell_rc" in gen:
            config.general.shell_rc = gen["shell_rc"]

    home = config.general.home

    if "fix" in data:
        fx = data["fix"]
        for attr in ("path_dirs", "shell_init", "diagnostic_timeout", "prompt"):
            if attr in fx:
                setattr(config.fix, attr, fx[attr])
        for entry in fx.get("config_copy", []):
            config.fix.config_copies.append(ConfigCopySpec(
                check_id=entry["check_id"],
                source=_under_home(entry["source"], home),
                dest=_under_home(entry["dest"], home),
            ))
        for entry in fx.get("symlink", []):
            config.fix.symlinks.append(SymlinkSpec(
                check_id=entry["check_id"],
                target=_under_home(entry["target"], home),
                link=_under_home(entry["link"], home),
            ))

    if "undo" in data:
        u = data["undo"]
        if "command_timeout" in u:
            config.undo.command_timeout = u["command_timeout"]

    return config


def _under_home(value: str, home: Path) -> Path:
    """Resolve ``~``-prefixed and relative paths against the configured home."""
    if value.startswith("~/"):
        return home / value[2:]
    path = Path(value)
    if path.is_absolute():
        return path
    return home / path
