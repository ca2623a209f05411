"""Tests for config loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from hostfix.core.config import (
    STATE_DIR_ENV,
    HostfixConfig,
    StatePaths,
    get_state_dir,
    load_config,
)


class TestGetStateDir:
    def test_explicit_argument(self, tmp_path: Path):
        state = get_state_dir(tmp_path / "state")
        assert state == tmp_path / "state"
        assert (state / "backups").is_dir()

    def test_environment_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv(STATE_DIR_ENV, str(tmp_path / "from-env"))
        assert get_state_dir() == tmp_path / "from-env"
        assert (tmp_path / "from-env").is_dir()

    def test_argument_beats_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv(STATE_DIR_ENV, str(tmp_path / "from-env"))
        assert get_state_dir(tmp_path / "explicit") == tmp_path / "explicit"

    def test_state_paths(self, tmp_path: Path):
        paths = StatePaths(tmp_path)
        assert paths.changes_file == tmp_path / "changes.jsonl"
        assert paths.undos_file == tmp_path / "undos.jsonl"
        assert paths.lock_file.name == ".lock"
        assert paths.integrity_file.name == ".integrity"


class TestLoadConfig:
    def test_defaults_when_no_config_file(self, tmp_path: Path):
        """Without a hostfix.toml, load_config should return defaults."""
        config = load_config(tmp_path)

        assert isinstance(config, HostfixConfig)
        assert config.general.shell_rc == ".zshrc"
        assert "$HOME/.local/bin" in config.fix.path_dirs
        assert config.fix.diagnostic_timeout == 60.0
        assert config.fix.prompt is False
        assert config.fix.config_copies == []
        assert config.undo.command_timeout == 30.0

    def test_loads_sections(self, tmp_path: Path):
        home = tmp_path / "home"
        toml_content = f"""\
[general]
home = "{home}"
shell_rc = ".bashrc"

[fix]
path_dirs = ["/opt/tools/bin"]
shell_init = "~/.config/hostfix/init.sh"
diagnostic_timeout = 5
prompt = true

[[fix.config_copy]]
check_id = "config.ghostty"
source = "/usr/share/hostfix/ghostty.conf"
dest = "~/.config/ghostty/config"

[[fix.symlink]]
check_id = "symlink.tool"
target = "/opt/tools/bin/tool"
link = ".local/bin/tool"

[undo]
command_timeout = 12.5
"""
        (tmp_path / "hostfix.toml").write_text(toml_content)
        config = load_config(tmp_path)

        assert config.general.home == home
        assert config.shell_rc_path == home / ".bashrc"
        assert config.shell_init_path == home / ".config" / "hostfix" / "init.sh"
        assert config.fix.path_dirs == ["/opt/tools/bin"]
        assert config.fix.diagnostic_timeout == 5
        assert config.fix.prompt is True
        assert config.undo.command_timeout == 12.5

        [copy] = config.fix.config_copies
        assert copy.check_id == "config.ghostty"
        assert copy.source == Path("/usr/share/hostfix/ghostty.conf")
        assert copy.dest == home / ".config" / "ghostty" / "config"

        [link] = config.fix.symlinks
        assert link.target == Path("/opt/tools/bin/tool")
        assert link.link == home / ".local" / "bin" / "tool"

    def test_partial_config_keeps_defaults(self, tmp_path: Path):
        (tmp_path / "hostfix.toml").write_text("[undo]\ncommand_timeout = 3\n")
        config = load_config(tmp_path)
        assert config.undo.command_timeout == 3
        assert config.general.shell_rc == ".zshrc"
