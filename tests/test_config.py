"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from dit.config import (
    DitConfig,
    default_root,
    dict_to_config,
    find_config_file,
    load_config,
    load_json_config,
    load_python_config,
    load_toml_config,
)


class TestFindConfigFile:
    """Tests for find_config_file."""

    def test_finds_python_config(self, temp_root):
        """Python config is found first."""
        (temp_root / ".ditrc.py").write_text("CONFIG = {}")
        (temp_root / ".ditrc.toml").write_text("")

        assert find_config_file(temp_root).name == ".ditrc.py"

    def test_finds_toml_config(self, temp_root):
        (temp_root / ".ditrc.toml").write_text("")
        (temp_root / ".ditrc.json").write_text("{}")

        assert find_config_file(temp_root).name == ".ditrc.toml"

    def test_finds_json_config(self, temp_root):
        (temp_root / ".ditrc.json").write_text("{}")
        assert find_config_file(temp_root).name == ".ditrc.json"

    def test_returns_none_if_no_config(self, temp_root):
        assert find_config_file(temp_root) is None


class TestDictToConfig:
    """Tests for dict_to_config."""

    def test_defaults(self, temp_root):
        config = dict_to_config({}, temp_root)

        assert config.root == temp_root
        assert config.index_file == ".index"
        assert config.lock_timeout == 10.0
        assert config.status_limit == 0
        assert config.hooks_enabled is True
        assert config.check_hooks is False

    def test_all_sections(self, temp_root):
        config = dict_to_config({
            "storage": {"index_file": "status.idx", "lock_timeout": 2},
            "status": {"limit": 5},
            "hooks": {"enabled": False, "check": True},
        }, temp_root)

        assert config.index_file == "status.idx"
        assert config.lock_timeout == 2.0
        assert config.status_limit == 5
        assert config.hooks_enabled is False
        assert config.check_hooks is True
        assert config.get_index_path() == temp_root / "status.idx"


class TestLoaders:
    """Tests for the per-format loaders."""

    def test_load_toml_config(self, temp_root):
        path = temp_root / ".ditrc.toml"
        path.write_text('[status]\nlimit = 3\n')
        assert load_toml_config(path) == {"status": {"limit": 3}}

    def test_load_json_config(self, temp_root):
        path = temp_root / ".ditrc.json"
        path.write_text(json.dumps({"storage": {"lock_timeout": 1.5}}))
        assert load_json_config(path) == {"storage": {"lock_timeout": 1.5}}

    def test_load_python_config(self, temp_root):
        path = temp_root / ".ditrc.py"
        path.write_text(
            'CONFIG = {"status": {"limit": 7}}\n'
            "\n"
            "def hook_fetch_title(task_id):\n"
            '    return task_id.upper()\n'
        )

        config_dict, hooks = load_python_config(path)

        assert config_dict == {"status": {"limit": 7}}
        assert set(hooks) == {"fetch_title"}
        assert hooks["fetch_title"]("foo") == "FOO"

    def test_lowercase_config_name(self, temp_root):
        path = temp_root / ".ditrc.py"
        path.write_text('config = {"status": {"limit": 2}}\n')

        config_dict, hooks = load_python_config(path)
        assert config_dict == {"status": {"limit": 2}}
        assert hooks == {}

    def test_unknown_hook_rejected(self, temp_root):
        path = temp_root / ".ditrc.py"
        path.write_text("def hook_pre_everything(task):\n    pass\n")

        with pytest.raises(ValueError, match="Unknown hook"):
            load_python_config(path)


class TestLoadConfig:
    """Tests for load_config."""

    def test_no_config_file(self, temp_root):
        config = load_config(temp_root)
        assert config == DitConfig(root=temp_root)

    def test_auto_detects_toml(self, temp_root):
        (temp_root / ".ditrc.toml").write_text('[hooks]\ncheck = true\n')
        assert load_config(temp_root).check_hooks is True

    def test_python_config_carries_hooks(self, temp_root):
        (temp_root / ".ditrc.py").write_text(
            "def hook_post_new(task):\n    pass\n"
        )
        config = load_config(temp_root)
        assert config.get_hook("post_new") is not None

    def test_explicit_path(self, temp_root, tmp_path):
        path = tmp_path / "elsewhere.json"
        path.write_text('{"status": {"limit": 4}}')

        config = load_config(temp_root, path)
        assert config.root == temp_root
        assert config.status_limit == 4

    def test_unsupported_suffix(self, temp_root):
        path = temp_root / "dit.yaml"
        path.write_text("status: {}")
        with pytest.raises(ValueError, match="Unsupported config file type"):
            load_config(temp_root, path)


class TestDitConfig:
    """Tests for DitConfig helpers."""

    def test_default_root(self):
        assert default_root() == Path.home() / ".dit"

    def test_get_hook_disabled(self, temp_root):
        config = DitConfig(root=temp_root, hooks_enabled=False, hooks={"post_new": print})
        assert config.get_hook("post_new") is None

    def test_get_hook_unset(self, temp_root):
        assert DitConfig(root=temp_root).get_hook("post_new") is None


class TestExampleConfig:
    """The shipped example config loads cleanly."""

    def test_example_ditrc(self, temp_root):
        path = Path(__file__).parent.parent / "examples" / "ditrc.py"
        config = load_config(temp_root, path)

        assert config.status_limit == 10
        assert set(config.hooks) == {"fetch_title", "post_clock_in", "post_clock_out"}
        assert config.hooks["fetch_title"]("foo/bar") == "foo/bar"
