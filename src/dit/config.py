"""Configuration loading for dit.

Supports two tiers:
1. Simple config via .ditrc.toml or .ditrc.json - most users
2. Python config via .ditrc.py - adds hooks
"""

from __future__ import annotations

import importlib.util
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

try:
    import tomllib  # Python 3.11+
except ImportError:  # pragma: no cover
    import tomli as tomllib  # Python <3.11

from .index import INDEX_FILE_NAME

DIT_DIR_NAME = ".dit"

# Hooks the engine knows how to call
HOOK_NAMES = (
    "fetch_title",
    "post_new",
    "post_clock_in",
    "post_clock_out",
    "post_un_clock_in",
    "post_un_clock_out",
)


def default_root() -> Path:
    return Path.home() / DIT_DIR_NAME


@dataclass
class DitConfig:
    """Configuration for a dit storage root."""

    root: Path = field(default_factory=default_root)
    index_file: str = INDEX_FILE_NAME

    # Seconds to wait for the storage lock before giving up
    lock_timeout: float = 10.0

    # Default number of rows in status (0 = unlimited)
    status_limit: int = 0

    # Hooks (populated from Python config)
    hooks_enabled: bool = True
    check_hooks: bool = False  # If True, a failing hook fails the operation
    hooks: dict[str, Callable] = field(default_factory=dict)

    def get_index_path(self) -> Path:
        return self.root / self.index_file

    def get_hook(self, name: str) -> Optional[Callable]:
        """Get a hook by name, None if hooks are disabled or it is unset."""
        if not self.hooks_enabled:
            return None
        return self.hooks.get(name)


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_python_config(path: Path) -> tuple[dict[str, Any], dict[str, Callable]]:
    """Load configuration from Python file.

    Returns:
        Tuple of (config_dict, hooks_dict)

    Convention:
        - CONFIG dict or config dict for static configuration
        - Functions named hook_* become hooks
    """
    spec = importlib.util.spec_from_file_location("dit_config", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load Python config from {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules["dit_config"] = module
    spec.loader.exec_module(module)

    config_dict = {}
    if hasattr(module, "CONFIG"):
        config_dict = module.CONFIG
    elif hasattr(module, "config"):
        config_dict = module.config

    hooks = {}
    for name in dir(module):
        if name.startswith("hook_"):
            hook_name = name[5:]  # Remove "hook_" prefix
            if hook_name not in HOOK_NAMES:
                raise ValueError(f"Unknown hook in {path}: {name}. Known: {list(HOOK_NAMES)}")
            hooks[hook_name] = getattr(module, name)

    return config_dict, hooks


def dict_to_config(data: dict[str, Any], root: Path) -> DitConfig:
    """Convert dictionary to DitConfig."""
    config = DitConfig(root=root)

    if "storage" in data:
        storage = data["storage"]
        if "index_file" in storage:
            config.index_file = storage["index_file"]
        if "lock_timeout" in storage:
            config.lock_timeout = float(storage["lock_timeout"])

    if "status" in data:
        status = data["status"]
        if "limit" in status:
            config.status_limit = int(status["limit"])

    if "hooks" in data:
        hooks = data["hooks"]
        if "enabled" in hooks:
            config.hooks_enabled = bool(hooks["enabled"])
        if "check" in hooks:
            config.check_hooks = bool(hooks["check"])

    return config


def find_config_file(root: Path) -> Optional[Path]:
    """Find configuration file in the storage root.

    Search order:
    1. .ditrc.py (most flexible)
    2. .ditrc.toml
    3. .ditrc.json
    """
    candidates = [
        ".ditrc.py",
        ".ditrc.toml",
        ".ditrc.json",
    ]

    for name in candidates:
        path = root / name
        if path.exists():
            return path

    return None


def load_config(root: Path, config_path: Optional[Path] = None) -> DitConfig:
    """Load configuration for a storage root.

    Args:
        root: Storage root directory
        config_path: Optional explicit path to config file

    Returns:
        DitConfig instance
    """
    if config_path is None:
        config_path = find_config_file(root)

    if config_path is None:
        return DitConfig(root=root)

    suffix = config_path.suffix.lower()

    if suffix == ".py":
        config_dict, hooks = load_python_config(config_path)
        config = dict_to_config(config_dict, root)
        config.hooks = hooks
        return config

    elif suffix == ".toml":
        config_dict = load_toml_config(config_path)
        return dict_to_config(config_dict, root)

    elif suffix == ".json":
        config_dict = load_json_config(config_path)
        return dict_to_config(config_dict, root)

    else:
        raise ValueError(f"Unsupported config file type: {suffix}")
