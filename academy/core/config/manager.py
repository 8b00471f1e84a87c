"""
ConfigManager: YAML-backed gamification configuration for Academy.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable gamification values
  (XP curve, lesson XP table, badge defaults, leaderboard windows).
- Back configuration with YAML files from the `config/` directory.
- Allow tests and embedding applications to overlay explicit overrides.

Responsibilities
----------------
- Load and deep-merge every YAML file under a config directory.
- Serve reads from an in-memory dictionary with dot-notation keys.
- Apply in-memory overrides on top of YAML defaults.

Key Design Decisions
--------------------
- YAML is the single source for defaults; overrides live in memory only.
- Missing directory or empty files are not errors: callers always pass a
  default, and the pure XP functions carry the canonical values.
- Instance-based so each engine (and each test) owns its configuration.

Dependencies
------------
- PyYAML (`yaml.safe_load`)
- `academy.core.logging.logger.get_logger`
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Union

import yaml

from academy.core.logging.logger import get_logger

logger = get_logger(__name__)


class ConfigManager:
    """
    Dot-notation configuration lookups over merged YAML documents.

    Examples
    --------
    >>> manager = ConfigManager.from_directory("config")
    >>> manager.get("progression.lesson_xp.practical", 50)
    50
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None) -> None:
        self._defaults: Dict[str, Any] = copy.deepcopy(dict(values or {}))
        self._overrides: Dict[str, Any] = {}
        self._loaded_files: List[str] = []

    # =========================================================================
    # LOADING
    # =========================================================================

    @classmethod
    def from_directory(cls, config_dir: Union[str, Path]) -> "ConfigManager":
        """Build a manager from all `*.yaml` / `*.yml` files in `config_dir`."""
        manager = cls()
        manager.load_directory(config_dir)
        return manager

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: Mapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    def load_directory(self, config_dir: Union[str, Path]) -> int:
        """
        Load and deep-merge every YAML file under `config_dir`.

        Returns
        -------
        int
            Number of files merged.
        """
        directory = Path(config_dir)
        if not directory.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(directory)},
            )
            return 0

        yaml_files = sorted(directory.rglob("*.yaml")) + sorted(directory.rglob("*.yml"))
        loaded_count = 0

        for yaml_file in yaml_files:
            with yaml_file.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)

            if isinstance(data, dict):
                self._deep_merge_dict(self._defaults, data)
                self._loaded_files.append(str(yaml_file))
                loaded_count += 1
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(directory))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(directory)),
                        "root_type": type(data).__name__,
                    },
                )

        logger.info(
            "YAML configs loaded",
            extra={
                "yaml_file_count": loaded_count,
                "total_top_level_keys": len(self._defaults),
            },
        )
        return loaded_count

    # =========================================================================
    # READS
    # =========================================================================

    @staticmethod
    def _traverse(source: Mapping[str, Any], key: str) -> Any:
        value: Any = source
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Overrides win over YAML defaults; `default` is returned when the key
        is present in neither.
        """
        if key in self._overrides:
            return self._overrides[key]

        value = self._traverse(self._defaults, key)
        return default if value is None else value

    def get_all_keys(self) -> List[str]:
        """Top-level keys currently known (YAML plus overrides)."""
        top = set(self._defaults.keys())
        top.update(k.split(".", 1)[0] for k in self._overrides)
        return sorted(top)

    # =========================================================================
    # OVERRIDES
    # =========================================================================

    def override(self, key: str, value: Any) -> None:
        """Pin `key` to `value` for the lifetime of this manager."""
        self._overrides[key] = value
        logger.debug("Configuration override applied", extra={"config_key": key})

    def clear_overrides(self) -> None:
        self._overrides.clear()

    def health_snapshot(self) -> Dict[str, Any]:
        return {
            "loaded_files": list(self._loaded_files),
            "override_count": len(self._overrides),
            "top_level_keys": self.get_all_keys(),
        }
