"""
Configuration package.

- Config: static environment-backed settings (python-dotenv)
- ConfigManager (academy.core.config.manager): YAML-backed gamification tunables
"""

from .config import Config, Environment

__all__ = [
    "Config",
    "Environment",
]
