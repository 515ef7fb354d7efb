"""Configuration access for RepoMentor."""

from .config_loader import get_config_value, reload_configs

__all__ = ["get_config_value", "reload_configs"]
