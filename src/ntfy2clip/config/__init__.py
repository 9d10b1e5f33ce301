"""Configuration package for ntfy2clip."""

from .settings import LoggingConfig, Ntfy2ClipSettings, load_settings

__all__ = ["LoggingConfig", "Ntfy2ClipSettings", "load_settings"]
