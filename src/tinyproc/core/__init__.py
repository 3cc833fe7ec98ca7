"""Core infrastructure modules."""

from .global_paths import GlobalPath

__all__ = ["GlobalPath"]

# Config and env depend on util.log, which imports this package.
# To use: from tinyproc.core.config import ConfigManager
