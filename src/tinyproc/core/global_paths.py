"""Per-user directories for tinyproc.

Directories follow the platform conventions reported by platformdirs and are
created on demand, never at import time.
"""

from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "tinyproc"


class GlobalPath:
    """Global path lookups for tinyproc directories."""

    @classmethod
    def data(cls) -> str:
        return user_data_dir(APP_NAME)

    @classmethod
    def log(cls) -> str:
        """Log file directory."""
        return str(Path(cls.data()) / "log")

    @classmethod
    def config(cls) -> str:
        return user_config_dir(APP_NAME)

    @classmethod
    def ensure(cls, path: str) -> Path:
        """Create ``path`` (and parents) if missing and return it."""
        target = Path(path)
        target.mkdir(parents=True, exist_ok=True)
        return target
