"""
Where the relay keeps its files.

A frozen build (PyInstaller) uses the directory holding the executable;
otherwise everything is relative to the current working directory.
"""

import sys
from pathlib import Path
from typing import Optional, Union


def get_default_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    return Path.cwd()


def get_logs_dir(root: Optional[Union[Path, str]] = None) -> Path:
    """Return `<root>/logs`, creating it if needed."""
    base = Path(root) if root else get_default_root()
    logs_dir = base / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def get_env_file(root: Optional[Union[Path, str]] = None) -> Path:
    """Path of the main .env file (not created)."""
    base = Path(root) if root else get_default_root()
    return base / ".env"
