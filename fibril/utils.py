"""
Configuration flags and debugging helpers for fibril.
"""

import os
import sys
from typing import Optional


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("1", "true", "yes")


# Capture the creation site of every started task
DEBUG_TASKS = _env_flag("FIBRIL_DEBUG", False)

# Warn when a failed task is dropped without value() ever surfacing the failure
WARN_UNOBSERVED = _env_flag("FIBRIL_WARN_UNOBSERVED", True)


_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


def _is_fibril_internal(path: str) -> bool:
    if path.startswith("<"):
        return False
    return os.path.abspath(path).startswith(_PACKAGE_DIR + os.sep)


def capture_creation_site(skip_frames: int = 2) -> Optional[str]:
    """
    Describe the first caller frame outside fibril as ``file:line in function``.

    Args:
        skip_frames: Number of frames to skip (default 2 to skip this function and caller)

    Returns:
        The formatted site, or None if the stack is shallower than expected
    """
    try:
        frame = sys._getframe(skip_frames)
    except ValueError:
        return None

    while frame is not None and _is_fibril_internal(frame.f_code.co_filename):
        frame = frame.f_back
    if frame is None:
        return None
    return f"{frame.f_code.co_filename}:{frame.f_lineno} in {frame.f_code.co_name}"
