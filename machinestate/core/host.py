"""Host platform detection."""

from __future__ import annotations

import sys

PLATFORMS = ("windows", "macos", "linux")


def current_platform(sys_platform: str | None = None) -> str:
    """Map ``sys.platform`` onto one of ``PLATFORMS``.

    Anything that is not Windows or macOS is treated as linux.
    """
    value = sys_platform if sys_platform is not None else sys.platform
    if value.startswith(("win32", "cygwin", "msys")):
        return "windows"
    if value.startswith("darwin"):
        return "macos"
    return "linux"
