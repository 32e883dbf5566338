"""Environment and dependency preflight checks.

Set KNOTBOARD_SKIP_PREFLIGHT=1 to bypass (useful for development).
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PreflightResult:
    ok: bool
    message: str


def _has_display() -> bool:
    return bool(os.environ.get("WAYLAND_DISPLAY") or os.environ.get("DISPLAY"))


def _check_python_deps() -> Optional[str]:
    """Return an error message if required deps are missing."""
    try:
        import cairo  # type: ignore[import-not-found]  # noqa: F401
    except ImportError as exc:
        return (
            "Missing Python dependency 'pycairo'. "
            "Install it with pip (pycairo) and ensure cairo is available. "
            f"Underlying error: {exc}"
        )

    try:
        import gi  # type: ignore[import-not-found]

        gi.require_version("Gtk", "4.0")
        gi.require_version("Adw", "1")
        gi.require_version("Gdk", "4.0")
        from gi.repository import Gtk, Adw, Gdk  # type: ignore[import-not-found]  # noqa: F401
    except (ImportError, ValueError) as exc:
        return (
            "Missing GTK 4 / libadwaita bindings. Install PyGObject together with "
            "the GTK 4 and libadwaita introspection data from your distribution. "
            f"Underlying error: {exc}"
        )

    return None


def _check_data_dir() -> Optional[str]:
    from knotboard.database import get_data_dir

    try:
        data_dir = get_data_dir()
    except OSError as exc:
        return f"Cannot create the data directory: {exc}"
    if not os.access(data_dir, os.W_OK):
        return f"The data directory {data_dir} is not writable."
    return None


def run_preflight(
    *,
    require_display: bool = True,
    check_deps: bool = True,
) -> PreflightResult:
    """Run checks and return a structured result."""
    if os.environ.get("KNOTBOARD_SKIP_PREFLIGHT") == "1":
        return PreflightResult(True, "Preflight skipped via KNOTBOARD_SKIP_PREFLIGHT=1")

    if require_display and not _has_display():
        return PreflightResult(
            False,
            "No graphical session found (neither WAYLAND_DISPLAY nor DISPLAY is set). "
            "Set KNOTBOARD_SKIP_PREFLIGHT=1 to bypass.",
        )

    if check_deps:
        dep_error = _check_python_deps()
        if dep_error:
            return PreflightResult(False, dep_error)

    dir_error = _check_data_dir()
    if dir_error:
        return PreflightResult(False, dir_error)

    return PreflightResult(True, "Preflight OK")


def run_preflight_or_die(
    *,
    require_display: bool = True,
    check_deps: bool = True,
) -> None:
    result = run_preflight(require_display=require_display, check_deps=check_deps)
    if result.ok:
        return

    sys.stderr.write("\nKnotboard preflight check failed:\n")
    sys.stderr.write(result.message)
    sys.stderr.write("\n\n")
    sys.stderr.write(
        "Knotboard needs GTK 4, libadwaita and cairo with their Python bindings:\n"
        "  pip install PyGObject pycairo\n\n"
    )
    raise SystemExit(1)
