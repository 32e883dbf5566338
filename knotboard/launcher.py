"""Knotboard launcher.

Configures logging and runs preflight checks before importing GTK-related
modules, which gives clearer error messages on new systems.
"""

from __future__ import annotations

import logging


def main() -> int:
    from knotboard.config import log_level_from_env, skip_preflight

    logging.basicConfig(
        level=log_level_from_env(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not skip_preflight():
        from knotboard.preflight import run_preflight_or_die

        run_preflight_or_die(check_deps=True)

    from knotboard.app import main as app_main

    return int(app_main())


if __name__ == "__main__":
    raise SystemExit(main())
