"""Entry point for the Chaos Organizer server CLI."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from . import __version__
from .log import logger, setup_logging

# ---------------------------------------------------------------------------
# Environment health checks
# ---------------------------------------------------------------------------

_REQUIRED_LIBS = [
    ("fastapi", "fastapi"),
    ("uvicorn", "uvicorn"),
    ("pydantic", "pydantic"),
    ("yaml", "pyyaml"),
]


def _check_web_deps() -> bool:
    """Return True if the web server libraries are importable."""
    try:
        import fastapi  # noqa: F401
        import uvicorn  # noqa: F401

        return True
    except ImportError:
        return False


def _run_doctor(data_file: Path) -> None:
    """Print a detailed environment health report and exit."""

    print("Chaos Organizer -- Environment Doctor\n")

    # 1. Python
    print(f"  Python:   {sys.executable} ({sys.version.split()[0]})")

    # 2. Required libraries
    print()
    all_ok = True
    for mod_name, pkg_name in _REQUIRED_LIBS:
        try:
            mod = __import__(mod_name)
            ver = getattr(mod, "__version__", "installed")
            print(f"  [ok] {pkg_name:30s}  {ver}")
        except ImportError:
            print(f"  [!!] {pkg_name:30s}  NOT IMPORTABLE")
            all_ok = False

    # 3. Data file
    print()
    if data_file.exists():
        size = data_file.stat().st_size
        print(f"  [ok] {'Data file':30s}  {data_file} ({size} bytes)")
    elif data_file.parent.exists():
        print(f"  [--] {'Data file':30s}  {data_file} (created on first write)")
    else:
        print(f"  [--] {'Data directory':30s}  {data_file.parent} (created on first write)")

    # Summary
    print()
    if all_ok:
        print("  All checks passed.")
    else:
        print("  Some checks failed.  Try:")
        print("    pip install chaos-organizer")

    sys.exit(0 if all_ok else 1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chaos Organizer server")
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"chaos-organizer {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Preferences file (default: ~/.chaos-organizer/preferences.yaml)",
    )
    parser.add_argument(
        "--data-file",
        type=Path,
        default=None,
        help="Snapshot file to load from and persist to",
    )
    parser.add_argument("--host", type=str, default=None, help="Bind address")
    parser.add_argument("--port", type=int, default=None, help="Listen port")
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Seed sample messages when no data file exists yet",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--doctor",
        action="store_true",
        help="Check environment health and exit",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Run the Chaos Organizer server."""
    args = build_parser().parse_args(argv)

    from .preferences import load_preferences

    prefs = load_preferences(args.config)
    if args.data_file is not None:
        prefs.storage.data_file = args.data_file.expanduser()
    if args.host:
        prefs.server.host = args.host
    if args.port is not None:
        prefs.server.port = args.port
    setup_logging(args.log_level or prefs.log_level)

    # --doctor: print diagnostics and exit
    if args.doctor:
        _run_doctor(prefs.storage.data_file)
        return

    if not _check_web_deps():
        print(
            "Web dependencies not installed.\n"
            "Install with:  pip install fastapi uvicorn",
            file=sys.stderr,
        )
        sys.exit(1)

    from .service import Organizer
    from .web import main as web_main

    organizer = Organizer(prefs)
    try:
        web_main(
            organizer,
            host=prefs.server.host,
            port=prefs.server.port,
            seed_demo=args.demo,
        )
    except (KeyboardInterrupt, SystemExit):
        pass
    except Exception:
        logger.debug("Fatal error in chaos-organizer", exc_info=True)
        import traceback

        traceback.print_exc()
        sys.exit(1)
    finally:
        # Lifespan shutdown normally did this already; covers startup failures.
        organizer.shutdown()


if __name__ == "__main__":
    main()
