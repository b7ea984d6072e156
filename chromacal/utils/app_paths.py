from __future__ import annotations

from pathlib import Path
import sys

from .debug_logger import log_path_search


def _exe_dir() -> Path:
    """Return the directory of the running script (the CLI may be frozen next to its data)."""
    try:
        return Path(sys.argv[0]).resolve().parent
    except (OSError, RuntimeError):
        return Path.cwd()


def _pkg_dir() -> Path:
    """Return the installed package directory: <site-packages>/chromacal"""
    return Path(__file__).resolve().parent.parent


def resolve_data_path(*parts: str) -> Path:
    """Resolve a data file path with unified search order.

    Search priority:
      1) Current working directory: ./<parts> (user overrides)
      2) Executable dir (script adjacent): ./<parts>
      3) Package data: chromacal/<parts>

    Raises FileNotFoundError if none exists.
    """
    candidates = [
        Path.cwd().joinpath(*parts),
        _exe_dir().joinpath(*parts),
        _pkg_dir().joinpath(*parts),
    ]
    for p in candidates:
        if p.exists():
            log_path_search(f"resolve {'/'.join(parts)}", candidates, str(p), "app_paths")
            return p
    log_path_search(f"resolve {'/'.join(parts)}", candidates, None, "app_paths")
    raise FileNotFoundError("Data path not found: " + "/".join(parts))


def get_data_dir(name: str) -> Path:
    """Return a bundled data directory; only 'config' is shipped."""
    if name not in {"config"}:
        raise ValueError(f"Unsupported data dir: {name}")
    return resolve_data_path(name)
