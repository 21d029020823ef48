"""Runtime settings read from the process environment."""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import appdirs

APP_NAME = "mcp-rpkg-dev"

# R packages that ship with every R installation and need no library lookup
BASE_PACKAGES = frozenset({
    "base", "compiler", "datasets", "graphics", "grDevices", "grid",
    "methods", "parallel", "splines", "stats", "stats4", "tcltk",
    "tools", "utils",
})


@dataclass(frozen=True)
class Settings:
    """Toolchain locations and defaults"""
    r_binary: str
    rscript_binary: str
    git_binary: Optional[str]
    library: Path
    lib_paths: tuple[Path, ...]
    temp_root: Path
    log_level: str


def _split_paths(value: Optional[str]) -> list[Path]:
    if not value:
        return []
    return [Path(p).expanduser() for p in value.split(os.pathsep) if p]


def get_settings() -> Settings:
    """Snapshot of the current environment configuration."""
    env = os.environ

    library = env.get("RPKG_DEV_LIBRARY")
    library_path = (
        Path(library).expanduser()
        if library
        else Path(appdirs.user_data_dir(APP_NAME)) / "library"
    )

    lib_paths = [library_path]
    for var in ("RPKG_DEV_LIB_PATHS", "R_LIBS", "R_LIBS_USER"):
        for path in _split_paths(env.get(var)):
            if path not in lib_paths:
                lib_paths.append(path)

    return Settings(
        r_binary=env.get("RPKG_DEV_R", "R"),
        rscript_binary=env.get("RPKG_DEV_RSCRIPT", "Rscript"),
        git_binary=env.get("RPKG_DEV_GIT") or None,
        library=library_path,
        lib_paths=tuple(lib_paths),
        temp_root=Path(env.get("RPKG_DEV_TMPDIR") or tempfile.gettempdir()),
        log_level=env.get("RPKG_DEV_LOG_LEVEL", "INFO").upper(),
    )
