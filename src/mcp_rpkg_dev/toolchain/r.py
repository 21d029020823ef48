"""Invoking R and Rscript."""

import os
from pathlib import Path
from typing import Mapping, Optional, Sequence

from mcp_rpkg_dev.config import Settings, get_settings
from mcp_rpkg_dev.errors import ExternalToolFailure
from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.sandboxes.sandbox import run_command
from mcp_rpkg_dev.types import ProcessResult

logger = get_logger(__name__)


async def run_r(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    env_vars: Optional[Mapping[str, str]] = None,
    settings: Optional[Settings] = None,
) -> ProcessResult:
    """Run `R <args>`, raising ExternalToolFailure on a non-zero exit."""
    settings = settings or get_settings()

    result = await run_command(settings.r_binary, args, cwd=cwd, env_overrides=env_vars)
    if not result.ok:
        logger.error("r_command_failed", args=list(args), returncode=result.returncode)
        raise ExternalToolFailure(
            f"R {' '.join(args)} failed with code {result.returncode}",
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    return result


async def run_rscript(
    script: Path,
    cwd: Optional[Path] = None,
    env_vars: Optional[Mapping[str, str]] = None,
    settings: Optional[Settings] = None,
) -> ProcessResult:
    """Run an R script in a fresh `Rscript --vanilla` session."""
    settings = settings or get_settings()
    return await run_command(
        settings.rscript_binary,
        ["--vanilla", str(script)],
        cwd=cwd,
        env_overrides=env_vars,
    )


def library_env(*libraries: Path) -> dict[str, str]:
    """R_LIBS value that puts the given libraries first."""
    return {"R_LIBS": os.pathsep.join(str(lib) for lib in libraries)}
