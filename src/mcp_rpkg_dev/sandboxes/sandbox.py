"""Sandbox directory and command execution management."""

import asyncio
import os
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Mapping, Optional, Sequence

from fuuid import b58_fuuid

from mcp_rpkg_dev.errors import ExecutableNotFound
from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.types import ProcessResult, Sandbox

logger = get_logger(__name__)


def create_sandbox(prefix: str, root: Optional[Path] = None) -> Sandbox:
    """Create new sandbox with isolated build, library and temp directories."""

    temp_dir = tempfile.TemporaryDirectory(
        prefix=f"{prefix}{b58_fuuid()}-", dir=str(root) if root else None
    )
    base = Path(temp_dir.name)

    dirs = {
        "work": base / "work",
        "build": base / "build",
        "lib": base / "lib",
        "tmp": base / "tmp",
    }

    for path in dirs.values():
        path.mkdir(parents=True, exist_ok=True)

    sandbox = Sandbox(
        root=base,
        work_dir=dirs["work"],
        build_dir=dirs["build"],
        lib_dir=dirs["lib"],
        tmp_dir=dirs["tmp"],
        temp_dir=temp_dir,
    )

    logger.debug("sandbox_created", root=str(base))

    return sandbox


def cleanup_sandbox(sandbox: Sandbox) -> None:
    """Clean up sandbox directories."""

    logger.debug("cleaning_sandbox", root=str(sandbox.root))
    sandbox.temp_dir.cleanup()


@asynccontextmanager
async def sandboxed(prefix: str, root: Optional[Path] = None) -> AsyncIterator[Sandbox]:
    """Yield a sandbox that is removed on every exit path."""
    sandbox = create_sandbox(prefix, root)
    try:
        yield sandbox
    finally:
        cleanup_sandbox(sandbox)


def resolve_executable(executable: str) -> str:
    """Resolve an executable name or path, raising if it can't be run."""
    path = Path(executable)
    if path.parent != Path(".") and path.is_file() and os.access(path, os.X_OK):
        return str(path)

    found = shutil.which(executable)
    if not found:
        raise ExecutableNotFound(executable)
    return found


async def run_command(
    executable: str,
    args: Sequence[str] = (),
    cwd: Optional[Path] = None,
    env_overrides: Optional[Mapping[str, str]] = None,
) -> ProcessResult:
    """Run one external process to completion and capture its output."""

    binary = resolve_executable(executable)
    cmd = [binary, *map(str, args)]

    logger.debug("cmd_exec", cmd=cmd, cwd=str(cwd) if cwd else None, env=dict(env_overrides or {}))

    cmd_env = {**os.environ, **(env_overrides or {})}

    process = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd else None,
        env=cmd_env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await process.communicate()
    finally:
        if process.returncode is None:
            process.kill()
            await process.wait()
            logger.warning("cmd_killed", cmd=cmd)

    result = ProcessResult(
        returncode=process.returncode,
        stdout=stdout.decode(errors="replace") if stdout else "",
        stderr=stderr.decode(errors="replace") if stderr else "",
    )

    if result.stdout:
        logger.debug("cmd_stdout", cmd=cmd, output=result.stdout)
    if result.stderr:
        logger.debug("cmd_stderr", cmd=cmd, output=result.stderr)

    logger.debug("cmd_complete", cmd=cmd, returncode=result.returncode)

    return result


def is_command_available(cmd: str) -> bool:
    """Checks to see if a command can be resolved on PATH"""

    try:
        resolve_executable(cmd)
    except ExecutableNotFound:
        return False
    return True
