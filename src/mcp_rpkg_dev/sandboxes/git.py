"""Functions for working with Git"""

import sys
from pathlib import Path
from typing import Optional

from mcp_rpkg_dev.errors import ExecutableNotFound, ExternalToolFailure
from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.sandboxes.sandbox import run_command, resolve_executable

logger = get_logger(__name__)


def repo_name_from_url(url: str) -> str:
    """Derive a package name from the last component of a Git URL."""
    if not url:
        raise ValueError("URL cannot be empty")

    name = url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name


def git_path(git_binary: Optional[str] = None) -> str:
    """Retrieve the path of the git binary to use."""
    if git_binary is not None:
        if not Path(git_binary).exists():
            raise ExecutableNotFound(
                git_binary,
                "The Git binary you specified does not appear to be installed on your system.",
            )
        return git_binary

    binary_name = "git.exe" if sys.platform == "win32" else "git"
    try:
        return resolve_executable(binary_name)
    except ExecutableNotFound:
        raise ExecutableNotFound(
            binary_name, "Git does not seem to be installed on your system."
        ) from None


async def clone_repository(
    url: str,
    target_dir: Path,
    branch: Optional[str] = None,
    recursive: bool = False,
    git_binary: Optional[str] = None,
) -> Path:
    """Shallow-clone a repository into target_dir."""
    if not url:
        raise ValueError("URL cannot be empty")

    binary = git_path(git_binary)

    args = ["clone", "--depth", "1", "--no-hardlinks"]
    if branch:
        args += ["--branch", branch]
    if recursive:
        args.append("--recursive")
    args += [url, str(target_dir)]

    logger.debug(
        "cloning_repository",
        url=url,
        target_dir=str(target_dir),
        branch=branch,
    )

    result = await run_command(binary, args, cwd=target_dir.parent)
    if not result.ok:
        logger.error("clone_failed", return_code=result.returncode, stderr=result.stderr)
        raise ExternalToolFailure(
            "There seems to be a problem retrieving this Git-URL.",
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    logger.info("repository_cloned", url=url, target_dir=str(target_dir))

    return target_dir
