"""Installing packages from source directories and Git repositories."""

from pathlib import Path
from typing import Optional, Sequence, Union

from mcp_rpkg_dev.config import Settings, get_settings
from mcp_rpkg_dev.errors import NotAPackage
from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.packages.description import as_package
from mcp_rpkg_dev.sandboxes.git import clone_repository, repo_name_from_url
from mcp_rpkg_dev.sandboxes.sandbox import sandboxed
from mcp_rpkg_dev.toolchain.r import run_r
from mcp_rpkg_dev.types import Package

logger = get_logger(__name__)


async def install(
    target: Union[str, Path, Package],
    library: Optional[Path] = None,
    settings: Optional[Settings] = None,
) -> Path:
    """Install a package directory with R CMD INSTALL.

    Returns the library the package was installed into.
    """
    settings = settings or get_settings()
    pkg = as_package(target)
    library = library or settings.library
    library.mkdir(parents=True, exist_ok=True)

    logger.info("installing_package", package=pkg.name, library=str(library))

    await run_r(
        ["CMD", "INSTALL", f"--library={library}", str(pkg.path)],
        cwd=pkg.path.parent,
        settings=settings,
    )

    logger.info("package_installed", package=pkg.name, library=str(library))
    return library


async def install_git(
    git_url: Union[str, Sequence[str]],
    name: Optional[Union[str, Sequence[Optional[str]]]] = None,
    subdir: Optional[str] = None,
    branch: Optional[str] = None,
    git_binary: Optional[str] = None,
    recursive: bool = False,
    library: Optional[Path] = None,
    settings: Optional[Settings] = None,
) -> list[str]:
    """Install one or more packages from Git repositories.

    Requires git on the system, or an explicit `git_binary`. Returns the
    names of the installed packages in order.
    """
    urls = [git_url] if isinstance(git_url, str) else list(git_url)
    if name is None or isinstance(name, str):
        names = [name] * len(urls)
    else:
        names = list(name)
    if len(names) != len(urls):
        raise ValueError("name must have one entry per git_url")

    installed = []
    for url, pkg_name in zip(urls, names):
        installed.append(
            await install_git_single(
                url,
                name=pkg_name,
                subdir=subdir,
                branch=branch,
                git_binary=git_binary,
                recursive=recursive,
                library=library,
                settings=settings,
            )
        )
    return installed


async def install_git_single(
    git_url: str,
    name: Optional[str] = None,
    subdir: Optional[str] = None,
    branch: Optional[str] = None,
    git_binary: Optional[str] = None,
    recursive: bool = False,
    library: Optional[Path] = None,
    settings: Optional[Settings] = None,
) -> str:
    """Clone a single repository into a sandbox and install it from there."""
    settings = settings or get_settings()
    name = name or repo_name_from_url(git_url)

    logger.info("preparing_git_install", package=name, url=git_url)

    async with sandboxed("rpkg-git-", settings.temp_root) as sandbox:
        bundle = sandbox.work_dir / "bundle"
        await clone_repository(
            git_url,
            bundle,
            branch=branch,
            recursive=recursive,
            git_binary=git_binary or settings.git_binary,
        )

        pkg_path = bundle / subdir if subdir else bundle
        if not (pkg_path / "DESCRIPTION").is_file():
            raise NotAPackage(str(pkg_path.relative_to(sandbox.work_dir)))

        configure = pkg_path / "configure"
        if configure.exists():
            configure.chmod(0o755)

        pkg = as_package(pkg_path)
        await install(pkg, library=library, settings=settings)

    return pkg.name
