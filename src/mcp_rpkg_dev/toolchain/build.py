"""Building source package archives."""

from pathlib import Path
from typing import Optional, Union

from mcp_rpkg_dev.config import Settings
from mcp_rpkg_dev.errors import ExternalToolFailure
from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.packages.description import as_package
from mcp_rpkg_dev.toolchain.r import run_r
from mcp_rpkg_dev.types import Package

logger = get_logger(__name__)


async def build(
    target: Union[str, Path, Package],
    dest_dir: Path,
    settings: Optional[Settings] = None,
) -> Path:
    """Run R CMD build and return the path of the created tarball."""
    pkg = as_package(target)
    dest_dir.mkdir(parents=True, exist_ok=True)

    logger.info("building_package", package=pkg.name, dest=str(dest_dir))

    result = await run_r(
        ["CMD", "build", "--no-manual", "--no-resave-data", str(pkg.path)],
        cwd=dest_dir,
        settings=settings,
    )

    built = dest_dir / pkg.tarball_name
    if not built.is_file():
        raise ExternalToolFailure(
            f"R CMD build did not produce {built.name}",
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    logger.info("package_built", package=pkg.name, path=str(built))
    return built
