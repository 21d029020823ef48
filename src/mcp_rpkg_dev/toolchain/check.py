"""Build and check a package, cleaning up automatically on success.

The package is built first and the archive is checked with R CMD check, the
recommended way to check packages. The check runs in a separate R process,
so nothing loaded in an environment manager affects it.
"""

import re
import shutil
from pathlib import Path
from typing import Optional, Sequence, Union

from mcp_rpkg_dev.config import Settings, get_settings
from mcp_rpkg_dev.errors import ExternalToolFailure
from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.packages.description import as_package
from mcp_rpkg_dev.sandboxes.sandbox import sandboxed
from mcp_rpkg_dev.toolchain.build import build
from mcp_rpkg_dev.toolchain.check_man import check_man, format_problems
from mcp_rpkg_dev.toolchain.r import run_r
from mcp_rpkg_dev.types import CheckMarker, CheckResult, Package, Severity

logger = get_logger(__name__)

CHECK_SUFFIX = ".Rcheck"
MARKER_RE = re.compile(r"^\* (checking .*?) \.\.\..*?\b(NOTE|WARNING|ERROR)\s*$", re.M)
DOC_CHECK_HEADER = "* checking Rd \\usage sections ... WARNING"


def cran_env() -> dict[str, str]:
    """Environment variables CRAN sets when checking packages.

    Taken from the R Internals manual, except that _R_CHECK_CRAN_INCOMING_
    is left unset.
    """
    return {
        "_R_CHECK_VC_DIRS_": "TRUE",
        "_R_CHECK_TIMINGS_": "10",
        "_R_CHECK_INSTALL_DEPENDS_": "TRUE",
        "_R_CHECK_SUGGESTS_ONLY_": "TRUE",
        "_R_CHECK_NO_RECOMMENDED_": "TRUE",
        "_R_CHECK_EXECUTABLES_EXCLUSIONS_": "FALSE",
        "_R_CHECK_DOC_SIZES2_": "TRUE",
    }


def check_env(cran: bool = True, check_version: bool = False) -> dict[str, str]:
    env_vars = {}
    if cran:
        env_vars.update(cran_env())
    if check_version:
        env_vars["_R_CHECK_CRAN_INCOMING_"] = "TRUE"
    return env_vars


def package_name_from_tarball(built_path: Path) -> str:
    return re.sub(r"_.*?$", "", built_path.name)


def parse_check_output(output: str) -> list[CheckMarker]:
    """NOTE, WARNING and ERROR results reported by R CMD check."""
    return [
        CheckMarker(severity=Severity[severity], check=check)
        for check, severity in MARKER_RE.findall(output)
    ]


async def check_r_cmd(
    built_path: Path,
    cran: bool = True,
    check_version: bool = False,
    args: Optional[Sequence[str]] = None,
    check_dir: Optional[Path] = None,
    settings: Optional[Settings] = None,
) -> tuple[Path, str, bool]:
    """Run R CMD check on a built archive.

    Returns the check directory, the captured output and whether R exited
    cleanly. R exits non-zero when a check reports an ERROR, so a failed run
    is reported rather than raised.
    """
    settings = settings or get_settings()
    check_dir = check_dir or settings.temp_root
    pkgname = package_name_from_tarball(built_path)

    opts = ["--timings", *(args or [])]

    try:
        result = await run_r(
            ["CMD", "check", str(built_path), *opts],
            cwd=check_dir,
            env_vars=check_env(cran, check_version),
            settings=settings,
        )
    except ExternalToolFailure as e:
        logger.warning("r_check_failed", package=pkgname, returncode=e.returncode)
        return check_dir / f"{pkgname}{CHECK_SUFFIX}", e.output, False

    output = "\n".join(part for part in (result.stdout, result.stderr) if part)
    return check_dir / f"{pkgname}{CHECK_SUFFIX}", output, True


async def check(
    target: Union[str, Path, Package],
    document: bool = True,
    cleanup: bool = True,
    cran: bool = True,
    check_version: bool = False,
    args: Optional[Sequence[str]] = None,
    settings: Optional[Settings] = None,
) -> CheckResult:
    """Build a package and run R CMD check on the archive.

    With `document` the Rd files are checked against their usage sections
    first. With `cleanup` the check directory is removed when the check
    succeeds; otherwise it is left in place for inspection.
    """
    settings = settings or get_settings()
    pkg = as_package(target)

    doc_problems = check_man(pkg) if document else []

    async with sandboxed("rpkg-build-", settings.temp_root) as sandbox:
        built_path = await build(pkg, sandbox.build_dir, settings)
        check_path, output, passed = await check_r_cmd(
            built_path,
            cran=cran,
            check_version=check_version,
            args=args,
            check_dir=settings.temp_root,
            settings=settings,
        )

    if doc_problems:
        output = f"{DOC_CHECK_HEADER}\n{format_problems(doc_problems)}\n{output}"

    markers = parse_check_output(output)
    success = passed and not any(m.severity == Severity.ERROR for m in markers)

    kept = True
    if success and cleanup:
        shutil.rmtree(check_path, ignore_errors=True)
        kept = False
    else:
        logger.info("check_results_kept", package=pkg.name, path=str(check_path))

    result = CheckResult(
        package=pkg.name,
        success=success,
        output=output,
        check_dir=check_path,
        markers=markers,
        doc_problems=doc_problems,
        kept=kept,
    )

    logger.info(
        "package_checked",
        package=pkg.name,
        success=success,
        errors=result.count(Severity.ERROR),
        warnings=result.count(Severity.WARNING),
        notes=result.count(Severity.NOTE),
    )
    return result
