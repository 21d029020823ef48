"""Static checks of Rd documentation against usage sections."""

from pathlib import Path
from typing import Iterable, Union

from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.packages.description import as_package
from mcp_rpkg_dev.packages.rd import read_rd, usage_arguments
from mcp_rpkg_dev.types import DocProblem, Package

logger = get_logger(__name__)

UNDOCUMENTED = "Undocumented arguments"
NOT_IN_USAGE = "Documented arguments not in \\usage"


def rd_files(pkg: Package) -> list[Path]:
    if not pkg.man_dir.is_dir():
        return []
    return sorted(
        (p for p in pkg.man_dir.iterdir() if p.suffix in (".Rd", ".rd")),
        key=lambda p: p.name,
    )


def check_man(target: Union[str, Path, Package]) -> list[DocProblem]:
    """Compare each topic's \\usage arguments with its \\arguments items."""
    pkg = as_package(target)
    problems = []

    for path in rd_files(pkg):
        doc = read_rd(path)
        if doc.usage is None:
            continue

        formals = usage_arguments(doc.usage)
        documented = doc.arguments

        undocumented = tuple(a for a in formals if a not in documented)
        if undocumented:
            problems.append(DocProblem(doc.topic, path, UNDOCUMENTED, undocumented))

        not_in_usage = tuple(a for a in documented if a not in formals)
        if not_in_usage:
            problems.append(DocProblem(doc.topic, path, NOT_IN_USAGE, not_in_usage))

    for problem in problems:
        logger.warning(
            "doc_problem",
            package=pkg.name,
            topic=problem.topic,
            problem=problem.message,
            arguments=list(problem.arguments),
        )
    return problems


def format_problems(problems: Iterable[DocProblem]) -> str:
    """Render problems the way R CMD check reports them."""
    blocks = []
    for problem in problems:
        names = " ".join(f"‘{a}’" for a in problem.arguments)
        blocks.append(
            f"{problem.message} in documentation object '{problem.topic}':\n  {names}"
        )
    return "\n".join(blocks)
