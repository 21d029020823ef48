"""Running the examples of a package's Rd files.

Getting every example to pass is one of the slower parts of R CMD check:
each failure means fixing the problem and restarting the whole check. These
functions run examples directly, optionally starting at a given Rd file so
already passing ones needn't be rerun.
"""

from pathlib import Path
from typing import Optional, Union

from mcp_rpkg_dev.config import Settings, get_settings
from mcp_rpkg_dev.errors import ExternalToolFailure, TopicNotFound
from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.namespaces.loader import load_all
from mcp_rpkg_dev.namespaces.manager import EnvironmentManager
from mcp_rpkg_dev.packages.description import as_package, collate_order, package_imports
from mcp_rpkg_dev.packages.rd import RdDocument, examples_code, read_rd
from mcp_rpkg_dev.sandboxes.sandbox import sandboxed
from mcp_rpkg_dev.toolchain.check_man import rd_files
from mcp_rpkg_dev.toolchain.install import install
from mcp_rpkg_dev.toolchain.r import library_env, run_rscript
from mcp_rpkg_dev.types import ExampleResult, Package, Sandbox

logger = get_logger(__name__)


def r_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def select_rd_files(pkg: Package, start: Optional[str] = None) -> list[Path]:
    """Rd files in name order, beginning at `start` when it names exactly one."""
    files = rd_files(pkg)
    if start is not None:
        positions = [i for i, path in enumerate(files) if path.name == start]
        if len(positions) == 1:
            files = files[positions[0]:]
        else:
            logger.warning("start_file_not_found", package=pkg.name, start=start)
    return files


def example_script(doc: RdDocument, pkg: Package, strict: bool) -> Optional[str]:
    """R script running one topic's examples, or None if it has none.

    Strict scripts attach the installed package; otherwise the package's
    dependencies are attached and its R files sourced in collation order.
    """
    code = examples_code(doc)
    if code is None:
        return None

    if strict:
        preamble = [f"library({r_string(pkg.name)})"]
    else:
        preamble = [
            f"suppressPackageStartupMessages(library({r_string(dep)}))"
            for dep in package_imports(pkg)
        ]
        preamble += [f"source({r_string(p.as_posix())})" for p in collate_order(pkg)]

    return "\n".join(preamble) + "\n" + code


async def run_one_example(
    doc: RdDocument,
    pkg: Package,
    sandbox: Sandbox,
    strict: bool = True,
    settings: Optional[Settings] = None,
) -> Optional[ExampleResult]:
    settings = settings or get_settings()
    script = example_script(doc, pkg, strict)
    if script is None:
        return None

    logger.info("checking_example", package=pkg.name, topic=doc.topic)

    script_path = sandbox.tmp_dir / f"{doc.topic}-Ex.R"
    script_path.write_text(script, encoding="utf-8")

    libraries = (sandbox.lib_dir, *settings.lib_paths) if strict else settings.lib_paths
    result = await run_rscript(
        script_path,
        cwd=sandbox.work_dir,
        env_vars=library_env(*libraries),
        settings=settings,
    )

    if not result.ok:
        logger.error("example_failed", package=pkg.name, topic=doc.topic)
        raise ExternalToolFailure(
            f"Example {doc.topic} failed",
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    output = "\n".join(part for part in (result.stdout, result.stderr) if part)
    return ExampleResult(topic=doc.topic, success=True, output=output)


async def run_examples(
    target: Union[str, Path, Package],
    start: Optional[str] = None,
    strict: bool = True,
    settings: Optional[Settings] = None,
) -> list[ExampleResult]:
    """Run all examples of a package; the first failure aborts the run.

    With `strict` the package is installed into a sandbox library first and
    each example runs in a clean R session that attaches it, somewhat like
    R CMD check does.
    """
    settings = settings or get_settings()
    pkg = as_package(target)

    docs = [read_rd(path) for path in select_rd_files(pkg, start)]
    docs = [doc for doc in docs if doc.has_examples]

    results = []
    async with sandboxed("rpkg-examples-", settings.temp_root) as sandbox:
        if strict:
            await install(pkg, library=sandbox.lib_dir, settings=settings)

        logger.info("running_examples", package=pkg.name, count=len(docs))

        for doc in docs:
            result = await run_one_example(doc, pkg, sandbox, strict=strict, settings=settings)
            if result is not None:
                results.append(result)

    return results


def find_topic(manager: EnvironmentManager, topic: str) -> tuple[Package, RdDocument]:
    """Rd document for a topic among the packages loaded in a manager."""
    for chain in manager.registry.values():
        pkg = chain.source
        if pkg is None:
            continue
        for path in rd_files(pkg):
            doc = read_rd(path)
            if topic in doc.aliases or topic == doc.name or topic in (path.stem, path.name):
                return pkg, doc
    raise TopicNotFound(topic)


async def dev_example(
    manager: EnvironmentManager,
    topic: str,
    strict: bool = False,
    settings: Optional[Settings] = None,
) -> Optional[ExampleResult]:
    """Run the examples of an in-development topic, reloading its package."""
    settings = settings or get_settings()
    pkg, doc = find_topic(manager, topic)

    load_all(manager, pkg.path, settings=settings)

    async with sandboxed("rpkg-examples-", settings.temp_root) as sandbox:
        if strict:
            await install(pkg, library=sandbox.lib_dir, settings=settings)
        return await run_one_example(doc, pkg, sandbox, strict=strict, settings=settings)
