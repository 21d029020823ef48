"""DESCRIPTION file parsing."""

import re
from pathlib import Path
from typing import Union

from mcp_rpkg_dev.errors import MissingDescriptor, NotAPackage
from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.packages.namespace_file import read_namespace
from mcp_rpkg_dev.types import Package

logger = get_logger(__name__)

FIELD_RE = re.compile(r"^([A-Za-z][A-Za-z0-9._/@-]*):\s*(.*)$")


def parse_dcf(text: str) -> dict[str, str]:
    """Parse a single-record Debian control file into a field mapping.

    Continuation lines (leading whitespace) are folded into the previous
    field, separated by a newline. A lone "." continuation is an empty line.
    """
    fields: dict[str, str] = {}
    current = None

    for raw in text.splitlines():
        if not raw.strip():
            if fields:
                break
            continue

        if raw[0] in " \t":
            if current is None:
                raise ValueError(f"Continuation line without a field: {raw!r}")
            line = raw.strip()
            fields[current] += "\n" + ("" if line == "." else line)
            continue

        match = FIELD_RE.match(raw)
        if not match:
            raise ValueError(f"Malformed DCF line: {raw!r}")
        current, value = match.groups()
        fields[current] = value.strip()

    return fields


def parse_dependencies(value: str) -> list[str]:
    """Package names from a dependency field such as Imports or Depends."""
    names = []
    for entry in value.replace("\n", " ").split(","):
        name = re.sub(r"\(.*?\)", "", entry).strip()
        if name and name != "R":
            names.append(name)
    return names


def parse_collate(value: str) -> list[str]:
    """File names from a Collate field; entries may be quoted."""
    return [
        a or b
        for a, b in re.findall(r"'([^']+)'|(\S+)", value.replace('"', "'"))
    ]


def read_description(path: Path) -> dict[str, str]:
    description = path / "DESCRIPTION"
    if not description.is_file():
        raise NotAPackage(str(path))
    return parse_dcf(description.read_text(encoding="utf-8"))


def as_package(target: Union[str, Path, Package]) -> Package:
    """Resolve a package path into a Package descriptor."""
    if isinstance(target, Package):
        return target

    path = Path(target).expanduser().resolve()
    fields = read_description(path)

    for required in ("Package", "Version"):
        if not fields.get(required):
            raise MissingDescriptor(
                fields.get("Package", path.name),
                f"DESCRIPTION in {path} has no {required} field",
            )

    pkg = Package(
        name=fields["Package"],
        version=fields["Version"],
        path=path,
        fields=fields,
        namespace=read_namespace(path),
    )

    logger.debug("package_resolved", package=pkg.name, version=pkg.version, path=str(path))
    return pkg


def package_imports(pkg: Package) -> list[str]:
    """Packages listed in Depends and Imports."""
    names = []
    for field_name in ("Depends", "Imports"):
        for name in parse_dependencies(pkg.fields.get(field_name, "")):
            if name not in names:
                names.append(name)
    return names


def collate_order(pkg: Package) -> list[Path]:
    """R source files in the order they are sourced."""
    if not pkg.r_dir.is_dir():
        return []

    available = {
        p.name: p
        for p in pkg.r_dir.iterdir()
        if p.is_file() and p.suffix in (".R", ".r", ".S", ".s", ".q")
    }

    collate = pkg.fields.get("Collate")
    if collate:
        ordered = []
        for name in parse_collate(collate):
            if name in available:
                ordered.append(available[name])
            else:
                logger.warning("collate_file_missing", package=pkg.name, file=name)
        return ordered

    # R sorts in the C locale
    return [available[name] for name in sorted(available)]
