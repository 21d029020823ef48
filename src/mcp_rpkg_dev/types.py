"""Core type definitions"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional
from tempfile import TemporaryDirectory

DefinitionKind = Enum("DefinitionKind", ["FUNCTION", "VALUE"])
Severity = Enum("Severity", ["NOTE", "WARNING", "ERROR"])


@dataclass(frozen=True)
class ProcessResult:
    """Captured result of one external process"""
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(frozen=True)
class Sandbox:
    """Throw-away directory tree for builds, clones and libraries"""
    root: Path
    work_dir: Path
    build_dir: Path
    lib_dir: Path
    tmp_dir: Path
    temp_dir: TemporaryDirectory


@dataclass(frozen=True)
class Definition:
    """A top-level binding read from a package's R sources"""
    name: str
    expression: str
    kind: DefinitionKind
    file: Optional[Path] = None
    line: int = 0
    value: Any = None


@dataclass(frozen=True)
class ImportedObject:
    """Symbol imported from a package whose sources are not loaded"""
    package: str
    name: str


@dataclass(frozen=True)
class NamespaceSpec:
    """Parsed NAMESPACE directives"""
    exports: tuple[str, ...] = ()
    export_patterns: tuple[str, ...] = ()
    imports: tuple[str, ...] = ()
    import_from: dict[str, tuple[str, ...]] = field(default_factory=dict)
    dynlibs: tuple[str, ...] = ()
    s3methods: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class Package:
    """Package under development, as described by its DESCRIPTION file"""
    name: str
    version: str
    path: Path
    fields: dict[str, str]
    namespace: Optional[NamespaceSpec] = None

    @property
    def r_dir(self) -> Path:
        return self.path / "R"

    @property
    def man_dir(self) -> Path:
        return self.path / "man"

    @property
    def tarball_name(self) -> str:
        return f"{self.name}_{self.version}.tar.gz"


@dataclass
class Scope:
    """Mutable name/value mapping with a single parent link"""
    handle: int
    name: Optional[str]
    parent: Optional[int]
    bindings: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScopeChain:
    """Scopes built for one loaded unit"""
    unit: str
    imports: int
    namespace: int
    package: int
    source: Optional[Package] = None


@dataclass(frozen=True)
class CheckMarker:
    """One NOTE/WARNING/ERROR line from R CMD check output"""
    severity: Severity
    check: str


@dataclass(frozen=True)
class DocProblem:
    """Mismatch between a documented \\usage and its \\arguments"""
    topic: str
    file: Path
    message: str
    arguments: tuple[str, ...]


@dataclass
class CheckResult:
    """Outcome of a full build-and-check run"""
    package: str
    success: bool
    output: str
    check_dir: Path
    markers: list[CheckMarker] = field(default_factory=list)
    doc_problems: list[DocProblem] = field(default_factory=list)
    kept: bool = False

    def count(self, severity: Severity) -> int:
        return sum(1 for m in self.markers if m.severity == severity)


@dataclass(frozen=True)
class ExampleResult:
    """Output of running the examples of one Rd topic"""
    topic: str
    success: bool
    output: str
