"""Static reading of top-level definitions from R source files.

Only assignments at the top level of a file are collected: `name <- expr`,
`name = expr`, `name <<- expr` and their quoted/backticked forms. An
expression continues across lines while brackets are open or the line ends
in a binary operator, which is how the R parser decides it too. Literal
right-hand sides are converted to Python values; everything else keeps its
source text only.
"""

import re
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.packages.namespace_file import r_unquote
from mcp_rpkg_dev.types import Definition, DefinitionKind

logger = get_logger(__name__)

ASSIGN_RE = re.compile(
    r"""^(?:`([^`]+)`|"([^"]+)"|'([^']+)'|([A-Za-z.][A-Za-z0-9._]*))\s*(<<-|<-|=)(?!=)\s*"""
)
CONTINUATION_RE = re.compile(r"(<-|<<-|[-+*/^&|~,=<>!]|%[^%]*%|\|>)\s*$")
FUNCTION_HEAD_RE = re.compile(r"(\bfunction|\\)\s*$")
NUMBER_RE = re.compile(r"^-?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$")
INTEGER_RE = re.compile(r"^-?\d+L$")
STRING_RE = re.compile(r"""^(["'])(.*)\1$""", re.S)


class _Scanner:
    """Tracks bracket depth and open string literals across lines."""

    def __init__(self) -> None:
        self.depth = 0
        self.quote: Optional[str] = None

    def feed(self, line: str) -> str:
        """Consume one line; return it with any trailing comment removed."""
        code_end = len(line)
        i = 0
        while i < len(line):
            ch = line[i]
            if self.quote:
                if ch == "\\":
                    i += 1
                elif ch == self.quote:
                    self.quote = None
            elif ch in "\"'`":
                self.quote = ch
            elif ch == "#":
                code_end = i
                break
            elif ch in "([{":
                self.depth += 1
            elif ch in ")]}":
                self.depth -= 1
            i += 1
        return line[:code_end]

    @property
    def balanced(self) -> bool:
        return self.depth <= 0 and self.quote is None


def ends_with_function_header(code: str) -> bool:
    """True when code ends in a `function(...)` header whose body is still to come."""
    code = code.rstrip()
    if not code.endswith(")"):
        return False
    depth = 0
    for i in range(len(code) - 1, -1, -1):
        if code[i] == ")":
            depth += 1
        elif code[i] == "(":
            depth -= 1
            if depth == 0:
                return bool(FUNCTION_HEAD_RE.search(code[:i]))
    return False


def literal_value(expression: str) -> tuple[bool, Any]:
    """Return (is_literal, value) for simple R literals."""
    expr = expression.strip().rstrip(";").strip()
    if expr == "TRUE":
        return True, True
    if expr == "FALSE":
        return True, False
    if expr == "NULL":
        return True, None
    if INTEGER_RE.match(expr):
        return True, int(expr[:-1])
    if NUMBER_RE.match(expr):
        return True, float(expr)
    match = STRING_RE.match(expr)
    if match and match.group(1) not in match.group(2).replace("\\" + match.group(1), ""):
        return True, r_unquote(expr)
    return False, None


def _make_definition(name: str, lines: list[str], file: Path, line_no: int) -> Definition:
    expression = "\n".join(lines).strip()
    if re.match(r"^(function\b|\\\s*\()", expression):
        kind = DefinitionKind.FUNCTION
        value = None
    else:
        kind = DefinitionKind.VALUE
        _, value = literal_value(expression)
    return Definition(
        name=name,
        expression=expression,
        kind=kind,
        file=file,
        line=line_no,
        value=value,
    )


def iter_definitions(text: str, file: Path) -> Iterator[Definition]:
    """Yield top-level assignments in source order."""
    scanner = _Scanner()
    current: Optional[tuple[str, int]] = None
    body: list[str] = []

    for line_no, raw in enumerate(text.splitlines(), start=1):
        at_top = scanner.balanced and current is None

        if at_top:
            match = ASSIGN_RE.match(raw)
            if match:
                name = next(g for g in match.groups()[:4] if g)
                current = (name, line_no)
                rest = raw[match.end():]
                body = [scanner.feed(rest)]
            else:
                scanner.feed(raw)
                continue
        else:
            code = scanner.feed(raw)
            if current is not None:
                body.append(code)

        if current is not None and scanner.balanced:
            tail = body[-1].rstrip() if body else ""
            if tail and not (
                CONTINUATION_RE.search(tail) or ends_with_function_header("\n".join(body))
            ):
                yield _make_definition(current[0], body, file, current[1])
                current, body = None, []

    if current is not None:
        logger.warning("unterminated_definition", name=current[0], file=str(file), line=current[1])
        yield _make_definition(current[0], body, file, current[1])


def collect_definitions(files: Iterable[Path]) -> dict[str, Definition]:
    """Read definitions from files in order; later files win."""
    definitions: dict[str, Definition] = {}
    for path in files:
        text = path.read_text(encoding="utf-8")
        for definition in iter_definitions(text, path):
            definitions[definition.name] = definition
    return definitions
