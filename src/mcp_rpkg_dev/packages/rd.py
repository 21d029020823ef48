"""Minimal Rd documentation parser.

Handles the subset of Rd needed for argument checks and example
extraction: top-level `\\tag{...}` sections, `\\item{...}{...}` entries in
`\\arguments`, call signatures in `\\usage` and the `\\dontrun`,
`\\donttest`, `\\dontshow` and `\\testonly` wrappers inside `\\examples`.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Optional

from mcp_rpkg_dev.packages.namespace_file import split_args

TAG_RE = re.compile(r"\\([A-Za-z][A-Za-z0-9]*)")
CALL_RE = re.compile(r"([A-Za-z.][A-Za-z0-9._]*|`[^`]+`)\s*\(")
METHOD_RE = re.compile(r"\\(?:S3)?method\{([^}]*)\}\{([^}]*)\}")
S4METHOD_RE = re.compile(r"\\S4method\{([^}]*)\}\{([^}]*)\}")
UNESCAPE_RE = re.compile(r"\\([%{}\\])")
DOTS_RE = re.compile(r"\\l?dots\b")


@dataclass
class RdDocument:
    """Parsed Rd file"""
    path: Optional[Path]
    name: Optional[str] = None
    aliases: list[str] = field(default_factory=list)
    title: Optional[str] = None
    sections: dict[str, str] = field(default_factory=dict)
    arguments: list[str] = field(default_factory=list)

    @property
    def usage(self) -> Optional[str]:
        return self.sections.get("usage")

    @property
    def has_examples(self) -> bool:
        return "examples" in self.sections

    @property
    def topic(self) -> str:
        if self.name:
            return self.name
        return self.path.stem if self.path else ""


def strip_comments(text: str) -> str:
    """Drop unescaped % comments."""
    lines = []
    for line in text.splitlines():
        match = re.search(r"(?<!\\)(?:\\\\)*%", line)
        if match:
            end = match.end() - 1
            line = line[:end]
        lines.append(line)
    return "\n".join(lines)


def match_brace(text: str, start: int) -> int:
    """Index just past the brace group opening at text[start]."""
    if text[start] != "{":
        raise ValueError(f"Expected '{{' at offset {start}")
    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    raise ValueError("Unbalanced braces in Rd text")


def iter_tags(text: str) -> Iterator[tuple[str, list[str], int, int]]:
    """Yield (tag, brace arguments, start, end) for top-level macros."""
    pos = 0
    while True:
        match = TAG_RE.search(text, pos)
        if not match:
            return
        if match.start() > 0 and text[match.start() - 1] == "\\":
            pos = match.end()
            continue
        args = []
        i = match.end()
        while i < len(text) and text[i] == "{":
            end = match_brace(text, i)
            args.append(text[i + 1:end - 1])
            i = end
        yield match.group(1), args, match.start(), i
        pos = i


def parse_rd(text: str, path: Optional[Path] = None) -> RdDocument:
    doc = RdDocument(path=path)
    for tag, args, _, _ in iter_tags(strip_comments(text)):
        if not args:
            continue
        body = args[0]
        if tag == "name":
            doc.name = body.strip()
        elif tag == "alias":
            doc.aliases.append(body.strip())
        elif tag == "title":
            doc.title = " ".join(body.split())
        elif tag == "arguments":
            doc.sections[tag] = body
            doc.arguments = list(argument_items(body))
        else:
            doc.sections[tag] = body
    return doc


def read_rd(path: Path) -> RdDocument:
    return parse_rd(path.read_text(encoding="utf-8"), path)


def argument_items(body: str) -> Iterator[str]:
    """Argument names documented by \\item{name}{description} entries."""
    for tag, args, _, _ in iter_tags(body):
        if tag == "item" and args:
            for name in args[0].split(","):
                name = UNESCAPE_RE.sub(r"\1", DOTS_RE.sub("...", name.strip()))
                if name:
                    yield name


def usage_arguments(usage: str) -> list[str]:
    """Formal argument names of every call in a \\usage section."""
    usage = METHOD_RE.sub(lambda m: f"{m.group(1)}.{m.group(2)}", usage)
    usage = S4METHOD_RE.sub(lambda m: m.group(1), usage)
    usage = UNESCAPE_RE.sub(r"\1", DOTS_RE.sub("...", usage))

    formals: list[str] = []
    pos = 0
    while True:
        match = CALL_RE.search(usage, pos)
        if not match:
            break
        depth, i = 1, match.end()
        while i < len(usage) and depth:
            if usage[i] == "(":
                depth += 1
            elif usage[i] == ")":
                depth -= 1
            i += 1
        if match.group(1) != "data":
            for arg in split_args(usage[match.end():i - 1]):
                name = arg.split("=", 1)[0].strip().strip("`")
                if name and name not in formals:
                    formals.append(name)
            replacement = re.match(r"\s*<-\s*([A-Za-z.][A-Za-z0-9._]*)", usage[i:])
            if replacement and replacement.group(1) not in formals:
                formals.append(replacement.group(1))
        pos = i
    return formals


def _rewrite_macros(text: str, rewrite: Callable[[str, str], Optional[str]]) -> str:
    """Replace macros whose rewrite returns a string; keep the rest as is."""
    out = []
    pos = 0
    for tag, args, start, end in iter_tags(text):
        replacement = rewrite(tag, args[0] if args else "")
        if replacement is None:
            continue
        out.append(text[pos:start])
        out.append(replacement)
        pos = end
    out.append(text[pos:])
    return "".join(out)


def examples_code(doc: RdDocument) -> Optional[str]:
    """R code of the \\examples section, or None when there is none.

    \\dontrun blocks are kept as comments; \\donttest, \\dontshow and
    \\testonly contents are run.
    """
    body = doc.sections.get("examples")
    if body is None:
        return None

    def rewrite(tag: str, inner: str) -> Optional[str]:
        if tag == "dontrun":
            commented = "\n".join(f"# {line}" for line in inner.strip("\n").splitlines())
            return f"## Not run:\n{commented}\n## End(Not run)"
        if tag in ("donttest", "dontshow", "testonly"):
            return _rewrite_macros(inner, rewrite)
        return None

    code = _rewrite_macros(body, rewrite)
    code = UNESCAPE_RE.sub(r"\1", code).strip("\n")
    return code + "\n" if code.strip() else None
