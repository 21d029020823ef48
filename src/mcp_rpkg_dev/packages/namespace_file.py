"""NAMESPACE directive parsing."""

import re
from pathlib import Path
from typing import Iterable, Optional

from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.types import NamespaceSpec

logger = get_logger(__name__)

DIRECTIVE_RE = re.compile(r"([A-Za-z][A-Za-z0-9_.]*)\s*\(")
ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "'": "'"}


def strip_comments(text: str) -> str:
    """Remove # comments, leaving string literals untouched."""
    out = []
    quote = None
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            out.append(ch)
            if ch == "\\" and i + 1 < len(text):
                out.append(text[i + 1])
                i += 1
            elif ch == quote:
                quote = None
        elif ch in "\"'`":
            quote = ch
            out.append(ch)
        elif ch == "#":
            while i < len(text) and text[i] != "\n":
                i += 1
            continue
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def r_unquote(token: str) -> str:
    """Turn an R symbol or string literal into its text."""
    token = token.strip()
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'`":
        body = token[1:-1]
        if token[0] == "`":
            return body
        return re.sub(r"\\(.)", lambda m: ESCAPES.get(m.group(1), m.group(1)), body)
    return token


def split_args(text: str) -> list[str]:
    """Split a call's argument text on top-level commas."""
    args, depth, quote, start = [], 0, None, 0
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 1
            elif ch == quote:
                quote = None
        elif ch in "\"'`":
            quote = ch
        elif ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == "," and depth == 0:
            args.append(text[start:i].strip())
            start = i + 1
        i += 1
    tail = text[start:].strip()
    if tail:
        args.append(tail)
    return args


def iter_directives(text: str) -> Iterable[tuple[str, list[str]]]:
    """Yield (directive, arguments) for each top-level call."""
    text = strip_comments(text)
    pos = 0
    while True:
        match = DIRECTIVE_RE.search(text, pos)
        if not match:
            return
        depth, quote = 1, None
        i = match.end()
        while i < len(text) and depth:
            ch = text[i]
            if quote:
                if ch == "\\":
                    i += 1
                elif ch == quote:
                    quote = None
            elif ch in "\"'`":
                quote = ch
            elif ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
            i += 1
        if depth:
            raise ValueError(f"Unbalanced parentheses in {match.group(1)} directive")
        yield match.group(1), split_args(text[match.end():i - 1])
        pos = i


def positional(args: list[str]) -> list[str]:
    """Arguments that are not name = value pairs."""
    return [r_unquote(a) for a in args if not re.match(r"^[A-Za-z.][\w.]*\s*=[^=]", a)]


def parse_namespace(text: str) -> NamespaceSpec:
    exports: list[str] = []
    patterns: list[str] = []
    imports: list[str] = []
    import_from: dict[str, list[str]] = {}
    dynlibs: list[str] = []
    s3methods: list[tuple[str, str]] = []

    for directive, args in iter_directives(text):
        values = positional(args)
        if directive == "export":
            exports.extend(values)
        elif directive == "exportPattern":
            patterns.extend(values)
        elif directive == "import":
            imports.extend(values)
        elif directive == "importFrom" and values:
            import_from.setdefault(values[0], []).extend(values[1:])
        elif directive == "useDynLib" and values:
            dynlibs.append(values[0])
        elif directive == "S3method" and len(values) >= 2:
            s3methods.append((values[0], values[1]))
        else:
            logger.debug("namespace_directive_ignored", directive=directive)

    return NamespaceSpec(
        exports=tuple(exports),
        export_patterns=tuple(patterns),
        imports=tuple(imports),
        import_from={pkg: tuple(syms) for pkg, syms in import_from.items()},
        dynlibs=tuple(dynlibs),
        s3methods=tuple(s3methods),
    )


def read_namespace(path: Path) -> Optional[NamespaceSpec]:
    """Parse path/NAMESPACE, or None when the package has none."""
    namespace = path / "NAMESPACE"
    if not namespace.is_file():
        return None
    return parse_namespace(namespace.read_text(encoding="utf-8"))


def exported_names(spec: NamespaceSpec, names: Iterable[str]) -> set[str]:
    """Names a namespace exports out of the ones it defines."""
    names = set(names)
    exported = set()
    for name in spec.exports:
        if name in names:
            exported.add(name)
        else:
            logger.warning("undefined_export", name=name)
    for pattern in spec.export_patterns:
        regex = re.compile(pattern)
        exported.update(n for n in names if regex.search(n))
    return exported
