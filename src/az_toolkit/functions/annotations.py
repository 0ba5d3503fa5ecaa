"""Find Azure Functions entry points by scanning Java sources.

There is no JVM at hand, so ``@FunctionName`` methods are located with a
small lexer over the ``.java`` files: comments are dropped, string
literals are masked while looking for structure, and annotation arguments
are parsed into plain Python values (``AuthorizationLevel.ANONYMOUS`` becomes
``"ANONYMOUS"``, ``{A, B}`` becomes a list).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from az_toolkit.exceptions import AzureExecutionError
from az_toolkit.functions.bindings import STORAGE_BINDINGS, BindingEnum
from az_toolkit.functions.configuration import Binding, FunctionConfiguration, Retry

logger = logging.getLogger(__name__)

FUNCTION_NAME = "FunctionName"
STORAGE_ACCOUNT = "StorageAccount"
RETRY_STRATEGIES = {
    "FixedDelayRetry": "fixedDelay",
    "ExponentialBackoffRetry": "exponentialBackoff",
}
RETURN_BINDING_NAME = "$return"

_IDENT = r"[A-Za-z_$][\w$]*"
_QUALIFIED = re.compile(rf"\s*({_IDENT}(?:\s*\.\s*{_IDENT})*)")
_TYPE_DECL = re.compile(rf"\b(?:class|interface|enum|record)\s+({_IDENT})")
_PACKAGE = re.compile(r"^\s*package\s+([\w.]+)\s*;", re.MULTILINE)
_FUNCTION_NAME_AT = re.compile(rf"@\s*(?:{_IDENT}\s*\.\s*)*{FUNCTION_NAME}\b")
_TRAILING_IDENT = re.compile(rf"({_IDENT})\s*$")
_INT = re.compile(r"^-?\d+[lL]?$")
_ESCAPE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)", re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "0": "\0"}


@dataclass
class Annotation:
    name: str
    args: dict[str, Any] = field(default_factory=dict)

    @property
    def value(self) -> Any:
        return self.args.get("value")


@dataclass
class FunctionMethod:
    """A method annotated with ``@FunctionName``."""

    function_name: str
    class_name: str
    method_name: str
    annotations: list[Annotation] = field(default_factory=list)
    parameters: list[list[Annotation]] = field(default_factory=list)
    class_annotations: list[Annotation] = field(default_factory=list)
    source: Path | None = None

    @property
    def entry_point(self) -> str:
        return f"{self.class_name}.{self.method_name}"


# ---------------------------------------------------------------------------
# Lexing
# ---------------------------------------------------------------------------


def _literal_end(src: str, i: int) -> int:
    """Index just past the string / char literal starting at ``src[i]``."""
    if src.startswith('"""', i):
        end = src.find('"""', i + 3)
        return len(src) if end < 0 else end + 3
    quote = src[i]
    j = i + 1
    while j < len(src):
        if src[j] == "\\":
            j += 2
            continue
        if src[j] == quote or src[j] == "\n":
            return j + 1
        j += 1
    return j


def _strip_comments(src: str) -> str:
    """Replace comments with spaces, keeping offsets and line breaks."""
    out: list[str] = []
    i = 0
    while i < len(src):
        c = src[i]
        if c in "\"'":
            end = _literal_end(src, i)
            out.append(src[i:end])
            i = end
        elif src.startswith("//", i):
            end = src.find("\n", i)
            end = len(src) if end < 0 else end
            out.append(" " * (end - i))
            i = end
        elif src.startswith("/*", i):
            end = src.find("*/", i + 2)
            end = len(src) if end < 0 else end + 2
            out.append(re.sub(r"[^\n]", " ", src[i:end]))
            i = end
        else:
            out.append(c)
            i += 1
    return "".join(out)


def _mask_literals(src: str) -> str:
    """Blank out the contents of string and char literals."""
    out: list[str] = []
    i = 0
    while i < len(src):
        if src[i] in "\"'":
            end = _literal_end(src, i)
            out.append(src[i] + re.sub(r"[^\n]", " ", src[i + 1 : end - 1]) + src[end - 1])
            i = end
        else:
            out.append(src[i])
            i += 1
    return "".join(out)


def _matching(masked: str, i: int) -> int:
    """Index of the bracket closing the one at ``masked[i]``."""
    pairs = {"(": ")", "{": "}", "[": "]"}
    stack = [pairs[masked[i]]]
    j = i + 1
    while j < len(masked):
        c = masked[j]
        if c in pairs:
            stack.append(pairs[c])
        elif stack and c == stack[-1]:
            stack.pop()
            if not stack:
                return j
        j += 1
    raise AzureExecutionError(f"Unbalanced '{masked[i]}' in Java source")


def _split_top(text: str, sep: str) -> list[str]:
    """Split on *sep* outside brackets and literals."""
    masked = _mask_literals(text)
    parts: list[str] = []
    depth = 0
    start = 0
    for i, c in enumerate(masked):
        if c in "([{":
            depth += 1
        elif c in ")]}":
            depth -= 1
        elif c == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return parts


def _unescape(body: str) -> str:
    def _replace(m: re.Match[str]) -> str:
        seq = m.group(1)
        if seq.startswith("u") and len(seq) == 5:
            return chr(int(seq[1:], 16))
        return _ESCAPES.get(seq, seq)

    return _ESCAPE.sub(_replace, body)


def _parse_value(text: str) -> Any:
    t = text.strip()
    if t.startswith("{") and t.endswith("}"):
        return [_parse_value(p) for p in _split_top(t[1:-1], ",") if p.strip()]
    pieces = [p.strip() for p in _split_top(t, "+")]
    if len(pieces) > 1 and all(p.startswith('"') for p in pieces):
        return "".join(_parse_value(p) for p in pieces)
    if t.startswith('"""'):
        return t[3:-3]
    if t.startswith('"') or t.startswith("'"):
        return _unescape(t[1:-1])
    if t in ("true", "false"):
        return t == "true"
    if _INT.match(t):
        return int(t.rstrip("lL"))
    if t.endswith(".class"):
        t = t[: -len(".class")]
    # enum constant or static constant: keep the last segment
    return re.sub(r"\s", "", t).rsplit(".", 1)[-1]


def _parse_args(text: str | None) -> dict[str, Any]:
    if text is None or not text.strip():
        return {}
    parts = _split_top(text, ",")
    first = _split_top(parts[0], "=")
    if len(parts) == 1 and len(first) == 1:
        return {"value": _parse_value(parts[0])}
    args: dict[str, Any] = {}
    for part in parts:
        key, _, value = part.partition("=")
        args[key.strip()] = _parse_value(value)
    return args


def _parse_annotation(src: str, masked: str, i: int) -> tuple[Annotation | None, int]:
    """Parse the annotation whose ``@`` is at ``src[i]``; return it and the end index."""
    m = _QUALIFIED.match(masked, i + 1)
    if not m:
        return None, i + 1
    name = re.sub(r"\s", "", m.group(1)).rsplit(".", 1)[-1]
    j = m.end()
    while j < len(masked) and masked[j].isspace():
        j += 1
    args_text = None
    if j < len(masked) and masked[j] == "(":
        end = _matching(masked, j)
        args_text = src[j + 1 : end]
        j = end + 1
    else:
        j = m.end()
    return Annotation(name, _parse_args(args_text)), j


def _annotations_in(src: str, masked: str, start: int, end: int) -> list[Annotation]:
    found: list[Annotation] = []
    i = start
    while i < end:
        if masked[i] == "@":
            annotation, i = _parse_annotation(src, masked, i)
            if annotation is not None:
                found.append(annotation)
        else:
            i += 1
    return found


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------


@dataclass
class _TypeSpan:
    name: str
    start: int
    end: int
    annotations: list[Annotation]


def _header_start(masked: str, pos: int) -> int:
    return max(masked.rfind(c, 0, pos) for c in ";{}") + 1


def _type_spans(src: str, masked: str) -> list[_TypeSpan]:
    spans: list[_TypeSpan] = []
    for m in _TYPE_DECL.finditer(masked):
        brace = masked.find("{", m.end())
        if brace < 0:
            continue
        header = _header_start(masked, m.start())
        spans.append(
            _TypeSpan(
                name=m.group(1),
                start=brace,
                end=_matching(masked, brace),
                annotations=_annotations_in(src, masked, header, m.start()),
            )
        )
    return spans


def _scan_source(text: str, path: Path | None = None) -> list[FunctionMethod]:
    src = _strip_comments(text)
    masked = _mask_literals(src)
    package = _PACKAGE.search(masked)
    package_name = package.group(1) if package else ""
    spans = _type_spans(src, masked)

    methods: list[FunctionMethod] = []
    for m in _FUNCTION_NAME_AT.finditer(masked):
        header = _header_start(masked, m.start())
        annotations: list[Annotation] = []
        i = header
        while i < len(masked) and masked[i] != "(":
            if masked[i] == "@":
                annotation, i = _parse_annotation(src, masked, i)
                if annotation is not None:
                    annotations.append(annotation)
            else:
                i += 1
        if i >= len(masked):
            continue
        method_name = _TRAILING_IDENT.search(masked, 0, i)
        close = _matching(masked, i)
        parameters: list[list[Annotation]] = []
        start = i + 1
        for part in _split_top(masked[start:close], ","):
            parameters.append(_annotations_in(src, masked, start, start + len(part)))
            start += len(part) + 1

        function_name = next((a.value for a in annotations if a.name == FUNCTION_NAME), None)
        enclosing = [s for s in spans if s.start < m.start() < s.end]
        if not function_name or not method_name or not enclosing:
            continue
        qualified = [package_name] if package_name else []
        class_name = ".".join(qualified + [s.name for s in enclosing])
        methods.append(
            FunctionMethod(
                function_name=function_name,
                class_name=class_name,
                method_name=method_name.group(1),
                annotations=annotations,
                parameters=[p for p in parameters if p],
                class_annotations=[a for s in enclosing for a in s.annotations],
                source=path,
            )
        )
    return methods


def find_functions(source_roots: Iterable[Path]) -> list[FunctionMethod]:
    """Every ``@FunctionName`` method under the given source roots."""
    methods: list[FunctionMethod] = []
    for root in source_roots:
        root = Path(root)
        if not root.is_dir():
            logger.debug("Source root %s does not exist, skipped", root)
            continue
        for path in sorted(root.rglob("*.java")):
            methods.extend(_scan_source(path.read_text(encoding="utf-8", errors="replace"), path))
    return methods


# ---------------------------------------------------------------------------
# Configuration generation
# ---------------------------------------------------------------------------


def _to_binding(annotation: Annotation, storage_account: str | None, on_method: bool) -> Binding | None:
    binding_enum = BindingEnum.from_annotation(annotation.name)
    if binding_enum is None:
        return None
    attrs = dict(annotation.args)
    if binding_enum is BindingEnum.CustomBinding:
        binding_type = attrs.pop("type", None)
        direction = attrs.pop("direction", "in")
        if not binding_type:
            raise AzureExecutionError("The 'type' of a @CustomBinding is required.")
    else:
        binding_type = binding_enum.binding_type
        direction = binding_enum.direction.value  # type: ignore[union-attr]
    name = attrs.pop("name", None)
    if on_method:
        name = RETURN_BINDING_NAME
    attrs = {k: v for k, v in attrs.items() if v != ""}
    if binding_enum in STORAGE_BINDINGS and storage_account and "connection" not in attrs:
        attrs["connection"] = storage_account
    return Binding(type=binding_type, direction=direction, name=name, **attrs)


def _retry(annotations: list[Annotation]) -> Retry | None:
    for annotation in annotations:
        strategy = RETRY_STRATEGIES.get(annotation.name)
        if strategy:
            return Retry(strategy=strategy, **annotation.args)
    return None


def generate_configuration(method: FunctionMethod) -> FunctionConfiguration:
    storage_account = next(
        (a.value for a in method.annotations + method.class_annotations if a.name == STORAGE_ACCOUNT),
        None,
    )
    bindings: list[Binding] = []
    for parameter in method.parameters:
        for annotation in parameter:
            binding = _to_binding(annotation, storage_account, on_method=False)
            if binding is not None:
                bindings.append(binding)
    for annotation in method.annotations:
        binding = _to_binding(annotation, storage_account, on_method=True)
        if binding is not None:
            bindings.append(binding)

    has_http_trigger = any(b.binding_enum is BindingEnum.HttpTrigger for b in bindings)
    if has_http_trigger and not any(b.name == RETURN_BINDING_NAME for b in bindings):
        bindings.append(Binding(type="http", direction="out", name=RETURN_BINDING_NAME))

    return FunctionConfiguration(
        entry_point=method.entry_point,
        bindings=bindings,
        retry=_retry(method.annotations),
    )


def generate_configurations(methods: Iterable[FunctionMethod]) -> dict[str, FunctionConfiguration]:
    """``{function name: configuration}``; duplicate names are an error."""
    configs: dict[str, FunctionConfiguration] = {}
    for method in methods:
        logger.debug("Processing function: %s (%s)", method.function_name, method.entry_point)
        if method.function_name in configs:
            raise AzureExecutionError(f"Found duplicate Azure Function: {method.function_name}")
        configs[method.function_name] = generate_configuration(method)
    return configs
