"""
Lexical entity extractor for source files.

Walks a project tree and pulls File / Function / Class / Interface /
Variable candidates, import-like dependency records and ``identifier(``
usage records out of each file with per-language regular expressions.

This is deliberately NOT a real parser: declarations are recognised by
pattern, so unusual formatting can be missed and same-named entities can be
over-linked.  Rules live behind :class:`LanguageRules` so a real parser can
be registered for a language without touching the graph or query layers.

Supports: JavaScript, TypeScript, Python, Java, C, C++, C#, Go, Rust
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from .models import NodeType, Scalar

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language mapping
# ---------------------------------------------------------------------------

EXTENSION_TO_LANGUAGE: dict[str, str] = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".java": "java",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".hpp": "cpp",
    ".c": "c",
    ".h": "c",
    ".cs": "csharp",
    ".go": "go",
    ".rs": "rust",
}

DEFAULT_EXTENSIONS: frozenset[str] = frozenset({
    ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".py",
    ".java", ".cpp", ".cc", ".hpp", ".c", ".h", ".cs", ".go", ".rs",
})

DEFAULT_EXCLUDE_DIRS: frozenset[str] = frozenset({
    ".git", ".hg", ".svn", "node_modules", "dist", "build", "coverage",
    ".next", ".nuxt", "__pycache__", ".venv", "venv", ".tox",
    ".mypy_cache", ".pytest_cache", ".cache", "target",
})


def detect_language(file_path: str) -> str:
    """
    Return the language name for *file_path*, or ``"unknown"``.

    Parameters
    ----------
    file_path:
        Any file path; only the extension is examined.
    """
    ext = os.path.splitext(file_path)[1].lower()
    return EXTENSION_TO_LANGUAGE.get(ext, "unknown")


# ---------------------------------------------------------------------------
# Data classes returned by the extractor
# ---------------------------------------------------------------------------

@dataclass
class ExtractedEntity:
    """A declaration found in a file."""
    type: str                   # NodeType.FUNCTION | CLASS | INTERFACE | VARIABLE
    name: str
    line: int
    importance: float = 0.5
    exported: bool = False
    metadata: dict[str, Scalar] = field(default_factory=dict)
    attributes: dict[str, Scalar] = field(default_factory=dict)


@dataclass
class ExtractedDependency:
    """An import-like statement."""
    module: str                 # "./a", "../lib/x", "react", "os.path", ...
    kind: str                   # "import" | "require" | "include" | "use"
    line: int
    names: list[str] = field(default_factory=list)

    @property
    def is_relative(self) -> bool:
        return self.module.startswith(".")


@dataclass
class ExtractedUsage:
    """A potential call site: ``name(`` somewhere in the file."""
    name: str
    line: int


@dataclass
class ExtractedFile:
    """Everything the extractor learned about a single file."""
    path: str                   # repo-relative, POSIX separators
    language: str
    size: int
    extension: str
    last_modified: datetime
    line_count: int
    complexity: float
    importance: float
    entities: list[ExtractedEntity] = field(default_factory=list)
    dependencies: list[ExtractedDependency] = field(default_factory=list)
    usages: list[ExtractedUsage] = field(default_factory=list)
    ambiguities: int = 0


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_FUNCTION_WORD_RE = re.compile(r"\b(?:function|def|class|fn|func)\b")
_CONDITIONAL_RE = re.compile(r"\b(?:if|else|switch|case|while|for)\b")
_USAGE_RE = re.compile(r"\b([A-Za-z_$][\w$]*)\s*\(")
_DECLARATION_PREFIX_RE = re.compile(
    r"(?:\bfunction\s*\*?|\bdef|\bfn|\bfunc(?:\s*\([^()]*\))?|\bclass)\s*$"
)
_SINGLETON_BODY_RE = re.compile(
    r"private\s+(?:static\s+)?constructor|static\s+\w*[iI]nstance\b|"
    r"\bgetInstance\s*\(|\b_instance\s*=|\bINSTANCE\b"
)


def line_of(content: str, index: int) -> int:
    """Return the 1-based line number of character *index*."""
    return content.count("\n", 0, index) + 1


def compute_complexity(content: str) -> float:
    """``(functions + conditionals) / lines`` for *content*."""
    lines = len(content.split("\n"))
    functions = len(_FUNCTION_WORD_RE.findall(content))
    conditionals = len(_CONDITIONAL_RE.findall(content))
    return (functions + conditionals) / lines if lines else 0.0


def function_complexity(body: str) -> float:
    """Conditional count plus a tenth of the line count, capped at 10."""
    conditionals = len(_CONDITIONAL_RE.findall(body))
    lines = len(body.split("\n"))
    return round(min(10.0, conditionals + lines / 10), 2)


def file_importance(rel_path: str, line_count: int) -> float:
    """Heuristic importance of a file from its name and size."""
    lowered = rel_path.lower()
    importance = 0.5
    base = os.path.basename(lowered)
    if base.startswith("index.") or base.startswith("main."):
        importance += 0.3
    if "config" in lowered:
        importance += 0.2
    if "util" in lowered or "helper" in lowered:
        importance += 0.1
    importance += min(0.3, line_count / 1000)
    return min(1.0, importance)


def brace_block(content: str, start: int) -> str:
    """
    Return the ``{...}`` block that opens at or after *start*.

    Braces inside string literals are not special-cased.  Returns the text
    up to the end of *content* when the block is never closed, and an empty
    string when a ``;`` comes before any ``{``.
    """
    open_idx = content.find("{", start)
    if open_idx < 0:
        return ""
    semi = content.find(";", start, open_idx)
    if semi >= 0:
        return ""
    depth = 0
    for idx in range(open_idx, len(content)):
        ch = content[idx]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return content[start:idx + 1]
    return content[start:]


def indent_block(content: str, start: int) -> str:
    """Return the indentation-delimited block whose header line contains *start*."""
    line_start = content.rfind("\n", 0, start) + 1
    lines = content[line_start:].split("\n")
    header = lines[0]
    indent = len(header) - len(header.lstrip())
    body = [header]
    for line in lines[1:]:
        if line.strip() and len(line) - len(line.lstrip()) <= indent:
            break
        body.append(line)
    while len(body) > 1 and not body[-1].strip():
        body.pop()
    return "\n".join(body)


def _split_names(clause: str) -> list[str]:
    """``"a, b as c"`` → ``["a", "b"]``."""
    names: list[str] = []
    for part in clause.split(","):
        part = part.strip().strip("()").strip()
        if not part:
            continue
        name = re.split(r"\s+as\s+", part)[0].strip()
        if re.fullmatch(r"[A-Za-z_$][\w$]*", name):
            names.append(name)
    return names


# ---------------------------------------------------------------------------
# Language rules
# ---------------------------------------------------------------------------

class LanguageRules:
    """
    Lexical extraction rules for a language.

    Subclasses implement :meth:`extract_entities` and
    :meth:`extract_dependencies`; :meth:`extract_usages` is shared.
    """

    languages: tuple[str, ...] = ()
    keywords: frozenset[str] = frozenset({
        "if", "for", "while", "switch", "catch", "return", "else", "new",
        "sizeof", "typeof", "function", "def", "class", "elif", "with",
        "assert", "await", "yield", "print", "super", "not", "and", "or",
        "in", "is", "lambda", "del", "raise", "except", "fn", "func",
        "match", "loop", "import", "require", "try", "finally", "pass",
        "async", "constructor",
    })

    def extract_entities(self, content: str) -> tuple[list[ExtractedEntity], int]:
        """Return ``(entities, ambiguity_count)``."""
        raise NotImplementedError

    def extract_dependencies(self, content: str) -> list[ExtractedDependency]:
        raise NotImplementedError

    def extract_usages(self, content: str) -> list[ExtractedUsage]:
        """
        Return one usage per distinct ``identifier(`` name.

        Declaration sites (``def foo(``, ``function foo(`` …) and language
        keywords are skipped.
        """
        seen: set[str] = set()
        usages: list[ExtractedUsage] = []
        for m in _USAGE_RE.finditer(content):
            name = m.group(1)
            if name in seen or name in self.keywords:
                continue
            prefix = content[max(0, m.start() - 60):m.start()]
            if _DECLARATION_PREFIX_RE.search(prefix):
                continue
            seen.add(name)
            usages.append(ExtractedUsage(name=name, line=line_of(content, m.start())))
        return usages


class JavaScriptRules(LanguageRules):
    """JavaScript and TypeScript."""

    languages = ("javascript", "typescript")

    _FUNCTION_RE = re.compile(
        r"(?:\b(export)\s+(?:default\s+)?)?(?:\basync\s+)?\bfunction\s*\*?\s*([A-Za-z_$][\w$]*)\s*\("
    )
    _ARROW_RE = re.compile(
        r"(?:\b(export)\s+)?\b(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*(?::[^=;]+)?=\s*"
        r"(async\s+)?(?:\([^)]*\)\s*(?::\s*[^=]+)?=>|[A-Za-z_$][\w$]*\s*=>|function\b)"
    )
    _CLASS_RE = re.compile(
        r"(?:\b(export)\s+(?:default\s+)?)?(?:\b(abstract)\s+)?\bclass\s+([A-Za-z_$][\w$]*)"
        r"(?:<[^>{]*>)?(?:\s+extends\s+([\w$.]+)(?:<[^>{]*>)?)?"
        r"(?:\s+implements\s+([\w$.,\s<>]+?))?\s*\{"
    )
    _INTERFACE_RE = re.compile(r"(?:\b(export)\s+)?\binterface\s+([A-Za-z_$][\w$]*)")
    _VARIABLE_RE = re.compile(
        r"(?:\b(export)\s+)?\b(const|let|var)\s+([A-Za-z_$][\w$]*)\s*(?::[^=;]+)?=(?![=>])"
    )
    _IMPORT_RE = re.compile(r"\bimport\s+(?:type\s+)?([^'\";]+?)\s+from\s+['\"]([^'\"]+)['\"]")
    _SIDE_EFFECT_IMPORT_RE = re.compile(r"\bimport\s+['\"]([^'\"]+)['\"]")
    _REQUIRE_RE = re.compile(r"\brequire\(\s*['\"]([^'\"]+)['\"]\s*\)")

    def extract_entities(self, content: str) -> tuple[list[ExtractedEntity], int]:
        entities: list[ExtractedEntity] = []
        ambiguities = 0
        function_names: set[str] = set()

        for m in self._FUNCTION_RE.finditer(content):
            name = m.group(2)
            if name in self.keywords:
                ambiguities += 1
                continue
            body = brace_block(content, m.start())
            function_names.add(name)
            entities.append(ExtractedEntity(
                type=NodeType.FUNCTION,
                name=name,
                line=line_of(content, m.start()),
                importance=0.7,
                exported=bool(m.group(1)),
                metadata={"line": line_of(content, m.start()),
                          "is_async": "async" in m.group(0)},
                attributes={"complexity": function_complexity(body or m.group(0))},
            ))

        for m in self._ARROW_RE.finditer(content):
            name = m.group(2)
            if name in function_names:
                continue
            body = brace_block(content, m.end()) or content[m.start():content.find("\n", m.end())]
            function_names.add(name)
            entities.append(ExtractedEntity(
                type=NodeType.FUNCTION,
                name=name,
                line=line_of(content, m.start()),
                importance=0.7,
                exported=bool(m.group(1)),
                metadata={"line": line_of(content, m.start()),
                          "is_async": bool(m.group(3))},
                attributes={"complexity": function_complexity(body)},
            ))

        for m in self._CLASS_RE.finditer(content):
            name = m.group(3)
            body = brace_block(content, m.start())
            implements = [n.strip() for n in (m.group(5) or "").split(",") if n.strip()]
            entities.append(ExtractedEntity(
                type=NodeType.CLASS,
                name=name,
                line=line_of(content, m.start()),
                importance=0.8,
                exported=bool(m.group(1)),
                metadata={
                    "line": line_of(content, m.start()),
                    "extends": m.group(4),
                    "implements": ",".join(implements) or None,
                    "line_count": len(body.split("\n")) if body else 1,
                    "is_singleton": bool(_SINGLETON_BODY_RE.search(body)),
                },
                attributes={"is_abstract": bool(m.group(2))},
            ))

        for m in self._INTERFACE_RE.finditer(content):
            entities.append(ExtractedEntity(
                type=NodeType.INTERFACE,
                name=m.group(2),
                line=line_of(content, m.start()),
                importance=0.6,
                exported=bool(m.group(1)),
                metadata={"line": line_of(content, m.start())},
            ))

        for m in self._VARIABLE_RE.finditer(content):
            name = m.group(3)
            if name in function_names:
                continue
            entities.append(ExtractedEntity(
                type=NodeType.VARIABLE,
                name=name,
                line=line_of(content, m.start()),
                importance=0.3,
                exported=bool(m.group(1)),
                metadata={"line": line_of(content, m.start()),
                          "declaration_type": m.group(2)},
            ))

        return entities, ambiguities

    def extract_dependencies(self, content: str) -> list[ExtractedDependency]:
        deps: list[ExtractedDependency] = []
        for m in self._IMPORT_RE.finditer(content):
            clause = m.group(1).strip()
            names: list[str] = []
            brace = re.search(r"\{([^}]*)\}", clause)
            if brace:
                names.extend(_split_names(brace.group(1)))
            default = re.match(r"([A-Za-z_$][\w$]*)\s*(?:,|$)", clause)
            if default:
                names.insert(0, default.group(1))
            deps.append(ExtractedDependency(
                module=m.group(2), kind="import",
                line=line_of(content, m.start()), names=names,
            ))
        for m in self._SIDE_EFFECT_IMPORT_RE.finditer(content):
            deps.append(ExtractedDependency(
                module=m.group(1), kind="import", line=line_of(content, m.start()),
            ))
        for m in self._REQUIRE_RE.finditer(content):
            deps.append(ExtractedDependency(
                module=m.group(1), kind="require", line=line_of(content, m.start()),
            ))
        return deps


class PythonRules(LanguageRules):
    """Python."""

    languages = ("python",)

    _FUNCTION_RE = re.compile(r"^([ \t]*)(async[ \t]+)?def[ \t]+(\w+)[ \t]*\(", re.MULTILINE)
    _CLASS_RE = re.compile(r"^([ \t]*)class[ \t]+(\w+)[ \t]*(?:\(([^)]*)\))?[ \t]*:", re.MULTILINE)
    _VARIABLE_RE = re.compile(r"^([A-Za-z_]\w*)[ \t]*(?::[^=\n]+)?=(?!=)", re.MULTILINE)
    _FROM_IMPORT_RE = re.compile(r"^[ \t]*from[ \t]+([\w.]+)[ \t]+import[ \t]+([^#\n]+)", re.MULTILINE)
    _IMPORT_RE = re.compile(r"^[ \t]*import[ \t]+([^#\n]+)", re.MULTILINE)
    _INTERFACE_BASES = frozenset({"Protocol", "ABC", "typing.Protocol", "abc.ABC"})

    def extract_entities(self, content: str) -> tuple[list[ExtractedEntity], int]:
        entities: list[ExtractedEntity] = []

        for m in self._FUNCTION_RE.finditer(content):
            body = indent_block(content, m.start(3))
            entities.append(ExtractedEntity(
                type=NodeType.FUNCTION,
                name=m.group(3),
                line=line_of(content, m.start(3)),
                importance=0.7,
                metadata={"line": line_of(content, m.start(3)),
                          "is_async": bool(m.group(2)),
                          "is_method": bool(m.group(1))},
                attributes={"complexity": function_complexity(body)},
            ))

        for m in self._CLASS_RE.finditer(content):
            bases = [
                b.strip() for b in (m.group(3) or "").split(",")
                if b.strip() and "=" not in b and b.strip() != "object"
            ]
            body = indent_block(content, m.start(2))
            is_interface = any(b in self._INTERFACE_BASES for b in bases)
            entities.append(ExtractedEntity(
                type=NodeType.INTERFACE if is_interface else NodeType.CLASS,
                name=m.group(2),
                line=line_of(content, m.start(2)),
                importance=0.6 if is_interface else 0.8,
                metadata={
                    "line": line_of(content, m.start(2)),
                    "extends": bases[0] if bases else None,
                    "line_count": len(body.split("\n")),
                    "is_singleton": bool(_SINGLETON_BODY_RE.search(body)),
                },
            ))

        for m in self._VARIABLE_RE.finditer(content):
            if m.group(1) in self.keywords:
                continue
            entities.append(ExtractedEntity(
                type=NodeType.VARIABLE,
                name=m.group(1),
                line=line_of(content, m.start()),
                importance=0.3,
                metadata={"line": line_of(content, m.start()),
                          "declaration_type": "module"},
            ))

        return entities, 0

    @staticmethod
    def _relative_path(module: str) -> str:
        """``".a.b"`` → ``"./a/b"``; ``"..x"`` → ``"../x"``."""
        level = len(module) - len(module.lstrip("."))
        rest = module[level:].replace(".", "/")
        prefix = "./" if level == 1 else "../" * (level - 1)
        return prefix + rest

    def extract_dependencies(self, content: str) -> list[ExtractedDependency]:
        deps: list[ExtractedDependency] = []
        for m in self._FROM_IMPORT_RE.finditer(content):
            module = m.group(1)
            names = _split_names(m.group(2).replace("(", "").replace(")", "").replace("\\", ""))
            line = line_of(content, m.start())
            if module.strip(".") == "":
                # "from . import a, b" names sibling modules
                for name in names:
                    deps.append(ExtractedDependency(
                        module=self._relative_path(module + name), kind="import", line=line,
                    ))
                continue
            if module.startswith("."):
                module = self._relative_path(module)
            deps.append(ExtractedDependency(module=module, kind="import", line=line, names=names))
        for m in self._IMPORT_RE.finditer(content):
            line = line_of(content, m.start())
            for part in m.group(1).split(","):
                module = re.split(r"\s+as\s+", part.strip())[0].strip()
                if re.fullmatch(r"[\w.]+", module):
                    deps.append(ExtractedDependency(module=module, kind="import", line=line))
        return deps


class CFamilyRules(LanguageRules):
    """
    Declarations for Java, C, C++, C#, Go and Rust.

    Each instance is configured with the patterns of one language; capture
    group ``name`` is the declared name, optional group ``base`` the
    superclass and group ``module`` the imported reference.
    """

    def __init__(
        self,
        languages: tuple[str, ...],
        function_patterns: Iterable[str],
        class_patterns: Iterable[str],
        interface_patterns: Iterable[str],
        dependency_patterns: Iterable[tuple[str, str]],
        local_include: Optional[str] = None,
    ) -> None:
        self.languages = languages
        self._functions = [re.compile(p, re.MULTILINE) for p in function_patterns]
        self._classes = [re.compile(p, re.MULTILINE) for p in class_patterns]
        self._interfaces = [re.compile(p, re.MULTILINE) for p in interface_patterns]
        self._dependencies = [(re.compile(p, re.MULTILINE), kind) for p, kind in dependency_patterns]
        self._local_include = re.compile(local_include, re.MULTILINE) if local_include else None

    def extract_entities(self, content: str) -> tuple[list[ExtractedEntity], int]:
        entities: list[ExtractedEntity] = []
        ambiguities = 0
        seen: set[tuple[str, str]] = set()

        def _add(entity: ExtractedEntity) -> None:
            key = (entity.type, entity.name)
            if key not in seen:
                seen.add(key)
                entities.append(entity)

        for pattern in self._functions:
            for m in pattern.finditer(content):
                name = m.group("name")
                if name in self.keywords:
                    ambiguities += 1
                    continue
                body = brace_block(content, m.start())
                _add(ExtractedEntity(
                    type=NodeType.FUNCTION,
                    name=name,
                    line=line_of(content, m.start("name")),
                    importance=0.7,
                    metadata={"line": line_of(content, m.start("name"))},
                    attributes={"complexity": function_complexity(body or m.group(0))},
                ))

        for pattern in self._classes:
            for m in pattern.finditer(content):
                body = brace_block(content, m.start())
                base = m.groupdict().get("base")
                _add(ExtractedEntity(
                    type=NodeType.CLASS,
                    name=m.group("name"),
                    line=line_of(content, m.start("name")),
                    importance=0.8,
                    metadata={
                        "line": line_of(content, m.start("name")),
                        "extends": base.split(".")[-1].split("::")[-1] if base else None,
                        "line_count": len(body.split("\n")) if body else 1,
                        "is_singleton": bool(_SINGLETON_BODY_RE.search(body)),
                    },
                ))

        for pattern in self._interfaces:
            for m in pattern.finditer(content):
                _add(ExtractedEntity(
                    type=NodeType.INTERFACE,
                    name=m.group("name"),
                    line=line_of(content, m.start("name")),
                    importance=0.6,
                    metadata={"line": line_of(content, m.start("name"))},
                ))

        return entities, ambiguities

    def extract_dependencies(self, content: str) -> list[ExtractedDependency]:
        deps: list[ExtractedDependency] = []
        for pattern, kind in self._dependencies:
            for m in pattern.finditer(content):
                deps.append(ExtractedDependency(
                    module=m.group("module"), kind=kind, line=line_of(content, m.start()),
                ))
        if self._local_include is not None:
            for m in self._local_include.finditer(content):
                module = m.group("module")
                if not module.startswith("."):
                    module = "./" + module
                deps.append(ExtractedDependency(
                    module=module, kind="include", line=line_of(content, m.start()),
                ))
        return deps


class GoRules(CFamilyRules):
    """Go: adds parenthesised ``import ( ... )`` blocks."""

    _IMPORT_BLOCK_RE = re.compile(r"^import\s*\(([^)]*)\)", re.MULTILINE)
    _QUOTED_RE = re.compile(r"\"([^\"]+)\"")

    def extract_dependencies(self, content: str) -> list[ExtractedDependency]:
        deps = super().extract_dependencies(content)
        for block in self._IMPORT_BLOCK_RE.finditer(content):
            for m in self._QUOTED_RE.finditer(block.group(1)):
                deps.append(ExtractedDependency(
                    module=m.group(1), kind="import",
                    line=line_of(content, block.start(1) + m.start()),
                ))
        return deps


_C_FUNCTION = (
    r"^[ \t]*(?:[\w:<>\[\],*&]+[ \t]+)+[*&]*(?P<name>[A-Za-z_]\w*)[ \t]*"
    r"\([^;{)]*\)\s*(?:const\s*)?(?:throws[^{;]*)?\{"
)

_GENERIC_RULES: list[CFamilyRules] = [
    CFamilyRules(
        languages=("java",),
        function_patterns=[_C_FUNCTION],
        class_patterns=[r"\bclass\s+(?P<name>\w+)(?:<[^>{]*>)?(?:\s+extends\s+(?P<base>[\w.]+))?"],
        interface_patterns=[r"\binterface\s+(?P<name>\w+)"],
        dependency_patterns=[(r"^\s*import\s+(?:static\s+)?(?P<module>[\w.*]+)\s*;", "import")],
    ),
    CFamilyRules(
        languages=("csharp",),
        function_patterns=[_C_FUNCTION],
        class_patterns=[r"\b(?:class|struct)\s+(?P<name>\w+)(?:<[^>{]*>)?(?:\s*:\s*(?P<base>[\w.]+))?"],
        interface_patterns=[r"\binterface\s+(?P<name>\w+)"],
        dependency_patterns=[(r"^\s*using\s+(?:static\s+)?(?P<module>[\w.]+)\s*;", "use")],
    ),
    CFamilyRules(
        languages=("c", "cpp"),
        function_patterns=[_C_FUNCTION],
        class_patterns=[
            r"\b(?:class|struct)\s+(?P<name>\w+)(?:\s*:\s*(?:public|private|protected)?\s*(?P<base>[\w:]+))?\s*\{",
        ],
        interface_patterns=[],
        dependency_patterns=[(r"^\s*#\s*include\s*<(?P<module>[^>]+)>", "include")],
        local_include=r"^\s*#\s*include\s*\"(?P<module>[^\"]+)\"",
    ),
    GoRules(
        languages=("go",),
        function_patterns=[r"^func\s+(?:\([^)]*\)\s*)?(?P<name>\w+)\s*(?:\[[^\]]*\])?\("],
        class_patterns=[r"^type\s+(?P<name>\w+)\s+struct\b"],
        interface_patterns=[r"^type\s+(?P<name>\w+)\s+interface\b"],
        dependency_patterns=[(r"^import\s+(?:\w+\s+)?\"(?P<module>[^\"]+)\"", "import")],
    ),
    CFamilyRules(
        languages=("rust",),
        function_patterns=[
            r"^[ \t]*(?:pub(?:\([^)]*\))?[ \t]+)?(?:const[ \t]+)?(?:async[ \t]+)?(?:unsafe[ \t]+)?fn[ \t]+(?P<name>\w+)",
        ],
        class_patterns=[r"^[ \t]*(?:pub(?:\([^)]*\))?[ \t]+)?(?:struct|enum)[ \t]+(?P<name>\w+)"],
        interface_patterns=[r"^[ \t]*(?:pub(?:\([^)]*\))?[ \t]+)?trait[ \t]+(?P<name>\w+)"],
        dependency_patterns=[(r"^\s*(?:pub\s+)?use\s+(?P<module>[\w:]+)", "use")],
    ),
]


# ---------------------------------------------------------------------------
# Rule registry
# ---------------------------------------------------------------------------

_RULES: dict[str, LanguageRules] = {}


def register_rules(rules: LanguageRules) -> None:
    """Register *rules* for every language it declares, replacing any previous rules."""
    for language in rules.languages:
        _RULES[language] = rules


def get_rules(language: str) -> Optional[LanguageRules]:
    return _RULES.get(language)


register_rules(JavaScriptRules())
register_rules(PythonRules())
for _rules in _GENERIC_RULES:
    register_rules(_rules)


# ---------------------------------------------------------------------------
# File walker
# ---------------------------------------------------------------------------

def discover(
    root: str,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
) -> list[str]:
    """
    Walk *root* and return the repo-relative POSIX paths of all source files.

    Parameters
    ----------
    root:
        Project root directory.
    extensions:
        Extension allow-list (lower case, with the leading dot).
    exclude_dirs:
        Directory names that are never descended into.

    Returns
    -------
    list[str]
        Sorted relative paths.
    """
    allowed = {e.lower() for e in extensions}
    excluded = set(exclude_dirs)
    results: list[str] = []

    def _on_error(exc: OSError) -> None:
        logger.warning("Cannot list %s: %s", getattr(exc, "filename", "?"), exc)

    for dirpath, dirnames, filenames in os.walk(root, topdown=True, onerror=_on_error):
        # Prune excluded directories in-place (modifies the walk)
        dirnames[:] = [d for d in dirnames if d not in excluded]
        for fname in filenames:
            ext = os.path.splitext(fname)[1].lower()
            if ext not in allowed:
                continue
            rel_path = os.path.relpath(os.path.join(dirpath, fname), root)
            results.append(rel_path.replace(os.sep, "/"))

    return sorted(results)


# ---------------------------------------------------------------------------
# Per-file extraction
# ---------------------------------------------------------------------------

def extract_source(rel_path: str, content: str) -> ExtractedFile:
    """
    Run the lexical rules for *rel_path*'s language over *content*.

    File-system metadata (size, modification time) is left at neutral
    values; :func:`extract_file` fills them in.
    """
    language = detect_language(rel_path)
    line_count = len(content.split("\n"))
    extracted = ExtractedFile(
        path=rel_path,
        language=language,
        size=len(content.encode("utf-8")),
        extension=os.path.splitext(rel_path)[1],
        last_modified=datetime.fromtimestamp(0, tz=timezone.utc),
        line_count=line_count,
        complexity=compute_complexity(content),
        importance=file_importance(rel_path, line_count),
    )

    rules = get_rules(language)
    if rules is None:
        logger.debug("No extraction rules for %s (%s)", rel_path, language)
        return extracted

    extracted.entities, extracted.ambiguities = rules.extract_entities(content)
    extracted.dependencies = rules.extract_dependencies(content)
    extracted.usages = rules.extract_usages(content)
    return extracted


def extract_file(root: str, rel_path: str) -> Optional[ExtractedFile]:
    """
    Read and extract a single file.

    Parameters
    ----------
    root:
        Project root directory.
    rel_path:
        Path relative to *root* as returned by :func:`discover`.

    Returns
    -------
    ExtractedFile or None
        None when the file cannot be read; the failure is logged.
    """
    abs_path = os.path.join(root, rel_path)
    try:
        with open(abs_path, encoding="utf-8", errors="replace") as fh:
            content = fh.read()
        stat = os.stat(abs_path)
    except OSError as exc:
        logger.warning("Failed to read %s: %s", rel_path, exc)
        return None

    extracted = extract_source(rel_path, content)
    extracted.size = stat.st_size
    extracted.last_modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    return extracted
