"""Type-specific patch strategies.

Each strategy takes an :class:`ErrorRecord` and a :class:`StrategyContext`
and returns a :class:`StrategyOutcome` or ``None`` when it does not apply.
Strategies are registered by :class:`StrategyId` in ``DEFAULT_REGISTRY``;
``DEFAULT_STRATEGY_TABLE`` lists which ones are tried, in order, for each
error type.
"""

from __future__ import annotations

import enum
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Mapping

from autopatch.core.models import ErrorRecord, ErrorType, FileEdit
from autopatch.fix.similarity import similarity
from autopatch.fix.tables import DEFAULT_TABLES, RESOLVE_EXTENSIONS, StrategyTables


class StrategyId(enum.Enum):
    FIX_MISSING_IMPORTS = "fix_missing_imports"
    FIX_RELATIVE_PATHS = "fix_relative_paths"
    FIX_TYPO_IN_IMPORTS = "fix_typo_in_imports"
    ADD_MISSING_PACKAGES = "add_missing_packages"
    FIX_DEFAULT_EXPORTS = "fix_default_exports"
    FIX_NAMED_EXPORTS = "fix_named_exports"
    ADD_TYPE_ASSERTIONS = "add_type_assertions"
    ADD_NULL_CHECKS = "add_null_checks"
    FIX_TABLE_NAMES = "fix_table_names"
    FIX_PROP_TYPES = "fix_prop_types"
    FIX_HOOK_DEPENDENCIES = "fix_hook_dependencies"


@dataclass
class StrategyOutcome:
    """What a strategy proposes; the engine wraps it into a PatchCandidate."""

    confidence: float
    description: str
    changes: list[FileEdit] = field(default_factory=list)
    suggestion: str = ""


class StrategyContext:
    """Filesystem access and lookup tables shared by all strategies."""

    def __init__(self, project_path: Path | None = None, tables: StrategyTables = DEFAULT_TABLES):
        self.project_path = (project_path or Path.cwd()).resolve()
        self.tables = tables

    def resolve(self, file: str) -> Path:
        path = Path(file)
        if path.is_absolute():
            return path
        return self.project_path / path

    def exists(self, file: str | None) -> bool:
        return bool(file) and self.resolve(file).is_file()

    def read(self, file: str) -> str:
        return self.resolve(file).read_text(encoding="utf-8")


Strategy = Callable[[ErrorRecord, StrategyContext], "StrategyOutcome | None"]


# ---------------------------------------------------------------------------
# Import strategies
# ---------------------------------------------------------------------------

_MODULE_PATTERNS = (
    re.compile(r"Cannot resolve module ['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"Module not found:(?:.*?Can't resolve)? ['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"Cannot find module ['\"`]([^'\"`]+)['\"`]"),
)

_JS_EXTENSION = re.compile(r"\.(ts|tsx|js|jsx)$")


def _missing_module(error: ErrorRecord) -> str | None:
    """Module specifier named by an import error."""
    if error.type == ErrorType.IMPORT and error.matches and error.matches[0]:
        return error.matches[0]
    for pattern in _MODULE_PATTERNS:
        match = pattern.search(error.text)
        if match:
            return match.group(1)
    return None


def _is_relative(module: str) -> bool:
    return module.startswith("./") or module.startswith("../")


def fix_missing_imports(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    """Insert a known import statement, or repair a relative import path."""
    if not ctx.exists(error.file):
        return None

    module = _missing_module(error)
    if not module:
        return None

    statement = ctx.tables.import_corrections.get(module)
    if statement:
        lines = ctx.read(error.file).split("\n")

        insert_index = 0
        for i, line in enumerate(lines):
            if line.startswith("import "):
                insert_index = i + 1
            elif line.strip() == "" and insert_index > 0:
                break

        lines.insert(insert_index, statement)
        return StrategyOutcome(
            confidence=0.9,
            description=f"Add missing import for {module}",
            changes=[FileEdit(file=error.file, content="\n".join(lines))],
        )

    if _is_relative(module):
        return resolve_relative_import(error, module, ctx)

    return None


def resolve_relative_import(
    error: ErrorRecord, module: str, ctx: StrategyContext
) -> StrategyOutcome | None:
    """Find the file a relative specifier meant and rewrite the specifier."""
    source = ctx.resolve(error.file)
    base = source.parent
    target = os.path.normpath(base / module)

    found = None
    for ext in RESOLVE_EXTENSIONS:
        candidate = Path(target + ext)
        if candidate.is_file():
            found = candidate
            break

    if found is None:
        for ext in RESOLVE_EXTENSIONS:
            candidate = Path(target) / f"index{ext}"
            if candidate.is_file():
                found = candidate
                break

    if found is None:
        return None

    relative = os.path.relpath(found, base).replace("\\", "/")
    corrected = relative if relative.startswith(".") else f"./{relative}"
    specifier = _JS_EXTENSION.sub("", corrected)

    content = ctx.read(error.file)
    quoted = re.compile(r"['\"`]" + re.escape(module) + r"['\"`]")
    new_content = quoted.sub(lambda _m: f"'{specifier}'", content)

    return StrategyOutcome(
        confidence=0.8,
        description=f"Fix relative path {module} to {corrected}",
        changes=[FileEdit(file=error.file, content=new_content)],
    )


def fix_relative_paths(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    if not ctx.exists(error.file):
        return None
    module = _missing_module(error)
    if not module or not _is_relative(module):
        return None
    return resolve_relative_import(error, module, ctx)


def fix_typo_in_imports(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    """Correct misspelled quoted import specifiers."""
    if not ctx.exists(error.file):
        return None

    content = ctx.read(error.file)
    new_content = content
    for typo, correct in ctx.tables.typo_corrections.items():
        quoted = re.compile(r"['\"`]" + re.escape(typo) + r"['\"`]")
        new_content = quoted.sub(lambda _m, c=correct: f"'{c}'", new_content)

    if new_content == content:
        return None

    return StrategyOutcome(
        confidence=0.7,
        description="Fix import typos",
        changes=[FileEdit(file=error.file, content=new_content)],
    )


def add_missing_packages(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    """Suggest installing a bare package that could not be resolved."""
    module = _missing_module(error)
    if not module or _is_relative(module) or module.startswith("/"):
        return None

    parts = module.split("/")
    package = "/".join(parts[:2]) if module.startswith("@") else parts[0]
    return StrategyOutcome(
        confidence=0.5,
        description=f"Package '{package}' is not installed",
        suggestion=f"Install the missing package: npm install {package}",
    )


# ---------------------------------------------------------------------------
# Export strategies
# ---------------------------------------------------------------------------

_COMPONENT_DECL = re.compile(r"(?:function|const|class)\s+([A-Z][a-zA-Z0-9]*)")
_NAMED_EXPORT = re.compile(r"export\s+(?:const|function|class)\s+([a-zA-Z0-9_]+)")


def fix_default_exports(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    """Append ``export default <Component>;`` when a file has none."""
    if not ctx.exists(error.file):
        return None

    content = ctx.read(error.file)
    match = _COMPONENT_DECL.search(content)
    if not match or "export default" in content:
        return None

    name = match.group(1)
    lines = content.split("\n")
    lines.extend(["", f"export default {name};"])
    return StrategyOutcome(
        confidence=0.8,
        description=f"Add default export for {name}",
        changes=[FileEdit(file=error.file, content="\n".join(lines))],
    )


def fix_named_exports(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    """Point at an existing export whose name is close to the missing one."""
    if not error.matches or not error.matches[0] or not ctx.exists(error.file):
        return None

    expected = error.matches[0]
    for declared in _NAMED_EXPORT.findall(ctx.read(error.file)):
        if declared == expected:
            continue
        if similarity(declared, expected) > 0.8:
            return StrategyOutcome(
                confidence=0.6,
                description=f"Suggest using {declared} instead of {expected}",
                suggestion=f"Consider using '{declared}' instead of '{expected}'",
            )
    return None


# ---------------------------------------------------------------------------
# Type / null-safety strategies
# ---------------------------------------------------------------------------

_OPTIONAL_CHAIN_REWRITES = (
    (re.compile(r"(\w+)\.(\w+)"), r"\1?.\2"),
    (re.compile(r"(\w+)\[(\w+)\]"), r"\1?.[\2]"),
)

_PROPERTY_OF_NOTHING = re.compile(r"Cannot read propert(?:y|ies) '([^']+)' of (?:undefined|null)")


def _line_at(lines: list[str], line_number: int | None) -> str | None:
    if not line_number or line_number < 1 or line_number > len(lines):
        return None
    return lines[line_number - 1] or None


def add_type_assertions(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    """Optional chaining on the line flagged as possibly null/undefined."""
    if not ctx.exists(error.file):
        return None
    text = error.text
    if "Object is possibly 'null'" not in text and "Object is possibly 'undefined'" not in text:
        return None

    lines = ctx.read(error.file).split("\n")
    line = _line_at(lines, error.line_number)
    if line is None:
        return None

    for pattern, replacement in _OPTIONAL_CHAIN_REWRITES:
        if pattern.search(line):
            lines[error.line_number - 1] = pattern.sub(replacement, line, count=1)
            return StrategyOutcome(
                confidence=0.7,
                description="Add optional chaining for null safety",
                changes=[FileEdit(file=error.file, content="\n".join(lines))],
            )
    return None


def add_null_checks(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    """Guard the property access named in a "Cannot read property" error."""
    if not ctx.exists(error.file):
        return None
    match = _PROPERTY_OF_NOTHING.search(error.text)
    if not match:
        return None

    prop = match.group(1)
    lines = ctx.read(error.file).split("\n")
    line = _line_at(lines, error.line_number)
    if line is None:
        return None

    access = re.compile(r"(?<!\?)\." + re.escape(prop) + r"\b")
    new_line = access.sub(f"?.{prop}", line, count=1)
    if new_line == line:
        return None

    lines[error.line_number - 1] = new_line
    return StrategyOutcome(
        confidence=0.6,
        description=f"Guard access to '{prop}' with optional chaining",
        changes=[FileEdit(file=error.file, content="\n".join(lines))],
    )


# ---------------------------------------------------------------------------
# Database strategies
# ---------------------------------------------------------------------------

def fix_table_names(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    """Suggest the plural table name; schema changes are never auto-applied."""
    if not error.matches or not error.matches[0]:
        return None

    table = error.matches[0]
    correction = ctx.tables.table_name_corrections.get(table.lower())
    if not correction:
        return None

    return StrategyOutcome(
        confidence=0.6,
        description=f"Suggest changing table name from '{table}' to '{correction}'",
        suggestion=f"Consider using table name '{correction}' instead of '{table}'",
    )


# ---------------------------------------------------------------------------
# React strategies
# ---------------------------------------------------------------------------

_MAP_CALLBACK = re.compile(r"(\w+)\.map\(\((\w+)(?:,\s*(\w+))?\)\s*=>")
_JSX_OPEN_TAG = re.compile(r"<(\w+)([^>]*)>")
_IDENTIFIER = re.compile(r"\b([a-zA-Z_$][a-zA-Z0-9_$]*)\b")


def fix_prop_types(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    """Inject ``key={...}`` into list items rendered from ``.map(`` callbacks."""
    if not ctx.exists(error.file):
        return None
    if 'unique "key" prop' not in error.text:
        return None

    lines = ctx.read(error.file).split("\n")
    changed = False
    for i, line in enumerate(lines):
        if ".map(" not in line or "key=" in line:
            continue
        callback = _MAP_CALLBACK.search(line)
        if not callback:
            continue
        key_value = callback.group(3) or "index"
        tag = _JSX_OPEN_TAG.search(line)
        if not tag:
            continue
        element = f"<{tag.group(1)} key={{{key_value}}}{tag.group(2)}>"
        lines[i] = line.replace(tag.group(0), element, 1)
        changed = True

    if not changed:
        return None

    return StrategyOutcome(
        confidence=0.8,
        description="Add missing key props to list items",
        changes=[FileEdit(file=error.file, content="\n".join(lines))],
    )


def extract_effect_body(lines: list[str], start: int) -> str:
    """Lines from ``useEffect(`` up to the brace that closes it."""
    body = []
    depth = 0
    started = False
    for line in lines[start:]:
        if "useEffect(" in line:
            started = True
        if not started:
            continue
        body.append(line)
        depth += line.count("{") - line.count("}")
        if depth == 0:
            break
    return "\n".join(body) + "\n"


def extract_dependencies(body: str, stopwords: frozenset[str]) -> list[str]:
    deps: dict[str, None] = {}
    for name in _IDENTIFIER.findall(body):
        if name in stopwords or name.startswith("use"):
            continue
        deps.setdefault(name, None)
    return list(deps)


def fix_hook_dependencies(error: ErrorRecord, ctx: StrategyContext) -> StrategyOutcome | None:
    """Fill an empty ``useEffect`` dependency array from the effect body."""
    if not ctx.exists(error.file):
        return None

    lines = ctx.read(error.file).split("\n")
    for i, line in enumerate(lines[:-1]):
        if "useEffect(" not in line:
            continue
        next_line = lines[i + 1]
        if "[]" not in next_line and "}, [])" not in next_line:
            continue

        deps = extract_dependencies(extract_effect_body(lines, i), ctx.tables.hook_stopwords)
        if not deps:
            continue

        joined = ", ".join(deps)
        lines[i + 1] = next_line.replace("[]", f"[{joined}]", 1)
        return StrategyOutcome(
            confidence=0.7,
            description="Add missing useEffect dependencies",
            changes=[FileEdit(file=error.file, content="\n".join(lines))],
        )
    return None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

DEFAULT_REGISTRY: Mapping[StrategyId, Strategy] = MappingProxyType({
    StrategyId.FIX_MISSING_IMPORTS: fix_missing_imports,
    StrategyId.FIX_RELATIVE_PATHS: fix_relative_paths,
    StrategyId.FIX_TYPO_IN_IMPORTS: fix_typo_in_imports,
    StrategyId.ADD_MISSING_PACKAGES: add_missing_packages,
    StrategyId.FIX_DEFAULT_EXPORTS: fix_default_exports,
    StrategyId.FIX_NAMED_EXPORTS: fix_named_exports,
    StrategyId.ADD_TYPE_ASSERTIONS: add_type_assertions,
    StrategyId.ADD_NULL_CHECKS: add_null_checks,
    StrategyId.FIX_TABLE_NAMES: fix_table_names,
    StrategyId.FIX_PROP_TYPES: fix_prop_types,
    StrategyId.FIX_HOOK_DEPENDENCIES: fix_hook_dependencies,
})

DEFAULT_STRATEGY_TABLE: Mapping[ErrorType, tuple[StrategyId, ...]] = MappingProxyType({
    ErrorType.IMPORT: (
        StrategyId.FIX_MISSING_IMPORTS,
        StrategyId.FIX_RELATIVE_PATHS,
        StrategyId.FIX_TYPO_IN_IMPORTS,
        StrategyId.ADD_MISSING_PACKAGES,
    ),
    ErrorType.EXPORT: (
        StrategyId.FIX_DEFAULT_EXPORTS,
        StrategyId.FIX_NAMED_EXPORTS,
    ),
    ErrorType.TYPESCRIPT: (
        StrategyId.ADD_TYPE_ASSERTIONS,
        StrategyId.ADD_NULL_CHECKS,
    ),
    ErrorType.DATABASE: (
        StrategyId.FIX_TABLE_NAMES,
    ),
    ErrorType.REACT: (
        StrategyId.FIX_PROP_TYPES,
        StrategyId.FIX_HOOK_DEPENDENCIES,
        StrategyId.ADD_NULL_CHECKS,
    ),
})
