"""Error pattern families used to classify test-runner output.

Families are tried in declaration order and each family's regexes in their
declared order; the first hit decides the type, category and severity.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from autopatch.core.models import Category, ErrorType, Severity


@dataclass(frozen=True)
class PatternFamily:
    type: ErrorType
    category: Category
    severity: Severity
    patterns: tuple[re.Pattern, ...]


def _compile(*sources: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(s) for s in sources)


DEFAULT_PATTERNS: tuple[PatternFamily, ...] = (
    PatternFamily(
        ErrorType.IMPORT,
        Category.DEPENDENCY,
        Severity.HIGH,
        _compile(
            r"Cannot resolve module ['\"`]([^'\"`]+)['\"`]",
            r"Module not found: Error: Can't resolve ['\"`]([^'\"`]+)['\"`]",
            r"Cannot find module ['\"`]([^'\"`]+)['\"`]",
            r"Failed to resolve import ['\"`]([^'\"`]+)['\"`]",
            r"SyntaxError: Cannot use import statement outside a module",
            r"Error: \[ERR_MODULE_NOT_FOUND\]: Cannot find package ['\"`]([^'\"`]+)['\"`]",
        ),
    ),
    PatternFamily(
        ErrorType.EXPORT,
        Category.DEPENDENCY,
        Severity.HIGH,
        _compile(
            r"export '([^']+)' \(imported as '([^']+)'\) was not found in ['\"`]([^'\"`]+)['\"`]",
            r"Attempted import error: ['\"`]([^'\"`]+)['\"`] does not contain a default export",
            r"Named export '([^']+)' not found",
            r"SyntaxError: Unexpected token 'export'",
        ),
    ),
    PatternFamily(
        ErrorType.TYPESCRIPT,
        Category.TYPES,
        Severity.MEDIUM,
        _compile(
            r"Property '([^']+)' does not exist on type '([^']+)'",
            r"Type '([^']+)' is not assignable to type '([^']+)'",
            r"Argument of type '([^']+)' is not assignable to parameter of type '([^']+)'",
            r"Cannot find name '([^']+)'",
            r"Type '([^']+)' has no properties in common with type '([^']+)'",
            r"Object is possibly 'null'",
            r"Object is possibly 'undefined'",
        ),
    ),
    PatternFamily(
        ErrorType.DATABASE,
        Category.DATABASE,
        Severity.CRITICAL,
        _compile(
            # MySQL
            r"Table '([^']+)' doesn't exist",
            r"Unknown column '([^']+)' in '([^']+)'",
            # PostgreSQL
            r"relation \"([^\"]+)\" does not exist",
            # SQLite
            r"no such table: ([^\s]+)",
            r"column \"([^\"]+)\" of relation \"([^\"]+)\" does not exist",
        ),
    ),
    PatternFamily(
        ErrorType.REACT,
        Category.REACT,
        Severity.MEDIUM,
        _compile(
            r"Cannot read propert(?:y|ies) '([^']+)' of undefined",
            r"Cannot read propert(?:y|ies) '([^']+)' of null",
            r"Warning: Failed prop type: Invalid prop `([^`]+)` of type `([^`]+)` "
            r"supplied to `([^`]+)`, expected `([^`]+)`",
            r"Warning: React.createElement: type is invalid",
            r"Warning: Each child in a list should have a unique \"key\" prop",
            r"Hook \"([^\"]+)\" cannot be called conditionally",
            r"Rendered more hooks than during the previous render",
        ),
    ),
    PatternFamily(
        ErrorType.SYNTAX,
        Category.SYNTAX,
        Severity.HIGH,
        _compile(
            r"SyntaxError: Unexpected token",
            r"SyntaxError: Unexpected end of input",
            r"SyntaxError: Missing semicolon",
            r"SyntaxError: Unexpected identifier",
            r"Parsing error: Unexpected token",
        ),
    ),
    PatternFamily(
        ErrorType.TESTING,
        Category.ASSERTION,
        Severity.LOW,
        _compile(
            r"expect\(received\).toBe\(expected\)",
            r"expect\(received\).toEqual\(expected\)",
            r"Unable to find an element",
            r"TestingLibraryElementError",
            r"Timeout - Async callback was not invoked within the 5000 ms timeout",
            r"Cannot find element with testid: \"([^\"]+)\"",
        ),
    ),
)


# File paths on a failure-marker line; first hit wins.
FILE_PATH_PATTERNS: tuple[re.Pattern, ...] = _compile(
    r"FAIL\s+(.+\.(?:tsx|jsx|ts|js))",
    r"×\s+(.+\.(?:tsx|jsx|ts|js))",
    r"✕\s+(.+\.(?:tsx|jsx|ts|js))",
    r"Error in\s+(.+\.(?:tsx|jsx|ts|js))",
    r"at\s+(.+\.(?:tsx|jsx|ts|js)):(\d+):(\d+)",
)

STACK_FRAME_PATTERN = re.compile(r"at.*\(([^:]+):(\d+):(\d+)\)")

FAILURE_MARKERS: tuple[str, ...] = ("FAIL", "✕", "×")
