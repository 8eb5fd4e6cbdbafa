"""Lookup tables consulted by the patch strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


IMPORT_CORRECTIONS: Mapping[str, str] = MappingProxyType({
    "react": "import React from 'react';",
    "@testing-library/react": (
        "import { render, screen, fireEvent, waitFor } from '@testing-library/react';"
    ),
    "@testing-library/jest-dom": "import '@testing-library/jest-dom';",
    "@testing-library/user-event": "import userEvent from '@testing-library/user-event';",
    "jest": "import { jest } from '@jest/globals';",
    "@storybook/react": "import type { Meta, StoryObj } from '@storybook/react';",
    "@storybook/addon-essentials": "import { addons } from '@storybook/addons';",
    "next/router": "import { useRouter } from 'next/router';",
    "next/image": "import Image from 'next/image';",
    "next/link": "import Link from 'next/link';",
})

TYPO_CORRECTIONS: Mapping[str, str] = MappingProxyType({
    "@testing-library/reac": "@testing-library/react",
    "@testing-libray": "@testing-library",
    "reac": "react",
    "jest-dom": "@testing-library/jest-dom",
    "storyboo": "@storybook",
    "playwrigh": "playwright",
    "cypres": "cypress",
})

TABLE_NAME_CORRECTIONS: Mapping[str, str] = MappingProxyType({
    "user": "users",
    "wedding": "weddings",
    "vendor": "vendors",
    "guest": "guests",
    "venue": "venues",
    "invitation": "invitations",
    "rsvp": "rsvps",
    "payment": "payments",
    "budget": "budgets",
    "timeline": "timelines",
    "photo": "photos",
    "message": "messages",
})

# Identifiers never treated as effect dependencies.
HOOK_DEPENDENCY_STOPWORDS: frozenset[str] = frozenset({
    "const", "let", "var", "function", "if", "else", "for", "while",
    "return", "console", "document", "window", "setTimeout", "setInterval",
})

RESOLVE_EXTENSIONS: tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx", ".json")


@dataclass(frozen=True)
class StrategyTables:
    """Read-only bundle of the tables above, swappable in tests."""

    import_corrections: Mapping[str, str] = field(default_factory=lambda: IMPORT_CORRECTIONS)
    typo_corrections: Mapping[str, str] = field(default_factory=lambda: TYPO_CORRECTIONS)
    table_name_corrections: Mapping[str, str] = field(default_factory=lambda: TABLE_NAME_CORRECTIONS)
    hook_stopwords: frozenset[str] = field(default_factory=lambda: HOOK_DEPENDENCY_STOPWORDS)

    def extended(
        self,
        import_corrections: Mapping[str, str] | None = None,
        typo_corrections: Mapping[str, str] | None = None,
        table_name_corrections: Mapping[str, str] | None = None,
    ) -> StrategyTables:
        """Return a copy with extra entries merged over the built-ins."""
        return StrategyTables(
            import_corrections=MappingProxyType(
                {**self.import_corrections, **(import_corrections or {})}
            ),
            typo_corrections=MappingProxyType(
                {**self.typo_corrections, **(typo_corrections or {})}
            ),
            table_name_corrections=MappingProxyType(
                {**self.table_name_corrections, **(table_name_corrections or {})}
            ),
            hook_stopwords=self.hook_stopwords,
        )


DEFAULT_TABLES = StrategyTables()
