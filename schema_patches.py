"""Ordered text fixes applied to formatted schema SQL before it is written out.

Each rule is a literal, global find-and-replace gated on the target dialect.
Rules run top to bottom; several of them only make sense after an earlier rule
has already fired, so the table order is part of the output format.
"""

from __future__ import annotations

import dataclasses

DIALECTS = ("mysql", "sqlite", "postgres")
DEFAULT_DIALECT = "mysql"

TABLE_PREFIX = "/*_*/"
TABLE_OPTIONS = "/*$wgDBTableOptions*/"

SQL_FORMATTER_ISSUE = "https://github.com/doctrine/sql-formatter/issues/53"


@dataclasses.dataclass(frozen=True)
class PatchRule:
    search: str
    replace: str
    dialects: frozenset[str] | None = None
    note: str = ""
    # Set when the rule only exists to paper over a collaborator bug and can
    # go once that bug is fixed.
    workaround_for: str | None = None

    def applies_to(self, dialect: str) -> bool:
        return self.dialects is None or dialect in self.dialects

    def apply(self, sql: str) -> str:
        return sql.replace(self.search, self.replace)


POSTGRES = frozenset({"postgres"})
MYSQL = frozenset({"mysql"})

PARTIAL_INDEX_FORMATTING = "partial index WHERE clause formatting"

PATCH_RULES: tuple[PatchRule, ...] = (
    # Postgres deployments never use a table prefix.
    PatchRule(f"\n{TABLE_PREFIX}\n", " ", POSTGRES, "drop table prefix placeholder"),
    PatchRule("WHERE\n ", "WHERE", POSTGRES, "unwrap partial index WHERE", PARTIAL_INDEX_FORMATTING),
    PatchRule(f"\n  {TABLE_PREFIX}\n  ", " ", POSTGRES, "drop indented prefix placeholder", PARTIAL_INDEX_FORMATTING),
    PatchRule("    ", "  ", POSTGRES, "halve indentation", PARTIAL_INDEX_FORMATTING),
    PatchRule("  );", ");", POSTGRES, "pull closing paren back", PARTIAL_INDEX_FORMATTING),
    PatchRule("KEY(\n  ", "KEY(\n    ", POSTGRES, "indent composite key columns", PARTIAL_INDEX_FORMATTING),
    # Not binary safe.
    PatchRule("BYTEA", "TEXT", POSTGRES, "binary columns as TEXT", "T257755"),
    PatchRule("DOUBLE PRECISION", "FLOAT", MYSQL, "short float type name", "default float type name of the compiler"),
    PatchRule(f"\n{TABLE_PREFIX}\n", f" {TABLE_PREFIX}", None, "keep prefix placeholder inline", SQL_FORMATTER_ISSUE),
    PatchRule("; CREATE ", ";\n\nCREATE ", None, "blank line between statements", SQL_FORMATTER_ISSUE),
    # Must run after the rule above: it matches that rule's output.
    PatchRule(";\n\nCREATE TABLE ", ";\n\n\nCREATE TABLE ", None, "two blank lines before tables", SQL_FORMATTER_ISSUE),
    PatchRule(f"\n{TABLE_OPTIONS};", f" {TABLE_OPTIONS};", None, "inline table options", SQL_FORMATTER_ISSUE),
    PatchRule(f"\n{TABLE_OPTIONS}\n;", f" {TABLE_OPTIONS};", None, "inline table options before lone ;", SQL_FORMATTER_ISSUE),
)


def rules_for(dialect: str) -> list[PatchRule]:
    return [rule for rule in PATCH_RULES if rule.applies_to(dialect)]


def patch(sql: str, dialect: str) -> str:
    """Apply every rule enabled for ``dialect`` and terminate with a newline.

    Not idempotent: running it twice on the same script can add extra blank
    lines before CREATE TABLE statements.
    """
    for rule in rules_for(dialect):
        sql = rule.apply(sql)
    if not sql.endswith("\n"):
        sql += "\n"
    return sql


def describe_rules() -> str:
    lines: list[str] = []
    for idx, rule in enumerate(PATCH_RULES, start=1):
        scope = ",".join(sorted(rule.dialects)) if rule.dialects else "all"
        line = f"{idx:2d}. [{scope}] {rule.search!r} -> {rule.replace!r}  {rule.note}"
        if rule.workaround_for:
            line += f" (workaround: {rule.workaround_for})"
        lines.append(line)
    return "\n".join(lines)
