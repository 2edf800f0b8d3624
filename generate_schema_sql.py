#!/usr/bin/env python3
"""Build dialect-specific SQL schema files from abstract JSON table descriptions."""

from __future__ import annotations

import argparse
import dataclasses
import difflib
import sys
from pathlib import Path

import sqlparse
from sqlparse import tokens as T
from sqlparse.sql import Statement, Token

try:
    import yaml
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required. Install with: pip install pyyaml") from exc

from schema_builder import SchemaBuilder, load_abstract_schema
from schema_patches import DEFAULT_DIALECT, DIALECTS, describe_rules, patch

HEADER_TEMPLATE = (
    "-- This file is automatically generated using maintenance/generateSchemaSql.php.\n"
    "-- Source: {source}\n"
    "-- Do not modify this file directly.\n"
    "-- See https://www.mediawiki.org/wiki/Manual:Schema_changes\n"
)

DIFF_LINE_LIMIT = 200
INDENT = "  "
DIFF_LABEL = "generate-schema-sql"

TOOL_DIR = Path(__file__).resolve().parent


@dataclasses.dataclass
class Target:
    json_path: Path
    sql_path: Path
    dialect: str = DEFAULT_DIALECT


def relative_source(json_path: Path, root: Path) -> str:
    try:
        return json_path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return str(json_path)


def render_header(source: str) -> str:
    return HEADER_TEMPLATE.format(source=source)


def _is_create_table(tokens: list[Token]) -> bool:
    words = [tok.normalized for tok in tokens if not tok.is_whitespace and tok.ttype not in T.Comment]
    return words[:2] == ["CREATE", "TABLE"]


def format_statement(statement: Statement) -> str:
    """Lay out one statement with normalized whitespace.

    Column lists of CREATE TABLE go one per line, block comments sit on a
    line of their own and a top-level WHERE starts an indented clause.
    """
    tokens = list(statement.flatten())
    table_body = _is_create_table(tokens)
    out = ""
    depth = 0
    spaced = False

    for token in tokens:
        if token.is_whitespace:
            spaced = True
            continue

        sep = " " if spaced and out and not out.endswith((" ", "\n", "(")) else ""
        spaced = False
        in_columns = table_body and depth == 1

        if token.ttype in T.Comment.Single:
            out += token.value if token.value.endswith("\n") else token.value + "\n"
        elif token.ttype in T.Comment:
            indent = INDENT if in_columns else ""
            out = out.rstrip(" ")
            if out and not out.endswith("\n"):
                out += "\n"
            out += f"{indent}{token.value}\n{indent}"
        elif token.match(T.Punctuation, "("):
            depth += 1
            out += sep + ("(\n" + INDENT if table_body and depth == 1 else "(")
        elif token.match(T.Punctuation, ")"):
            out = out.rstrip(" ") + ("\n)" if in_columns else ")")
            depth -= 1
        elif token.match(T.Punctuation, ","):
            out += ",\n" + INDENT if in_columns else ","
        elif token.match(T.Punctuation, ";"):
            out += ";"
        elif token.is_keyword and token.normalized == "WHERE" and depth == 0:
            out = out.rstrip(" ") + "\nWHERE\n" + INDENT
        else:
            out += sep + token.value

    return out.strip()


def format_sql(sql: str) -> str:
    """Pretty-print a script, keeping statements on one run joined by "; "."""
    statements = (format_statement(statement) for statement in sqlparse.parse(sql))
    return " ".join(statement for statement in statements if statement)


def generate_schema_sql(json_path: Path, dialect: str, root: Path) -> str:
    abstract_schema = load_abstract_schema(json_path)
    builder = SchemaBuilder(dialect)
    for table in abstract_schema:
        builder.add_table(table)

    sql = render_header(relative_source(json_path, root))
    statements = builder.get_sql()
    if statements:
        sql = sql + ";\n\n".join(statements) + ";"
        sql = format_sql(sql)

    return patch(sql, dialect)


def load_targets(config_path: Path) -> tuple[Path, list[Target]]:
    config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(config, dict):
        raise ValueError(f"{config_path}: expected a mapping at the top level")

    base = config_path.parent
    root = base / config.get("root", ".")
    targets: list[Target] = []
    for idx, entry in enumerate(config.get("targets") or []):
        if not isinstance(entry, dict):
            raise ValueError(f"{config_path}: target #{idx + 1} must be a mapping")
        missing = [key for key in ("json", "sql") if not entry.get(key)]
        if missing:
            raise ValueError(f"{config_path}: target #{idx + 1} is missing {', '.join(missing)}")
        dialect = entry.get("type", DEFAULT_DIALECT)
        if dialect not in DIALECTS:
            raise ValueError(
                f"{config_path}: target #{idx + 1} has unsupported type '{dialect}', "
                f"expected one of: {', '.join(DIALECTS)}"
            )
        targets.append(Target(json_path=base / entry["json"], sql_path=base / entry["sql"], dialect=dialect))

    if not targets:
        raise ValueError(f"{config_path}: no targets configured")
    return root, targets


def generate_outputs(targets: list[Target], root: Path) -> list[tuple[Target, str]]:
    return [(target, generate_schema_sql(target.json_path, target.dialect, root)) for target in targets]


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def check_equal(path: Path, generated: str) -> bool:
    if not path.exists():
        print(f"[check] {path} does not exist; run generate-schema-sql to create it", file=sys.stderr)
        return False

    existing = path.read_text(encoding="utf-8")
    if existing == generated:
        return True

    print(f"[check] {path} is out of date with its JSON source; regenerate it", file=sys.stderr)
    diff = difflib.unified_diff(
        existing.splitlines(),
        generated.splitlines(),
        fromfile=f"{path} (on disk)",
        tofile=f"{path} (from {DIFF_LABEL})",
        lineterm="",
    )
    for idx, line in enumerate(diff):
        if idx > DIFF_LINE_LIMIT:
            print(f"... diff truncated after {DIFF_LINE_LIMIT} lines", file=sys.stderr)
            break
        print(line, file=sys.stderr)
    return False


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build SQL files from abstract JSON files")
    parser.add_argument(
        "--json",
        default=str(TOOL_DIR / "tables.json"),
        help="Path to the json file. Default: tables.json beside this script",
    )
    parser.add_argument(
        "--sql",
        default=str(TOOL_DIR / "tables-generated.sql"),
        help="Path to output. Default: tables-generated.sql beside this script",
    )
    parser.add_argument(
        "--type",
        default=DEFAULT_DIALECT,
        choices=DIALECTS,
        help="Can be either 'mysql', 'sqlite', or 'postgres'. Default: mysql",
    )
    parser.add_argument("--root", default=".", help="Project root the Source: header path is relative to")
    parser.add_argument("--config", help="YAML file listing several json/sql/type targets")
    parser.add_argument("--check", action="store_true", help="Verify outputs are up-to-date without writing")
    parser.add_argument("--list-rules", action="store_true", help="Print the SQL patch rules in order and exit")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if args.list_rules:
        print(describe_rules())
        return 0

    try:
        if args.config:
            root, targets = load_targets(Path(args.config))
        else:
            root = Path(args.root)
            targets = [Target(json_path=Path(args.json), sql_path=Path(args.sql), dialect=args.type)]
        outputs = generate_outputs(targets, root)
    except (ValueError, OSError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.check:
        results = [check_equal(target.sql_path, sql) for target, sql in outputs]
        return 0 if all(results) else 1

    for target, sql in outputs:
        write_text(target.sql_path, sql)
        print(f"Generated {target.sql_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
