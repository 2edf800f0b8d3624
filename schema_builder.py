"""Compile abstract JSON table descriptions into CREATE statements for one SQL dialect."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy import (
    CHAR,
    DOUBLE_PRECISION,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    Numeric,
    PrimaryKeyConstraint,
    SmallInteger,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import ArgumentError, InvalidRequestError
from sqlalchemy.schema import CreateIndex, CreateTable
from sqlalchemy.types import TypeEngine

from schema_patches import DIALECTS, TABLE_OPTIONS, TABLE_PREFIX

SQLALCHEMY_DIALECTS = {
    "mysql": mysql.dialect,
    "sqlite": sqlite.dialect,
    "postgres": postgresql.dialect,
}

# Upper bounds of the MySQL TINY*/plain/MEDIUM* large object types; anything
# larger, or unsized, becomes LONG*.
MYSQL_TEXT_TIERS = ((255, mysql.TINYTEXT), (65535, mysql.TEXT), (16777215, mysql.MEDIUMTEXT))
MYSQL_BLOB_TIERS = ((255, mysql.TINYBLOB), (65535, mysql.BLOB), (16777215, mysql.MEDIUMBLOB))

DEFAULT_STRING_LENGTH = 255
MW_TIMESTAMP_LENGTH = 14


class SchemaLoadError(ValueError):
    pass


def load_abstract_schema(path: Path) -> list[dict]:
    raw = path.read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SchemaLoadError(f"'{path}' seems to be invalid json. Check the syntax and try again!") from exc
    if not isinstance(data, list):
        raise SchemaLoadError(f"'{path}' must contain a JSON array of table descriptions")
    for idx, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise SchemaLoadError(f"'{path}': table #{idx + 1} must be a JSON object")
    return data


def _mysql_lob(length: int | None, tiers, largest) -> TypeEngine:
    if length:
        for limit, type_ in tiers:
            if length <= limit:
                return type_()
    return largest()


def column_type(dialect: str, type_name: str, options: dict) -> TypeEngine:
    length = options.get("length")
    fixed = bool(options.get("fixed"))
    unsigned = dialect == "mysql" and bool(options.get("unsigned"))

    if type_name == "integer":
        return mysql.INTEGER(unsigned=True) if unsigned else Integer()
    if type_name == "bigint":
        # SQLite only auto-increments INTEGER PRIMARY KEY columns.
        if dialect == "sqlite" and options.get("autoincrement"):
            return Integer()
        return mysql.BIGINT(unsigned=True) if unsigned else BigInteger()
    if type_name == "smallint":
        return mysql.SMALLINT(unsigned=True) if unsigned else SmallInteger()
    if type_name == "mwtinyint":
        if dialect == "mysql":
            return mysql.TINYINT(unsigned=unsigned)
        return SmallInteger()
    if type_name == "string":
        size = length or DEFAULT_STRING_LENGTH
        return CHAR(size) if fixed else String(size)
    if type_name == "binary":
        if dialect == "mysql":
            size = length or DEFAULT_STRING_LENGTH
            return mysql.BINARY(size) if fixed else mysql.VARBINARY(size)
        return LargeBinary()
    if type_name == "blob":
        if dialect == "mysql":
            return _mysql_lob(length, MYSQL_BLOB_TIERS, mysql.LONGBLOB)
        return LargeBinary()
    if type_name == "text":
        if dialect == "mysql":
            return _mysql_lob(length, MYSQL_TEXT_TIERS, mysql.LONGTEXT)
        return Text()
    if type_name == "boolean":
        return Boolean()
    if type_name == "float":
        return DOUBLE_PRECISION()
    if type_name == "decimal":
        return Numeric(options.get("precision") or 10, options.get("scale") or 0)
    if type_name == "datetimetz":
        return DateTime(timezone=True)
    if type_name == "mwtimestamp":
        if dialect == "mysql":
            return mysql.BINARY(MW_TIMESTAMP_LENGTH)
        if dialect == "postgres":
            return postgresql.TIMESTAMP(timezone=True)
        return LargeBinary()
    if type_name == "mwenum":
        if dialect == "mysql":
            return mysql.ENUM(*options.get("enum_values", []))
        return Text()
    raise ValueError(f"Unsupported abstract column type '{type_name}'")


def server_default(value, dialect: str):
    if value is None:
        return None
    if isinstance(value, bool):
        if dialect == "postgres":
            return text("true" if value else "false")
        return text("1" if value else "0")
    if isinstance(value, (int, float)):
        return text(str(value))
    return str(value)


class SchemaBuilder:
    """Collects table descriptions and renders them for a single dialect."""

    def __init__(self, dialect: str) -> None:
        if dialect not in DIALECTS:
            raise ValueError(f"Unsupported dialect '{dialect}', expected one of: {', '.join(DIALECTS)}")
        self.dialect = dialect
        self.metadata = MetaData()
        self._tables: list[tuple[Table, list[Index]]] = []

    def _build_column(self, spec: dict) -> Column:
        options = spec.get("options") or {}
        return Column(
            spec["name"],
            column_type(self.dialect, spec["type"], options),
            nullable=not options.get("notnull", True),
            autoincrement=bool(options.get("autoincrement")),
            server_default=server_default(options.get("default"), self.dialect),
        )

    def _build_index(self, table: Table, spec: dict) -> Index:
        names = spec.get("columns")
        if not spec.get("name") or not names:
            raise ValueError(f"Index on {table.name} needs a name and a list of columns")
        missing = [name for name in names if name not in table.c]
        if missing:
            raise ValueError(f"Index {spec['name']} on {table.name} references unknown columns: {', '.join(missing)}")

        options = spec.get("options") or {}
        kwargs: dict = {"unique": bool(spec.get("unique"))}
        if self.dialect == "mysql":
            lengths = options.get("lengths") or []
            prefix_lengths = {name: size for name, size in zip(names, lengths) if size}
            if prefix_lengths:
                kwargs["mysql_length"] = prefix_lengths
            if "fulltext" in (spec.get("flags") or []):
                kwargs["mysql_prefix"] = "FULLTEXT"
        elif options.get("where"):
            kwargs[f"{SQLALCHEMY_DIALECTS[self.dialect].name}_where"] = text(options["where"])

        return Index(spec["name"], *(table.c[name] for name in names), **kwargs)

    def add_table(self, spec: dict) -> Table:
        name = spec.get("name")
        if not name:
            raise ValueError("Table description without a name")
        try:
            columns = [self._build_column(col) for col in spec["columns"]]
            pk = list(spec.get("pk") or [])
            unknown = [col for col in pk if col not in {column.name for column in columns}]
            if unknown:
                raise ValueError(f"primary key references unknown columns: {', '.join(map(str, unknown))}")

            args: list = list(columns)
            if pk:
                args.append(PrimaryKeyConstraint(*pk))

            kwargs: dict = {}
            if self.dialect == "sqlite" and len(pk) == 1 and any(col.autoincrement is True for col in columns):
                kwargs["sqlite_autoincrement"] = True

            table = Table(TABLE_PREFIX + name, self.metadata, *args, quote=False, **kwargs)
            indexes = [self._build_index(table, index) for index in spec.get("indexes") or []]
        except (KeyError, TypeError, AttributeError, ValueError, ArgumentError, InvalidRequestError) as exc:
            raise ValueError(f"Table {name}: {exc}") from exc

        self._tables.append((table, indexes))
        return table

    def get_sql(self) -> list[str]:
        dialect = SQLALCHEMY_DIALECTS[self.dialect]()
        statements: list[str] = []
        for table, indexes in self._tables:
            create = str(CreateTable(table).compile(dialect=dialect)).strip()
            if self.dialect == "mysql":
                create = f"{create} {TABLE_OPTIONS}"
            statements.append(create)
            for index in indexes:
                statements.append(str(CreateIndex(index).compile(dialect=dialect)).strip())
        return statements
