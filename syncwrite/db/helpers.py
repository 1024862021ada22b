from __future__ import annotations

import re

from ..errors import ValidationError

# PostgreSQL truncates identifiers longer than NAMEDATALEN - 1 bytes.
MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


def validate_identifier(name: str, identifier_type: str = "identifier") -> str:
    """
    Validate that an identifier (table/column name) is safe for SQL interpolation.

    PostgreSQL unquoted identifiers may contain letters, digits, underscores
    and dollar signs and must not start with a digit. Anything else is
    rejected, even though quoting would technically allow it.

    ⚠️ SECURITY CONTRACT ⚠️
    Table and column names arrive inside client payloads and are interpolated
    into SQL text. This check is the only thing between the payload and the
    statement; every validated identifier is additionally double-quoted by
    ``quote_identifier``. Restrict reachable tables with
    ``DbConfig.allowed_tables`` when clients are not fully trusted.

    Args:
        name: The identifier to validate
        identifier_type: Description of the identifier (for error messages)

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        TypeError: If identifier is not a string
        ValidationError: If identifier is empty, too long or contains unsafe characters

    Example:
        >>> validate_identifier("todos", "table")
        'todos'
        >>> validate_identifier("'; DROP TABLE--", "table")
        ValidationError: Invalid table "'; DROP TABLE--": ...
    """
    if not isinstance(name, str):
        raise TypeError(f"{identifier_type} must be a string, got {type(name).__name__}")

    if not name:
        raise ValidationError(f"{identifier_type} cannot be empty")

    if not _IDENTIFIER_RE.match(name):
        raise ValidationError(
            f"Invalid {identifier_type} {name!r}: "
            "must start with letter/underscore and contain only letters, digits, underscores or '$'"
        )

    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            f"{identifier_type} {name!r} exceeds PostgreSQL's {MAX_IDENTIFIER_LENGTH}-character limit"
        )

    return name


def quote_identifier(name: str, identifier_type: str = "identifier") -> str:
    """Validate ``name`` and return it double-quoted. Quoted names are case-sensitive."""
    return f'"{validate_identifier(name, identifier_type)}"'


def quote_table(name: str) -> str:
    """
    Quote a table name, optionally schema-qualified (``schema.table``).

    >>> quote_table("public.todos")
    '"public"."todos"'
    """
    if not isinstance(name, str):
        raise TypeError(f"table must be a string, got {type(name).__name__}")
    if not name.strip():
        raise ValidationError("Table name cannot be empty")

    parts = name.split(".")
    if len(parts) > 2:
        raise ValidationError(f"Invalid table {name!r}: at most one schema qualifier is allowed")
    kinds = ("schema", "table") if len(parts) == 2 else ("table",)
    return ".".join(quote_identifier(part, kind) for part, kind in zip(parts, kinds))
