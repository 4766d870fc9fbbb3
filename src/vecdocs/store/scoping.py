"""
Project scoping against the externally owned membership relation.

Versions belong to recipes; versions are linked to projects through a join
table. Versions, recipes and projects each carry their own soft-delete
marker; a version is in scope only while its recipe and project are live too.
"""

import re
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from ..core.exceptions import VectorStoreConfigError


_IDENTIFIER_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')

_RESERVED_WORDS = {
    'select', 'insert', 'update', 'delete', 'drop', 'create', 'alter',
    'exec', 'execute', 'union', 'where', 'from', 'table', 'database',
    'schema', 'index', 'grant', 'revoke', 'truncate', 'declare', 'set'
}


def is_valid_identifier(name: str) -> bool:
    """
    Validate that a name is a safe SQL identifier.

    Identifiers come from configuration and are interpolated into SQL, so a
    strict whitelist is applied:
    - Must start with a letter or underscore
    - Can only contain letters, digits, and underscores
    - Maximum length of 128 characters (SQL Server limit)
    - Cannot be a SQL reserved word
    """
    if not name or len(name) > 128:
        return False
    if not _IDENTIFIER_PATTERN.match(name):
        return False
    return name.lower() not in _RESERVED_WORDS


def require_identifier(name: str, what: str) -> str:
    """Return name unchanged or raise VectorStoreConfigError."""
    if not is_valid_identifier(name):
        raise VectorStoreConfigError(f"Invalid {what}: {name!r}")
    return name


@dataclass
class MembershipTables:
    """
    Names of the tables and columns making up the membership relation.

    Defaults describe the recipe schema used by the application:
    recipe_version(id, recipe_id, deleted_at), recipe(id, deleted_at),
    project(id, short_id, deleted_at) and
    recipe_version_project(version_id, project_id).
    """
    schema: str = "dbo"
    version_table: str = "recipe_version"
    recipe_table: str = "recipe"
    project_table: str = "project"
    link_table: str = "recipe_version_project"
    link_version_column: str = "version_id"
    link_project_column: str = "project_id"
    version_recipe_column: str = "recipe_id"
    project_key_column: str = "short_id"

    def __post_init__(self):
        for f in fields(self):
            require_identifier(getattr(self, f.name), f"scoping.{f.name}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MembershipTables":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise VectorStoreConfigError(
                f"Unknown scoping keys: {', '.join(sorted(unknown))}"
            )
        return cls(**data)


def build_scope_clause(
    tables: MembershipTables,
    project_count: int,
    qualify: Callable[[str], str],
    version_column: str = "d.version_id",
) -> Tuple[str, int]:
    """
    Build the `version_id IN (...)` restriction for scoped search.

    Args:
        tables: Membership relation names
        project_count: Number of project keys to bind (must be > 0)
        qualify: Dialect-specific function turning a table name into a
            quoted (and, where supported, schema-qualified) reference
        version_column: Column of the vector document table to restrict

    Returns:
        (sql fragment, number of ? placeholders it contains)
    """
    if project_count <= 0:
        raise ValueError("project_count must be positive")

    placeholders = ", ".join("?" * project_count)
    clause = f"""{version_column} IN (
                SELECT rv.id
                FROM {qualify(tables.version_table)} rv
                INNER JOIN {qualify(tables.recipe_table)} r
                    ON r.id = rv.{tables.version_recipe_column}
                INNER JOIN {qualify(tables.link_table)} rvp
                    ON rvp.{tables.link_version_column} = rv.id
                INNER JOIN {qualify(tables.project_table)} p
                    ON p.id = rvp.{tables.link_project_column}
                WHERE p.{tables.project_key_column} IN ({placeholders})
                  AND rv.deleted_at IS NULL
                  AND r.deleted_at IS NULL
                  AND p.deleted_at IS NULL
            )"""
    return clause, project_count


def normalize_project_ids(project_ids: Optional[Sequence[str]] = None) -> Tuple[str, ...]:
    """De-duplicate project keys, keeping first-seen order."""
    if not project_ids:
        return ()
    seen = {}
    for project_id in project_ids:
        seen.setdefault(str(project_id), None)
    return tuple(seen)
