"""
Recipe Vector Documents

Stores one embedding per recipe version next to the relational recipe data,
keeps exactly one current document per recipe, and answers cosine
similarity searches optionally scoped to projects.

Key components:
- contracts/: Document, search hit and stats models
- core/: Exceptions and logging utilities
- store/: Store interface plus SQL Server and SQLite backends
- indexer: Embeds recipe versions and writes them to the store
- search: Query-text semantic search
- config: YAML and environment configuration
"""

__version__ = "0.1.0"
