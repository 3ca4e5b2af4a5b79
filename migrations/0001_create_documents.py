"""
Create the documents table.

Every entity lives in this one table under a namespaced key ("post:{id}",
"chat:{id}", ...). The version column backs compare-and-set writes.
"""

from yoyo import step

steps = [
    step(
        """
        CREATE TABLE IF NOT EXISTS documents (
            key TEXT PRIMARY KEY,
            kind TEXT NOT NULL,
            body TEXT NOT NULL,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        "DROP TABLE IF EXISTS documents",
    ),
]
