"""
Index documents by kind.

Prefix scans use the primary key range; this index serves per-kind
maintenance queries and row counts in the health check.
"""

from yoyo import step

steps = [
    step(
        "CREATE INDEX IF NOT EXISTS idx_documents_kind ON documents(kind)",
        "DROP INDEX IF EXISTS idx_documents_kind",
    ),
]
