"""
Entity store tables.

Defines table names and DDL statements for the tables behind
:class:`~kiar.core.store.SqliteEntityStore`.

Architecture:
    ::

        Table Registry (KIAR_TABLES):
        ┌────────────────────────────────────────────────────────────┐
        │ templates     → kiar_job_templates                         │
        │ institutions  → kiar_institutions                          │
        │ jobs          → kiar_jobs                                  │
        │ job_logs      → kiar_job_logs                              │
        └────────────────────────────────────────────────────────────┘

        kiar_jobs ||--o{ kiar_job_logs : "records"
        kiar_job_templates ||--o{ kiar_jobs : "instantiates"

    Job status transitions are single ``UPDATE ... WHERE status IN (...)``
    statements against ``kiar_jobs``; the rowcount tells the caller whether
    the compare-and-set won.

Examples:
    >>> from kiar.core.schema import KIAR_TABLES, create_tables
    >>> KIAR_TABLES["jobs"]
    'kiar_jobs'
    >>> create_tables(conn)
"""

KIAR_TABLES = {
    "templates": "kiar_job_templates",
    "institutions": "kiar_institutions",
    "jobs": "kiar_jobs",
    "job_logs": "kiar_job_logs",
}


# =============================================================================
# DDL STATEMENTS
# =============================================================================

KIAR_DDL = {
    # Mapping rules are stored as a JSON document (EntityMapping.to_dict()).
    "templates": """
        CREATE TABLE IF NOT EXISTS kiar_job_templates (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            participant TEXT NOT NULL,
            type TEXT NOT NULL,
            start_automatically INTEGER NOT NULL DEFAULT 0,
            collection TEXT,
            description TEXT,
            mapping TEXT NOT NULL
        )
    """,
    "institutions": """
        CREATE TABLE IF NOT EXISTS kiar_institutions (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            participant TEXT NOT NULL,
            display_name TEXT,
            canton TEXT,
            publish INTEGER NOT NULL DEFAULT 1,
            default_copyright TEXT,
            default_license TEXT,
            isil TEXT,
            street TEXT,
            zip TEXT,
            city TEXT,
            email TEXT,
            homepage TEXT,
            description TEXT
        )
    """,
    "institutions_idx_participant": """
        CREATE INDEX IF NOT EXISTS idx_institutions_participant
        ON kiar_institutions(participant, publish)
    """,
    "jobs": """
        CREATE TABLE IF NOT EXISTS kiar_jobs (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            template_id TEXT NOT NULL,
            source TEXT NOT NULL,
            status TEXT NOT NULL,
            created_at TEXT NOT NULL,
            changed_at TEXT,
            created_by TEXT,
            processed INTEGER NOT NULL DEFAULT 0,
            skipped INTEGER NOT NULL DEFAULT 0,
            error INTEGER NOT NULL DEFAULT 0
        )
    """,
    "jobs_idx_status": """
        CREATE INDEX IF NOT EXISTS idx_jobs_status
        ON kiar_jobs(status)
    """,
    # Append-only; seq preserves the order entries were logged in.
    "job_logs": """
        CREATE TABLE IF NOT EXISTS kiar_job_logs (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            job_id TEXT NOT NULL REFERENCES kiar_jobs(id),
            document_id TEXT,
            context TEXT NOT NULL,
            level TEXT NOT NULL,
            description TEXT NOT NULL,
            collection TEXT
        )
    """,
    "job_logs_idx_job": """
        CREATE INDEX IF NOT EXISTS idx_job_logs_job
        ON kiar_job_logs(job_id)
    """,
}


def create_tables(conn) -> None:
    """
    Create all entity store tables.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    for _name, ddl in KIAR_DDL.items():
        conn.execute(ddl)
    conn.commit()
