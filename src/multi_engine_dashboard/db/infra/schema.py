# schema.py
"""
Declared shape of the canonical (step-based) schema.

Migrations create the tables; this description is only used to check an
opened database for drift.
"""
import sqlite3
from typing import List

SCHEMA = {
    "migrations": {
        "columns": {
            "id": "TEXT PRIMARY KEY",
            "applied_at": "TEXT NOT NULL",
        },
    },

    "projects": {
        "columns": {
            "id": "INTEGER PRIMARY KEY AUTOINCREMENT",
            "name": "TEXT NOT NULL",
            "description": "TEXT",
            "created_at": "TEXT DEFAULT CURRENT_TIMESTAMP",
            "updated_at": "TEXT DEFAULT CURRENT_TIMESTAMP",
        },
    },

    "steps": {
        "columns": {
            "id": "INTEGER PRIMARY KEY AUTOINCREMENT",
            "project_id": "INTEGER NOT NULL",
            "name": "TEXT NOT NULL",
            "order_index": "INTEGER NOT NULL",
            "created_at": "TEXT DEFAULT CURRENT_TIMESTAMP",
        },
        "constraints": {
            "foreign_keys": [
                {
                    "column": "project_id",
                    "references": "projects(id)",
                    "on_delete": "CASCADE",
                }
            ],
        },
    },

    "ai_results": {
        "columns": {
            "id": "INTEGER PRIMARY KEY AUTOINCREMENT",
            "step_id": "INTEGER NOT NULL",
            "prompt": "TEXT NOT NULL",
            "engine": "TEXT NOT NULL",
            "response": "TEXT NOT NULL",
            # JSON: model, input_tokens, output_tokens, tokens, latency (ms), timestamp
            "metadata": "TEXT",
            "created_at": "TEXT DEFAULT CURRENT_TIMESTAMP",
        },
        "constraints": {
            "foreign_keys": [
                {
                    "column": "step_id",
                    "references": "steps(id)",
                    "on_delete": "CASCADE",
                }
            ],
        },
        "indexes": ["step_id", "engine", "created_at"],
    },
}


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def find_schema_drift(conn: sqlite3.Connection) -> List[str]:
    """
    Compare the live database with SCHEMA.

    Returns human-readable problems: missing tables, missing columns,
    missing foreign keys / ON DELETE actions and unindexed columns.
    An empty list means the database matches.
    """
    problems: List[str] = []
    tables = {
        row[0]
        for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
    }

    for table, table_def in SCHEMA.items():
        if table not in tables:
            problems.append(f"missing table '{table}'")
            continue

        live_cols = {
            row[1]
            for row in conn.execute(f"PRAGMA table_info({_quote(table)})").fetchall()
        }
        for col in table_def["columns"]:
            if col not in live_cols:
                problems.append(f"missing column '{table}.{col}'")

        fks = conn.execute(f"PRAGMA foreign_key_list({_quote(table)})").fetchall()
        # pragma row format: id, seq, table, from, to, on_update, on_delete, match
        live_fks = {(r[3], r[2], (r[6] or "").upper()) for r in fks}
        for fk in table_def.get("constraints", {}).get("foreign_keys", []):
            ref_table = fk["references"].split("(", 1)[0]
            expected = (fk["column"], ref_table, fk.get("on_delete", "NO ACTION").upper())
            if expected not in live_fks:
                problems.append(
                    f"missing foreign key {table}.{fk['column']} -> {fk['references']}"
                    f" ON DELETE {expected[2]}"
                )

        indexed = set()
        for idx in conn.execute(f"PRAGMA index_list({_quote(table)})").fetchall():
            for info in conn.execute(f"PRAGMA index_info({_quote(idx[1])})").fetchall():
                indexed.add(info[2])
        for col in table_def.get("indexes", []):
            if col not in indexed:
                problems.append(f"missing index on '{table}.{col}'")

    return problems
