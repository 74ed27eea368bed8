"""SQLite database operations for the listing pipeline."""

import json
import sqlite3
from datetime import datetime, timezone, timedelta
from typing import Iterable, Optional

from config import DB_PATH
from listing.models import ALL_FIELDS
from models import CLAIMABLE_QC_STATES, RUN_RUNNING, AutopilotRun, ProductQCState


def now_utc() -> str:
    """Return current UTC time as a sortable string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def minutes_ago(minutes: int) -> str:
    then = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    return then.strftime("%Y-%m-%d %H:%M:%S")


SCHEMA = """
CREATE TABLE IF NOT EXISTS products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    batch_id TEXT,
    run_id INTEGER REFERENCES autopilot_runs(id),
    brand TEXT,
    garment_type TEXT,
    department TEXT,
    era TEXT,
    condition TEXT,
    flaws TEXT,
    colour_main TEXT,
    colour_secondary TEXT,
    pattern TEXT,
    material TEXT,
    made_in TEXT,
    fit TEXT,
    size_label TEXT,
    size_recommended TEXT,
    pit_to_pit TEXT,
    price REAL,
    style TEXT,
    title TEXT,
    description_style_a TEXT,
    description_style_b TEXT,
    shopify_tags TEXT,
    etsy_tags TEXT,
    collections_tags TEXT,
    raw_input_text TEXT,
    status TEXT DEFAULT 'new',
    qc_status TEXT DEFAULT 'draft',
    confidence INTEGER,
    flags TEXT,
    batch_number INTEGER,
    generated_at DATETIME,
    deleted_at DATETIME,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS images (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id INTEGER REFERENCES products(id),
    url TEXT NOT NULL,
    position INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS autopilot_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    batch_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'running',
    batch_size INTEGER NOT NULL DEFAULT 30,
    current_batch INTEGER NOT NULL DEFAULT 0,
    processed_cards INTEGER NOT NULL DEFAULT 0,
    total_cards INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS default_tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tag_name TEXT NOT NULL,
    garment_types TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_products_run ON products(run_id, qc_status, created_at);
CREATE INDEX IF NOT EXISTS idx_images_product ON images(product_id, position);
"""


def get_connection(db_path: str = DB_PATH) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(db_path: str = DB_PATH):
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    _migrate_product_columns(conn)
    conn.close()


# Columns added after the first release of the products table
_LATER_PRODUCT_COLUMNS = [
    ("selected_style", "TEXT DEFAULT 'a'"),
    ("generation_attempts", "INTEGER NOT NULL DEFAULT 0"),
]


def _migrate_product_columns(conn: sqlite3.Connection):
    """Add newer columns to an existing products table if missing."""
    existing = {
        row[1] for row in conn.execute("PRAGMA table_info(products)").fetchall()
    }
    for col_name, col_type in _LATER_PRODUCT_COLUMNS:
        if col_name not in existing:
            conn.execute(f"ALTER TABLE products ADD COLUMN {col_name} {col_type}")
    conn.commit()


# Columns callers may write through insert_product / update_product
PRODUCT_COLUMNS = set(ALL_FIELDS) | {
    "batch_id",
    "run_id",
    "raw_input_text",
    "selected_style",
    "status",
    "qc_status",
    "confidence",
    "flags",
    "batch_number",
    "generation_attempts",
    "generated_at",
    "deleted_at",
}


def _encode(column: str, value):
    if column == "flags":
        return json.dumps(value or {}, sort_keys=True)
    return value


def _product_from_row(row: sqlite3.Row) -> dict:
    product = dict(row)
    product["flags"] = json.loads(product["flags"]) if product.get("flags") else {}
    return product


def _check_columns(columns: Iterable[str]):
    unknown = set(columns) - PRODUCT_COLUMNS
    if unknown:
        raise ValueError(f"Unknown product columns: {', '.join(sorted(unknown))}")


def insert_product(conn: sqlite3.Connection, fields: dict) -> int:
    """Insert a product row. Returns the database row id."""
    _check_columns(fields)
    columns = list(fields)
    placeholders = ", ".join("?" for _ in columns)
    cursor = conn.execute(
        f"INSERT INTO products ({', '.join(columns)}, created_at) VALUES ({placeholders}, ?)",
        (*(_encode(c, fields[c]) for c in columns), now_utc()),
    )
    return cursor.lastrowid


def get_product(conn: sqlite3.Connection, product_id: int) -> Optional[dict]:
    row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
    return _product_from_row(row) if row else None


def update_product(conn: sqlite3.Connection, product_id: int, updates: dict):
    if not updates:
        return
    _check_columns(updates)
    set_clause = ", ".join(f"{k} = ?" for k in updates)
    conn.execute(
        f"UPDATE products SET {set_clause} WHERE id = ?",
        (*(_encode(k, v) for k, v in updates.items()), product_id),
    )


def get_qc_state(conn: sqlite3.Connection, product_id: int) -> Optional[ProductQCState]:
    product = get_product(conn, product_id)
    if product is None:
        return None
    return ProductQCState(
        product_id=product["id"],
        qc_status=product["qc_status"],
        confidence=product["confidence"],
        flags=product["flags"],
        batch_number=product["batch_number"],
    )


def add_image(conn: sqlite3.Connection, product_id: int, url: str, position: int = 0) -> int:
    cursor = conn.execute(
        "INSERT INTO images (product_id, url, position) VALUES (?, ?, ?)",
        (product_id, url, position),
    )
    return cursor.lastrowid


def get_product_images(
    conn: sqlite3.Connection, product_id: int, limit: Optional[int] = None
) -> list[str]:
    """Image URLs for a product in display order."""
    query = "SELECT url FROM images WHERE product_id = ? ORDER BY position, id"
    params: list = [product_id]
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)
    return [r["url"] for r in conn.execute(query, params).fetchall()]


def count_batch_products(conn: sqlite3.Connection, batch_id: str) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM products WHERE batch_id = ? AND deleted_at IS NULL",
        (batch_id,),
    ).fetchone()
    return row["n"]


def reset_batch_products(conn: sqlite3.Connection, batch_id: str, run_id: int) -> int:
    """Attach a batch's products to a run and put them back in the queue."""
    cursor = conn.execute(
        """UPDATE products SET
            qc_status = 'draft', run_id = ?, flags = '{}', confidence = NULL,
            batch_number = NULL, generated_at = NULL, generation_attempts = 0
        WHERE batch_id = ? AND deleted_at IS NULL""",
        (run_id, batch_id),
    )
    return cursor.rowcount


def get_claimable_products(
    conn: sqlite3.Connection, run_id: int, limit: int, max_attempts: int = 0
) -> list[dict]:
    """Next products to process for a run, oldest first."""
    states = ", ".join("?" for _ in CLAIMABLE_QC_STATES)
    query = f"""SELECT * FROM products
        WHERE run_id = ? AND qc_status IN ({states}) AND deleted_at IS NULL"""
    params: list = [run_id, *CLAIMABLE_QC_STATES]
    if max_attempts > 0:
        query += " AND generation_attempts < ?"
        params.append(max_attempts)
    query += " ORDER BY created_at, id LIMIT ?"
    params.append(limit)
    return [_product_from_row(r) for r in conn.execute(query, params).fetchall()]


def claim_product(conn: sqlite3.Connection, product_id: int, batch_number: int) -> bool:
    """Mark a product as generating. False if another batch got it first."""
    states = ", ".join("?" for _ in CLAIMABLE_QC_STATES)
    cursor = conn.execute(
        f"""UPDATE products SET
            qc_status = 'generating', batch_number = ?,
            generation_attempts = generation_attempts + 1
        WHERE id = ? AND qc_status IN ({states})""",
        (batch_number, product_id, *CLAIMABLE_QC_STATES),
    )
    return cursor.rowcount == 1


def create_run(
    conn: sqlite3.Connection, batch_id: str, batch_size: int, total_cards: int
) -> int:
    now = now_utc()
    cursor = conn.execute(
        """INSERT INTO autopilot_runs
            (batch_id, status, batch_size, total_cards, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)""",
        (batch_id, RUN_RUNNING, batch_size, total_cards, now, now),
    )
    return cursor.lastrowid


def get_run(conn: sqlite3.Connection, run_id: int) -> Optional[AutopilotRun]:
    row = conn.execute("SELECT * FROM autopilot_runs WHERE id = ?", (run_id,)).fetchone()
    return AutopilotRun.from_row(row) if row else None


def get_running_run_for_batch(conn: sqlite3.Connection, batch_id: str) -> Optional[AutopilotRun]:
    row = conn.execute(
        "SELECT * FROM autopilot_runs WHERE batch_id = ? AND status = ? ORDER BY id DESC LIMIT 1",
        (batch_id, RUN_RUNNING),
    ).fetchone()
    return AutopilotRun.from_row(row) if row else None


def get_stale_runs(conn: sqlite3.Connection, older_than: str) -> list[AutopilotRun]:
    """Running runs that have not moved since ``older_than`` or never started."""
    rows = conn.execute(
        """SELECT * FROM autopilot_runs
        WHERE status = ? AND (updated_at < ? OR current_batch = 0) ORDER BY id""",
        (RUN_RUNNING, older_than),
    ).fetchall()
    return [AutopilotRun.from_row(r) for r in rows]


def set_run_status(
    conn: sqlite3.Connection, run_id: int, status: str, expected: Optional[str] = None
) -> bool:
    """Change a run's status, optionally only if it is currently ``expected``."""
    query = "UPDATE autopilot_runs SET status = ?, updated_at = ? WHERE id = ?"
    params: list = [status, now_utc(), run_id]
    if expected is not None:
        query += " AND status = ?"
        params.append(expected)
    return conn.execute(query, params).rowcount == 1


def claim_run_batch(conn: sqlite3.Connection, run_id: int, expected_batch: int) -> bool:
    """Advance ``current_batch`` only if nobody else has since the run was read."""
    cursor = conn.execute(
        """UPDATE autopilot_runs SET current_batch = ?, updated_at = ?
        WHERE id = ? AND status = ? AND current_batch = ?""",
        (expected_batch + 1, now_utc(), run_id, RUN_RUNNING, expected_batch),
    )
    return cursor.rowcount == 1


def record_batch_progress(
    conn: sqlite3.Connection, run_id: int, processed: int, last_error: Optional[str] = None
):
    if last_error:
        conn.execute(
            """UPDATE autopilot_runs SET processed_cards = processed_cards + ?,
                last_error = ?, updated_at = ? WHERE id = ?""",
            (processed, last_error, now_utc(), run_id),
        )
    else:
        conn.execute(
            """UPDATE autopilot_runs SET processed_cards = processed_cards + ?,
                updated_at = ? WHERE id = ?""",
            (processed, now_utc(), run_id),
        )


def add_default_tag(conn: sqlite3.Connection, tag_name: str, garment_types: list[str]) -> int:
    cursor = conn.execute(
        "INSERT INTO default_tags (tag_name, garment_types) VALUES (?, ?)",
        (tag_name.strip(), ",".join(g.strip() for g in garment_types)),
    )
    return cursor.lastrowid


def get_default_tags(conn: sqlite3.Connection, garment_type: Optional[str]) -> list[str]:
    """Tags the shop always adds for this garment type."""
    if not garment_type:
        return []
    wanted = garment_type.lower().strip()
    rows = conn.execute("SELECT tag_name, garment_types FROM default_tags ORDER BY tag_name").fetchall()
    return [
        r["tag_name"]
        for r in rows
        if any(g.lower().strip() == wanted for g in r["garment_types"].split(","))
    ]
