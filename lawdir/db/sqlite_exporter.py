from __future__ import annotations

import hashlib
import json
import re
import sqlite3
from typing import List

from lawdir.schemas import LawyerRecord

DDL_STATEMENTS = [
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    """
    CREATE TABLE IF NOT EXISTS lawyers (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      record_key TEXT NOT NULL,
      name TEXT NOT NULL,
      rating REAL,
      review_count INTEGER NOT NULL DEFAULT 0,
      location TEXT NOT NULL,
      phone TEXT NOT NULL,
      email TEXT NOT NULL,
      website TEXT NOT NULL,
      profile_url TEXT NOT NULL,
      scraped_at TEXT NOT NULL,
      record TEXT NOT NULL
    )
    """.strip(),
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_lawyers_identity ON lawyers (record_key)
    """.strip(),
    """
    CREATE INDEX IF NOT EXISTS idx_lawyers_location ON lawyers (lower(location))
    """.strip(),
]

UPSERT_SQL = (
    """
    INSERT INTO lawyers (
      record_key, name, rating, review_count, location, phone, email,
      website, profile_url, scraped_at, record
    ) VALUES (
      :record_key, :name, :rating, :review_count, :location, :phone, :email,
      :website, :profile_url, :scraped_at, :record
    )
    ON CONFLICT(record_key)
    DO UPDATE SET
      name = excluded.name,
      rating = excluded.rating,
      review_count = excluded.review_count,
      location = excluded.location,
      phone = excluded.phone,
      email = excluded.email,
      website = excluded.website,
      scraped_at = excluded.scraped_at,
      record = excluded.record
    """
).strip()


def make_record_key(record: LawyerRecord) -> str:
    """Profile URL when present, else a hash of name + location."""
    if record.profile_url:
        return record.profile_url
    name_norm = record.name.strip().lower()
    loc_norm = re.sub(r"\s+", "", record.location.strip().lower())
    return "sha1:" + hashlib.sha1(f"{name_norm}@{loc_norm}".encode("utf-8")).hexdigest()


def ensure_schema(conn: sqlite3.Connection) -> None:
    for stmt in DDL_STATEMENTS:
        conn.execute(stmt)


def export_records_to_sqlite(db_path: str, records: List[LawyerRecord]) -> int:
    """Write records into a SQLite database with upsert semantics.

    Returns:
        Number of rows processed (attempted upserts)
    """
    if not records:
        return 0

    conn = sqlite3.connect(db_path)
    try:
        ensure_schema(conn)
        rows = []
        for r in records:
            out = r.to_output()
            rows.append({
                "record_key": make_record_key(r),
                "name": r.name,
                "rating": r.rating,
                "review_count": r.review_count,
                "location": r.location,
                "phone": r.phone,
                "email": r.email,
                "website": r.website,
                "profile_url": r.profile_url,
                "scraped_at": out["scrapedAt"],
                "record": json.dumps(out, ensure_ascii=False),
            })
        with conn:  # transactional batch
            conn.executemany(UPSERT_SQL, rows)
        return len(rows)
    finally:
        conn.close()
