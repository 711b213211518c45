import json
import logging
import sqlite3

from flask import current_app, g

from .errors import DatabaseNotConfigured

logger = logging.getLogger(__name__)

NOW_SQL = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"

KNOWN_TABLES = [
    "bedrijven",
    "contacten",
    "deals",
    "projecten",
    "offertes",
    "inkomsten",
    "uitgaven",
    "artikelen",
    "timesheets",
    "betalingen",
    "afspraken",
    "abonnementen",
]

OFFERTE_AI_COLUMNS = {
    "ai_fotos": "TEXT NOT NULL DEFAULT '[]'",
    "ai_afmetingen": "TEXT NOT NULL DEFAULT '{}'",
    "ai_analyse": "TEXT",
    "ai_analyse_status": "TEXT NOT NULL DEFAULT 'Niet geanalyseerd'",
    "ai_analyse_fout": "TEXT",
    "ai_analyse_at": "TEXT",
}


# ================= SCHEMA =================

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS bedrijven (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    naam TEXT NOT NULL,
    adres TEXT,
    postcode TEXT,
    stad TEXT,
    email TEXT,
    telefoon TEXT,
    kvk TEXT,
    btw TEXT,
    sector TEXT,
    website TEXT,
    beschrijving TEXT,
    status TEXT NOT NULL DEFAULT 'Actief',
    created_at TEXT NOT NULL DEFAULT {NOW_SQL},
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS contacten (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    voornaam TEXT NOT NULL,
    achternaam TEXT NOT NULL,
    email TEXT,
    telefoon TEXT,
    functie TEXT,
    bedrijf_id INTEGER REFERENCES bedrijven(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT {NOW_SQL},
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS projecten (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    naam TEXT NOT NULL,
    beschrijving TEXT,
    status TEXT NOT NULL DEFAULT 'Actief',
    voortgang INTEGER NOT NULL DEFAULT 0,
    deadline TEXT,
    budget REAL NOT NULL DEFAULT 0,
    budget_gebruikt REAL NOT NULL DEFAULT 0,
    bedrijf_id INTEGER REFERENCES bedrijven(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT {NOW_SQL},
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS offertes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    nummer TEXT NOT NULL UNIQUE,
    klant TEXT NOT NULL,
    bedrag REAL NOT NULL,
    datum TEXT,
    geldig_tot TEXT,
    status TEXT NOT NULL DEFAULT 'Openstaand',
    bedrijf_id INTEGER REFERENCES bedrijven(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT {NOW_SQL},
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS facturen (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    nummer TEXT NOT NULL UNIQUE,
    klant TEXT NOT NULL,
    klant_email TEXT,
    bedrag REAL NOT NULL DEFAULT 0,
    btw_bedrag REAL NOT NULL DEFAULT 0,
    totaal_bedrag REAL NOT NULL DEFAULT 0,
    datum TEXT,
    verval_datum TEXT,
    status TEXT NOT NULL DEFAULT 'Concept',
    betaald_op TEXT,
    betaal_methode TEXT,
    items TEXT NOT NULL DEFAULT '[]',
    timeline TEXT NOT NULL DEFAULT '[]',
    herinneringen_verstuurd INTEGER NOT NULL DEFAULT 0,
    pdf_url TEXT,
    notities TEXT,
    created_at TEXT NOT NULL DEFAULT {NOW_SQL}
);

CREATE TABLE IF NOT EXISTS inkomsten (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    titel TEXT,
    omschrijving TEXT,
    bedrag REAL NOT NULL,
    datum TEXT,
    categorie TEXT,
    betaalmethode TEXT,
    bedrijf_id INTEGER REFERENCES bedrijven(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT {NOW_SQL}
);

CREATE TABLE IF NOT EXISTS uitgaven (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    titel TEXT,
    omschrijving TEXT,
    leverancier TEXT,
    bedrag REAL NOT NULL,
    datum TEXT,
    categorie TEXT,
    betaalmethode TEXT,
    bedrijf_id INTEGER REFERENCES bedrijven(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT {NOW_SQL}
);

CREATE TABLE IF NOT EXISTS afspraken (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    titel TEXT NOT NULL,
    beschrijving TEXT,
    start_tijd TEXT NOT NULL,
    eind_tijd TEXT,
    locatie TEXT,
    deelnemers TEXT NOT NULL DEFAULT '[]',
    bedrijf_id INTEGER REFERENCES bedrijven(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT {NOW_SQL}
);
"""

DEALS_DUTCH = f"""
CREATE TABLE IF NOT EXISTS deals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    titel TEXT NOT NULL,
    waarde REAL NOT NULL DEFAULT 0,
    stadium TEXT NOT NULL DEFAULT 'Lead',
    deadline TEXT,
    kans INTEGER NOT NULL DEFAULT 50,
    bedrijf_id INTEGER REFERENCES bedrijven(id) ON DELETE SET NULL,
    contact_id INTEGER REFERENCES contacten(id) ON DELETE SET NULL,
    notities TEXT,
    created_at TEXT NOT NULL DEFAULT {NOW_SQL},
    updated_at TEXT
);
"""

DEALS_ENGLISH = f"""
CREATE TABLE IF NOT EXISTS deals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    amount REAL NOT NULL DEFAULT 0,
    stage TEXT NOT NULL DEFAULT 'Lead',
    probability INTEGER NOT NULL DEFAULT 50,
    company_id INTEGER REFERENCES bedrijven(id) ON DELETE SET NULL,
    notes TEXT,
    created_at TEXT NOT NULL DEFAULT {NOW_SQL}
);
"""


# ================= CONNECTIONS =================

def connect(path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def get_db() -> sqlite3.Connection:
    if "db" not in g:
        db_file = current_app.config.get("DB_FILE")
        if not db_file:
            raise DatabaseNotConfigured()
        g.db = connect(db_file)
    return g.db


def close_db(_exc=None):
    conn = g.pop("db", None)
    if conn is not None:
        conn.close()


def init_db(conn: sqlite3.Connection, deals_schema: str = "dutch", offerte_ai: bool = True):
    conn.executescript(SCHEMA)
    conn.executescript(DEALS_ENGLISH if deals_schema == "english" else DEALS_DUTCH)
    if offerte_ai:
        migrate_offerte_ai(conn)
    conn.commit()


def table_columns(conn: sqlite3.Connection, table: str) -> set:
    return {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}


def migrate_offerte_ai(conn: sqlite3.Connection) -> list:
    """Add the quote AI columns that are still missing. Returns the added names."""
    existing = table_columns(conn, "offertes")
    added = []
    with conn:
        for column, definition in OFFERTE_AI_COLUMNS.items():
            if column in existing:
                continue
            conn.execute(f"ALTER TABLE offertes ADD COLUMN {column} {definition}")
            added.append(column)
    if added:
        logger.info("Added offerte AI columns: %s", ", ".join(added))
    return added


# ================= ROW HELPERS =================

def row_to_dict(row):
    return dict(row) if row is not None else None


def fetch_one(conn, sql, params=()):
    return row_to_dict(conn.execute(sql, params).fetchone())


def fetch_all(conn, sql, params=()):
    return [dict(row) for row in conn.execute(sql, params).fetchall()]


def insert_row(conn, table: str, values: dict) -> int:
    columns = list(values)
    placeholders = ", ".join("?" for _ in columns)
    cur = conn.execute(
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
        [values[c] for c in columns],
    )
    return cur.lastrowid


def update_row(conn, table: str, row_id: int, values: dict) -> int:
    assignments = ", ".join(f"{column} = ?" for column in values)
    cur = conn.execute(
        f"UPDATE {table} SET {assignments} WHERE id = ?",
        [*values.values(), row_id],
    )
    return cur.rowcount


def delete_row(conn, table: str, row_id: int) -> int:
    return conn.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,)).rowcount


def to_json(value):
    return json.dumps(value, ensure_ascii=False)
