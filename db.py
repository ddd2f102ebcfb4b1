import sqlite3
from contextlib import contextmanager

from config import DB_PATH


def _add_missing_columns(conn, table: str, columns: dict):
    existing = [row[1] for row in conn.execute(f"PRAGMA table_info({table})")]
    for name, ddl in columns.items():
        if name not in existing:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")


def init_db():
    with sqlite3.connect(DB_PATH) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS physicians (
                id         INTEGER PRIMARY KEY AUTOINCREMENT,
                name       TEXT    NOT NULL,
                created_at TEXT    NOT NULL DEFAULT ''
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS patients (
                id                        INTEGER PRIMARY KEY AUTOINCREMENT,
                name                      TEXT    NOT NULL DEFAULT '',
                medication                TEXT    NOT NULL,
                dosage                    TEXT    NOT NULL,
                treatment_setting         TEXT    NOT NULL
                    CHECK (treatment_setting IN ('metastatic', 'adjuvant')),
                treatment_start_date      TEXT    NOT NULL DEFAULT '',
                current_dosage_start_date TEXT    NOT NULL DEFAULT '',
                physician_id              INTEGER REFERENCES physicians(id),
                active                    INTEGER NOT NULL DEFAULT 1,
                created_at                TEXT    NOT NULL DEFAULT ''
            )
        """)
        # Migrate: adherence window start was added after the first schema
        _add_missing_columns(conn, "patients", {
            "adherence_start_date": "TEXT NOT NULL DEFAULT ''",
        })
        conn.execute("""
            CREATE TABLE IF NOT EXISTS dosage_history (
                id                INTEGER PRIMARY KEY AUTOINCREMENT,
                patient_id        INTEGER NOT NULL REFERENCES patients(id),
                medication        TEXT    NOT NULL,
                dosage            TEXT    NOT NULL,
                treatment_setting TEXT    NOT NULL,
                start_date        TEXT    NOT NULL,
                end_date          TEXT,
                weeks_on_dosage   INTEGER,
                created_at        TEXT    NOT NULL DEFAULT ''
            )
        """)
        # One override per patient and day; upserts rely on this constraint
        conn.execute("""
            CREATE TABLE IF NOT EXISTS calendar_events (
                id         INTEGER PRIMARY KEY AUTOINCREMENT,
                patient_id INTEGER NOT NULL REFERENCES patients(id),
                date       TEXT    NOT NULL,
                event_type TEXT    NOT NULL CHECK (event_type IN ('taken', 'pause', 'missed')),
                notes      TEXT    NOT NULL DEFAULT '',
                created_at TEXT    NOT NULL DEFAULT '',
                UNIQUE (patient_id, date)
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS missed_reports (
                id         INTEGER PRIMARY KEY AUTOINCREMENT,
                patient_id INTEGER NOT NULL REFERENCES patients(id),
                notes      TEXT    NOT NULL DEFAULT '',
                created_at TEXT    NOT NULL DEFAULT ''
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS missed_report_dates (
                report_id   INTEGER NOT NULL REFERENCES missed_reports(id) ON DELETE CASCADE,
                missed_date TEXT    NOT NULL,
                PRIMARY KEY (report_id, missed_date)
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS symptoms (
                id               INTEGER PRIMARY KEY AUTOINCREMENT,
                patient_id       INTEGER NOT NULL REFERENCES patients(id),
                date             TEXT    NOT NULL,
                symptom_type     TEXT    NOT NULL,
                present          INTEGER NOT NULL DEFAULT 0,
                intensity        INTEGER CHECK (intensity BETWEEN 0 AND 10),
                count            INTEGER,
                fever_temperature REAL,
                fever_chills     INTEGER,
                notes            TEXT    NOT NULL DEFAULT '',
                created_at       TEXT    NOT NULL DEFAULT '',
                UNIQUE (patient_id, date, symptom_type)
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id         INTEGER PRIMARY KEY AUTOINCREMENT,
                patient_id INTEGER NOT NULL REFERENCES patients(id),
                sender     TEXT    NOT NULL,
                content    TEXT    NOT NULL,
                is_urgent  INTEGER NOT NULL DEFAULT 0,
                created_at TEXT    NOT NULL DEFAULT ''
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS alerts (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                patient_id  INTEGER NOT NULL REFERENCES patients(id),
                type        TEXT    NOT NULL CHECK (type IN ('symptom', 'message', 'manual')),
                message     TEXT    NOT NULL,
                severity    TEXT    NOT NULL CHECK (severity IN ('low', 'medium', 'high')),
                resolved    INTEGER NOT NULL DEFAULT 0,
                created_at  TEXT    NOT NULL DEFAULT '',
                resolved_at TEXT    NOT NULL DEFAULT '',
                message_id  INTEGER REFERENCES messages(id)
            )
        """)
        # Indexes for common query patterns (all filtered by patient_id)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_patients_physician ON patients(physician_id)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_dosage_history_patient"
            " ON dosage_history(patient_id, start_date)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_missed_reports_patient ON missed_reports(patient_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_symptoms_type ON symptoms(symptom_type, intensity)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_alerts_open ON alerts(resolved, patient_id)")
        conn.commit()


@contextmanager
def get_db():
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def write_transaction(conn):
    """Run a multi-statement write as one unit: BEGIN IMMEDIATE, commit or roll back."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()
