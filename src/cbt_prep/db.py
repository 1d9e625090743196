"""SQLite schemas and connection management."""
import sqlite3
from pathlib import Path

from cbt_prep.config import DEFAULT_DB_PATH, DEFAULT_STORE_PATH

SERVER_SCHEMA = """
CREATE TABLE IF NOT EXISTS questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT,
    subject TEXT NOT NULL,
    topic TEXT,
    question TEXT NOT NULL,
    option_a TEXT,
    option_b TEXT,
    option_c TEXT,
    option_d TEXT,
    option_e TEXT,
    answer TEXT NOT NULL,
    explanation TEXT,
    exam_type TEXT DEFAULT 'utme',
    exam_year TEXT,
    image_url TEXT,
    is_ai_generated INTEGER DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(subject, question)
);

CREATE INDEX IF NOT EXISTS idx_questions_subject ON questions(subject);
CREATE INDEX IF NOT EXISTS idx_questions_topic ON questions(topic);
"""

# Client-side key -> record stores. Payloads are JSON text.
STORE_SCHEMA = """
CREATE TABLE IF NOT EXISTS question_cache (
    cache_key TEXT PRIMARY KEY,
    subject TEXT NOT NULL,
    year TEXT,
    topic TEXT,
    questions TEXT NOT NULL,
    timestamp REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_question_cache_subject ON question_cache(subject);

CREATE TABLE IF NOT EXISTS ai_cache (
    cache_key TEXT PRIMARY KEY,
    response TEXT NOT NULL,
    timestamp REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS ai_history (
    id TEXT PRIMARY KEY,
    history TEXT NOT NULL,
    timestamp REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS ai_settings (
    id TEXT PRIMARY KEY,
    provider TEXT NOT NULL,
    model TEXT NOT NULL,
    updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS flashcards (
    id TEXT PRIMARY KEY,
    subject TEXT NOT NULL,
    topic TEXT,
    created_at REAL NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_flashcards_subject ON flashcards(subject);
CREATE INDEX IF NOT EXISTS idx_flashcards_topic ON flashcards(topic);

CREATE TABLE IF NOT EXISTS novels (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS generated_content (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    timestamp REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS saved_sessions (
    id TEXT PRIMARY KEY,
    timestamp REAL NOT NULL,
    data TEXT NOT NULL
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory enabled."""
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the server database, creating the questions table if needed."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SERVER_SCHEMA)
    conn.commit()
    conn.close()


def init_store(store_path: str = DEFAULT_STORE_PATH) -> sqlite3.Connection:
    """Create the local store tables and return an open connection."""
    Path(store_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(store_path)
    conn.executescript(STORE_SCHEMA)
    conn.commit()
    return conn
