# tests/conftest.py
import pytest
from sqlalchemy import event, text

from user_service.config import Settings
from user_service.db import create_db_engine
from user_service.migrations import USERS_TABLE

# Definición completa de cada columna, para construir tablas "antiguas" a medida
FULL_COLUMN_DDL = {
    "id": "INTEGER PRIMARY KEY AUTOINCREMENT",
    "username": "TEXT UNIQUE NOT NULL",
    "email": "TEXT UNIQUE NOT NULL",
    "phone": "TEXT",
    "password_hash": "TEXT NOT NULL",
    "referral_code": "TEXT",
    "role": "TEXT DEFAULT 'Usuario' NOT NULL",
    "transactions_history": "TEXT DEFAULT '[]'",
    "balance": "REAL DEFAULT 0.00",
    "created_at": "DATETIME DEFAULT CURRENT_TIMESTAMP",
}

# Columnas de la tabla completa, en el orden de CREATE TABLE
USER_COLUMNS = tuple(FULL_COLUMN_DDL)

# Un directorio que no existe: SQLite no puede abrir el archivo
UNREACHABLE_DB_URL = "sqlite:////nonexistent_pixel_money_dir/users.db"

ENV_VARS = ("TURSO_DATABASE_URL", "TURSO_AUTH_TOKEN", "LOG_LEVEL", "SQL_ECHO")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Cada prueba parte sin variables de Turso; load_dotenv no las filtra entre pruebas."""
    for var in ENV_VARS:
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'users.db'}"


@pytest.fixture
def engine(db_url):
    eng = create_db_engine(Settings(database_url=db_url))
    yield eng
    eng.dispose()


@pytest.fixture
def statements(engine):
    """Registra cada sentencia SQL que el motor envía a la base de datos."""
    recorded = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        recorded.append(statement)

    event.listen(engine, "before_cursor_execute", _record)
    yield recorded
    event.remove(engine, "before_cursor_execute", _record)


def create_users_table(engine, columns):
    """Crea la tabla 'users' solo con las columnas indicadas (simula una versión anterior)."""
    body = ", ".join(f"{name} {FULL_COLUMN_DDL[name]}" for name in columns)
    with engine.begin() as conn:
        conn.execute(text(f"CREATE TABLE {USERS_TABLE} ({body})"))


def insert_user(engine, username, email, password_hash="hash"):
    with engine.begin() as conn:
        conn.execute(
            text("INSERT INTO users (username, email, password_hash) VALUES (:u, :e, :p)"),
            {"u": username, "e": email, "p": password_hash},
        )


def column_names(engine):
    with engine.connect() as conn:
        return [row[1] for row in conn.execute(text("PRAGMA table_info(users)"))]


def alter_statements(recorded):
    return [s for s in recorded if "ALTER TABLE" in s.upper()]
