"""
Creación y migración del schema de la tabla 'users'.

La migración es solo aditiva: se crea la tabla si no existe y se añaden las
columnas evolutivas que falten ('role', 'transactions_history', 'balance').
Nunca se eliminan, renombran ni cambian de tipo columnas existentes, y nunca
se escriben datos de filas.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

USERS_TABLE = "users"

CREATE_USERS_TABLE = """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        email TEXT UNIQUE NOT NULL,
        phone TEXT,
        password_hash TEXT NOT NULL,
        referral_code TEXT,
        role TEXT DEFAULT 'Usuario' NOT NULL,
        transactions_history TEXT DEFAULT '[]',
        balance REAL DEFAULT 0.00,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
"""

# Columnas que pueden faltar en tablas creadas por versiones anteriores.
# El orden es el orden en que se añaden.
EVOLVABLE_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("role", "TEXT DEFAULT 'Usuario' NOT NULL"),
    ("transactions_history", "TEXT DEFAULT '[]'"),
    ("balance", "REAL DEFAULT 0.00"),
)

class InitializationError(RuntimeError):
    """Fallo no recuperable al conectar o al crear/migrar el schema."""


@dataclass(frozen=True)
class ColumnDescriptor:
    """Una fila de PRAGMA table_info: metadatos de una columna."""
    cid: int
    name: str
    type: str
    notnull: bool
    default: Optional[str]
    pk: bool

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "ColumnDescriptor":
        cid, name, col_type, notnull, default, pk = row[:6]
        return cls(
            cid=int(cid),
            name=name,
            type=col_type or "",
            notnull=bool(notnull),
            default=default,
            pk=bool(pk),
        )


@dataclass
class InitializationResult:
    """Resultado de `initialize_db`. El llamador decide qué hacer si `ok` es False."""
    ok: bool
    table_created: bool = False
    added_columns: List[str] = field(default_factory=list)
    columns: List[ColumnDescriptor] = field(default_factory=list)
    error: Optional[InitializationError] = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def _validate_table_name(table: str) -> str:
    # PRAGMA no acepta parámetros, el nombre se interpola en el SQL
    if not table or not table.replace("_", "").isalnum():
        raise ValueError(f"Nombre de tabla inválido: {table!r}")
    return table


def table_exists(connection: Connection, table: str) -> bool:
    row = connection.execute(
        text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
        {"name": table},
    ).fetchone()
    return row is not None


def describe_table(connection: Connection, table: str = USERS_TABLE) -> List[ColumnDescriptor]:
    """Devuelve los descriptores de columna de `table`, en orden. Lista vacía si no existe."""
    table = _validate_table_name(table)
    rows = connection.execute(text(f"PRAGMA table_info({table})")).fetchall()
    return [ColumnDescriptor.from_row(row) for row in rows]


def missing_columns(columns: Sequence[ColumnDescriptor]) -> List[str]:
    """Nombres de las columnas evolutivas que no aparecen en `columns`."""
    present = {col.name for col in columns}
    return [name for name, _ in EVOLVABLE_COLUMNS if name not in present]


def initialize_db(engine: Engine) -> InitializationResult:
    """
    Inicializa la base de datos, asegurando que la tabla 'users' exista
    y que el schema esté actualizado (columnas 'role', 'transactions_history' y 'balance').

    Es idempotente: ejecutarla N veces equivale a ejecutarla una vez.
    Cualquier fallo (conexión, credenciales, DDL) se registra y se devuelve
    en el resultado; no hay reintentos ni rollback de lo ya aplicado.

    Args:
        engine: El motor de SQLAlchemy ya construido.

    Returns:
        InitializationResult con `ok=True` y las columnas finales, o `ok=False` y el error.
    """
    result = InitializationResult(ok=False)
    try:
        with engine.connect() as connection:
            # --- 1. Asegurar que la tabla exista ---
            result.table_created = not table_exists(connection, USERS_TABLE)
            connection.execute(text(CREATE_USERS_TABLE))
            connection.commit()
            if result.table_created:
                logger.info(f"Tabla '{USERS_TABLE}' creada.")
            else:
                logger.info(f"Tabla '{USERS_TABLE}' verificada.")

            # --- 2. Migración: añadir columnas que falten ---
            columns = describe_table(connection, USERS_TABLE)
            definitions = dict(EVOLVABLE_COLUMNS)
            for name in missing_columns(columns):
                logger.info(f"Migración de schema requerida: añadiendo columna '{name}'...")
                connection.execute(
                    text(f"ALTER TABLE {USERS_TABLE} ADD COLUMN {name} {definitions[name]}")
                )
                connection.commit()
                result.added_columns.append(name)
                logger.info(f"Columna '{name}' añadida exitosamente.")

            result.columns = describe_table(connection, USERS_TABLE) if result.added_columns else columns
    except Exception as e:
        logger.error(
            "Error al inicializar la base de datos o ejecutar la migración. "
            f"Revise las credenciales del .env y la conexión a Turso: {e}",
            exc_info=True,
        )
        error = InitializationError(f"No se pudo inicializar la tabla '{USERS_TABLE}': {e}")
        error.__cause__ = e
        result.error = error
        return result

    result.ok = True
    if not result.added_columns:
        logger.info("Schema de 'users' al día; no se requieren migraciones.")
    return result
