"""Configuración de la conexión a la base de datos Turso (libSQL) usando SQLAlchemy."""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from .config import Settings, load_settings

logger = logging.getLogger(__name__)


def create_db_engine(settings: Settings) -> Engine:
    """
    Crea el motor (Engine) de SQLAlchemy: el único manejador de conexión del proceso.

    No abre ninguna conexión todavía; los errores de red o credenciales
    aparecen en el primer uso (ver `initialize_db`).
    """
    connect_args = {}
    if settings.sqlalchemy_url.startswith("sqlite"):
        # El motor vive todo el proceso y FastAPI puede usarlo desde otro hilo
        connect_args["check_same_thread"] = False

    # pool_pre_ping=True ayuda a manejar conexiones inactivas en el pool.
    return create_engine(
        settings.sqlalchemy_url,
        connect_args=connect_args,
        pool_pre_ping=True,
        echo=settings.sql_echo,
    )


@contextmanager
def database_engine(settings: Optional[Settings] = None) -> Iterator[Engine]:
    """
    Adquiere el motor al inicio del proceso y lo libera (dispose) al salir del bloque.

    Uso:
        with database_engine() as engine:
            result = initialize_db(engine)
    """
    settings = settings or load_settings()
    engine = create_db_engine(settings)
    logger.info("Motor de base de datos creado.")
    try:
        yield engine
    finally:
        engine.dispose()
        logger.info("Motor de base de datos liberado.")
