"""Ejecuta la migración del schema de 'users' una vez y termina.

Uso: python -m user_service   (o el script 'user-service-migrate')
Código de salida 0 si todo fue bien, 1 ante cualquier fallo.
"""

import logging
import sys

from sqlalchemy import exc

from .config import ConfigError, configure_logging, load_settings
from .db import database_engine
from .migrations import initialize_db

logger = logging.getLogger("user_service")


def main() -> int:
    configure_logging()
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error(f"Configuración inválida, no se puede inicializar la base de datos: {e}")
        return 1

    configure_logging(settings.log_level)
    try:
        with database_engine(settings) as engine:
            result = initialize_db(engine)
    except (ConfigError, exc.SQLAlchemyError) as e:
        logger.error(f"No se pudo crear el motor de base de datos: {e}", exc_info=True)
        return 1

    if not result.ok:
        return 1

    if result.added_columns:
        logger.info(f"Columnas añadidas: {', '.join(result.added_columns)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
