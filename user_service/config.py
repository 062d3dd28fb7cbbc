"""Configuración del servicio leída desde variables de entorno (.env)."""

import os
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

REQUIRED_DB_VARS = ("TURSO_DATABASE_URL", "TURSO_AUTH_TOKEN")

# Esquemas remotos que entiende el cliente libSQL
REMOTE_SCHEMES = ("libsql://", "https://", "http://", "wss://", "ws://")


class ConfigError(RuntimeError):
    """La configuración del entorno está incompleta o es inválida."""


@dataclass(frozen=True)
class Settings:
    database_url: str
    auth_token: Optional[str] = None
    log_level: str = "INFO"
    sql_echo: bool = False

    @property
    def sqlalchemy_url(self) -> str:
        return build_sqlalchemy_url(self.database_url, self.auth_token)


def build_sqlalchemy_url(database_url: str, auth_token: Optional[str] = None) -> str:
    """
    Traduce la URL de Turso al formato que espera el dialecto 'sqlite+libsql' de SQLAlchemy.

    Ejemplos:
        libsql://db-org.turso.io  -> sqlite+libsql://db-org.turso.io/?authToken=...&secure=true
        http://127.0.0.1:8080     -> sqlite+libsql://127.0.0.1:8080/?authToken=...&secure=false
        file:local.db             -> sqlite+libsql:///local.db
        sqlite:///users.db        -> sin cambios (desarrollo local / pruebas)
    """
    url = database_url.strip()
    if not url:
        raise ConfigError("TURSO_DATABASE_URL está vacía.")

    if url.startswith("sqlite"):
        return url

    if url.startswith("file:"):
        return f"sqlite+libsql:///{url[len('file:'):]}"

    for scheme in REMOTE_SCHEMES:
        if url.startswith(scheme):
            parts = urlsplit(url)
            if not parts.netloc:
                raise ConfigError(f"TURSO_DATABASE_URL no tiene host: {database_url!r}")
            # Se conservan los parámetros que ya traiga la URL; el token del entorno tiene prioridad
            params = dict(parse_qsl(parts.query))
            if auth_token:
                params["authToken"] = auth_token
            secure = scheme not in ("http://", "ws://")
            params.setdefault("secure", "true" if secure else "false")
            path = parts.path.rstrip("/")
            return f"sqlite+libsql://{parts.netloc}{path}/?{urlencode(params)}"

    raise ConfigError(f"Esquema no soportado en TURSO_DATABASE_URL: {database_url!r}")


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Carga la configuración desde el entorno (y el archivo .env si existe).

    El .env se busca desde el directorio de trabajo, no desde el paquete instalado.

    Raises:
        ConfigError: si falta alguna variable obligatoria o la URL no es válida.
    """
    load_dotenv(env_file or find_dotenv(usecwd=True))

    database_url = os.getenv("TURSO_DATABASE_URL")
    auth_token = os.getenv("TURSO_AUTH_TOKEN")

    # El token solo es obligatorio para bases remotas
    required = set(REQUIRED_DB_VARS)
    if database_url and not database_url.startswith(REMOTE_SCHEMES):
        required.discard("TURSO_AUTH_TOKEN")

    missing_vars = sorted(var for var in required if not os.getenv(var))
    if missing_vars:
        logger.error(f"Faltan variables de entorno para la base de datos: {', '.join(missing_vars)}")
        raise ConfigError(f"Missing DB environment variables: {', '.join(missing_vars)}")

    # Valida el esquema y el host aquí, antes de crear el motor
    build_sqlalchemy_url(database_url, auth_token)

    return Settings(
        database_url=database_url,
        auth_token=auth_token,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        sql_echo=os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes"),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))
