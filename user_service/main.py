import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import exc

# Importaciones locales
from .config import ConfigError, configure_logging, load_settings
from .db import create_db_engine
from .migrations import USERS_TABLE, describe_table, initialize_db, missing_columns
from . import schemas

logger = logging.getLogger(__name__)

# --- Métricas Prometheus ---
REQUEST_COUNT = Counter(
    "user_requests_total",
    "Total requests processed by User Service",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "user_request_latency_seconds",
    "Request latency in seconds for User Service",
    ["endpoint"]
)
SCHEMA_INITIALIZATIONS = Counter(
    "user_schema_initializations_total",
    "Schema initialization runs for the users table",
    ["result"]
)
SCHEMA_COLUMNS_ADDED = Counter(
    "user_schema_columns_added_total",
    "Columns added to the users table by the schema migration"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Crea el motor al iniciar, migra el schema y libera el motor al apagar."""
    configure_logging()
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error(f"Configuración inválida, no se puede inicializar la base de datos: {e}")
        raise
    configure_logging(settings.log_level)
    engine = create_db_engine(settings)

    result = initialize_db(engine)
    SCHEMA_INITIALIZATIONS.labels(result="success" if result.ok else "failure").inc()
    if not result.ok:
        engine.dispose()
        # Sin schema el servicio no puede operar: se aborta el arranque
        result.raise_for_error()
    SCHEMA_COLUMNS_ADDED.inc(len(result.added_columns))
    logger.info("Database initialized: 'users' table ensured.")

    app.state.engine = engine
    try:
        yield
    finally:
        engine.dispose()
        logger.info("Motor de base de datos liberado.")


# Inicializa FastAPI
app = FastAPI(
    title="User Service - Pixel Money",
    description="Owns the users table schema and reports its status.",
    version="1.0.0",
    lifespan=lifespan,
)


# --- Middleware para Métricas ---
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start_time = time.time()
    response = None
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as e:
        logger.error(f"Unhandled exception during request processing: {e}", exc_info=True)
        return Response("Internal Server Error", status_code=500)
    finally:
        latency = time.time() - start_time
        endpoint = request.url.path
        final_status_code = getattr(response, 'status_code', status_code)

        REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=final_status_code
        ).inc()

    return response


# --- Endpoints de Salud y Métricas ---
@app.get("/metrics", tags=["Monitoring"])
def metrics():
    """Exposes application metrics for Prometheus."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", response_model=schemas.HealthResponse, tags=["Monitoring"])
def health_check():
    """Performs a basic health check of the service."""
    return schemas.HealthResponse()


@app.get("/schema", response_model=schemas.SchemaStatus, tags=["Monitoring"])
def schema_status(request: Request):
    """Describes the live columns of the users table and which evolvable ones are missing."""
    try:
        with request.app.state.engine.connect() as connection:
            columns = describe_table(connection, USERS_TABLE)
    except exc.SQLAlchemyError as e:
        logger.error(f"Error al describir la tabla '{USERS_TABLE}': {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servicio de base de datos no disponible.",
        )

    missing = missing_columns(columns)
    return schemas.SchemaStatus(
        table=USERS_TABLE,
        columns=[schemas.ColumnInfo.model_validate(col) for col in columns],
        missing_columns=missing,
        up_to_date=bool(columns) and not missing,
    )
