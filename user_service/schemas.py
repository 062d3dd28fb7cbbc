"""Modelos Pydantic (schemas) para las respuestas de monitoreo del Servicio de Usuarios."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ColumnInfo(BaseModel):
    """Descriptor de una columna tal como lo reporta la base de datos."""
    cid: int
    name: str
    type: str
    notnull: bool
    default: Optional[str] = None
    pk: bool

    # Permite construir el schema desde el dataclass ColumnDescriptor
    model_config = ConfigDict(from_attributes=True)


class SchemaStatus(BaseModel):
    """Estado del schema de la tabla 'users'."""
    table: str
    columns: List[ColumnInfo]
    missing_columns: List[str]
    up_to_date: bool


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "user_service"
