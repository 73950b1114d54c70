"""REST API adapter for the fact database.

This module provides a FastAPI-based REST API over the registry of named
in-memory databases.

Endpoints:
    GET    /health                          - Health check
    GET    /stats                           - Statistics of every database
    POST   /databases/{name}                - Create a database
    DELETE /databases/{name}                - Delete a database
    POST   /databases/{name}/schema         - Declare attributes
    POST   /databases/{name}/transact       - Write a batch of entity maps
    POST   /databases/{name}/q              - Evaluate a datalog query
    GET    /databases/{name}/entity/{eid}   - Map view of one entity

Transaction data and queries may be sent as JSON or as EDN text. JSON
cannot express keywords, so attribute names and enum values are plain
strings there (``"user/email"``, ``"db.type/string"``). Calls are lists as well
(``[">=", "?a", 21]``) and query map sections may drop the colon
(``{"find": [...], "where": [...]}``).

Usage:
    from factdb.adapters.inbound.rest_api import create_app

    app = create_app()
    # Run with uvicorn: uvicorn app:app --host 0.0.0.0 --port 8080
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from factdb import __version__
from factdb.application import connect, create_database, delete_database, list_databases
from factdb.domain.entities import TxReport
from factdb.domain.value_objects import Keyword, TempId
from factdb.infrastructure.config import get_config
from factdb.infrastructure.logging import get_logger, setup_logging
from factdb.infrastructure.metrics import setup_metrics
from factdb.infrastructure.tracing import setup_tracing
from factdb.ports.inbound.fact_store import (
    DatabaseNotFound,
    DatomConflict,
    FactDBError,
    SchemaConflict,
    UniqueConflict,
)


logger = get_logger(__name__)


class TransactRequest(BaseModel):
    """Request model for a transaction."""

    tx_data: list[Any] | None = Field(None, description="Entity maps and [db/add e a v] forms")
    edn: str | None = Field(None, description="Transaction data as EDN text")


class SchemaRequest(BaseModel):
    """Request model for attribute declarations."""

    attributes: list[dict[str, Any]] | None = Field(None, description="Schema records")
    edn: str | None = Field(None, description="Schema records as EDN text")


class QueryRequest(BaseModel):
    """Request model for a datalog query."""

    query: str | list[Any] | dict[str, Any] = Field(..., description="Query as EDN text or data")
    inputs: list[Any] = Field(default_factory=list, description="Values for :in after $")


class TxResponse(BaseModel):
    """Response model for a committed transaction."""

    tx_id: int = Field(..., description="Entity id of the transaction")
    basis_t: int = Field(..., description="Basis of the resulting database")
    tempids: dict[str, int] = Field(default_factory=dict, description="Tempid -> entity id")
    datoms: int = Field(0, description="Number of datoms written")


class QueryResponse(BaseModel):
    """Response model for a query."""

    result: Any = Field(None, description="Query result")


class DatabaseResponse(BaseModel):
    """Response model for database creation and deletion."""

    name: str = Field(..., description="Database name")
    created: bool = Field(False, description="Whether the database was created")
    deleted: bool = Field(False, description="Whether the database was deleted")


class StatsResponse(BaseModel):
    """Response model for statistics."""

    databases: dict[str, dict[str, Any]] = Field(
        default_factory=dict, description="Statistics per database"
    )


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="API version")


def _status_for(error: FactDBError) -> int:
    if isinstance(error, DatabaseNotFound):
        return 404
    if isinstance(error, (SchemaConflict, UniqueConflict, DatomConflict)):
        return 409
    return 400


def to_json(value: Any) -> Any:
    """Convert query results and entity maps to JSON-compatible values."""
    if isinstance(value, dict):
        return {str(k): to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json(v) for v in value]
    if isinstance(value, Keyword):
        return str.__str__(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, TempId):
        return repr(value)
    return value


def _tx_response(report: TxReport) -> TxResponse:
    tempids = {
        (str(k) if isinstance(k, (str, int)) else repr(k)): int(v)
        for k, v in report.tempids.items()
    }
    return TxResponse(
        tx_id=int(report.tx_id),
        basis_t=report.basis_t,
        tempids=tempids,
        datoms=len(report),
    )


def _url(name: str) -> str:
    return f"factdb:mem://{name}"


def create_app() -> FastAPI:
    """Create a FastAPI application for the fact database.

    Returns:
        A configured FastAPI application.
    """
    app = FastAPI(
        title="factdb API",
        description="REST API for declaring schema, transacting facts and running datalog",
        version=__version__,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FactDBError)
    async def factdb_error_handler(request: Request, exc: FactDBError) -> JSONResponse:
        return JSONResponse(
            status_code=_status_for(exc),
            content={"error": type(exc).__name__, "message": str(exc)},
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", version=__version__)

    @app.get("/stats", response_model=StatsResponse, tags=["Stats"])
    async def get_stats() -> StatsResponse:
        """Get statistics of every database."""
        return StatsResponse(
            databases={
                name: connect(_url(name)).store.get_stats() for name in list_databases()
            }
        )

    @app.post("/databases/{name}", response_model=DatabaseResponse, tags=["Databases"])
    async def create(name: str) -> DatabaseResponse:
        """Create a database. Creating an existing database is not an error."""
        return DatabaseResponse(name=name, created=create_database(_url(name)))

    @app.delete("/databases/{name}", response_model=DatabaseResponse, tags=["Databases"])
    async def delete(name: str) -> DatabaseResponse:
        """Delete a database."""
        if not delete_database(_url(name)):
            raise DatabaseNotFound(f"No database named {name!r}")
        return DatabaseResponse(name=name, deleted=True)

    @app.post("/databases/{name}/schema", response_model=TxResponse, tags=["Schema"])
    async def declare(name: str, request: SchemaRequest) -> TxResponse:
        """Declare attributes."""
        conn = connect(_url(name))
        records: Any = request.edn if request.edn is not None else request.attributes or []
        return _tx_response(conn.declare_attributes(records))

    @app.post("/databases/{name}/transact", response_model=TxResponse, tags=["Transactions"])
    async def transact(name: str, request: TransactRequest) -> TxResponse:
        """Write a batch of entity maps."""
        conn = connect(_url(name))
        tx_data: Any = request.edn if request.edn is not None else request.tx_data or []
        return _tx_response(conn.transact(tx_data))

    @app.post("/databases/{name}/q", response_model=QueryResponse, tags=["Queries"])
    async def query(name: str, request: QueryRequest) -> QueryResponse:
        """Evaluate a datalog query."""
        db = connect(_url(name)).db()
        return QueryResponse(result=to_json(db.q(request.query, *request.inputs)))

    @app.get("/databases/{name}/entity/{eid}", tags=["Queries"])
    async def entity(name: str, eid: int) -> dict[str, Any]:
        """Return every fact held by an entity."""
        db = connect(_url(name)).db()
        result = db.entity(eid)
        if result is None:
            raise HTTPException(status_code=404, detail=f"Entity {eid} does not exist")
        return to_json(result)

    return app


def run_server(host: str = "0.0.0.0", port: int = 8080) -> None:
    """Run the REST API server.

    Args:
        host: Host to bind to.
        port: Port to bind to.
    """
    import uvicorn

    app = create_app()
    logger.info("server_starting", host=host, port=port)
    uvicorn.run(app, host=host, port=port)


def main() -> None:
    """Entry point of the ``factdb-server`` command."""
    config = get_config()
    obs = config.observability
    setup_logging(obs.log_level, obs.log_format)
    setup_tracing(obs.otel_service_name, obs.otel_endpoint)
    setup_metrics(config.server.metrics_port)
    run_server(config.server.host, config.server.port)


if __name__ == "__main__":
    main()
