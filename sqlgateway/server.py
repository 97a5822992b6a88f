import logging
import time
from typing import Annotated, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from sqlgateway.cache import ResultCache
from sqlgateway.client import RemoteSQLClient
from sqlgateway.config import settings
from sqlgateway.credentials import CredentialStore, DatabaseRegistry
from sqlgateway.errors import (
    ErrorClassifier,
    GatewayError,
    InvalidRequest,
    RemoteSystemError,
)
from sqlgateway.export import SUPPORTED_FORMATS, render_export
from sqlgateway.gateway import QueryGateway
from sqlgateway.models import (
    CredentialInfo,
    CredentialSet,
    DatabaseInfo,
    ExportRequest,
    HealthResponse,
    QueryRequest,
    QueryResponse,
    Row,
    SchemaObject,
    TableRowsResponse,
)
from sqlgateway.planner import MAX_PAGE_SIZE, MIN_PAGE_SIZE

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="SQL Query Gateway")
start_time = time.time()


def create_client(credential: CredentialSet) -> RemoteSQLClient:
    return RemoteSQLClient(
        credential,
        base_url=settings.API_BASE_URL,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
    )


def _startup_credential() -> Optional[CredentialSet]:
    if settings.ACCOUNT_ID and settings.API_TOKEN:
        return CredentialSet(name="environment", account_id=settings.ACCOUNT_ID, api_token=settings.API_TOKEN)
    return None


gateway = QueryGateway(
    credentials=CredentialStore(_startup_credential()),
    cache=ResultCache(ttl_seconds=settings.CACHE_TTL_SECONDS),
    client_factory=create_client,
    classifier=ErrorClassifier(settings.USER_ERROR_SIGNATURES),
    registry=DatabaseRegistry(),
)


def get_gateway() -> QueryGateway:
    return gateway


gateway_dep = Annotated[QueryGateway, Depends(get_gateway)]


def _public_message(error: GatewayError, system_message: Optional[str] = None) -> str:
    # Remote system failure detail stays in the server log
    if isinstance(error, RemoteSystemError):
        return system_message or error.public_message
    return error.message


def _message_response(error: GatewayError, system_message: str = "Internal server error") -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"message": _public_message(error, system_message)},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request", "detail": jsonable_encoder(exc.errors()), "rowCount": 0},
    )


@app.get("/health")
async def health(gateway: gateway_dep) -> HealthResponse:
    active = gateway.credentials.get_active() is not None
    return HealthResponse(
        status="healthy" if active else "degraded",
        uptime_seconds=time.time() - start_time,
        cached_entries=len(gateway.cache),
        known_databases=len(gateway.registry),
        active_credential=active,
    )


# Credentials

@app.post("/credentials", response_model=CredentialInfo)
async def activate_credential(credential: CredentialSet, gateway: gateway_dep):
    try:
        await gateway.activate_credential(credential)
    except GatewayError as e:
        return _message_response(e)
    return gateway.credentials.describe_active()


@app.get("/credentials/active", response_model=CredentialInfo)
async def get_active_credential(gateway: gateway_dep):
    info = gateway.credentials.describe_active()
    if info is None:
        return JSONResponse(status_code=404, content={"message": "No active API key configured"})
    return info


@app.delete("/credentials/active")
async def clear_active_credential(gateway: gateway_dep):
    return {"success": gateway.credentials.clear()}


# Databases and schema

@app.get("/databases", response_model=List[DatabaseInfo])
async def list_databases(gateway: gateway_dep):
    try:
        return await gateway.list_databases()
    except GatewayError as e:
        return _message_response(e, "Failed to fetch databases")


@app.get("/databases/{database_id}/schema", response_model=List[SchemaObject])
async def get_schema(database_id: str, gateway: gateway_dep):
    try:
        return await gateway.describe_schema(database_id)
    except GatewayError as e:
        return _message_response(e, "Failed to fetch database schema")


@app.get("/databases/{database_id}/tables/{table_name}/columns")
async def get_table_columns(database_id: str, table_name: str, gateway: gateway_dep) -> List[Row]:
    try:
        return await gateway.describe_table(database_id, table_name)
    except GatewayError as e:
        return _message_response(e, "Failed to fetch table columns")


# Query execution

@app.post("/databases/{database_id}/query")
async def execute_query(database_id: str, request: QueryRequest, gateway: gateway_dep) -> QueryResponse:
    started = time.perf_counter()
    try:
        outcome = await gateway.run_query(database_id, request.sql)
    except GatewayError as e:
        body = QueryResponse(
            execution_time=int((time.perf_counter() - started) * 1000),
            message=_public_message(e),
        )
        return JSONResponse(status_code=e.status_code, content=body.model_dump(by_alias=True, mode="json"))
    except Exception:
        logger.exception(f"[QUERY UNKNOWN_ERROR] database {database_id}")
        body = QueryResponse(
            execution_time=int((time.perf_counter() - started) * 1000),
            message="Failed to execute query",
        )
        return JSONResponse(status_code=500, content=body.model_dump(by_alias=True, mode="json"))

    return QueryResponse(
        results=outcome.rows,
        execution_time=outcome.elapsed_ms,
        row_count=outcome.row_count,
        changes=outcome.changed_row_count,
        cached=outcome.from_cache,
    )


def _parse_page_param(value: str, message: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(message)


@app.get("/databases/{database_id}/tables/{table_name}/rows")
async def get_table_rows(
    database_id: str,
    table_name: str,
    gateway: gateway_dep,
    limit: str = "50",
    offset: str = "0",
) -> TableRowsResponse:
    limit_num = None
    try:
        limit_num = _parse_page_param(limit, f"Limit must be a number between {MIN_PAGE_SIZE} and {MAX_PAGE_SIZE}")
        offset_num = _parse_page_param(offset, "Offset must be a non-negative number")
        page = await gateway.browse_table(database_id, table_name, limit_num, offset_num)
    except GatewayError as e:
        # A rejected page reports no page size; a missing table echoes the requested one
        rejected_page = type(e) is InvalidRequest
        body = TableRowsResponse(
            page_size=0 if rejected_page or limit_num is None else limit_num,
            message=_public_message(e, "Internal server error occurred while fetching table data"),
        )
        return JSONResponse(status_code=e.status_code, content=body.model_dump(by_alias=True, mode="json"))
    except Exception:
        logger.exception(f"[TABLE_ROWS UNKNOWN_ERROR] database {database_id} table {table_name}")
        body = TableRowsResponse(page_size=limit_num or 0, message="Failed to fetch table data")
        return JSONResponse(status_code=500, content=body.model_dump(by_alias=True, mode="json"))

    return TableRowsResponse(rows=page.rows, row_count=page.row_count, page_size=page.page_size)


# Export

@app.post("/export")
async def export_rows(request: ExportRequest):
    if request.format not in SUPPORTED_FORMATS:
        return JSONResponse(status_code=400, content={"message": "Unsupported format"})

    media_type, default_name = SUPPORTED_FORMATS[request.format]
    return Response(
        content=render_export(request.data, request.format),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={request.filename or default_name}"},
    )


# Entry point for manual testing
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
