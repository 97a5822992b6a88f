from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Any, Dict, Literal


Row = Dict[str, Any]


class CamelModel(BaseModel):
    """Serialized with camelCase keys, accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Credentials and remote metadata

class CredentialSet(CamelModel):
    name: str = "default"
    account_id: str
    api_token: str


class CredentialInfo(CamelModel):
    name: str
    account_id: str
    active: bool = True


class DatabaseInfo(BaseModel):
    uuid: str
    name: str
    created_at: Optional[str] = None
    version: Optional[str] = None
    running_in_region: Optional[str] = None


class SchemaObject(BaseModel):
    name: str
    kind: Literal["table", "view"] = Field(validation_alias="type")
    definition: Optional[str] = Field(default=None, validation_alias="sql")

    model_config = ConfigDict(populate_by_name=True)


# Remote service wire envelope

class RemoteError(BaseModel):
    code: Optional[int] = None
    message: str = ""


class RemoteQueryResult(BaseModel):
    results: List[Row] = Field(default_factory=list)
    duration: Optional[float] = None
    changes: Optional[int] = None
    count: Optional[int] = None


class RemoteEnvelope(BaseModel):
    success: bool
    errors: List[RemoteError] = Field(default_factory=list)
    messages: List[Any] = Field(default_factory=list)
    result: Optional[Any] = None


# Gateway requests and results

class TableBrowseRequest(BaseModel):
    database_id: str
    table_name: str
    limit: int = 50
    offset: int = 0


class ExecutionResult(BaseModel):
    rows: List[Row] = Field(default_factory=list)
    elapsed_ms: Optional[int] = None
    changed_row_count: Optional[int] = None
    total_count: Optional[int] = None


class ExecutionOutcome(BaseModel):
    rows: List[Row] = Field(default_factory=list)
    row_count: int = 0
    changed_row_count: Optional[int] = None
    elapsed_ms: int = 0
    from_cache: bool = False


class TablePage(BaseModel):
    rows: List[Row] = Field(default_factory=list)
    row_count: int = 0
    page_size: int = 0


# HTTP payloads

class QueryRequest(BaseModel):
    sql: str = ""


class QueryResponse(CamelModel):
    results: List[Row] = Field(default_factory=list)
    execution_time: int = 0
    row_count: int = 0
    changes: Optional[int] = None
    cached: bool = False
    message: Optional[str] = None


class TableRowsResponse(CamelModel):
    rows: List[Row] = Field(default_factory=list)
    row_count: int = 0
    page_size: int = 0
    message: Optional[str] = None


class ExportRequest(BaseModel):
    data: List[Row] = Field(default_factory=list)
    format: str = "csv"  # csv, json
    filename: Optional[str] = None


class HealthResponse(CamelModel):
    status: str  # "healthy", "degraded"
    uptime_seconds: float
    cached_entries: int
    known_databases: int = 0
    active_credential: bool
