import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlgateway.cache import ResultCache, fingerprint
from sqlgateway.client import RemoteSQLClient
from sqlgateway.credentials import CredentialStore, DatabaseRegistry
from sqlgateway.errors import (
    ClassifiedError,
    ErrorClassifier,
    GatewayError,
    InvalidRequest,
    RemoteFailure,
    RemoteSystemError,
    TableNotFound,
)
from sqlgateway.models import (
    CredentialSet,
    DatabaseInfo,
    ExecutionOutcome,
    Row,
    SchemaObject,
    TableBrowseRequest,
    TablePage,
)
from sqlgateway.planner import TableBrowsePlanner

logger = logging.getLogger(__name__)

ClientFactory = Callable[[CredentialSet], RemoteSQLClient]


def _elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)


def log_outcome(scope: str, record: Dict[str, Any], error: Optional[GatewayError] = None) -> None:
    """
    Emit one structured outcome line, e.g. ``[QUERY SUCCESS] {...}``.

    Validation failures are warnings, user SQL errors are info and system
    failures are errors; the raw remote detail only ever appears here.
    """
    record = dict(record, timestamp=datetime.now(timezone.utc).isoformat())

    if error is None:
        logger.info("[%s SUCCESS] %s", scope, json.dumps(record, default=str))
        return

    record["errorMessage"] = error.message
    if isinstance(error, ClassifiedError):
        record["errorType"] = error.error_type
        record["rawDetails"] = error.raw_details
    else:
        record["errorType"] = type(error).__name__

    line = json.dumps(record, default=str)
    if isinstance(error, RemoteSystemError):
        logger.error("[%s SYSTEM_ERROR] %s", scope, line)
    elif isinstance(error, ClassifiedError):
        logger.info("[%s USER_ERROR] %s", scope, line)
    else:
        logger.warning("[%s INVALID_REQUEST] %s", scope, line)


class QueryGateway:
    """Runs client SQL against the remote service with caching and failure classification."""

    def __init__(
        self,
        credentials: CredentialStore,
        cache: ResultCache,
        client_factory: ClientFactory,
        classifier: Optional[ErrorClassifier] = None,
        registry: Optional[DatabaseRegistry] = None,
    ):
        self.credentials = credentials
        self.cache = cache
        self.client_factory = client_factory
        self.classifier = classifier or ErrorClassifier()
        self.registry = registry or DatabaseRegistry()
        self.planner = TableBrowsePlanner(self.classifier)

    def _client(self) -> RemoteSQLClient:
        return self.client_factory(self.credentials.require_active())

    async def run_query(self, database_id: str, sql: str) -> ExecutionOutcome:
        """
        Execute free-form SQL, answering from the cache while it is fresh.

        Args:
            database_id: Remote database identifier
            sql: Statement text, used verbatim

        Returns:
            ExecutionOutcome, with ``from_cache`` set on a cache hit

        Raises:
            InvalidRequest: empty statement or no active credential
            ClassifiedError: the remote service rejected or failed the call
        """
        start_time = time.perf_counter()
        query_hash = ""
        record: Dict[str, Any] = {"dbId": database_id}

        try:
            if not sql or not sql.strip():
                raise InvalidRequest("Query is required")

            client = self._client()

            query_hash = fingerprint(sql)
            record["queryHash"] = query_hash
            cached = self.cache.get(query_hash, database_id)
            if cached is not None:
                record.update(duration=f"{_elapsed_ms(start_time)}ms", rowCount=cached.row_count, cached=True)
                log_outcome("QUERY", record)
                return ExecutionOutcome(
                    rows=cached.rows,
                    row_count=cached.row_count,
                    elapsed_ms=cached.elapsed_ms,
                    from_cache=True,
                )

            try:
                result = await client.execute(database_id, sql)
            except RemoteFailure as e:
                raise self.classifier.classify(e) from e
        except GatewayError as e:
            record["duration"] = f"{_elapsed_ms(start_time)}ms"
            log_outcome("QUERY", record, e)
            raise

        elapsed_ms = _elapsed_ms(start_time)
        row_count = len(result.rows)
        self.cache.put(query_hash, database_id, result.rows, row_count, elapsed_ms)

        record.update(duration=f"{elapsed_ms}ms", rowCount=row_count, cached=False)
        if result.total_count is not None:
            record["totalCount"] = result.total_count
        log_outcome("QUERY", record)

        return ExecutionOutcome(
            rows=result.rows,
            row_count=row_count,
            changed_row_count=result.changed_row_count,
            elapsed_ms=elapsed_ms,
            from_cache=False,
        )

    async def browse_table(self, database_id: str, table_name: str, limit: int = 50, offset: int = 0) -> TablePage:
        """Fetch one page of a table. Results are never cached."""
        start_time = time.perf_counter()
        record: Dict[str, Any] = {"dbId": database_id, "tableName": table_name}

        try:
            self.planner.validate_page(limit, offset)
            request = TableBrowseRequest(database_id=database_id, table_name=table_name, limit=limit, offset=offset)
            page = await self.planner.plan_and_execute(self._client(), request)
        except GatewayError as e:
            record["duration"] = f"{_elapsed_ms(start_time)}ms"
            log_outcome("TABLE_ROWS", record, e)
            raise

        record.update(
            duration=f"{_elapsed_ms(start_time)}ms",
            rowCount=page.row_count,
            pageSize=page.page_size,
            offset=offset,
        )
        log_outcome("TABLE_ROWS", record)
        return page

    async def list_databases(self) -> List[DatabaseInfo]:
        """List remote databases and mirror them into the registry."""
        databases = await self._call(lambda client: client.list_databases())
        self.registry.mirror(databases)
        return databases

    async def describe_schema(self, database_id: str) -> List[SchemaObject]:
        return await self._call(lambda client: client.describe_schema(database_id))

    async def describe_table(self, database_id: str, table_name: str) -> List[Row]:
        schema = await self.describe_schema(database_id)
        if not any(item.name == table_name for item in schema):
            raise TableNotFound(table_name)
        return await self._call(lambda client: client.describe_table(database_id, table_name))

    async def activate_credential(self, credential: CredentialSet) -> None:
        """Verify a credential by listing its databases, then make it the active one."""
        client = self.client_factory(credential)
        try:
            databases = await client.list_databases()
        except RemoteFailure as e:
            raise InvalidRequest(f"Credential verification failed: {e.message}") from e
        self.credentials.set_active(credential)
        self.registry.mirror(databases)
        logger.info(f"Activated credential '{credential.name}' for account {credential.account_id}")

    async def _call(self, operation):
        client = self._client()
        try:
            return await operation(client)
        except RemoteFailure as e:
            classified = self.classifier.classify(e)
            log_outcome("REMOTE", {}, classified)
            raise classified from e
