"""HTTP client for the remote SQL execution service."""
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from sqlgateway.errors import ApplicationFailure, AuthFailure, TransportFailure
from sqlgateway.models import (
    CredentialSet,
    DatabaseInfo,
    ExecutionResult,
    RemoteEnvelope,
    RemoteQueryResult,
    Row,
    SchemaObject,
)
from sqlgateway.planner import quote_identifier

logger = logging.getLogger(__name__)

SCHEMA_QUERY = (
    "SELECT name, type, sql FROM sqlite_master "
    "WHERE type IN ('table', 'view') ORDER BY name"
)

AUTH_STATUS_CODES = (401, 403)


class RemoteSQLClient:
    """
    Issues authenticated calls to the remote SQL service.

    Every method either returns the narrowed result or raises a
    ``RemoteFailure`` subclass. Nothing is retried or cached here.
    """

    def __init__(
        self,
        credential: CredentialSet,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credential = credential
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def _account_url(self) -> str:
        return f"{self.base_url}/accounts/{self.credential.account_id}/d1/database"

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.credential.api_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, url: str, json: Optional[Dict[str, Any]] = None) -> RemoteEnvelope:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=self._headers, json=json)
        except httpx.TimeoutException as e:
            raise TransportFailure(None, f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportFailure(None, f"Connection error: {e}") from e

        if response.status_code in AUTH_STATUS_CODES:
            raise AuthFailure(response.status_code, response.reason_phrase)
        if not response.is_success:
            raise TransportFailure(response.status_code, response.reason_phrase)

        try:
            envelope = RemoteEnvelope.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TransportFailure(response.status_code, f"Malformed response envelope: {e}") from e

        if not envelope.success:
            raise ApplicationFailure([error.message for error in envelope.errors])
        return envelope

    async def execute(self, database_id: str, sql: str) -> ExecutionResult:
        """Run one SQL statement against a database."""
        logger.debug(f"Executing query on database {database_id}")
        envelope = await self._request("POST", f"{self._account_url}/{database_id}/query", json={"sql": sql})
        result = _first_result(envelope.result)

        return ExecutionResult(
            rows=result.results,
            elapsed_ms=int(result.duration) if result.duration is not None else None,
            changed_row_count=result.changes,
            total_count=result.count,
        )

    async def list_databases(self) -> List[DatabaseInfo]:
        envelope = await self._request("GET", self._account_url)
        try:
            return [DatabaseInfo.model_validate(item) for item in envelope.result or []]
        except (TypeError, ValidationError) as e:
            raise TransportFailure(200, f"Malformed database list: {e}") from e

    async def describe_schema(self, database_id: str) -> List[SchemaObject]:
        """Tables and views of a database, ordered by name."""
        result = await self.execute(database_id, SCHEMA_QUERY)
        try:
            return [SchemaObject.model_validate(row) for row in result.rows]
        except ValidationError as e:
            raise TransportFailure(200, f"Malformed schema rows: {e}") from e

    async def describe_table(self, database_id: str, table_name: str) -> List[Row]:
        result = await self.execute(database_id, f"PRAGMA table_info({quote_identifier(table_name)})")
        return result.rows


def _first_result(payload: Any) -> RemoteQueryResult:
    # The query endpoint answers with a list of statement results; older
    # deployments return a single object.
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    if isinstance(payload, dict) and isinstance(payload.get("meta"), dict):
        payload = {**payload["meta"], **payload}
    try:
        return RemoteQueryResult.model_validate(payload or {})
    except ValidationError as e:
        raise TransportFailure(200, f"Malformed query result: {e}") from e
