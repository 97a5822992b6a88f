from typing import TYPE_CHECKING, Tuple

from sqlgateway.errors import ErrorClassifier, InvalidRequest, RemoteFailure, TableNotFound
from sqlgateway.models import TableBrowseRequest, TablePage

if TYPE_CHECKING:
    from sqlgateway.client import RemoteSQLClient


MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100


def quote_identifier(name: str) -> str:
    """Wrap an identifier in double quotes, doubling any embedded quote."""
    return '"' + name.replace('"', '""') + '"'


def build_select(table_name: str, limit: int, offset: int) -> str:
    return f"SELECT * FROM {quote_identifier(table_name)} LIMIT {limit} OFFSET {offset}"


class TableBrowsePlanner:
    """Builds and runs paginated SELECTs for tables confirmed to exist."""

    def __init__(self, classifier: ErrorClassifier):
        self.classifier = classifier

    def validate_page(self, limit: int, offset: int) -> Tuple[int, int]:
        if not MIN_PAGE_SIZE <= limit <= MAX_PAGE_SIZE:
            raise InvalidRequest(
                f"Limit must be a number between {MIN_PAGE_SIZE} and {MAX_PAGE_SIZE}"
            )
        if offset < 0:
            raise InvalidRequest("Offset must be a non-negative number")
        return limit, offset

    async def plan_and_execute(
        self,
        client: "RemoteSQLClient",
        request: TableBrowseRequest,
    ) -> TablePage:
        """
        Fetch one page of a table.

        The table name only reaches the SQL text after it has been found among
        the live schema's tables, and it is always identifier-quoted.

        Raises:
            InvalidRequest: limit/offset out of range, before any remote call
            TableNotFound: no table with that exact name in the schema
            ClassifiedError: the schema lookup or the SELECT failed remotely
        """
        limit, offset = self.validate_page(request.limit, request.offset)
        database_id, table_name = request.database_id, request.table_name

        try:
            schema = await client.describe_schema(database_id)
        except RemoteFailure as e:
            raise self.classifier.classify(e) from e

        if not any(item.kind == "table" and item.name == table_name for item in schema):
            raise TableNotFound(table_name)

        try:
            result = await client.execute(database_id, build_select(table_name, limit, offset))
        except RemoteFailure as e:
            raise self.classifier.classify(e) from e

        return TablePage(rows=result.rows, row_count=len(result.rows), page_size=limit)
