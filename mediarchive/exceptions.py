"""
Error taxonomy for the local store.

Every error raised by the store derives from :class:`StoreError`, so the HTTP
layer only needs one handler to turn them into JSON bodies.
"""


class StoreError(Exception):
    code = "STORE_ERROR"
    http_status = 500
    message = "Unexpected store error"

    def __init__(self, message=None, detail=None, code=None):
        if message:
            self.message = message
        if code:
            self.code = code

        if detail is None:
            self.detail = []
        elif isinstance(detail, str):
            self.detail = [detail]
        else:
            self.detail = list(detail)

        super().__init__(self.message)

    def to_dict(self):
        return {
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }


class SchemaNotFoundError(StoreError):
    """A table name has no entry in the schema registry."""

    code = "SCHEMA_NOT_FOUND"

    def __init__(self, table_name):
        self.table_name = table_name
        super().__init__(message=f"No schema registered for table '{table_name}'")


class MigrationColumnError(StoreError):
    """
    An ``ALTER TABLE ... ADD COLUMN`` failed.

    Never raised out of the migration routine; instances are logged and
    collected on the :class:`~mediarchive.migrations.MigrationReport`.
    """

    code = "MIGRATION_COLUMN_FAILED"

    def __init__(self, table_name, column_name, statement, reason):
        self.table_name = table_name
        self.column_name = column_name
        self.statement = statement
        super().__init__(
            message=f"Could not add column {table_name}.{column_name}",
            detail=[statement, str(reason)],
        )


class QueryError(StoreError):
    """The database engine rejected a statement issued by a data operation."""

    code = "QUERY_FAILED"
    http_status = 400


class StoreNotInitializedError(StoreError):
    code = "STORE_NOT_INITIALIZED"
    http_status = 503
    message = "HealthStore.init() must be called before any data operation"
