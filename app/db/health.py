"""Database connectivity check for health endpoints."""

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from app.domain import HealthStatus

from .interfaces import DatabaseHealthPort


class SQLAlchemyDatabaseHealthService(DatabaseHealthPort):
    """Database health service verifying that the ledger tables are reachable."""

    def __init__(self, engine: Engine):
        """Initialize database health service.

        Args:
            engine: SQLAlchemy engine used for connectivity checks.

        Raises:
            ValueError: Raised when engine is None.
        """

        if engine is None:
            raise ValueError("engine must not be None")
        self._engine = engine

    def db_connection_label(self) -> str:
        """Return the target database URL with the password masked."""

        return self._engine.url.render_as_string(hide_password=True)

    def db_check_health(self) -> HealthStatus:
        """Verify connectivity and ledger schema presence with one lightweight query.

        Returns:
            HealthStatus: Health payload with status and diagnostic detail.

        Raises:
            ConnectionError: Raised when the query fails.
        """

        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1 FROM ledger_entry LIMIT 1"))
            return HealthStatus(status="ok", detail="ledger database reachable")
        except SQLAlchemyError as error:
            raise ConnectionError("ledger database check failed") from error
