"""Database manager for SQLite connections and schema migrations."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import List
from config import Config, get_migrations_dir
from logger import get_logger

logger = get_logger()


class DatabaseManager:
    """Manages database connections, paths and migrations.

    Args:
        config: Application configuration object.
    """

    def __init__(self, config: Config):
        self.config = config

    @contextmanager
    def connect(self):
        """Get a database connection with automatic cleanup.

        Yields:
            sqlite3.Connection: Database connection.
        """
        db_path = self.config.db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(db_path)
        try:
            yield conn
        finally:
            conn.close()

    def get_db_path(self) -> Path:
        return self.config.db_path

    def get_migrations_dir(self) -> Path:
        return get_migrations_dir()

    def available_migrations(self) -> List[str]:
        """List migration file names in apply order."""
        migrations_dir = self.get_migrations_dir()
        if not migrations_dir.exists():
            return []
        return sorted(path.name for path in migrations_dir.glob("*.sql"))

    def applied_migrations(self, conn: sqlite3.Connection) -> set:
        """Return the set of migration files recorded as applied."""
        _init_schema_migrations_table(conn)
        cursor = conn.execute("SELECT migration_file FROM schema_migrations")
        return {row[0] for row in cursor.fetchall()}

    def apply_pending(self) -> List[str]:
        """Apply every migration that has not been applied yet.

        Returns:
            Names of the migrations applied by this call.

        Raises:
            sqlite3.Error: If a migration fails. That migration is rolled back.
        """
        with self.connect() as conn:
            applied = self.applied_migrations(conn)
            pending = [m for m in self.available_migrations() if m not in applied]

            for migration in pending:
                sql = (self.get_migrations_dir() / migration).read_text()
                try:
                    conn.executescript(sql)
                    conn.execute(
                        "INSERT INTO schema_migrations (migration_file) VALUES (?)",
                        (migration,),
                    )
                    conn.commit()
                    logger.info(f"Applied migration: {migration}")
                except sqlite3.Error as e:
                    conn.rollback()
                    logger.error(f"Error applying migration {migration}: {e}")
                    raise

            return pending


def _init_schema_migrations_table(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            migration_file TEXT PRIMARY KEY,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    conn.commit()
