"""SQLite database operations for FinScan."""

import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from uuid import UUID

from finscan.config import settings
from finscan.models import (
    Category,
    Document,
    DocumentStatus,
    DocumentType,
    Transaction,
    TransactionType,
    User,
)

logger = logging.getLogger(__name__)

# SQL schema
SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    name TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (user_id, name)
);

CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    file_type TEXT NOT NULL,
    file_size INTEGER NOT NULL,
    document_type TEXT NOT NULL,
    status TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_documents_user ON documents(user_id);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    document_id TEXT REFERENCES documents(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    category_id TEXT NOT NULL REFERENCES categories(id),
    date TEXT NOT NULL,
    description TEXT NOT NULL,
    amount REAL NOT NULL CHECK (amount >= 0),
    type TEXT NOT NULL CHECK (type IN ('INCOME', 'EXPENSE')),
    is_placeholder INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_transactions_document ON transactions(document_id);
CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(category_id);
"""


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or settings.db_path
        if db_path is None:
            settings.ensure_directories()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    # Users

    def find_user_by_email(self, email: str) -> User | None:
        """Get a user by email."""
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT id, email, name FROM users WHERE email = ?", (email,))
            row = cursor.fetchone()
            return User(id=UUID(row["id"]), email=row["email"], name=row["name"]) if row else None

    def create_user(self, user: User) -> None:
        """Insert a user. Raises sqlite3.IntegrityError if the email exists."""
        with self._get_connection() as conn:
            conn.execute("INSERT INTO users (id, email, name) VALUES (?, ?, ?)", (str(user.id), user.email, user.name))
            conn.commit()

    def get_or_create_user(self, email: str, name: str | None = None) -> User:
        """
        Get the user with this email, creating it on first use.

        A concurrent creator winning the race is not an error: the conflict is
        resolved by reading the row it created.
        """
        user = self.find_user_by_email(email)
        if user:
            return user

        logger.info(f"User {email} not found, creating new one...")
        candidate = User(email=email, name=name)
        try:
            self.create_user(candidate)
            return candidate
        except sqlite3.IntegrityError:
            logger.info(f"User {email} already exists, fetching it...")

        user = self.find_user_by_email(email)
        if user is None:
            raise sqlite3.IntegrityError(f"Failed to get or create user {email}")
        return user

    # Categories

    def find_category(self, user_id: UUID, name: str) -> Category | None:
        """Get a user's category by name."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT id, user_id, name, type FROM categories WHERE user_id = ? AND name = ?",
                (str(user_id), name),
            )
            row = cursor.fetchone()
            return self._row_to_category(row) if row else None

    def create_category(self, category: Category) -> None:
        """Insert a category. Raises sqlite3.IntegrityError on a (user_id, name) conflict."""
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO categories (id, user_id, name, type) VALUES (?, ?, ?, ?)",
                (str(category.id), str(category.user_id), category.name, category.type.value),
            )
            conn.commit()

    def get_or_create_category(
        self, user_id: UUID, name: str, category_type: TransactionType = TransactionType.EXPENSE
    ) -> Category:
        """Get a user's category by name, creating it on first use (race-safe, see get_or_create_user)."""
        category = self.find_category(user_id, name)
        if category:
            return category

        logger.info(f"Category {name!r} not found, creating new one...")
        candidate = Category(user_id=user_id, name=name, type=category_type)
        try:
            self.create_category(candidate)
            return candidate
        except sqlite3.IntegrityError:
            logger.info(f"Category {name!r} already exists, fetching it...")

        category = self.find_category(user_id, name)
        if category is None:
            raise sqlite3.IntegrityError(f"Failed to get or create category {name!r}")
        return category

    def get_categories(self, user_id: UUID) -> list[Category]:
        """Get all categories of a user."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT id, user_id, name, type FROM categories WHERE user_id = ? ORDER BY name",
                (str(user_id),),
            )
            return [self._row_to_category(row) for row in cursor.fetchall()]

    # Documents

    def create_document(self, document: Document, transactions: list[Transaction] | None = None) -> Document:
        """
        Insert a document and its transactions as one unit.

        Either everything is written or nothing is.

        Returns:
            The stored document with its transactions attached
        """
        transactions = [t.model_copy(update={"document_id": document.id}) for t in transactions or []]

        with self._get_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO documents (id, file_name, file_type, file_size,
                    document_type, status, user_id, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(document.id),
                        document.file_name,
                        document.file_type,
                        document.file_size,
                        document.document_type.value,
                        document.status.value,
                        str(document.user_id),
                        document.created_at,
                    ),
                )
                conn.executemany(
                    """
                    INSERT INTO transactions (id, document_id, user_id, category_id,
                    date, description, amount, type, is_placeholder) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            str(txn.id),
                            str(txn.document_id),
                            str(txn.user_id),
                            str(txn.category_id),
                            txn.date.isoformat(),
                            txn.description,
                            txn.amount,
                            txn.type.value,
                            int(txn.is_placeholder),
                        )
                        for txn in transactions
                    ],
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

        return document.model_copy(update={"transactions": transactions})

    def get_document(self, document_id: UUID) -> Document | None:
        """Get a document with its transactions."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT id, file_name, file_type, file_size, document_type, status, user_id, created_at
                FROM documents WHERE id = ?
                """,
                (str(document_id),),
            )
            row = cursor.fetchone()
            if not row:
                return None

            txn_cursor = conn.execute(
                """
                SELECT id, document_id, user_id, category_id, date, description,
                       amount, type, is_placeholder
                FROM transactions WHERE document_id = ?
                ORDER BY date, rowid
                """,
                (str(document_id),),
            )
            transactions = [self._row_to_transaction(r) for r in txn_cursor.fetchall()]

        return Document(
            id=UUID(row["id"]),
            file_name=row["file_name"],
            file_type=row["file_type"],
            file_size=row["file_size"],
            document_type=DocumentType(row["document_type"]),
            status=DocumentStatus(row["status"]),
            user_id=UUID(row["user_id"]),
            created_at=row["created_at"],
            transactions=transactions,
        )

    def delete_document(self, document_id: UUID) -> bool:
        """Delete a document and, by cascade, its transactions. Returns True if it existed."""
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (str(document_id),))
            conn.commit()
            return cursor.rowcount > 0

    def get_document_count(self) -> int:
        """Get total number of documents."""
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT COUNT(*) as count FROM documents")
            return cursor.fetchone()["count"]

    def get_transaction_count(self) -> int:
        """Get total number of transactions."""
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT COUNT(*) as count FROM transactions")
            return cursor.fetchone()["count"]

    def _row_to_category(self, row: sqlite3.Row) -> Category:
        return Category(
            id=UUID(row["id"]),
            user_id=UUID(row["user_id"]),
            name=row["name"],
            type=TransactionType(row["type"]),
        )

    def _row_to_transaction(self, row: sqlite3.Row) -> Transaction:
        """Convert a database row to a Transaction model."""
        return Transaction(
            id=UUID(row["id"]),
            document_id=UUID(row["document_id"]) if row["document_id"] else None,
            user_id=UUID(row["user_id"]),
            category_id=UUID(row["category_id"]),
            date=date.fromisoformat(row["date"]),
            description=row["description"],
            amount=row["amount"],
            type=TransactionType(row["type"]),
            is_placeholder=bool(row["is_placeholder"]),
        )


# Global database instance
db = Database()
