"""
Account Persistence

The workflows read account balances through the ``AccountRepository`` protocol.
Two adapters are provided: an in-memory repository for tests and embedding, and
a SQLite repository over a single ``accounts`` table.

An unknown user is not an error: both adapters return an empty account list and
zeroed statistics.

Usage::

    from finsight.collaborators.persistence import SQLiteAccountRepository

    repository = SQLiteAccountRepository(Path("data/finsight.db"))
    repository.initialize()
    repository.save(Account(id="chk", name="Checking", type="LIQUID_CHECKING", balance=2500, user_id="u1"))
    accounts = repository.get_accounts_by_user("u1")
"""

import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from finsight.core import get_logger
from finsight.domain.transactions import Account

logger = get_logger(__name__)

DEFAULT_DB_PATH = Path("data/finsight.db")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    account_type TEXT NOT NULL,
    balance REAL NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1
)
"""


@runtime_checkable
class AccountRepository(Protocol):
    """Read access to a user's accounts."""

    def get_accounts_by_user(self, user_id: str) -> list[Account]: ...

    def get_account_statistics(self, user_id: str) -> dict[str, Any]: ...


def account_statistics(accounts: Iterable[Account]) -> dict[str, Any]:
    """
    Per-type and overall balance statistics.

    Returns:
        ``{"by_type": [{account_type, count, total_assets, total_liabilities, avg_balance}],
        "totals": {total_accounts, total_assets, total_liabilities, net_worth}}``
    """
    by_type: dict[str, list[Account]] = {}
    for account in accounts:
        by_type.setdefault(account.type, []).append(account)

    rows = []
    for account_type, members in by_type.items():
        rows.append(
            {
                "account_type": account_type,
                "count": len(members),
                "total_assets": sum(a.balance for a in members if a.balance > 0),
                "total_liabilities": sum(abs(a.balance) for a in members if a.balance < 0),
                "avg_balance": sum(a.balance for a in members) / len(members),
            }
        )
    rows.sort(key=lambda row: row["count"], reverse=True)

    total_assets = sum(row["total_assets"] for row in rows)
    total_liabilities = sum(row["total_liabilities"] for row in rows)
    return {
        "by_type": rows,
        "totals": {
            "total_accounts": sum(row["count"] for row in rows),
            "total_assets": total_assets,
            "total_liabilities": total_liabilities,
            "net_worth": total_assets - total_liabilities,
        },
    }


class InMemoryAccountRepository:
    """Dict-backed repository."""

    def __init__(self, accounts: Iterable[Account] = ()):
        self._accounts: dict[str, Account] = {}
        for account in accounts:
            self.save(account)

    def save(self, account: Account) -> None:
        self._accounts[account.id] = account

    def get_accounts_by_user(self, user_id: str) -> list[Account]:
        return [account for account in self._accounts.values() if account.user_id == user_id]

    def get_account_statistics(self, user_id: str) -> dict[str, Any]:
        return account_statistics(self.get_accounts_by_user(user_id))


class SQLiteAccountRepository:
    """
    SQLite-backed repository. Each call opens and closes its own connection.

    Raises:
        sqlite3.Error: On database failures (callers decide whether to degrade)
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)

    def initialize(self) -> None:
        """Create the database file and the accounts table if missing."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(_SCHEMA)
            conn.commit()
        finally:
            conn.close()

    def save(self, account: Account, is_active: bool = True) -> None:
        if account.user_id is None:
            raise ValueError(f"Account {account.id} has no user_id")
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                "INSERT OR REPLACE INTO accounts (id, user_id, name, account_type, balance, is_active) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (account.id, account.user_id, account.name, account.type, account.balance, int(is_active)),
            )
            conn.commit()
        finally:
            conn.close()

    def get_accounts_by_user(self, user_id: str) -> list[Account]:
        """Active accounts of ``user_id``; empty when the database does not exist yet."""
        if not self.db_path.exists():
            return []

        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, name, account_type, balance, user_id FROM accounts "
                "WHERE user_id = ? AND is_active = 1 ORDER BY name",
                (user_id,),
            )
            rows = cursor.fetchall()
        finally:
            conn.close()

        accounts = [Account(id=row[0], name=row[1], type=row[2], balance=float(row[3]), user_id=row[4]) for row in rows]
        logger.info("Accounts loaded", extra={"user_id": user_id, "count": len(accounts)})
        return accounts

    def get_account_statistics(self, user_id: str) -> dict[str, Any]:
        return account_statistics(self.get_accounts_by_user(user_id))
