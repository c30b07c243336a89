"""
Transaction Module

Immutable transaction records appended by funding operations, and the
transaction history query for an account.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from .storage import StorageInterface, StorageRecord, isoformat

if TYPE_CHECKING:
    from .accounts import AccountManager
    from .users import User


class TransactionType(Enum):
    """Types of banking transactions"""
    DEPOSIT = "deposit"


class TransactionStatus(Enum):
    """States of a transaction"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Transaction(StorageRecord):
    """Ledger entry against a single account"""
    account_id: int
    type: TransactionType
    amount: Decimal
    description: Optional[str]
    status: TransactionStatus
    processed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['type'] = self.type.value
        result['status'] = self.status.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            account_id=data['account_id'],
            type=TransactionType(data['type']),
            amount=Decimal(data['amount']),
            description=data.get('description'),
            status=TransactionStatus(data['status']),
            processed_at=datetime.fromisoformat(data['processed_at']) if data.get('processed_at') else None,
        )


class TransactionStore:
    """Append-only persistence for transactions"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transactions"

    def record(
        self,
        account_id: int,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        status: TransactionStatus = TransactionStatus.COMPLETED
    ) -> int:
        """Insert one transaction row and return its id"""
        now = datetime.now(timezone.utc)
        data = {
            "account_id": account_id,
            "type": transaction_type.value,
            "amount": str(amount),
            "description": description,
            "status": status.value,
            "created_at": isoformat(now),
            "processed_at": isoformat(now) if status == TransactionStatus.COMPLETED else None,
        }
        return self.storage.insert(self.table_name, data)

    def get_latest(self, account_id: int) -> Optional[Transaction]:
        """Most recently inserted transaction of an account (highest id)"""
        data = self.storage.find_one(self.table_name, {"account_id": account_id}, order_by=["-id"])
        if data:
            return Transaction.from_dict(data)
        return None

    def list_for_account(self, account_id: int) -> List[Transaction]:
        """Transactions of an account, newest first"""
        rows = self.storage.find(
            self.table_name, {"account_id": account_id},
            order_by=["-created_at", "-id"]
        )
        return [Transaction.from_dict(data) for data in rows]


class TransactionQuery:
    """Read side: ownership-checked transaction history"""

    def __init__(self, accounts: 'AccountManager', store: TransactionStore):
        self.accounts = accounts
        self.store = store

    def get_transactions(self, user: 'User', account_id: int) -> List[Dict[str, Any]]:
        """
        Transaction history of one of the caller's accounts.

        Each entry carries the account type taken from the already-loaded
        account row.
        """
        account = self.accounts.get_owned_account(user, account_id)

        enriched = []
        for txn in self.store.list_for_account(account.id):
            data = txn.to_dict()
            data['account_type'] = account.account_type.value
            enriched.append(data)
        return enriched
