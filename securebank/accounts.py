"""
Account Management Module

Checking and savings accounts: creation with unique random account numbers
(one account per type per user), ownership-checked lookups, and funding from
card or bank sources. The balance is a cached running total of the
append-only transaction ledger.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import BadRequestError, ConflictError, InternalError, NotFoundError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord, isoformat
from .transactions import Transaction, TransactionStore, TransactionType
from .users import User
from .validation import (
    MAX_FUNDING_AMOUNT, MIN_FUNDING_AMOUNT, round_money,
    validate_funding_amount, validate_funding_source,
)


logger = get_logger("securebank.accounts")

ACCOUNT_NUMBER_DIGITS = 10


class AccountType(Enum):
    """Banking product types"""
    CHECKING = "checking"
    SAVINGS = "savings"


class AccountStatus(Enum):
    """Account lifecycle states"""
    ACTIVE = "active"
    PENDING = "pending"
    FROZEN = "frozen"
    CLOSED = "closed"


@dataclass
class Account(StorageRecord):
    """Deposit account owned by a single user"""
    user_id: int
    account_number: str
    account_type: AccountType
    balance: Decimal
    status: AccountStatus = AccountStatus.ACTIVE

    def can_transact(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['account_type'] = self.account_type.value
        result['status'] = self.status.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            user_id=data['user_id'],
            account_number=data['account_number'],
            account_type=AccountType(data['account_type']),
            balance=Decimal(data['balance']),
            status=AccountStatus(data['status']),
        )


@dataclass
class FundingSource:
    """Where deposited money comes from"""
    type: str  # "card" or "bank"
    account_number: str
    routing_number: Optional[str] = None


@dataclass
class FundingResult:
    transaction: Transaction
    new_balance: Decimal


def generate_account_number() -> str:
    """Random zero-padded 10-digit account number from a CSPRNG"""
    return str(secrets.randbelow(10 ** ACCOUNT_NUMBER_DIGITS)).zfill(ACCOUNT_NUMBER_DIGITS)


class AccountManager:
    """
    Manages account lifecycle and funding.

    The balance update in fund_account is a read-modify-write without row
    locking; concurrent fundings of the same account can lose an update.
    """

    def __init__(
        self,
        storage: StorageInterface,
        transactions: TransactionStore,
        min_funding_amount: Decimal = MIN_FUNDING_AMOUNT,
        max_funding_amount: Decimal = MAX_FUNDING_AMOUNT,
        number_generator=generate_account_number
    ):
        self.storage = storage
        self.transactions = transactions
        self.min_funding_amount = min_funding_amount
        self.max_funding_amount = max_funding_amount
        self.number_generator = number_generator
        self.table_name = "accounts"

    def create_account(self, user: User, account_type: AccountType) -> Account:
        """
        Open a new account of the given type for the user.

        Raises:
            ConflictError: the user already holds an account of this type
            InternalError: the inserted row could not be read back
        """
        existing = self.storage.find_one(
            self.table_name, {"user_id": user.id, "account_type": account_type.value}
        )
        if existing:
            raise ConflictError(f"You already have a {account_type.value} account")

        account_number = self._unique_account_number()

        self.storage.insert(self.table_name, {
            "user_id": user.id,
            "account_number": account_number,
            "account_type": account_type.value,
            "balance": "0.00",
            "status": AccountStatus.ACTIVE.value,
            "created_at": isoformat(datetime.now(timezone.utc)),
        })

        data = self.storage.find_one(self.table_name, {"account_number": account_number})
        if not data:
            raise InternalError("Failed to create account. Please try again.")

        account = Account.from_dict(data)
        log_action(logger, "info", "Account created", user_id=user.id,
                   action="create_account", resource="accounts",
                   extra={"account_id": account.id, "account_type": account_type.value})
        return account

    def _unique_account_number(self) -> str:
        while True:
            candidate = self.number_generator()
            if not self.storage.find_one(self.table_name, {"account_number": candidate}):
                return candidate

    def get_accounts(self, user: User) -> List[Account]:
        """All accounts owned by the user, in storage order"""
        return [Account.from_dict(data) for data in self.storage.find(self.table_name, {"user_id": user.id})]

    def get_owned_account(self, user: User, account_id: int) -> Account:
        """
        Look up an account by id and owner in one predicate.

        An account owned by someone else is reported exactly like a missing one.
        """
        data = self.storage.find_one(self.table_name, {"id": account_id, "user_id": user.id})
        if not data:
            raise NotFoundError("Account not found")
        return Account.from_dict(data)

    def fund_account(self, user: User, account_id: int, amount, funding_source: FundingSource) -> FundingResult:
        """
        Deposit money into one of the user's accounts.

        The amount range is checked first, then the funding source, both
        before storage is touched. One completed deposit transaction is
        appended and the cached balance is recomputed in cents.
        """
        amount = validate_funding_amount(amount, self.min_funding_amount, self.max_funding_amount)
        validate_funding_source(funding_source.type, funding_source.account_number,
                                funding_source.routing_number)

        account = self.get_owned_account(user, account_id)
        if not account.can_transact():
            raise BadRequestError("Account is not active")

        with self.storage.atomic():
            self.transactions.record(
                account_id=account.id,
                transaction_type=TransactionType.DEPOSIT,
                amount=amount,
                description=f"Funding from {funding_source.type}",
            )
            transaction = self.transactions.get_latest(account.id)
            if transaction is None:
                raise InternalError("Failed to record transaction")

            new_balance = round_money(account.balance + amount)
            self.storage.update(self.table_name, account.id, {"balance": str(new_balance)})

        log_action(logger, "info", "Account funded", user_id=user.id,
                   action="fund_account", resource="accounts",
                   extra={"account_id": account.id, "transaction_id": transaction.id,
                          "amount": str(amount), "source": funding_source.type})

        return FundingResult(transaction=transaction, new_balance=new_balance)
