"""
Test suite for account management

Tests account creation, ownership checks and funding.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from securebank.accounts import (
    AccountManager, AccountStatus, AccountType, FundingSource, generate_account_number,
)
from securebank.errors import BadRequestError, ConflictError, NotFoundError
from securebank.storage import InMemoryStorage
from securebank.transactions import TransactionStatus, TransactionStore, TransactionType
from securebank.users import User, UserStore


CARD = FundingSource(type="card", account_number="4111111111111111")
BANK = FundingSource(type="bank", account_number="000123456789", routing_number="021000021")


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def transaction_store(storage):
    return TransactionStore(storage)


@pytest.fixture
def manager(storage, transaction_store):
    return AccountManager(storage, transaction_store)


def create_user(storage, email) -> User:
    users = UserStore(storage)
    user_id = users.create_user(
        email=email,
        password_hash="hash",
        password_salt="salt",
        encrypted_ssn="00" * 16 + ":" + "11" * 16,
        profile={
            "first_name": "Test",
            "last_name": "User",
            "phone_number": "5555550100",
            "date_of_birth": "1990-01-01",
            "address": "1 Main St",
            "city": "Springfield",
            "state": "IL",
            "zip_code": "62701",
        }
    )
    return users.get_user(user_id)


@pytest.fixture
def user(storage):
    return create_user(storage, "owner@example.com")


@pytest.fixture
def other_user(storage):
    return create_user(storage, "other@example.com")


class TestAccountNumbers:
    """Test account number generation"""

    def test_ten_zero_padded_digits(self):
        for _ in range(50):
            number = generate_account_number()
            assert len(number) == 10
            assert number.isdigit()

    def test_small_values_are_padded(self):
        with patch("securebank.accounts.secrets.randbelow", return_value=42):
            assert generate_account_number() == "0000000042"


class TestCreateAccount:
    """Test account opening"""

    def test_new_account_defaults(self, manager, user):
        account = manager.create_account(user, AccountType.CHECKING)
        assert account.user_id == user.id
        assert account.account_type == AccountType.CHECKING
        assert account.balance == Decimal("0.00")
        assert account.status == AccountStatus.ACTIVE
        assert len(account.account_number) == 10

    def test_one_account_per_type(self, manager, user):
        manager.create_account(user, AccountType.CHECKING)
        with pytest.raises(ConflictError, match="You already have a checking account"):
            manager.create_account(user, AccountType.CHECKING)

    def test_checking_and_savings_allowed(self, manager, user):
        checking = manager.create_account(user, AccountType.CHECKING)
        savings = manager.create_account(user, AccountType.SAVINGS)
        assert checking.id != savings.id
        assert checking.account_number != savings.account_number

    def test_types_are_per_user(self, manager, user, other_user):
        manager.create_account(user, AccountType.SAVINGS)
        account = manager.create_account(other_user, AccountType.SAVINGS)
        assert account.user_id == other_user.id

    def test_retries_on_account_number_collision(self, storage, transaction_store, user, other_user):
        numbers = iter(["0000000001", "0000000001", "0000000001", "0000000002"])
        manager = AccountManager(storage, transaction_store, number_generator=lambda: next(numbers))

        first = manager.create_account(user, AccountType.CHECKING)
        second = manager.create_account(other_user, AccountType.CHECKING)

        assert first.account_number == "0000000001"
        assert second.account_number == "0000000002"

    def test_to_dict_serializes_money_as_string(self, manager, user):
        data = manager.create_account(user, AccountType.CHECKING).to_dict()
        assert data["balance"] == "0.00"
        assert data["account_type"] == "checking"
        assert data["status"] == "active"


class TestOwnership:
    """Test ownership-checked lookups"""

    def test_get_accounts_only_returns_own(self, manager, user, other_user):
        mine = manager.create_account(user, AccountType.CHECKING)
        manager.create_account(other_user, AccountType.CHECKING)
        assert [account.id for account in manager.get_accounts(user)] == [mine.id]

    def test_get_accounts_empty(self, manager, user):
        assert manager.get_accounts(user) == []

    def test_foreign_account_reported_as_missing(self, manager, user, other_user):
        theirs = manager.create_account(other_user, AccountType.CHECKING)
        with pytest.raises(NotFoundError, match="Account not found"):
            manager.get_owned_account(user, theirs.id)
        with pytest.raises(NotFoundError, match="Account not found"):
            manager.get_owned_account(user, 999)


class TestFundAccount:
    """Test deposits"""

    @pytest.fixture
    def account(self, manager, user):
        return manager.create_account(user, AccountType.CHECKING)

    def test_card_funding(self, manager, user, account):
        result = manager.fund_account(user, account.id, Decimal("25.50"), CARD)
        assert result.new_balance == Decimal("25.50")
        assert result.transaction.amount == Decimal("25.50")
        assert result.transaction.type == TransactionType.DEPOSIT
        assert result.transaction.status == TransactionStatus.COMPLETED
        assert result.transaction.description == "Funding from card"
        assert result.transaction.processed_at is not None
        assert manager.get_owned_account(user, account.id).balance == Decimal("25.50")

    def test_bank_funding(self, manager, user, account):
        result = manager.fund_account(user, account.id, "100", BANK)
        assert result.transaction.description == "Funding from bank"
        assert result.new_balance == Decimal("100.00")

    def test_amount_rounded_to_cents(self, manager, user, account):
        result = manager.fund_account(user, account.id, Decimal("10.005"), CARD)
        assert result.transaction.amount == Decimal("10.01")
        assert result.new_balance == Decimal("10.01")

    def test_repeated_small_deposits_do_not_drift(self, manager, user, account):
        for _ in range(20):
            result = manager.fund_account(user, account.id, 1.05, CARD)
        assert result.new_balance == Decimal("21.00")
        assert manager.get_owned_account(user, account.id).balance == Decimal("21.00")

    def test_second_funding_returns_its_own_transaction(self, manager, user, account):
        first = manager.fund_account(user, account.id, Decimal("5.00"), CARD)
        second = manager.fund_account(user, account.id, Decimal("7.00"), CARD)
        assert second.transaction.id != first.transaction.id
        assert second.transaction.amount == Decimal("7.00")
        assert second.new_balance == Decimal("12.00")

    def test_balance_equals_sum_of_transactions(self, manager, transaction_store, user, account):
        for amount in ("0.01", "19.99", "333.33", "1000"):
            manager.fund_account(user, account.id, amount, CARD)
        total = sum(txn.amount for txn in transaction_store.list_for_account(account.id))
        assert manager.get_owned_account(user, account.id).balance == total

    def test_foreign_account_not_found(self, storage, manager, other_user, account):
        with pytest.raises(NotFoundError, match="Account not found"):
            manager.fund_account(other_user, account.id, Decimal("5.00"), CARD)
        assert storage.count("transactions") == 0

    def test_inactive_account_rejected(self, storage, manager, user, account):
        storage.update("accounts", account.id, {"status": AccountStatus.FROZEN.value})
        with pytest.raises(BadRequestError, match="Account is not active"):
            manager.fund_account(user, account.id, Decimal("5.00"), CARD)
        assert storage.count("transactions") == 0

    @pytest.mark.parametrize("amount,message", [
        (Decimal("0"), r"at least \$0.01"),
        (Decimal("-5"), r"at least \$0.01"),
        (Decimal("10000.01"), r"cannot exceed \$10,000"),
    ])
    def test_amount_out_of_range(self, storage, manager, user, account, amount, message):
        with pytest.raises(BadRequestError, match=message):
            manager.fund_account(user, account.id, amount, CARD)
        assert storage.count("transactions") == 0

    def test_maximum_amount_accepted(self, manager, user, account):
        assert manager.fund_account(user, account.id, 10000, CARD).new_balance == Decimal("10000.00")

    def test_invalid_card_rejected_before_lookup(self, storage, manager, user):
        bad_card = FundingSource(type="card", account_number="4111111111111112")
        # Account 999 does not exist; source validation must fail first
        with pytest.raises(BadRequestError, match="Invalid card number"):
            manager.fund_account(user, 999, Decimal("5.00"), bad_card)
        assert storage.count("transactions") == 0

    def test_amount_checked_before_funding_source(self, storage, manager, user, account):
        bad_bank = FundingSource(type="bank", account_number="1")
        with pytest.raises(BadRequestError, match=r"Amount must be at least \$0.01"):
            manager.fund_account(user, account.id, "0", bad_bank)

        bad_card = FundingSource(type="card", account_number="4111111111111112")
        with pytest.raises(BadRequestError, match=r"Amount cannot exceed \$10,000"):
            manager.fund_account(user, account.id, "20000", bad_card)
        assert storage.count("transactions") == 0

    def test_bank_without_routing_number(self, manager, user, account):
        source = FundingSource(type="bank", account_number="000123456789")
        with pytest.raises(BadRequestError, match="routing number"):
            manager.fund_account(user, account.id, Decimal("5.00"), source)

    def test_failed_balance_update_rolls_back_transaction(self, storage, manager, user, account):
        with patch.object(storage, "update", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                manager.fund_account(user, account.id, Decimal("5.00"), CARD)
        assert storage.count("transactions") == 0
        assert manager.get_owned_account(user, account.id).balance == Decimal("0.00")

    def test_custom_limits(self, storage, transaction_store, user):
        manager = AccountManager(storage, transaction_store,
                                 min_funding_amount=Decimal("1"), max_funding_amount=Decimal("50"))
        account = manager.create_account(user, AccountType.SAVINGS)
        with pytest.raises(BadRequestError, match=r"at least \$1"):
            manager.fund_account(user, account.id, Decimal("0.50"), CARD)
        with pytest.raises(BadRequestError, match=r"cannot exceed \$50"):
            manager.fund_account(user, account.id, Decimal("50.01"), CARD)
