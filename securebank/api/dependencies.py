"""
Authentication and authorization dependencies
"""

from datetime import timedelta
from decimal import Decimal
from typing import Optional

from fastapi import Depends, Request, Response

from ..accounts import AccountManager
from ..auth import AuthService
from ..config import BankConfig, get_config
from ..encryption import SSNCipher
from ..errors import UnauthorizedError
from ..sessions import RequestContext, SessionCookie, SessionManager, TokenSigner
from ..storage import InMemoryStorage, SQLiteStorage, StorageInterface
from ..transactions import TransactionQuery, TransactionStore
from ..users import PasswordHasher, User, UserStore


class BankingSystem:
    """Banking system with all components initialized"""

    def __init__(
        self,
        config: Optional[BankConfig] = None,
        storage: Optional[StorageInterface] = None,
        password_hasher: Optional[PasswordHasher] = None
    ):
        self.config = config or get_config()
        resolved = self.config.resolve_secrets()

        # Initialize storage
        if storage is None:
            db_path = self.config.sqlite_path()
            storage = SQLiteStorage(db_path) if db_path else InMemoryStorage()
        self.storage = storage

        ttl = timedelta(days=self.config.session_ttl_days)

        self.user_store = UserStore(self.storage)
        self.session_manager = SessionManager(
            self.storage,
            self.user_store,
            TokenSigner(resolved.jwt_secret, self.config.jwt_algorithm, ttl),
            ttl=ttl,
            expiry_margin=timedelta(seconds=self.config.session_expiry_margin_seconds),
            cookie=SessionCookie(self.config.session_cookie_name, self.config.session_ttl_seconds)
        )
        self.auth_service = AuthService(
            self.user_store,
            self.session_manager,
            SSNCipher.from_key(resolved.encryption_key),
            password_hasher
        )
        self.transaction_store = TransactionStore(self.storage)
        self.account_manager = AccountManager(
            self.storage,
            self.transaction_store,
            min_funding_amount=Decimal(self.config.min_funding_amount),
            max_funding_amount=Decimal(self.config.max_funding_amount)
        )
        self.transaction_query = TransactionQuery(self.account_manager, self.transaction_store)

    def close(self) -> None:
        self.storage.close()


# Dependency to get banking system
def get_banking_system(request: Request) -> BankingSystem:
    return request.app.state.banking_system


def get_request_context(
    request: Request,
    response: Response,
    system: BankingSystem = Depends(get_banking_system)
) -> RequestContext:
    """Resolve the caller's identity from the session cookie; never fails"""
    return system.session_manager.resolve_context(request.cookies, response)


def require_user(ctx: RequestContext = Depends(get_request_context)) -> User:
    """Gate for authenticated routes"""
    if ctx.user is None:
        raise UnauthorizedError()
    return ctx.user
