"""
User Management Module

User records with KYC profile fields, salted scrypt password hashing, and the
sanitized view returned to clients (no password material, no SSN).
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .storage import StorageInterface, StorageRecord, isoformat


# Fields never returned to clients
SENSITIVE_FIELDS = ("password_hash", "password_salt", "ssn")


@dataclass
class User(StorageRecord):
    """Account holder identity"""
    email: str
    password_hash: str
    password_salt: str
    first_name: str
    last_name: str
    phone_number: str
    date_of_birth: str
    ssn: str  # iv:ciphertext
    address: str
    city: str
    state: str
    zip_code: str

    def sanitized(self) -> Dict[str, Any]:
        """Client-safe representation"""
        data = self.to_dict()
        for field_name in SENSITIVE_FIELDS:
            data.pop(field_name, None)
        return data


class PasswordHasher:
    """Irreversible, salted password hashing with scrypt"""

    def __init__(self, n: int = 16384, r: int = 8, p: int = 1):
        self.n = n
        self.r = r
        self.p = p

    def generate_salt(self) -> str:
        """Generate random salt for password hashing"""
        return secrets.token_hex(16)

    def hash_password(self, password: str, salt: str) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=self.n, r=self.r, p=self.p
        ).hex()

    def verify_password(self, password: str, salt: str, expected_hash: str) -> bool:
        if not expected_hash or not salt:
            return False
        candidate = self.hash_password(password, salt)
        return secrets.compare_digest(candidate, expected_hash)


class UserStore:
    """Persistence for users"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "users"

    def create_user(self, email: str, password_hash: str, password_salt: str,
                    encrypted_ssn: str, profile: Dict[str, Any]) -> int:
        """Insert a user row and return its id"""
        data = {
            "email": email,
            "password_hash": password_hash,
            "password_salt": password_salt,
            "first_name": profile["first_name"],
            "last_name": profile["last_name"],
            "phone_number": profile["phone_number"],
            "date_of_birth": profile["date_of_birth"],
            "ssn": encrypted_ssn,
            "address": profile["address"],
            "city": profile["city"],
            "state": profile["state"],
            "zip_code": profile["zip_code"],
            "created_at": isoformat(datetime.now(timezone.utc)),
        }
        return self.storage.insert(self.table_name, data)

    def get_user(self, user_id: int) -> Optional[User]:
        data = self.storage.load(self.table_name, user_id)
        if data:
            return User.from_dict(data)
        return None

    def get_user_by_email(self, email: str) -> Optional[User]:
        data = self.storage.find_one(self.table_name, {"email": email})
        if data:
            return User.from_dict(data)
        return None
