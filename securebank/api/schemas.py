"""
Pydantic schemas for API requests
"""

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ..accounts import AccountType, FundingSource
from ..errors import BadRequestError
from ..validation import (
    EMAIL_PATTERN,
    validate_date_of_birth,
    validate_email,
    validate_password,
    validate_phone_number,
    validate_required,
    validate_ssn,
    validate_state_code,
    validate_zip_code,
)


# Auth schemas
class SignupRequest(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str
    phone_number: str
    date_of_birth: str = Field(..., description="ISO date (YYYY-MM-DD)")
    ssn: str = Field(..., description="9 digits, stored encrypted")
    address: str
    city: str
    state: str = Field(..., description="2-letter US state or territory code")
    zip_code: str

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return validate_email(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return validate_password(value)

    @field_validator("first_name", "last_name", "address", "city")
    @classmethod
    def check_required(cls, value: str, info) -> str:
        return validate_required(value, info.field_name.replace("_", " ").capitalize())

    @field_validator("phone_number")
    @classmethod
    def check_phone_number(cls, value: str) -> str:
        return validate_phone_number(value)

    @field_validator("date_of_birth")
    @classmethod
    def check_date_of_birth(cls, value: str) -> str:
        return validate_date_of_birth(value)

    @field_validator("ssn")
    @classmethod
    def check_ssn(cls, value: str) -> str:
        return validate_ssn(value)

    @field_validator("state")
    @classmethod
    def check_state(cls, value: str) -> str:
        return validate_state_code(value)

    @field_validator("zip_code")
    @classmethod
    def check_zip_code(cls, value: str) -> str:
        return validate_zip_code(value)


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def check_email_format(cls, value: str) -> str:
        if not EMAIL_PATTERN.fullmatch(value):
            raise BadRequestError("Invalid email address")
        return value


# Account schemas
class CreateAccountRequest(BaseModel):
    account_type: AccountType = Field(..., description="checking or savings")


class FundingSourceModel(BaseModel):
    type: Literal["card", "bank"]
    account_number: str = Field(..., min_length=1, description="Card or bank account number")
    routing_number: Optional[str] = None

    def to_funding_source(self) -> FundingSource:
        return FundingSource(
            type=self.type,
            account_number=self.account_number,
            routing_number=self.routing_number
        )


class FundAccountRequest(BaseModel):
    amount: Decimal = Field(..., description="Amount in dollars, rounded to cents")
    funding_source: FundingSourceModel
