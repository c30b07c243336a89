"""
SecureBank

A demonstration online banking backend: sign-up with KYC fields, cookie-based
sessions, checking/savings accounts funded from cards or bank accounts, and
transaction history. All monetary values use Decimal.
"""

__version__ = "1.0.0"
