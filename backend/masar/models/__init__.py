"""SQLAlchemy ORM models for the Masar identity layer.

All models are exported from this module for convenient imports:
    from masar.models import User, VerificationCode, VerificationToken

- user.py: User
- verification_code.py: VerificationCode (email OTP, one row per email)
- verification_token.py: VerificationToken (password reset, composite PK)
"""

from masar.models.base import Base, TimestampMixin
from masar.models.user import User
from masar.models.verification_code import VerificationCode
from masar.models.verification_token import VerificationToken

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "VerificationCode",
    "VerificationToken",
]
