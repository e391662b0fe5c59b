"""
Security helpers for stored credentials and public codes
"""

from passlib.context import CryptContext
import secrets
import string

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_CODE_ALPHABET = string.ascii_uppercase + string.digits


class SecurityUtils:
    """Security utility functions"""

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash password using bcrypt"""
        return pwd_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify password against hash"""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def generate_referral_code(length: int = 8) -> str:
        """Random upper-case referral code; uniqueness is enforced by the database"""
        return ''.join(secrets.choice(_CODE_ALPHABET) for _ in range(length))

    @staticmethod
    def generate_access_code(prefix: str = "CERT", length: int = 12) -> str:
        """Certificate access code such as CERT-8F3K2M9QX1AB"""
        return f"{prefix}-{''.join(secrets.choice(_CODE_ALPHABET) for _ in range(length))}"
