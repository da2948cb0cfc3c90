"""
Verification Service for time-boxed email verification codes
"""
import enum
import hmac
import secrets
from datetime import timedelta

from crud.account import AccountRepository
from config.settings import settings
from database_models import Account, as_utc, utcnow


class VerificationResult(str, enum.Enum):
    VERIFIED = "verified"
    ALREADY_VERIFIED = "already_verified"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INVALID = "invalid"


def generate_code() -> str:
    """Random 6-digit numeric code."""
    return str(secrets.randbelow(900000) + 100000)


class VerificationService:
    """
    Issues and checks email verification codes.
    """

    def __init__(self, account_repo: AccountRepository, valid_minutes: int = settings.verification_code_minutes):
        self.account_repo = account_repo
        self.valid_minutes = valid_minutes

    def new_code(self) -> dict:
        """Fresh code and expiry, as account fields."""
        return {
            "verification_code": generate_code(),
            "verification_code_expires_at": utcnow() + timedelta(minutes=self.valid_minutes),
        }

    async def reissue_code(self, account: Account) -> str:
        fields = self.new_code()
        await self.account_repo.update_account(account, fields)
        return fields["verification_code"]

    async def verify(self, email: str, code: str) -> VerificationResult:
        """
        Check a submitted code.

        Expiry is checked before the code itself; on success the account is
        marked verified and the code fields are cleared.
        """
        account = await self.account_repo.get_account_by_email(email)
        if account is None:
            return VerificationResult.NOT_FOUND
        if account.is_verified:
            return VerificationResult.ALREADY_VERIFIED

        expires_at = as_utc(account.verification_code_expires_at)
        if expires_at is None or expires_at < utcnow():
            return VerificationResult.EXPIRED
        if not account.verification_code or not hmac.compare_digest(
            account.verification_code.encode(), code.encode()
        ):
            return VerificationResult.INVALID

        await self.account_repo.update_account(account, {
            "is_verified": True,
            "verification_code": None,
            "verification_code_expires_at": None,
        })
        return VerificationResult.VERIFIED
