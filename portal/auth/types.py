"""
Auth domain types - no dependencies on other auth modules.

NOTE: Keep this minimal. Only add types here if they are:
1. Used by 3+ auth submodules, AND
2. Would otherwise cause circular imports
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


class TokenKind(str, Enum):
    """Token kind claim. Part of the verified contract, not advisory."""
    ACCESS = "access"
    REFRESH = "refresh"


class LoginOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass(frozen=True)
class User:
    """User record from the credential store (immutable snapshot)."""
    id: int
    username: str
    password_hash: str
    role: str
    enabled: bool = True
    account_locked: bool = False
    failed_login_count: int = 0
    expiration_date: Optional[date] = None  # None = never expires
    force_password_change: bool = False
    last_password_change_at: Optional[datetime] = None
    email: Optional[str] = None
    firstname: Optional[str] = None
    lastname: Optional[str] = None

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.firstname, self.lastname) if part)
        return name or self.username


@dataclass(frozen=True)
class TokenClaims:
    """Verified token claims."""
    sub: str  # username
    kind: TokenKind
    jti: str  # revocation key
    iat: datetime
    exp: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_in_ms: int
    token_type: str = "Bearer"


@dataclass(frozen=True)
class LoginResult:
    username: str
    role: str
    tokens: TokenPair
    password_change_required: bool = False

    def to_dict(self) -> dict:
        return {
            "access_token": self.tokens.access_token,
            "refresh_token": self.tokens.refresh_token,
            "token_type": self.tokens.token_type,
            "access_expires_in_ms": self.tokens.access_expires_in_ms,
            "username": self.username,
            "role": self.role,
            "password_change_required": self.password_change_required,
        }


@dataclass(frozen=True)
class Authorized:
    """Positive authorization decision."""
    username: str
    role: str
    resource: str
    action: str


@dataclass(frozen=True)
class LoginAuditEntry:
    id: int
    username: str
    timestamp: datetime
    outcome: LoginOutcome
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "timestamp": self.timestamp.isoformat(),
            "outcome": self.outcome.value,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class AuditPage:
    entries: tuple[LoginAuditEntry, ...]
    page: int
    page_size: int
    total: int

    def to_dict(self) -> dict:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "page": self.page,
            "page_size": self.page_size,
            "total": self.total,
        }


@dataclass
class ScanSummary:
    """Counts from one password lifecycle scan. No per-user detail."""
    checked: int = 0
    warnings_sent: int = 0
    expired_notices_sent: int = 0
    skipped: int = 0
    failed: int = 0
    failures: list[str] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "warnings_sent": self.warnings_sent,
            "expired_notices_sent": self.expired_notices_sent,
            "skipped": self.skipped,
            "failed": self.failed,
        }
