"""Application configuration loaded from environment variables.

Settings for database, API, authentication, the identity platform's link
flows, and verification codes. Uses pydantic-settings for validation and
.env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "portal_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "portal_auth"
    database_user: str = "portal_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    # Full URL override (tests use sqlite+aiosqlite)
    database_url_override: str = ""

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:5173"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Authentication
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "portal-auth"
    auth_audience: str = "portal-auth"
    auth_cookie_name: str = "portal.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""

    # Identity platform link flows
    # implicit: tokens in the redirect fragment; pkce: one-time ?code= exchange
    auth_flow_type: Literal["implicit", "pkce"] = "implicit"
    access_token_ttl_minutes: int = 60
    refresh_token_ttl_days: int = 7
    link_token_ttl_minutes: int = 60
    invite_token_ttl_hours: int = 24
    authorization_code_ttl_minutes: int = 5

    # One-time verification codes
    verification_code_ttl_minutes: int = 5

    # Email (Resend)
    email_from: str = "Portal <noreply@example.com>"
    resend_api_key: SecretStr = SecretStr("")

    # Frontend URL (redirect targets for issued links)
    frontend_url: str = "http://localhost:5173"
    # Landing page of the client portal, relative to frontend_url
    portal_path: str = "/client-portal"

    # Backend URL (action links must hit the API directly)
    backend_url: str = "http://localhost:8000"

    # Rate Limiting (Security)
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def portal_url(self) -> str:
        """Default redirect target for issued links."""
        return f"{self.frontend_url.rstrip('/')}{self.portal_path}"

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate production security requirements.

        Security: Prevents deployment with known insecure defaults.
        Checks:
        - Verification code TTL and resend cooldown must be positive
        - SameSite=None requires Secure flag (browser requirement)
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if self.verification_code_ttl_minutes <= 0:
            msg = (
                "VERIFICATION_CODE_TTL_MINUTES must be positive. "
                f"Got: {self.verification_code_ttl_minutes}"
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if (
                not self.database_url_override
                and self.database_password == _INSECURE_DEFAULT_PASSWORD
            ):
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
