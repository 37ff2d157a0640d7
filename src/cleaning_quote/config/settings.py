"""
Centralized settings for the quote service.

Values are read from the environment (optionally from a .env file).
Every collaborator credential is optional here; a missing credential only
becomes an error at the boundary that needs it.
"""
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


def get_package_root() -> Path:
    """Get the cleaning_quote package directory."""
    return Path(__file__).resolve().parent.parent


def default_price_rules_path() -> Path:
    """Packaged price rule table."""
    return get_package_root() / 'rules' / 'price_rules.csv'


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env(name) or default)
    except ValueError:
        return default


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Object store (Cloudinary)
    storage_backend: str = "cloudinary"  # "cloudinary" or "memory"
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    storage_folder: str = "quotes"

    # Share links
    site_base_url: str = ""

    # Issue tracker (GitHub)
    github_token: str = ""
    github_repo: str = ""  # "owner/name"

    # Email (Resend first, Brevo second)
    resend_api_key: str = ""
    brevo_api_key: str = ""
    from_email: str = ""
    to_email: str = ""

    # Admin cancel guard; empty means the URL flag alone selects admin mode
    admin_token: str = ""

    notify_max_attempts: int = 2
    notify_retry_wait: float = 1.0
    http_timeout: float = 15.0
    log_level: str = "INFO"

    price_rules: Path = field(default_factory=default_price_rules_path)

    @property
    def cloudinary_configured(self) -> bool:
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret)

    @property
    def github_configured(self) -> bool:
        return bool(self.github_token and self.github_repo and "/" in self.github_repo)

    @property
    def email_configured(self) -> bool:
        return bool(self.from_email and self.to_email and (self.resend_api_key or self.brevo_api_key))

    @classmethod
    def load(cls, env_file: Optional[Path] = None) -> 'Settings':
        """Load settings from environment variables (and .env if present)."""
        load_dotenv(env_file)

        folder = _env('CLOUDINARY_FOLDER') or _env('CLOUDINARY_UPLOAD_FOLDER') or "quotes"
        rules_override = _env('PRICE_RULES_PATH')

        try:
            timeout = float(_env('HTTP_TIMEOUT') or 15.0)
        except ValueError:
            timeout = 15.0

        try:
            retry_wait = float(_env('NOTIFY_RETRY_WAIT') or 1.0)
        except ValueError:
            retry_wait = 1.0

        return cls(
            storage_backend=_env('STORAGE_BACKEND', 'cloudinary').lower(),
            cloudinary_cloud_name=_env('CLOUDINARY_CLOUD_NAME'),
            cloudinary_api_key=_env('CLOUDINARY_API_KEY'),
            cloudinary_api_secret=_env('CLOUDINARY_API_SECRET'),
            storage_folder=folder.strip('/'),
            site_base_url=_env('SITE_BASE_URL'),
            github_token=_env('GITHUB_TOKEN'),
            github_repo=_env('GITHUB_REPO'),
            resend_api_key=_env('RESEND_API_KEY'),
            brevo_api_key=_env('BREVO_API_KEY'),
            from_email=_env('FROM_EMAIL'),
            to_email=_env('TO_EMAIL'),
            admin_token=_env('QUOTE_ADMIN_TOKEN'),
            notify_max_attempts=max(1, _env_int('NOTIFY_MAX_ATTEMPTS', 2)),
            notify_retry_wait=max(0.0, retry_wait),
            http_timeout=timeout,
            log_level=_env('LOG_LEVEL', 'INFO').upper(),
            price_rules=Path(rules_override) if rules_override else default_price_rules_path(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
