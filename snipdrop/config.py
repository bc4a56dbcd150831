"""Application configuration."""

import logging
import os
import secrets
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env so REDIS_URL, ADMIN_SECRET and friends are available
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_SECRET = "PLEASE_CHANGE_THIS"

UPLOADS_DIRNAME = "uploads"
ADMIN_UPLOADS_DIRNAME = "uploads_admin"

DEFAULT_BLOCKED_EXTENSIONS = ["exe", "sh", "msi", "bat", "dll", "com"]
DEFAULT_BLOCKED_CONTENT_TYPES = [
    "text/x-sh",
    "text/x-msdos-batch",
    "application/x-dosexec",
    "application/x-msdownload",
    "application/vnd.microsoft.portable-executable",
    "application/x-msi",
    "application/x-msdos-program",
    "application/x-sh",
]


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _env_list(key: str, default: list[str]) -> list[str]:
    value = os.getenv(key)
    if value is None:
        return list(default)
    return [item.strip().lower() for item in value.split(",") if item.strip()]


def _env_optional_int(key: str, default: int | None) -> int | None:
    """Read an integer; empty string or "none" means no value (unlimited)."""
    value = os.getenv(key)
    if value is None:
        return default
    value = value.strip()
    if not value or value.lower() == "none":
        return None
    return int(value)


def _env_optional_str(key: str) -> str | None:
    value = os.getenv(key, "").strip()
    return value or None


class StorageConfig(BaseModel):
    # Both limits are in KiB; None means unlimited.
    filesize_limit: int | None = 524288
    admin_filesize_limit: int | None = None


class BlocklistConfig(BaseModel):
    """Extensions and MIME types refused at upload time."""

    extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKED_EXTENSIONS))
    content_types: list[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKED_CONTENT_TYPES))


class RetentionConfig(BaseModel):
    enable: bool = False
    # Days
    min_age: int = Field(default=30, ge=0)
    max_age: int = Field(default=180, ge=0)


class NotifierConfig(BaseModel):
    enable: bool = False
    discord_webhook: str | None = None


class PlausibleConfig(BaseModel):
    enable: bool = False
    domain: str | None = None
    endpoint_url: str | None = None

    def is_enabled(self) -> bool:
        return self.enable and bool(self.domain)

    def event_url(self) -> str:
        base = (self.endpoint_url or "https://plausible.io").rstrip("/")
        return f"{base}/api/event"


class CDNConfig(BaseModel):
    """Runtime configuration shared by the upload, reader and purge paths."""

    hostname: str = "127.0.0.1"
    host: str = "127.0.0.1"
    port: int = 6969
    https_mode: bool = False
    upload_path: str = "./"
    admin_secret: str = DEFAULT_ADMIN_SECRET
    filename_length: int = 8
    key_prefix: str = "snipdrop:"
    redis_url: str = "redis://127.0.0.1:6379/0"
    purge_cron: str = "0 0 * * *"
    log_level: str = "INFO"
    storage: StorageConfig = Field(default_factory=StorageConfig)
    blocklist: BlocklistConfig = Field(default_factory=BlocklistConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    notifier: NotifierConfig = Field(default_factory=NotifierConfig)
    plausible: PlausibleConfig = Field(default_factory=PlausibleConfig)

    @property
    def upload_root(self) -> Path:
        return Path(self.upload_path).expanduser().resolve()

    def get_path(self, is_admin: bool) -> Path:
        return self.upload_root / (ADMIN_UPLOADS_DIRNAME if is_admin else UPLOADS_DIRNAME)

    def get_limit(self, is_admin: bool) -> int | None:
        """Return the upload size limit in bytes for the audience, or None."""
        limit = self.storage.admin_filesize_limit if is_admin else self.storage.filesize_limit
        if limit is None:
            return None
        return limit * 1024

    def verify_admin_secret(self, secret: str | None) -> bool:
        """
        Check the secret sent in x-admin-key.
        While the admin secret is left at its default value, admin uploads are disabled.
        """
        if self.admin_secret == DEFAULT_ADMIN_SECRET:
            if secret:
                logger.warning("Admin secret is not changed, disabling admin uploads.")
            return False
        if not secret:
            return False
        return secrets.compare_digest(secret.encode("utf-8"), self.admin_secret.encode("utf-8"))

    def is_extension_allowed(self, extension: str) -> bool:
        return extension.lower() not in {e.lower() for e in self.blocklist.extensions}

    def is_content_type_allowed(self, content_type: str | None) -> bool:
        if not content_type:
            return True
        base_type = content_type.split(";")[0].strip().lower()
        return base_type not in {c.lower() for c in self.blocklist.content_types}

    def make_url(self, name: str) -> str:
        scheme = "https" if self.https_mode else "http"
        return f"{scheme}://{self.hostname}/{name}"

    def record_key(self, identifier: str) -> str:
        return f"{self.key_prefix}{identifier}"

    def reservation_key(self, identifier: str) -> str:
        # Kept outside key_prefix so reservations never show up in the purge scan.
        return f"{self.key_prefix.rstrip(':')}-reserved:{identifier}"

    def verify(self) -> list[str]:
        """Return configuration problems; creates the upload subdirectories when possible."""
        problems: list[str] = []
        if not self.hostname:
            problems.append("Hostname is empty, please set PUBLIC_HOSTNAME.")
        if self.port == 0:
            problems.append("Port is not set, please set PORT.")
        if not self.admin_secret:
            problems.append("Admin secret is empty, please set ADMIN_SECRET.")
        if not self.key_prefix or any(c in self.key_prefix for c in "*?[]"):
            problems.append("Key prefix must be non-empty and contain no glob characters.")
        elif self.reservation_key("x").startswith(self.key_prefix):
            # Otherwise the purge scan over "<prefix>*" would pick up reservations.
            problems.append("Key prefix must end with ':', e.g. 'snipdrop:'.")
        if self.filename_length < 5:
            problems.append("Filename length must be longer or equal to 5.")
        if self.retention.min_age > self.retention.max_age:
            problems.append("Retention min_age must not be larger than max_age.")
        if self.plausible.enable and not self.plausible.domain:
            problems.append("Plausible Analytics is enabled but no domain is set.")
        if not self.upload_path:
            problems.append("Upload path is empty, please set UPLOAD_PATH.")
        elif not self.upload_root.is_dir():
            problems.append(f"Upload path {self.upload_root} does not exist.")
        else:
            for is_admin in (False, True):
                self.get_path(is_admin).mkdir(parents=True, exist_ok=True)
        return problems


def load_config() -> CDNConfig:
    """Build the configuration from environment variables."""
    return CDNConfig(
        hostname=os.getenv("PUBLIC_HOSTNAME", "127.0.0.1"),
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "6969")),
        https_mode=_env_bool("HTTPS_MODE", False),
        upload_path=os.getenv("UPLOAD_PATH", "./"),
        admin_secret=os.getenv("ADMIN_SECRET", DEFAULT_ADMIN_SECRET),
        filename_length=int(os.getenv("FILENAME_LENGTH", "8")),
        key_prefix=os.getenv("KEY_PREFIX", "snipdrop:"),
        redis_url=os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0"),
        purge_cron=os.getenv("PURGE_CRON", "0 0 * * *"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        storage=StorageConfig(
            filesize_limit=_env_optional_int("FILESIZE_LIMIT_KB", 524288),
            admin_filesize_limit=_env_optional_int("ADMIN_FILESIZE_LIMIT_KB", None),
        ),
        blocklist=BlocklistConfig(
            extensions=_env_list("BLOCKED_EXTENSIONS", DEFAULT_BLOCKED_EXTENSIONS),
            content_types=_env_list("BLOCKED_CONTENT_TYPES", DEFAULT_BLOCKED_CONTENT_TYPES),
        ),
        retention=RetentionConfig(
            enable=_env_bool("RETENTION_ENABLED", False),
            min_age=int(os.getenv("RETENTION_MIN_AGE_DAYS", "30")),
            max_age=int(os.getenv("RETENTION_MAX_AGE_DAYS", "180")),
        ),
        notifier=NotifierConfig(
            enable=_env_bool("NOTIFIER_ENABLED", False),
            discord_webhook=_env_optional_str("DISCORD_WEBHOOK_URL"),
        ),
        plausible=PlausibleConfig(
            enable=_env_bool("PLAUSIBLE_ENABLED", False),
            domain=_env_optional_str("PLAUSIBLE_DOMAIN"),
            endpoint_url=_env_optional_str("PLAUSIBLE_ENDPOINT_URL"),
        ),
    )


settings = load_config()


def get_config() -> CDNConfig:
    """FastAPI dependency returning the process-wide configuration."""
    return settings
