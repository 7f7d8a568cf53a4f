"""Environment configuration management for the ClaimGuard firewall."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


ALL_SOURCES = [
    "truthpack",
    "package_manifest",
    "filesystem",
    "pattern_match",
    "version_control",
    "type_checker",
    "runtime",
]


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Project layout
    PROJECT_ROOT: str = "."
    TRUTHPACK_PATH: str = ".claimguard/truthpack"

    # Firewall
    FIREWALL_MODE: str = "enforce"
    STRICT_MODE: bool = True
    MAX_CLAIMS_PER_REQUEST: int = 50
    EVIDENCE_TIMEOUT_MS: int = 5000

    # Verification
    SOURCE_TIMEOUT_MS: int = 5000
    PARALLEL_LIMIT: int = 10
    ENABLED_SOURCES: list[str] = list(ALL_SOURCES)

    # Caches (seconds)
    ENABLE_CACHING: bool = True
    TRUTHPACK_CACHE_TTL: float = 5 * 60
    MANIFEST_CACHE_TTL: float = 60
    QUICK_CHECK_CACHE_TTL: float = 60

    # Calibration
    CALIBRATION_PATH: str = ".claimguard/calibration.json"
    CALIBRATION_MIN_SAMPLES_PER_BUCKET: int = 10
    CALIBRATION_RECALIBRATE_EVERY: int = 50

    # Audit log
    ENABLE_AUDIT_LOG: bool = True
    AUDIT_LOG_PATH: str = ".claimguard/audit/firewall.log"
    AUDIT_FLUSH_INTERVAL_SECONDS: float = 5
    AUDIT_BUFFER_SIZE: int = 100

    # Policy overrides (YAML)
    POLICY_FILE: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_prefix = "CLAIMGUARD_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Allow extra env vars without error


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


def resolve_path(settings: Settings, relative: str) -> Path:
    """Resolve a configured path against the project root unless already absolute."""
    path = Path(relative)
    if path.is_absolute():
        return path
    return Path(settings.PROJECT_ROOT).resolve() / path
