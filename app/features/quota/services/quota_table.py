"""
Quota table loading.

quotas.json is the only place quota numbers are written down. The server
loads it at startup, the API serves it verbatim (plus a checksum) and clients
verify their copy against that checksum instead of hard-coding limits.
"""
import hashlib
import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.features.quota.schemas.quota import QuotaLimits, QuotaTableFile
from app.platform.config import settings
from app.platform.exceptions import DomainError
from app.platform.logger import get_logger

logger = get_logger(__name__)

DEFAULT_QUOTA_TABLE_PATH = Path(__file__).resolve().parent.parent / "data" / "quotas.json"


class QuotaConfigError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, "QUOTA_CONFIG_INVALID")


class QuotaTable:
    """Loaded, validated quota table."""

    def __init__(self, table: QuotaTableFile):
        self._table = table
        self.checksum = compute_checksum(self.to_dict())

    @property
    def version(self) -> str:
        return self._table.version

    @property
    def tiers(self) -> Dict[str, QuotaLimits]:
        return dict(self._table.tiers)

    def limits_for(self, tier: str) -> QuotaLimits:
        try:
            return self._table.tiers[tier]
        except KeyError:
            raise QuotaConfigError(f"Unknown quota tier '{tier}'") from None

    def to_dict(self) -> Dict[str, Any]:
        return self._table.model_dump(by_alias=True)

    def to_payload(self) -> Dict[str, Any]:
        payload = self.to_dict()
        payload["checksum"] = self.checksum
        return payload


def compute_checksum(table: Dict[str, Any]) -> str:
    """sha256 of the canonical JSON form ({version, tiers}, sorted keys, no whitespace)."""
    canonical = json.dumps(
        {"version": table["version"], "tiers": table["tiers"]},
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_quota_table(raw: Dict[str, Any]) -> QuotaTable:
    try:
        table_file = QuotaTableFile.model_validate(raw)
    except ValidationError as e:
        raise QuotaConfigError(f"Invalid quota table: {e}") from e

    if not table_file.tiers:
        raise QuotaConfigError("Quota table defines no tiers")

    for name, limits in table_file.tiers.items():
        if limits.max_ai_urls_per_batch > limits.max_urls_per_batch:
            raise QuotaConfigError(
                f"Tier '{name}': maxAiUrlsPerBatch ({limits.max_ai_urls_per_batch}) "
                f"exceeds maxUrlsPerBatch ({limits.max_urls_per_batch})"
            )
        if limits.max_ai_urls_per_batch > limits.max_ai_urls_per_day:
            raise QuotaConfigError(
                f"Tier '{name}': maxAiUrlsPerBatch ({limits.max_ai_urls_per_batch}) "
                f"exceeds maxAiUrlsPerDay ({limits.max_ai_urls_per_day})"
            )

    return QuotaTable(table_file)


def load_quota_table(path: Optional[Path] = None, expected_checksum: Optional[str] = None) -> QuotaTable:
    path = Path(path) if path else DEFAULT_QUOTA_TABLE_PATH
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise QuotaConfigError(f"Cannot read quota table {path}: {e}") from e

    table = parse_quota_table(raw)

    if expected_checksum and expected_checksum != table.checksum:
        raise QuotaConfigError(
            f"Quota table checksum mismatch: expected {expected_checksum}, got {table.checksum}"
        )

    logger.info(f"Loaded quota table version={table.version} checksum={table.checksum[:12]}")
    return table


@lru_cache
def get_quota_table() -> QuotaTable:
    return load_quota_table(settings.QUOTA_TABLE_PATH, settings.QUOTA_TABLE_CHECKSUM)


def get_active_limits() -> QuotaLimits:
    return get_quota_table().limits_for(settings.QUOTA_TIER)


def verify_startup_quotas() -> QuotaTable:
    """Fail fast at startup if the table is missing, invalid or drifted."""
    table = get_quota_table()
    table.limits_for(settings.QUOTA_TIER)
    return table
