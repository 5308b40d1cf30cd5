from typing import Dict

from app.platform.config import settings


def is_ai_enabled() -> bool:
    return settings.FEATURE_AI_ENABLED


def is_batch_scans_enabled() -> bool:
    return settings.FEATURE_BATCH_SCANS_ENABLED


def enabled_features() -> Dict[str, bool]:
    """Flag snapshot exposed on the health endpoint."""
    return {
        "ai": is_ai_enabled(),
        "batch_scans": is_batch_scans_enabled(),
    }
