import json
import hashlib
from typing import Optional, Tuple
from fastapi import Request
from app.platform.logger import get_logger

logger = get_logger(__name__)


def parse_device_header(request: Request) -> Tuple[Optional[str], Optional[str]]:

    x_device_header = request.headers.get("x-device")

    if not x_device_header:
        logger.debug("X-Device header not present")
        return None, None

    try:
        device_data = json.loads(x_device_header)
        device_id = device_data.get("deviceId")
        platform = device_data.get("device", "unknown")

        if not device_id:
            logger.warning("X-Device header present but deviceId field is empty")
            return None, None

        return device_id, platform

    except (json.JSONDecodeError, TypeError, AttributeError) as e:
        logger.warning(f"Failed to parse X-Device header '{x_device_header}': {e}")
        return None, None


def generate_ip_fingerprint(request: Request) -> str:
    # Used when neither a session header nor a device id is available
    client_ip = request.client.host if request.client else "unknown"

    ip_hash = hashlib.sha256(f"{client_ip}:adashield-salt".encode()).hexdigest()[:16]

    logger.warning(f"Using IP-based fallback identifier: ip-{ip_hash}")

    return f"ip-{ip_hash}"


def resolve_session_id(request: Request) -> str:
    """
    Identify the guest session a request belongs to.

    Order: X-Session-Id header, X-Device deviceId, IP fingerprint.
    """
    session_id = request.headers.get("x-session-id")
    if session_id and session_id.strip():
        return session_id.strip()

    device_id, _ = parse_device_header(request)
    if device_id:
        return f"device-{hash_device_id(device_id)[:32]}"

    return generate_ip_fingerprint(request)


def hash_device_id(device_id: str) -> str:
    return hashlib.sha256(device_id.encode()).hexdigest()
