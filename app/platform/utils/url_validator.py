from urllib.parse import urlparse
from typing import List, Tuple


def normalize_url(url: str) -> str:
    url = url.strip()

    if not urlparse(url).scheme:
        return f"https://{url}"

    return url


def validate_url(url: str) -> Tuple[bool, str, str]:
    """Returns (is_valid, normalized_url, error_message)."""
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    normalized_url = normalize_url(url)

    try:
        parsed = urlparse(normalized_url)
    except ValueError as e:
        return False, normalized_url, f"URL parsing error: {str(e)}"

    if parsed.scheme not in ['http', 'https']:
        return False, normalized_url, f"Invalid URL scheme: {parsed.scheme} (must be http or https)"

    if not parsed.netloc:
        return False, normalized_url, "Invalid URL format: missing domain"

    return True, normalized_url, ""


def validate_urls(urls: List[str]) -> Tuple[List[str], List[Tuple[str, str]]]:
    """
    Validate every URL of a batch.

    Returns the normalized valid URLs (input order kept) and a list of
    (url, error) pairs for the invalid ones.
    """
    valid: List[str] = []
    invalid: List[Tuple[str, str]] = []
    for url in urls:
        is_valid, normalized, error = validate_url(url)
        if is_valid:
            valid.append(normalized)
        else:
            invalid.append((url, error))
    return valid, invalid
