"""Stable identifiers that namespace stored credentials.

A token bucket isolates secret-store entries per combination of config
file, API base URL and app id, so switching any of them never surfaces a
token minted for a different app or tenant.
"""

import hashlib


DEFAULT_BASE_URL = "https://open.feishu.cn"
LARK_BASE_URL = "https://open.larksuite.com"

PLATFORM_BASE_URLS = {
    "feishu": DEFAULT_BASE_URL,
    "lark": LARK_BASE_URL,
}


def normalize_base_url(base_url: str) -> str:
    """Trim whitespace, trailing slashes and a trailing ``/open-apis``."""
    base_url = base_url.strip().rstrip("/")
    base_url = base_url.removesuffix("/open-apis")
    return base_url.rstrip("/")


def bucket_base_url(base_url: str) -> str:
    """Normalized, lowercased base URL used in bucket identifiers."""
    return normalize_base_url(base_url).lower()


def _sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def token_bucket_id(config_path: str, base_url: str, app_id: str) -> str:
    """Derive the secret-store bucket id for a config/base URL/app triple.

    Args:
        config_path: Absolute path of the config file in use
        base_url: API base URL (normalized before hashing)
        app_id: Application id

    Returns:
        Hex-encoded SHA-256 digest

    """
    material = "\n".join([config_path, bucket_base_url(base_url), app_id.strip()])
    return _sha256_hex(material)


def legacy_bucket_id(config_path: str) -> str:
    """Bucket id used before app id and base URL were part of the key."""
    return _sha256_hex(config_path)


def user_account_bucket_key(app_id: str, base_url: str, profile: str) -> str:
    """Key under which the login flow remembers the account for an app."""
    profile = profile.strip() or "default"
    return f"{app_id.strip()}|{bucket_base_url(base_url)}|{profile}"
