"""Referral code, UTM and visitor helpers used by link creation and click tracking"""
import hashlib
import secrets
import string
from typing import Dict, Mapping
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

CODE_ALPHABET = string.ascii_uppercase + string.digits
UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")

# Header values stored on events are capped
MAX_HEADER_LENGTH = 500


def generate_short_code(length: int = 6) -> str:
    """Generate a random uppercase alphanumeric referral code"""
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def extract_utm(params: Mapping[str, str]) -> Dict[str, str]:
    """Keep only non-empty utm_* keys from a mapping of query parameters"""
    return {key: params[key] for key in UTM_KEYS if params.get(key)}


def append_utm(url: str, utm: Mapping[str, str]) -> str:
    """Add UTM parameters to a landing URL, keeping its existing query"""
    if not utm:
        return url

    parsed = urlparse(url)
    params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    params.update(extract_utm(utm))

    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        parsed.path,
        parsed.params,
        urlencode(params),
        parsed.fragment
    ))


def hash_ip(ip: str, salt: str) -> str:
    """Hash IP address for privacy"""
    return hashlib.sha256(f"{ip}:{salt}".encode()).hexdigest()


def parse_user_agent(ua: str) -> dict:
    """Parse user agent string for device info"""
    ua = (ua or "").lower()

    device_type = "desktop"
    if any(x in ua for x in ['mobile', 'android', 'iphone']):
        device_type = "mobile"
    elif any(x in ua for x in ['tablet', 'ipad']):
        device_type = "tablet"

    browser = "unknown"
    if 'edg' in ua:
        browser = "edge"
    elif 'chrome' in ua:
        browser = "chrome"
    elif 'firefox' in ua:
        browser = "firefox"
    elif 'safari' in ua:
        browser = "safari"

    return {"device_type": device_type, "browser": browser}
