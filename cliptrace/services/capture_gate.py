"""
Decides whether a copy event may be recorded at all.

Checks run cheapest first and the first hit wins; the returned reason string
ends up in the capture response and the log, never the copied text itself.
"""
import logging
import re
from typing import Iterable, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Exact hostname (or any subdomain of it)
SENSITIVE_HOSTNAMES = [
    'accounts.google.com',
    'login.microsoftonline.com',
    'signin.aws.amazon.com',
    'auth0.com',
    'paypal.com',
    'www.paypal.com',
    'stripe.com',
    'dashboard.stripe.com',
    '1password.com',
    'my.1password.com',
    'lastpass.com',
    'vault.bitwarden.com',
    'app.dashlane.com',
]

# Matched against the hostname only, never the path or query
SENSITIVE_HOSTNAME_KEYWORDS = ['login', 'signin', 'signup', 'auth', 'bank', 'banking']

SENSITIVE_PATTERNS = [
    re.compile(r'\b\d{13,19}\b'),                                # card number
    re.compile(r'\b\d{3}-\d{2}-\d{4}\b'),                        # SSN
    re.compile(r'password["\']?\s*[:=]\s*["\']?[^"\'\s]+', re.IGNORECASE),
    re.compile(r'\bsecret\s*[:=]', re.IGNORECASE),
    re.compile(r'\bapi[_-]?key\s*[:=]', re.IGNORECASE),
    re.compile(r'\btoken\s*[:=]', re.IGNORECASE),
    re.compile(r'-----BEGIN\s+(RSA\s+)?PRIVATE\s+KEY-----'),
]


def extract_hostname(url: str) -> Optional[str]:
    if not url:
        return None
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def _matches_domain(hostname: str, domains: Iterable[str]) -> bool:
    for domain in domains:
        domain = domain.strip().lower()
        if domain and (hostname == domain or hostname.endswith('.' + domain)):
            return True
    return False


class CaptureGate:
    def __init__(self, incognito_mode: bool = False, blacklist: Iterable[str] = None):
        self.incognito_mode = incognito_mode
        self.blacklist = list(blacklist or [])

    def should_skip(self, text: str, url: str, near_password_field: bool = False,
                    incognito_mode: bool = None, blacklist: Iterable[str] = None) -> Optional[str]:
        """
        Reason the capture must be skipped, or None when it may be recorded.

        incognito_mode and blacklist override the gate's configured values for
        this call only.
        """
        incognito = self.incognito_mode if incognito_mode is None else incognito_mode
        if incognito:
            return "incognito"

        hostname = extract_hostname(url)
        domains = self.blacklist if blacklist is None else list(blacklist)
        if hostname:
            if _matches_domain(hostname, domains):
                return "blacklisted"
            if _matches_domain(hostname, SENSITIVE_HOSTNAMES):
                return "sensitive_site"
            if any(keyword in hostname for keyword in SENSITIVE_HOSTNAME_KEYWORDS):
                return "sensitive_site"

        if near_password_field:
            return "password_field"

        if text and any(pattern.search(text) for pattern in SENSITIVE_PATTERNS):
            return "sensitive_content"

        return None
