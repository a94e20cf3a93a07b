"""
Institutional email gate.

Only addresses on the institute's domain, or any subdomain of it
(e.g. cs.nits.ac.in), may hold a session. The same check runs right after
sign-in and again before every protected route is served.
"""
import re

from constants import PROTECTED_PATH_PATTERNS

_PROTECTED_PATHS = [re.compile(pattern) for pattern in PROTECTED_PATH_PATTERNS]


def email_domain(email):
    """Lowercased part after the last '@', or '' if there is none."""
    if not email or '@' not in email:
        return ''
    return email.rsplit('@', 1)[1].strip().lower()


def is_institutional_email(email, domain):
    domain = (domain or '').strip().lower().lstrip('.')
    if not domain:
        return False
    host = email_domain(email)
    return host == domain or host.endswith('.' + domain)


def rejection_message(domain):
    return (f"Only Institute email addresses ({domain} or any subdomain) "
            f"are allowed to use this platform.")


def is_protected_path(path):
    return any(pattern.match(path) for pattern in _PROTECTED_PATHS)
