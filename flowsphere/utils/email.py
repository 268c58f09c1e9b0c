"""
Address helpers shared by providers and classifiers.
"""

from __future__ import annotations

import re

_NAME_ADDR = re.compile(r"(.+?)\s*<(.+?)>")


def parse_address(header_value: str) -> tuple[str, str]:
    """
    Split a From/To header into (name, email).

    Examples:
        >>> parse_address("Jane Doe <jane@corp.com>")
        ('Jane Doe', 'jane@corp.com')

        >>> parse_address("alerts@bank.com")
        ('alerts@bank.com', 'alerts@bank.com')
    """
    if not header_value:
        return "", ""

    match = _NAME_ADDR.match(header_value)
    if match:
        name = match.group(1).strip().strip('"')
        return name, match.group(2).strip()

    value = header_value.strip()
    return value, value


def extract_domain_only(email_address: str) -> str:
    """
    Return the lowercase domain portion of an address ("" when there is no @).

    Examples:
        >>> extract_domain_only("Bills@Meralco.com.ph")
        'meralco.com.ph'
    """
    lowered = (email_address or "").lower().strip()
    if "@" not in lowered:
        return ""
    return lowered.split("@", 1)[1]
