"""
Attribute vocabulary, languages and request validation.
"""

import ipaddress
import re
from typing import Dict, Optional, Tuple

from shared.errors import ValidationError

from .models import Location


FieldSet = Tuple[str, ...]

# wire name -> Location attribute, in upstream order
FIELD_SCHEMA: Dict[str, str] = {
    (info.alias or name): name for name, info in Location.model_fields.items()
}

ALLOWED_FIELDS: FieldSet = tuple(FIELD_SCHEMA)
ALL_FIELDS: FieldSet = ALLOWED_FIELDS

ALLOWED_LANGS: Tuple[str, ...] = ("en", "de", "es", "pt-BR", "fr", "ja", "zh-CN", "ru")

IP_DNS_PATTERN = re.compile(
    r"((25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)(\.(25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)){3}"
    r"|(([a-zA-Z])|([a-zA-Z][a-zA-Z])|([a-zA-Z][0-9])|([0-9][a-zA-Z])|([a-zA-Z0-9][a-zA-Z0-9-_]{1,61}[a-zA-Z0-9]))"
    r"\.([a-zA-Z]{2,6}|[a-zA-Z0-9-]{2,30}\.[a-zA-Z]{2,3}))"
)


def parse_fields(raw: Optional[str]) -> FieldSet:
    """Validate a comma separated field list.

    An absent or empty list selects every field. Duplicates are dropped while
    keeping the caller's order.
    """
    if raw is None or not raw.strip():
        return ALL_FIELDS

    selected = []
    for name in raw.split(","):
        name = name.strip()
        if name not in FIELD_SCHEMA:
            raise ValidationError(
                f"illegal field provided: {name}",
                details={"field": name},
            )
        if name not in selected:
            selected.append(name)
    return tuple(selected)


def validate_lang(raw: Optional[str]) -> str:
    """Return the language tag, or "" for the upstream default."""
    if raw is None or raw == "":
        return ""
    if raw not in ALLOWED_LANGS:
        raise ValidationError(
            f"illegal lang value provided: {raw}",
            details={"lang": raw},
        )
    return raw


def extract_subject(text: Optional[str]) -> str:
    """Pull an IP address or host name out of ``text``; "" when none is found."""
    if not text:
        return ""
    candidate = text.strip().strip("/")
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        pass
    found = IP_DNS_PATTERN.search(candidate)
    return found.group(0) if found else ""


def cache_key(subject: str, lang: Optional[str] = None) -> str:
    """Subject and language form one opaque key."""
    return f"{subject}{lang or ''}"
