"""
Domain vocabulary for geolocation lookups: the Location result model,
the attribute schema used for projection, and request validation.
"""

from .models import BatchItem, Location, STATUS_FAIL, STATUS_SUCCESS, failure
from .fields import (
    ALL_FIELDS,
    ALLOWED_FIELDS,
    ALLOWED_LANGS,
    FIELD_SCHEMA,
    FieldSet,
    cache_key,
    extract_subject,
    parse_fields,
    validate_lang,
)

__all__ = [
    "ALL_FIELDS",
    "ALLOWED_FIELDS",
    "ALLOWED_LANGS",
    "BatchItem",
    "FIELD_SCHEMA",
    "FieldSet",
    "Location",
    "STATUS_FAIL",
    "STATUS_SUCCESS",
    "cache_key",
    "extract_subject",
    "failure",
    "parse_fields",
    "validate_lang",
]
