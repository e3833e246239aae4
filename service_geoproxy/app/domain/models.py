"""
Result and request models for geolocation lookups.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


STATUS_SUCCESS = "success"
STATUS_FAIL = "fail"


class Location(BaseModel):
    """Full attribute set returned by the upstream service for one subject.

    Attributes use snake_case; the wire names (``countryCode``, ``as`` ...)
    are the aliases. Unset attributes are ``None`` and omitted on output.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: Optional[str] = None
    message: Optional[str] = None
    continent: Optional[str] = None
    continent_code: Optional[str] = Field(None, alias="continentCode")
    country: Optional[str] = None
    country_code: Optional[str] = Field(None, alias="countryCode")
    region: Optional[str] = None
    region_name: Optional[str] = Field(None, alias="regionName")
    city: Optional[str] = None
    district: Optional[str] = None
    zip: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    timezone: Optional[str] = None
    isp: Optional[str] = None
    org: Optional[str] = None
    as_: Optional[str] = Field(None, alias="as")
    asname: Optional[str] = None
    reverse: Optional[str] = None
    mobile: Optional[bool] = None
    proxy: Optional[bool] = None
    query: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_wire(self) -> dict:
        """JSON-ready payload using upstream attribute names."""
        return self.model_dump(by_alias=True, exclude_none=True)


def failure(message: str, query: Optional[str] = None) -> Location:
    """Build a failure outcome in the upstream's own shape."""
    return Location(status=STATUS_FAIL, message=message, query=query)


class BatchItem(BaseModel):
    """One entry of a batch request; overrides are raw and unvalidated."""

    query: str = ""
    fields: Optional[str] = None
    lang: Optional[str] = None
