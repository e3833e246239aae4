"""
Expiry policy for stored results.
"""

from datetime import timedelta

from ..domain.models import Location


class CachePolicy:
    """Chooses how long a result stays in the store."""

    def __init__(
        self,
        success_ttl: timedelta = timedelta(hours=24),
        failure_ttl: timedelta = timedelta(minutes=30),
    ):
        self.success_ttl = success_ttl
        self.failure_ttl = failure_ttl

    @classmethod
    def from_config(cls, config) -> "CachePolicy":
        return cls(success_ttl=config.cache_success_age, failure_ttl=config.cache_failed_age)

    def ttl_for(self, result: Location) -> timedelta:
        if result.is_success:
            return self.success_ttl
        return self.failure_ttl
