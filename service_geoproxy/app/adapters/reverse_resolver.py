"""
Reverse name lookups for resolved addresses.
"""

import asyncio
import ipaddress
import socket
from typing import Tuple

from shared.logging import get_logger


class ReverseResolver:
    """PTR lookups through the event loop's resolver."""

    def __init__(self, timeout: float = 2.0):
        self.timeout = timeout
        self.logger = get_logger("geoproxy.reverse_resolver")

    async def reverse_lookup(self, subject: str) -> Tuple[str, bool]:
        """Return ``(name, True)`` or ``("", False)`` when no name is found."""
        try:
            address = ipaddress.ip_address(subject)
        except ValueError:
            return "", False

        loop = asyncio.get_running_loop()
        try:
            name, _ = await asyncio.wait_for(
                loop.getnameinfo((str(address), 0), socket.NI_NAMEREQD),
                timeout=self.timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            self.logger.debug("Reverse lookup failed", subject=subject, error=str(exc))
            return "", False

        return name, True
