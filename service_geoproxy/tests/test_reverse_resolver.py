"""
Tests for reverse name lookups.
"""

import asyncio
import socket
from unittest.mock import AsyncMock, patch

import pytest

from service_geoproxy.app.adapters.reverse_resolver import ReverseResolver


@pytest.mark.asyncio
async def test_non_ip_subject_is_skipped():
    assert await ReverseResolver().reverse_lookup("example.com") == ("", False)


@pytest.mark.asyncio
async def test_resolved_name():
    loop = asyncio.get_running_loop()
    with patch.object(loop, "getnameinfo", new_callable=AsyncMock) as mock_getnameinfo:
        mock_getnameinfo.return_value = ("dns.google", "0")

        result = await ReverseResolver().reverse_lookup("8.8.8.8")

    assert result == ("dns.google", True)
    mock_getnameinfo.assert_awaited_once_with(("8.8.8.8", 0), socket.NI_NAMEREQD)


@pytest.mark.asyncio
async def test_lookup_failure():
    loop = asyncio.get_running_loop()
    with patch.object(loop, "getnameinfo", new_callable=AsyncMock) as mock_getnameinfo:
        mock_getnameinfo.side_effect = socket.gaierror("no name")

        result = await ReverseResolver().reverse_lookup("10.0.0.1")

    assert result == ("", False)


@pytest.mark.asyncio
async def test_lookup_timeout():
    async def slow(*args):
        await asyncio.sleep(1)

    loop = asyncio.get_running_loop()
    with patch.object(loop, "getnameinfo", side_effect=slow):
        result = await ReverseResolver(timeout=0.01).reverse_lookup("10.0.0.1")

    assert result == ("", False)
