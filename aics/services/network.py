"""Outbound HTTP for plugins."""

import logging

import aiohttp

from aics.constants import DEFAULT_NETWORK_TIMEOUT
from aics.plugins.commands import HttpResponse, NetworkRequest
from aics.services.workspace import truncate

logger = logging.getLogger(__name__)


class NetworkService:
    """Performs HTTP requests on behalf of plugins."""

    def __init__(self, default_timeout: float = DEFAULT_NETWORK_TIMEOUT):
        self.default_timeout = default_timeout

    async def request(self, req: NetworkRequest) -> HttpResponse:
        timeout = aiohttp.ClientTimeout(total=req.timeout or self.default_timeout)
        logger.info(f"{req.method} {req.url}")
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(
                req.method, req.url, headers=req.headers, data=req.body
            ) as response:
                body = await response.text(errors="replace")
                return HttpResponse(
                    status=response.status,
                    headers={k: v for k, v in response.headers.items()},
                    body=truncate(body),
                )
