"""
Request correlation for the gateway.

Every request runs under a correlation ID taken from x-correlation-id
or generated. BackgroundLoader.start_loading picks it up from the
logging context, so the background run that a poll starts logs under
the same ID as the poll itself.
"""

import re

from starlette.datastructures import Headers, MutableHeaders

from bqcost.logging_config import (
    CORRELATION_HEADER,
    generate_correlation_id,
    set_correlation_id,
)

# Client-supplied IDs end up in every log line of a load; anything else is replaced.
VALID_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._\-]{1,64}$")


def correlation_id_from_headers(headers: Headers) -> str:
    """Return the request's correlation ID if it is usable, else a new one."""
    cid = headers.get(CORRELATION_HEADER, "")
    if VALID_CORRELATION_ID.match(cid):
        return cid
    return generate_correlation_id()


class CorrelationIdMiddleware:
    """Sets the correlation ID for the request and echoes it in the response."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        cid = correlation_id_from_headers(Headers(scope=scope))
        set_correlation_id(cid)

        async def send_with_correlation(message):
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[CORRELATION_HEADER] = cid
            await send(message)

        await self.app(scope, receive, send_with_correlation)
