"""Custom request headers for calls to the scanning server."""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)

# Headers the RPC transport sets itself; callers may not override them.
_RESERVED_HEADERS = frozenset({"accept", "content-type", "twirp-version"})

Headers = Mapping[str, Sequence[str]]


def with_custom_headers(
    headers: Headers | None, custom_headers: Headers
) -> dict[str, list[str]] | Headers | None:
    """Return request headers made of ``custom_headers``.

    If any custom header is one the transport reserves, a warning is logged
    and ``headers`` is returned unchanged.
    """
    for key in custom_headers:
        if key.lower() in _RESERVED_HEADERS:
            logger.warning(
                "twirp error setting headers: provided header cannot set %s", key
            )
            return headers
    return {key: list(values) for key, values in custom_headers.items()}