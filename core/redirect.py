"""Redirect target URL construction."""

from typing import Mapping, Optional
from urllib.parse import urlencode


def build_redirect_url(base_url: str, params: Optional[Mapping[str, str]] = None) -> str:
    """
    Append non-empty params to `base_url` as a query string.

    Empty strings and None are dropped; "0" is kept.
    """
    query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
    if not query:
        return base_url
    joiner = "&" if "?" in base_url else "?"
    return f"{base_url}{joiner}{urlencode(query)}"
