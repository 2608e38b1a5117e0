"""
URL canonicalization.

Boxes and content stores key everything by canonical absolute URL, so two
spellings of the same resource must collapse to one string. The rules follow
how a browser resolves an anchor's href:

    scheme://host[:port]path[?query][#fragment]

with scheme and host lower-cased, non-ASCII hosts IDNA-encoded, backslashes
before the query read as "/", userinfo and default ports dropped, dot
segments resolved, an empty path rendered as "/", and empty query/fragment
markers removed.
"""

from __future__ import annotations

import re
from urllib.parse import quote, urljoin, urlsplit

import idna

from boxcache.exceptions import InvalidURLError

DEFAULT_PORTS = {"http": 80, "https": 443}

# Characters left untouched when re-quoting; "%" keeps existing escapes stable.
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"
_QUERY_SAFE = _PATH_SAFE + "?"

# RFC 3986 reg-name: unreserved, pct-encoded and sub-delims
_REG_NAME = re.compile(r"[a-z0-9\-._~!$&'()*+,;=%]+")


def _normalize_backslashes(url: str) -> str:
    """Treat "\\" as "/" before the query or fragment, as browsers do for http(s)."""
    cut = [i for i in (url.find("?"), url.find("#")) if i != -1]
    end = min(cut) if cut else len(url)
    return url[:end].replace("\\", "/") + url[end:]


def _canonical_host(host: str, url: str) -> str:
    """IDNA-encode a non-ASCII host, bracket IPv6 and reject invalid names."""
    if ":" in host:
        return f"[{host}]"
    if not host.isascii():
        try:
            host = idna.encode(host, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise InvalidURLError(f"Invalid host name: {e}", context={"url": url}) from e
    if not _REG_NAME.fullmatch(host):
        raise InvalidURLError("Invalid characters in host", context={"url": url, "host": host})
    return host


def _remove_dot_segments(path: str) -> str:
    """Resolve "." and ".." path segments (RFC 3986, section 5.2.4)."""
    output: list[str] = []
    segments = path.split("/")
    for i, segment in enumerate(segments):
        last = i == len(segments) - 1
        if segment == ".":
            if last:
                output.append("")
        elif segment == "..":
            if len(output) > 1:
                output.pop()
            if last:
                output.append("")
        else:
            output.append(segment)
    result = "/".join(output)
    if path.startswith("/") and not result.startswith("/"):
        result = "/" + result
    return result


def canonicalize_url(url: str, base_url: str | None = None) -> str:
    """Convert a URL to its canonical absolute form.

    Args:
        url: Absolute or relative URL.
        base_url: Base used to resolve relative URLs.

    Returns:
        Canonical absolute URL. Canonicalizing the result again returns it unchanged.

    Raises:
        InvalidURLError: If the URL is relative with no base, uses a scheme
            other than http(s), has no host, a host that is not a valid
            name, or an invalid port.
    """
    raw = _normalize_backslashes(url.strip())
    if base_url:
        raw = urljoin(base_url, raw)

    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError as e:
        raise InvalidURLError(f"Malformed URL: {e}", context={"url": url}) from e

    scheme = parts.scheme.lower()
    if not scheme:
        raise InvalidURLError("Relative URL without a base URL", context={"url": url})
    if scheme not in DEFAULT_PORTS:
        raise InvalidURLError("Unsupported URL scheme", context={"url": url, "scheme": scheme})

    host = (parts.hostname or "").lower()
    if not host:
        raise InvalidURLError("URL has no host", context={"url": url})
    host = _canonical_host(host, url)
    if port is not None and port != DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"

    path = quote(_remove_dot_segments(parts.path or "/"), safe=_PATH_SAFE) or "/"
    query = quote(parts.query, safe=_QUERY_SAFE)
    fragment = quote(parts.fragment, safe=_QUERY_SAFE)

    canonical = f"{scheme}://{host}{path}"
    if query:
        canonical += f"?{query}"
    if fragment:
        canonical += f"#{fragment}"
    return canonical
