"""URL canonicalization for card deduplication."""

from urllib.parse import parse_qs, urlencode, urlparse, urlunparse


# Tracking parameters that never change which resource a URL points at
DEFAULT_STRIP_PARAMS: list[str] = [
    # UTM parameters
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "utm_id",
    # Social/sharing
    "fbclid",
    "gclid",
    "msclkid",
    "twclid",
    "igshid",
    "si",
    # Analytics
    "_ga",
    "_gl",
    "mc_cid",
    "mc_eid",
    # Session/tracking
    "ref",
    "ref_src",
    "source",
    "via",
    "share",
    # Email tracking
    "mkt_tok",
    "trk",
]


def canonicalize_url(
    url: str,
    strip_params: list[str] | None = None,
    preserve_fragments: bool = False,
) -> str:
    """Canonicalize a URL so saves of the same resource compare equal.

    Canonicalization includes:
    - Lowercasing the scheme and host
    - Removing trailing slashes (except for root path)
    - Stripping tracking query parameters
    - Removing fragments (by default)

    Args:
        url: The URL to canonicalize.
        strip_params: List of query parameters to strip. If None, uses defaults.
        preserve_fragments: If True, keep URL fragments.

    Returns:
        Canonicalized URL string.
    """
    url = url.strip()
    if not url:
        return url

    parsed = urlparse(url)

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()

    path = parsed.path
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/")

    params_to_strip = strip_params if strip_params is not None else DEFAULT_STRIP_PARAMS
    query = _filter_query_params(parsed.query, params_to_strip)

    fragment = parsed.fragment if preserve_fragments else ""

    return urlunparse((scheme, netloc, path, parsed.params, query, fragment))


def _filter_query_params(query: str, strip_params: list[str]) -> str:
    """Filter out tracking parameters from a query string.

    Args:
        query: Original query string.
        strip_params: List of parameter names to remove.

    Returns:
        Filtered query string with keys sorted.
    """
    if not query:
        return ""

    params = parse_qs(query, keep_blank_values=True)
    strip_set = {p.lower() for p in strip_params}

    filtered = {
        key: value
        for key, value in sorted(params.items())
        if key.lower() not in strip_set
    }

    if not filtered:
        return ""

    return urlencode(filtered, doseq=True, safe="")
