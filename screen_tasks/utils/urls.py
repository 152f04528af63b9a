"""URL comparison helpers."""

from urllib.parse import urlsplit


def has_significant_url_change(previous_url: str, current_url: str) -> bool:
    """Check if a URL changed in a way that counts as navigation.

    Hostname, path and query-string changes are significant (SPAs route
    through query params such as ``?tab=2``). A change confined to the
    fragment is not.

    Args:
        previous_url: URL before the action.
        current_url: URL after the action.

    Returns:
        Whether the URL changed significantly.
    """
    if previous_url == current_url:
        return False

    try:
        prev = urlsplit(previous_url)
        curr = urlsplit(current_url)
        prev_host, curr_host = prev.hostname, curr.hostname
    except ValueError:
        return previous_url != current_url

    if prev_host != curr_host:
        return True
    if prev.path != curr.path:
        return True
    if prev.query != curr.query:
        return True
    return False


def normalize_url(url: str) -> str:
    """Lowercase the hostname and drop trailing slashes from the path."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url.lower().rstrip("/")
    if not parts.scheme or not parts.netloc:
        return url.lower().rstrip("/")
    path = parts.path.rstrip("/") or "/"
    return parts._replace(netloc=parts.netloc.lower(), path=path).geturl()


def get_hostname(url: str) -> str:
    """Lowercased hostname of ``url``, or the input itself if unparsable."""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return url
    return hostname.lower() if hostname else url


def get_origin(url: str) -> str | None:
    """``scheme://host[:port]`` of ``url``, or None for relative/invalid URLs."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def is_cross_domain(before_url: str, after_url: str) -> bool:
    """True when the two URLs have different hostnames."""
    try:
        before = urlsplit(before_url).hostname
        after = urlsplit(after_url).hostname
    except ValueError:
        return False
    if before is None or after is None:
        return False
    return before.lower() != after.lower()
