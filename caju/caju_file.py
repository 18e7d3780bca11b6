import os
from urllib.parse import urljoin
from typing import Dict, Optional, Tuple

from caju.caju_http import is_http_locator, http_get_text


def resolve_locator(locator: str, base_dir: Optional[str]) -> str:
    """Resolves an include locator to an absolute path (or returns URLs unchanged)."""
    if is_http_locator(locator):
        return locator
    rest = locator[7:] if locator.startswith("file://") else locator
    # Absolute filesystem path
    if rest.startswith("/"):
        return "/" + rest.lstrip("/")
    # Home directory
    if rest.startswith("~"):
        return os.path.expanduser(rest)
    # Default: relative to the including script's dir (or CWD)
    base = base_dir or os.getcwd()
    if is_http_locator(base):
        return urljoin(base, rest)
    return os.path.normpath(os.path.join(base, rest))


def read_script(locator: str, base_dir: Optional[str] = None,
                http_config: Optional[Dict] = None) -> Tuple[str, str]:
    """Loads an included script. Returns (source text, resolved origin)."""
    origin = resolve_locator(locator, base_dir)
    if is_http_locator(origin):
        return http_get_text(origin, config=http_config), origin
    with open(origin, "r", encoding="utf-8") as f:
        return f.read(), origin


def origin_dir(origin: Optional[str], fallback: Optional[str]) -> Optional[str]:
    """The directory relative includes inside `origin` resolve against."""
    if not origin:
        return fallback
    if is_http_locator(origin):
        return origin.rsplit("/", 1)[0] + "/"
    return os.path.dirname(origin) or fallback
