"""Insert Links URL parsing.

Two URL shapes carry an affiliate short code:

    ia-{companycode}://{shortcode}                       custom scheme
    https://{sub}.insertaffiliate.link/V1/{company}/{code}  universal link

Anything else is not ours.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

CUSTOM_SCHEME_PREFIX = "ia-"
UNIVERSAL_LINK_DOMAIN = "insertaffiliate.link"
UNIVERSAL_LINK_VERSION_SEGMENT = "V1"


@dataclass(frozen=True)
class InsertLink:
    """Short code (uppercased) and the company code the link was minted for."""

    short_code: str
    company_code: Optional[str]


def _parse_custom_scheme(url: str) -> Optional[InsertLink]:
    marker = url.rfind("://")
    if marker == -1:
        return None

    scheme = url[: url.find("://")]
    company_code = scheme[len(CUSTOM_SCHEME_PREFIX):] or None

    code = url[marker + 3:]
    # ia-acme://PROMO/?utm=x -> PROMO
    for separator in ("?", "#"):
        code = code.split(separator, 1)[0]
    code = code.strip("/")

    if not code:
        return None
    return InsertLink(short_code=code.upper(), company_code=company_code)


def _parse_universal_link(url: str) -> Optional[InsertLink]:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return None

    host = (parts.hostname or "").lower()
    if host != UNIVERSAL_LINK_DOMAIN and not host.endswith(f".{UNIVERSAL_LINK_DOMAIN}"):
        return None

    segments = [segment for segment in parts.path.split("/") if segment]
    for index, segment in enumerate(segments):
        if segment.upper() == UNIVERSAL_LINK_VERSION_SEGMENT and index + 2 < len(segments):
            return InsertLink(short_code=segments[index + 2].upper(), company_code=segments[index + 1])

    return None


def parse_insert_link(url: Optional[str]) -> Optional[InsertLink]:
    """Extract the short code from an Insert Links URL, or None if unrecognized."""
    if not url:
        return None

    url = url.strip()
    if url.lower().startswith(CUSTOM_SCHEME_PREFIX):
        return _parse_custom_scheme(url)

    return _parse_universal_link(url)
