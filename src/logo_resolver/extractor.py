"""Image candidate discovery in fetched HTML.

Each strategy is a pure function from a parsed document to the raw
references it finds. ``extract_candidates`` runs all of them, resolves the
references against the page address, then deduplicates and ranks them.
"""

import logging
import re
from typing import Callable
from urllib.parse import urljoin, urlparse

from selectolax.parser import HTMLParser

from .models import Candidate, ExtractionStrategy
from .validator import url_extension


logger = logging.getLogger(__name__)

# Lower rank is tried first
EXTENSION_RANKS: dict[str, int] = {
    ".png": 0,
    ".jpg": 1,
    ".jpeg": 1,
    ".svg": 2,
}
UNKNOWN_RANK = 3

JSON_LD_IMAGE_REGEX: re.Pattern[str] = re.compile(
    r"""https?://[^"']+\.(svg|png|jpg|jpeg)""", flags=re.IGNORECASE
)


def rank_for(url: str) -> int:
    return EXTENSION_RANKS.get(url_extension(url), UNKNOWN_RANK)


def open_graph_images(tree: HTMLParser) -> list[str]:
    """First og:image meta content, falling back to twitter:image."""
    metas = tree.css("meta")
    for key in ("og:image", "twitter:image"):
        for meta in metas:
            names = (
                (meta.attributes.get("property") or "").strip().lower(),
                (meta.attributes.get("name") or "").strip().lower(),
            )
            if key not in names:
                continue
            content = (meta.attributes.get("content") or "").strip()
            if content:
                return [content]
    return []


def link_rel_images(tree: HTMLParser) -> list[str]:
    """hrefs of image_src and any *icon* link (apple-touch-icon included)."""
    refs = []
    for link in tree.css("link"):
        rel = (link.attributes.get("rel") or "").strip().lower()
        if rel != "image_src" and "icon" not in rel:
            continue
        href = (link.attributes.get("href") or "").strip()
        if href:
            refs.append(href)
    return refs


def img_tag_images(tree: HTMLParser) -> list[str]:
    """Every img src, plus the first srcset entry without its descriptor."""
    refs = []
    for img in tree.css("img"):
        src = (img.attributes.get("src") or "").strip()
        if src:
            refs.append(src)

        srcset = (img.attributes.get("srcset") or "").strip()
        if srcset:
            tokens = srcset.split(",")[0].split()
            if tokens:
                refs.append(tokens[0])
    return refs


def json_ld_images(tree: HTMLParser) -> list[str]:
    """Image-looking URLs in raw JSON-LD text; the JSON is never parsed."""
    refs = []
    for script in tree.css("script"):
        script_type = (script.attributes.get("type") or "").strip().lower()
        if script_type != "application/ld+json":
            continue
        raw = (script.text(deep=True) or "").replace("\\/", "/")
        refs.extend(match.group(0) for match in JSON_LD_IMAGE_REGEX.finditer(raw))
    return refs


STRATEGIES: list[tuple[ExtractionStrategy, Callable[[HTMLParser], list[str]]]] = [
    (ExtractionStrategy.OPEN_GRAPH, open_graph_images),
    (ExtractionStrategy.LINK_REL, link_rel_images),
    (ExtractionStrategy.IMG_TAG, img_tag_images),
    (ExtractionStrategy.JSON_LD, json_ld_images),
]


def resolve_reference(base_url: str, reference: str) -> str | None:
    """Absolute http(s) form of ``reference``, or None if it is unusable."""
    reference = reference.strip()
    if not reference:
        return None
    try:
        absolute = urljoin(base_url, reference)
        parsed = urlparse(absolute)
    except ValueError:
        return None

    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    if any(char.isspace() for char in absolute):
        return None
    return absolute


def extract_candidates(html: str, base_url: str) -> list[Candidate]:
    """Ranked, deduplicated absolute image candidates found in ``html``."""
    tree = HTMLParser(html)

    candidates: dict[str, Candidate] = {}
    for strategy, find_references in STRATEGIES:
        for reference in find_references(tree):
            url = resolve_reference(base_url, reference)
            if url is None:
                logger.debug(f"Dropping unusable {strategy.value} reference: {reference!r}")
                continue
            if url not in candidates:
                candidates[url] = Candidate(url, strategy, rank_for(url))

    # sorted() is stable, so equal ranks keep discovery order
    ranked = sorted(candidates.values(), key=lambda c: c.rank)
    logger.debug(f"Found {len(ranked)} image candidates on {base_url}")
    return ranked
