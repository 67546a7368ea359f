"""
Remote/lazy image resolver.

Every ``img`` on the live page is turned into a data URI if at all possible,
trying in order: an already-embedded source, an in-page canvas decode, and a
direct fetch (first without a referrer, then with one). Images are handled by
a pool of IMAGE_BATCH_SIZE concurrent tasks; no failure escapes a single
image.
"""

import asyncio
import base64
import io
import logging
from urllib.parse import urljoin, urlparse

import requests
from PIL import Image, UnidentifiedImageError

from pagedocx.core.config import (
    ASSET_TIMEOUT_SECONDS,
    EMBEDDED_SIZE_FLOOR,
    ID_ATTR,
    IMAGE_BATCH_SIZE,
    LAZY_ATTRS,
    SPACER_PATTERNS,
)
from pagedocx.core.models import AssetResult, ImageCandidate, VisualAsset

logger = logging.getLogger(__name__)

# Formats Word embeds natively; everything else Pillow can read becomes PNG
NATIVE_FORMATS = {'PNG': 'image/png', 'JPEG': 'image/jpeg', 'GIF': 'image/gif', 'BMP': 'image/bmp'}

FETCH_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36',
    'Accept': 'image/avif,image/webp,image/apng,image/*,*/*;q=0.8',
}


def is_placeholder(src):
    """Absent, a short embedded stub, or a known spacer image."""
    if not src:
        return True
    if src.startswith('data:') and len(src) < EMBEDDED_SIZE_FLOOR:
        return True
    return any(pattern in src for pattern in SPACER_PATTERNS)


def effective_source(src, lazy, base_url):
    """Pick the URL the image really shows, falling back to lazy-load attributes for placeholders."""
    if is_placeholder(src):
        for attr in LAZY_ATTRS:
            value = lazy.get(attr)
            if value:
                src = value
                if not src.startswith('http') and not src.startswith('data:'):
                    src = urljoin(base_url or '', src)
                break
    return src


def to_data_uri(content, content_type=None):
    """
    Encode image bytes as a data URI Word can embed.

    Raises ValueError when the bytes are not an image.
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            fmt = img.format
            if fmt in NATIVE_FORMATS:
                mime = NATIVE_FORMATS[fmt]
            else:
                buffer = io.BytesIO()
                converted = img.convert('RGBA') if img.mode not in ('RGB', 'RGBA') else img
                converted.save(buffer, format='PNG')
                content, mime = buffer.getvalue(), 'image/png'
    except UnidentifiedImageError:
        mime = (content_type or '').split(';')[0].strip().lower()
        if not mime.startswith('image/'):
            raise ValueError(f"Response is not an image ({content_type or 'no content type'})")
    return f"data:{mime};base64," + base64.b64encode(content).decode('ascii')


def _origin_referrer(page_url):
    parsed = urlparse(page_url or '')
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}/"


def fetch_image(url, referrer=None):
    """GET an image without cookies; ``referrer`` None means no Referer header at all."""
    headers = dict(FETCH_HEADERS)
    if referrer:
        headers['Referer'] = referrer
    response = requests.get(url, headers=headers, timeout=ASSET_TIMEOUT_SECONDS)
    response.raise_for_status()
    return to_data_uri(response.content, response.headers.get('Content-Type'))


def fetch_with_referrer_fallback(url, page_url):
    try:
        return fetch_image(url, referrer=None)
    except Exception as e:
        logger.debug(f"No-referrer fetch failed for {url[:80]}: {e}; retrying with referrer")
    return fetch_image(url, referrer=_origin_referrer(page_url))


async def resolve_image(live_page, candidate, page_url):
    """Resolve one image to a VisualAsset. Never raises."""
    node_id = candidate.node_id
    try:
        src = effective_source(candidate.src, candidate.lazy, page_url)
        if not src:
            return AssetResult.missing(node_id, "no source")

        if src.startswith('data:'):
            if len(src) >= EMBEDDED_SIZE_FLOOR:
                return AssetResult.ok(VisualAsset(node_id=node_id, encoded_image=src))
            return AssetResult.missing(node_id, "embedded placeholder")

        try:
            encoded = await live_page.rasterize(src, timeout=ASSET_TIMEOUT_SECONDS)
            return AssetResult.ok(VisualAsset(node_id=node_id, encoded_image=encoded))
        except Exception as e:
            logger.debug(f"Canvas decode failed for {src[:80]}: {e}")

        encoded = await asyncio.to_thread(fetch_with_referrer_fallback, src, page_url)
        return AssetResult.ok(VisualAsset(node_id=node_id, encoded_image=encoded))
    except Exception as e:
        logger.debug(f"Image unresolved {candidate.src[:80]}: {e}")
        return AssetResult.missing(node_id, str(e))


async def process_images(live_page, log=None, concurrency=IMAGE_BATCH_SIZE):
    """Resolve every live image with at most ``concurrency`` in flight. Returns the produced assets."""
    raw = await live_page.image_candidates(ID_ATTR, LAZY_ATTRS)
    candidates = [ImageCandidate.from_dict(item) for item in raw or []]
    page_url = live_page.url
    total = len(candidates)

    semaphore = asyncio.Semaphore(concurrency)
    done = 0

    async def worker(candidate):
        nonlocal done
        async with semaphore:
            result = await resolve_image(live_page, candidate, page_url)
        done += 1
        if log and (done % 10 == 0 or done == total):
            log(f"Processing images: {done}/{total}")
        return result

    results = await asyncio.gather(*(worker(c) for c in candidates))

    assets = [r.asset for r in results if r.succeeded and r.node_id is not None]
    failed = [r for r in results if not r.succeeded]
    if failed:
        logger.info(f"Images: {len(assets)} resolved, {len(failed)} left for cleanup")
    else:
        logger.info(f"Images: {len(assets)} resolved")
    return assets
