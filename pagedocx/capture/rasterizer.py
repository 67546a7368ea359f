"""
Visual element rasterizer.

Math containers, inline SVG and font-icon glyphs only look right inside a
browser. Each one found on the live page is turned into a standalone image
that the Word encoder can embed. Failures are per element: an element that
cannot be captured simply contributes no asset.
"""

import asyncio
import base64
import io
import logging
import os
import re
from functools import lru_cache

import requests
from PIL import Image, ImageColor, ImageDraw, ImageFont

from pagedocx.core.config import (
    ASSET_TIMEOUT_SECONDS,
    GLYPH_MIN_SIZE_PX,
    ICON_SELECTORS,
    ID_ATTR,
    MATH_SELECTORS,
    VISIBILITY_FLOOR_PX,
)
from pagedocx.core.models import AssetResult, VisualAsset, VisualCandidate

logger = logging.getLogger(__name__)

SYSTEM_FONT_PATHS = [
    "C:/Windows/Fonts/seguisym.ttf",
    "C:/Windows/Fonts/arial.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/System/Library/Fonts/Supplemental/Arial Unicode.ttf",
    "/Library/Fonts/Arial Unicode.ttf",
]

_RGB_RE = re.compile(r'rgba?\(([^)]*)\)')


def encode_svg(markup):
    """Wrap serialized SVG markup as a self-contained data URI."""
    payload = base64.b64encode(markup.encode('utf-8')).decode('ascii')
    return "data:image/svg+xml;base64," + payload


def png_data_uri(png_bytes):
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode('ascii')


def is_visible(candidate, floor=VISIBILITY_FLOOR_PX):
    """Negligible elements (both dimensions at or under the floor) are not worth capturing."""
    return candidate.width > floor or candidate.height > floor


def clean_pseudo_content(content):
    """Turn a computed ``content`` value (e.g. ``'"\\f007"'``) into the glyph text."""
    if not content or content in ('none', 'normal'):
        return ""
    return content.replace('"', '').replace("'", '')


def parse_px(value, default):
    match = re.match(r'\s*([\d.]+)', value or '')
    if not match:
        return default
    try:
        return float(match.group(1))
    except ValueError:
        return default


def parse_css_color(value, default=(0, 0, 0, 255)):
    """Parse ``rgb()``/``rgba()`` (what getComputedStyle returns) or a hex colour into RGBA."""
    value = (value or '').strip()
    match = _RGB_RE.match(value)
    if match:
        parts = [p.strip() for p in re.split(r'[,\s/]+', match.group(1)) if p.strip()]
        try:
            r, g, b = (int(float(p)) for p in parts[:3])
            a = int(round(float(parts[3]) * 255)) if len(parts) > 3 else 255
            return (r, g, b, a)
        except (ValueError, IndexError):
            return default
    if value.startswith('#'):
        try:
            rgb = ImageColor.getrgb(value)
            return rgb if len(rgb) == 4 else rgb + (255,)
        except ValueError:
            return default
    return default


@lru_cache(maxsize=32)
def fetch_font_bytes(url):
    """Download (or decode) one @font-face source. Cached per URL for the whole process."""
    if url.startswith('data:'):
        header, _, payload = url.partition(',')
        if ';base64' not in header:
            raise ValueError("Only base64 data font sources are supported")
        return base64.b64decode(payload)
    response = requests.get(url, timeout=ASSET_TIMEOUT_SECONDS)
    response.raise_for_status()
    return response.content


def _weight_range(value):
    """``font-weight`` as a (low, high) range; @font-face may declare ``"100 900"``."""
    words = {'normal': 400, 'bold': 700}
    numbers = []
    for part in str(value or '').split():
        part = part.lower()
        if part in words:
            numbers.append(words[part])
        else:
            try:
                numbers.append(int(float(part)))
            except ValueError:
                continue
    if not numbers:
        return (400, 400)
    return (min(numbers), max(numbers))


def _font_source_order(source, weight=None, style=None):
    url = source.get('url') or ''
    weight_miss = 0
    if weight:
        wanted = _weight_range(weight)[0]
        low, high = _weight_range(source.get('weight'))
        weight_miss = 0 if low <= wanted <= high else min(abs(wanted - low), abs(wanted - high))
    style_miss = 0
    if style:
        face_style = (source.get('style') or 'normal').split()[0].lower()
        style_miss = 0 if face_style == style.split()[0].lower() else 1
    # FreeType reads woff2 only when built with brotli, so try it last
    woff2 = 1 if url.split('?')[0].lower().endswith('.woff2') else 0
    return (weight_miss, style_miss, woff2)


def load_icon_font(sources, size, weight=None, style=None):
    """
    Resolve a Pillow font: page @font-face sources first, then system fonts,
    then Pillow's default.

    ``sources`` are ``{'url', 'weight', 'style'}`` faces. Faces whose weight
    and style match the element's are tried first.
    """
    size = max(1, int(round(size)))
    ranked = sorted(sources or [], key=lambda s: _font_source_order(s, weight, style))
    for source in ranked:
        url = source.get('url') or ''
        if not url:
            continue
        try:
            return ImageFont.truetype(io.BytesIO(fetch_font_bytes(url)), size)
        except Exception as e:
            logger.debug(f"Font source unusable {url[:80]}: {e}")

    for path in SYSTEM_FONT_PATHS:
        if os.path.exists(path):
            try:
                return ImageFont.truetype(path, size)
            except OSError:
                continue

    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        # Pillow < 10.1 has no sized default font
        return ImageFont.load_default()


def draw_glyph(candidate):
    """
    Draw a font-icon glyph onto a square transparent canvas.

    The canvas is at least GLYPH_MIN_SIZE_PX and at least the element's
    rendered size. Returns None when the element has no pseudo-element glyph.
    """
    text = clean_pseudo_content(candidate.pseudo_content)
    if not text:
        return None

    size = int(max(candidate.width, candidate.height, GLYPH_MIN_SIZE_PX))
    font_size = parse_px(candidate.font_size, 16)
    font = load_icon_font(candidate.font_sources, font_size, candidate.font_weight, candidate.font_style)
    color = parse_css_color(candidate.color)

    img = Image.new('RGBA', (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (size - (right - left)) / 2 - left
    y = (size - (bottom - top)) / 2 - top
    draw.text((x, y), text, font=font, fill=color)

    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return VisualAsset(
        node_id=candidate.node_id,
        encoded_image=png_data_uri(buffer.getvalue()),
        width=size,
        height=size,
    )


async def _vector_asset(live_page, candidate, markup):
    width = int(round(candidate.width)) or None
    height = int(round(candidate.height)) or None
    encoded = encode_svg(markup)
    try:
        encoded = await live_page.rasterize(encoded, width or 0, height or 0, timeout=ASSET_TIMEOUT_SECONDS)
    except Exception as e:
        # Keep the vector form; the encoder falls back to alt text if it cannot embed it
        logger.debug(f"SVG rasterize failed for node {candidate.node_id}, keeping vector: {e}")
    return VisualAsset(node_id=candidate.node_id, encoded_image=encoded, width=width, height=height)


async def capture_candidate(live_page, candidate):
    """Produce the asset for one candidate. Never raises."""
    try:
        if candidate.tag == 'svg':
            if not candidate.svg_markup:
                return AssetResult.missing(candidate.node_id, f"svg serialization failed: {candidate.svg_error}")
            return AssetResult.ok(await _vector_asset(live_page, candidate, candidate.svg_markup))

        if candidate.inner_svg_markup or candidate.inner_svg_error:
            if not candidate.inner_svg_markup:
                return AssetResult.missing(candidate.node_id, f"svg serialization failed: {candidate.inner_svg_error}")
            return AssetResult.ok(await _vector_asset(live_page, candidate, candidate.inner_svg_markup))

        asset = await asyncio.to_thread(draw_glyph, candidate)
        if asset:
            return AssetResult.ok(asset)

        if candidate.is_math:
            png = await live_page.screenshot_element(ID_ATTR, candidate.node_id, timeout=ASSET_TIMEOUT_SECONDS)
            return AssetResult.ok(VisualAsset(
                node_id=candidate.node_id,
                encoded_image=png_data_uri(png),
                width=int(round(candidate.width)) or None,
                height=int(round(candidate.height)) or None,
            ))

        return AssetResult.missing(candidate.node_id, "no glyph content")
    except Exception as e:
        logger.debug(f"Visual capture failed for node {candidate.node_id}: {e}")
        return AssetResult.missing(candidate.node_id, str(e))


async def capture_visual_elements(live_page, log=None):
    """Find math/icon elements on the live page and rasterize each into a VisualAsset."""
    selector = ",".join(MATH_SELECTORS + ICON_SELECTORS)
    raw = await live_page.visual_candidates(ID_ATTR, selector, ",".join(MATH_SELECTORS))
    candidates = [VisualCandidate.from_dict(item) for item in raw or []]
    visible = [c for c in candidates if c.node_id and is_visible(c)]

    if log:
        log(f"Found {len(visible)} formulas and icons, processing...")

    assets = []
    for candidate in visible:
        result = await capture_candidate(live_page, candidate)
        if result.succeeded:
            assets.append(result.asset)

    logger.info(f"Visual capture: {len(assets)}/{len(visible)} elements rasterized")
    return assets
