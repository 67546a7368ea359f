"""
Style inliner.

Copies a fixed set of computed properties from each live element onto its
snapshot twin as a single inline ``style``. Defaults (transparent, auto,
normal) are dropped to keep the document small.
"""

import asyncio
import logging
import re

from PIL import ImageColor

from pagedocx.core.config import (
    ID_ATTR,
    IMAGE_STYLE_PROPERTIES,
    STYLE_CHUNK_SIZE,
    STYLE_PROPERTIES,
    SUPPRESSED_STYLE_VALUES,
)

logger = logging.getLogger(__name__)


COLOR_PROPERTIES = ('color', 'background-color')

_RGBA_RE = re.compile(r'rgba\(\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)\s*\)')
_SRGB_RE = re.compile(
    r'color\(\s*srgb\s+([\d.]+%?)\s+([\d.]+%?)\s+([\d.]+%?)(?:\s*/\s*([\d.]+%?))?\s*\)'
)


def _unit(component):
    """An sRGB component (``0.5`` or ``50%``) as a 0..1 float."""
    if component.endswith('%'):
        return float(component[:-1]) / 100
    return float(component)


def opaque_color(value):
    """
    Reduce a computed colour to ``rgb(r, g, b)``; None when it is fully
    transparent or not understood.

    The Word encoder only reads three-component rgb() colours and fails on
    anything else that mentions "rgb" (e.g. ``color(srgb 1 0 0)``).
    """
    value = value.strip()

    match = _RGBA_RE.fullmatch(value)
    if match:
        r, g, b, alpha = (float(v) for v in match.groups())
        if alpha == 0:
            return None
        return f"rgb({int(round(r))}, {int(round(g))}, {int(round(b))})"

    match = _SRGB_RE.fullmatch(value)
    if match:
        r, g, b, alpha = match.groups()
        if alpha is not None and _unit(alpha) == 0:
            return None
        r, g, b = (max(0, min(255, int(round(_unit(c) * 255)))) for c in (r, g, b))
        return f"rgb({r}, {g}, {b})"

    try:
        rgb = ImageColor.getrgb(value)
    except ValueError:
        logger.debug(f"Dropping colour the encoder cannot read: {value}")
        return None
    if len(rgb) == 4 and rgb[3] == 0:
        return None
    return f"rgb({rgb[0]}, {rgb[1]}, {rgb[2]})"


def build_style(styles, properties):
    """Serialize the retained properties as ``prop:value;`` pairs, in ``properties`` order."""
    declaration = ''
    for prop in properties:
        value = styles.get(prop)
        if not value or value in SUPPRESSED_STYLE_VALUES:
            continue
        if prop in COLOR_PROPERTIES:
            value = opaque_color(value)
            if value is None:
                continue
        declaration += f"{prop}:{value};"
    return declaration


def apply_record(tag, record):
    """Write one live style record onto a snapshot tag."""
    properties = list(STYLE_PROPERTIES)
    if tag.name == 'img':
        properties += IMAGE_STYLE_PROPERTIES
        if record.get('width') is not None:
            tag['width'] = str(record['width'])
        if record.get('height') is not None:
            tag['height'] = str(record['height'])
    tag['style'] = build_style(record.get('styles') or {}, properties)


async def inline_styles(live_page, snapshot_root, chunk_size=STYLE_CHUNK_SIZE):
    """
    Inline computed styles onto the snapshot.

    Work is done ``chunk_size`` nodes at a time, yielding to the event loop
    between chunks. Returns the set of correlation IDs whose live element was
    hidden (display none or visibility hidden).
    """
    tags = snapshot_root.find_all(attrs={ID_ATTR: True})

    hidden_ids = set()
    styled = 0
    for start in range(0, len(tags), chunk_size):
        await asyncio.sleep(0)
        chunk = tags[start:start + chunk_size]
        records = await live_page.computed_styles(
            [t[ID_ATTR] for t in chunk], STYLE_PROPERTIES, IMAGE_STYLE_PROPERTIES
        ) or {}
        for tag in chunk:
            record = records.get(tag[ID_ATTR])
            if record is None:
                continue
            apply_record(tag, record)
            if record.get('hidden'):
                hidden_ids.add(tag[ID_ATTR])
            styled += 1

    logger.info(f"Inlined styles on {styled}/{len(tags)} snapshot nodes")
    return hidden_ids
