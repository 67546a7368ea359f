"""
Snapshot sanitizer.

Deterministic cleanup that leaves only content the Word encoder can render:
no scripts, controls or frames, nothing hidden, no event handlers, no image
that is not embedded, no empty containers and no runs of line breaks.
"""

import logging
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from pagedocx.core.config import ID_ATTR

logger = logging.getLogger(__name__)

TRASH_TAGS = [
    'script', 'style', 'noscript', 'template', 'link', 'meta',
    'button', 'input', 'textarea', 'select',
    'iframe', 'frame', 'object', 'embed',
    'svg',
]

CONTAINER_TAGS = ['div', 'span', 'p', 'section', 'article', 'aside', 'nav', 'header', 'footer']

UNRESOLVABLE_HREF_PREFIXES = ('#', 'javascript:', 'mailto:', 'tel:', 'data:')

LINK_STYLE = {'color': 'blue', 'text-decoration': 'underline'}


def parse_style(style):
    """Split an inline style into an ordered {property: value} dict (lower-cased names)."""
    declarations = {}
    for part in (style or '').split(';'):
        if ':' not in part:
            continue
        name, value = part.split(':', 1)
        name = name.strip().lower()
        if name:
            declarations[name] = value.strip()
    return declarations


def serialize_style(declarations):
    return "".join(f"{name}:{value};" for name, value in declarations.items())


def merge_style(tag, overrides):
    declarations = parse_style(tag.get('style'))
    declarations.update(overrides)
    tag['style'] = serialize_style(declarations)


def is_hidden(tag, hidden_ids=None):
    """Hidden inline, hidden from assistive tech, or seen hidden on the live page."""
    declarations = parse_style(tag.get('style'))
    if declarations.get('display', '').startswith('none'):
        return True
    if declarations.get('visibility', '').startswith('hidden'):
        return True
    if tag.get('aria-hidden') == 'true' or tag.has_attr('hidden'):
        return True
    return bool(hidden_ids) and tag.get(ID_ATTR) in hidden_ids


def _is_blank(node):
    if isinstance(node, Comment):
        return True
    if isinstance(node, NavigableString):
        return not node.strip()
    return False


def is_empty_container(tag):
    if tag.find('img') is not None:
        return False
    return all(_is_blank(child) for child in tag.contents)


def remove_trash(root):
    removed = 0
    for tag in root.find_all(TRASH_TAGS):
        if getattr(tag, 'decomposed', False):
            continue
        tag.decompose()
        removed += 1
    return removed


def remove_hidden(root, hidden_ids=None):
    removed = 0
    for tag in root.find_all(True):
        if getattr(tag, 'decomposed', False):
            continue
        if is_hidden(tag, hidden_ids):
            tag.decompose()
            removed += 1
    return removed


def strip_event_handlers(root):
    stripped = 0
    for tag in [root] + root.find_all(True):
        for name in [n for n in tag.attrs if n.lower().startswith('on')]:
            del tag[name]
            stripped += 1
    return stripped


def clean_unprocessed_images(root):
    """
    Drop every image that is not an embedded data URI.

    An image with alt text leaves a small text placeholder behind. The encoder
    fails hard on any image reference it cannot resolve, so nothing else may
    survive.
    """
    factory_soup = BeautifulSoup("", 'html.parser')
    removed = 0
    for img in root.find_all('img'):
        src = img.get('src') or ''
        if src.startswith('data:'):
            continue
        alt = (img.get('alt') or '').strip()
        if alt:
            span = factory_soup.new_tag('span')
            span.string = f" [Image: {alt}] "
            span['style'] = "color:#666;font-size:0.8em;"
            img.replace_with(span)
        else:
            img.decompose()
        removed += 1
    if removed:
        logger.info(f"Removed {removed} images that could not be embedded")
    return removed


def fix_links(root, base_url=None):
    """Absolute hrefs and one consistent link look. Targets are not changed."""
    for a in root.find_all('a'):
        href = a.get('href')
        if href and base_url and not href.startswith(UNRESOLVABLE_HREF_PREFIXES):
            a['href'] = urljoin(base_url, href)
        merge_style(a, LINK_STYLE)


def prune_empty_containers(root):
    """Remove empty containers until none are left. Returns how many were removed."""
    total = 0
    while True:
        removed = 0
        for tag in root.find_all(CONTAINER_TAGS):
            if getattr(tag, 'decomposed', False):
                continue
            if is_empty_container(tag):
                tag.decompose()
                removed += 1
        total += removed
        if not removed:
            return total


def _next_meaningful_sibling(node):
    sibling = node.next_sibling
    while sibling is not None and _is_blank(sibling):
        sibling = sibling.next_sibling
    return sibling


def collapse_line_breaks(root):
    collapsed = 0
    for br in root.find_all('br'):
        nxt = _next_meaningful_sibling(br)
        if isinstance(nxt, Tag) and nxt.name == 'br':
            br.decompose()
            collapsed += 1
    return collapsed


def clean_clone(root, hidden_ids=None, base_url=None):
    """Run the full cleanup over the snapshot, in order. Returns per-step counts."""
    report = {
        'trash': remove_trash(root),
        'hidden': remove_hidden(root, hidden_ids),
        'handlers': strip_event_handlers(root),
        'images': clean_unprocessed_images(root),
    }
    fix_links(root, base_url)
    report['empty'] = prune_empty_containers(root)
    report['line_breaks'] = collapse_line_breaks(root)
    logger.info(
        "Sanitized snapshot: " + ", ".join(f"{k}={v}" for k, v in report.items())
    )
    return report
