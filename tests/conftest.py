import os
import sys
from urllib.parse import urljoin

import pytest
from bs4 import BeautifulSoup, NavigableString

# Setup paths
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

from pagedocx.capture.sanitizer import parse_style
from tests.config import PAGE_URL


class RasterizeFailed(Exception):
    pass


def _refuse(src, width=0, height=0, timeout=8):
    raise RasterizeFailed("canvas is tainted")


class FakeLivePage:
    """
    In-memory stand-in for LivePage, backed by a BeautifulSoup "live" document.

    Computed styles are read from each live element's inline ``style``; image
    width/height come from its attributes. ``visual`` is a list of candidate
    dicts or a callable taking the fake and returning one, evaluated after
    indexing so it can refer to correlation IDs.
    """

    def __init__(self, html, url=PAGE_URL, visual=None, rasterize=None, screenshot=None):
        self.soup = BeautifulSoup(html, 'lxml')
        self._url = url
        self.visual = visual or []
        self.rasterize_fn = rasterize or _refuse
        self.screenshot_fn = screenshot
        self.registry = []
        self.calls = []
        self.style_batches = []

    @property
    def url(self):
        return self._url

    def element(self, selector):
        return self.soup.select_one(selector)

    def id_of(self, selector, attr='data-docx-id'):
        return self.element(selector)[attr]

    async def index_nodes(self, attr):
        self.calls.append('index_nodes')
        self.registry = self.soup.find_all(True)
        for i, el in enumerate(self.registry):
            el[attr] = str(i)
        return len(self.registry)

    async def auto_scroll(self, step, tick, settle):
        self.calls.append('auto_scroll')
        return 1200

    async def visual_candidates(self, attr, selector, math_selector):
        self.calls.append('visual_candidates')
        return self.visual(self) if callable(self.visual) else list(self.visual)

    async def rasterize(self, src, width=0, height=0, timeout=8):
        self.calls.append(('rasterize', src[:40]))
        return self.rasterize_fn(src, width, height, timeout)

    async def screenshot_element(self, attr, node_id, timeout=8):
        if self.screenshot_fn is None:
            raise RasterizeFailed("no screenshot available")
        return self.screenshot_fn(node_id)

    def _text_nodes(self):
        # Comments, CDATA and script text are NavigableString subclasses
        return [n for n in self.soup.body.descendants if type(n) is NavigableString]

    async def formula_text_nodes(self, skip_tags):
        out = []
        for i, node in enumerate(self._text_nodes()):
            if node.parent is None or node.parent.name in skip_tags:
                continue
            text = str(node)
            if '$' in text or '\\(' in text or '\\[' in text:
                out.append({'index': i, 'text': text})
        return out

    async def replace_text_nodes(self, replacements):
        if not replacements:
            return 0
        nodes = self._text_nodes()
        replaced = 0
        for r in replacements:
            if r['index'] >= len(nodes):
                continue
            target = nodes[r['index']]
            if target.parent is None or str(target) != r['text']:
                continue
            span = self.soup.new_tag('span')
            fragment = BeautifulSoup(r['html'], 'html.parser')
            for child in list(fragment.contents):
                span.append(child.extract())
            target.replace_with(span)
            replaced += 1
        return replaced

    async def image_candidates(self, attr, lazy_attrs):
        out = []
        for img in self.soup.find_all('img'):
            src = img.get('src') or ''
            if src and not src.startswith('data:'):
                src = urljoin(self._url, src)
            lazy = {a: img[a] for a in lazy_attrs if img.get(a)}
            out.append({'id': img.get(attr), 'src': src, 'lazy': lazy})
        return out

    async def body_html(self):
        return str(self.soup.body)

    async def computed_styles(self, ids, props, image_props):
        self.style_batches.append(len(ids))
        out = {}
        for node_id in ids:
            index = int(node_id)
            if index >= len(self.registry):
                continue
            el = self.registry[index]
            declared = parse_style(el.get('style'))
            is_img = el.name == 'img'
            names = props + image_props if is_img else props
            styles = {p: declared.get(p, 'normal') for p in names}
            record = {
                'tag': el.name,
                'styles': styles,
                'hidden': declared.get('display') == 'none' or declared.get('visibility') == 'hidden',
            }
            if is_img:
                record['width'] = int(el.get('width') or 0)
                record['height'] = int(el.get('height') or 0)
            out[node_id] = record
        return out


@pytest.fixture
def make_page():
    def factory(html, **kwargs):
        return FakeLivePage(html, **kwargs)
    return factory
