import asyncio

from pagedocx.capture.patches import apply_image_assets, apply_visual_assets
from pagedocx.capture.snapshot import clone_live_body
from pagedocx.core.config import ID_ATTR
from pagedocx.core.errors import SnapshotError
from pagedocx.core.models import VisualAsset

import pytest


HTML = """
<html><body>
  <p>Energy <span class="katex" id="math"><span>E=mc</span></span> here</p>
  <img id="photo" src="https://example.com/p.jpg" srcset="p2.jpg 2x" loading="lazy" alt="photo">
</body></html>
"""


def _snapshot(page):
    asyncio.run(page.index_nodes(ID_ATTR))
    return asyncio.run(clone_live_body(page))


def test_visual_asset_replaces_node(make_page):
    page = make_page(HTML)
    root = _snapshot(page)
    asset = VisualAsset(node_id=page.id_of('#math'), encoded_image="data:image/png;base64,AAA", width=40, height=12)

    assert apply_visual_assets(root, [asset]) == 1

    assert root.find(id="math") is None
    img = root.find('p').find('img')
    assert img['src'] == "data:image/png;base64,AAA"
    assert img['width'] == "40"
    assert img['height'] == "12"
    assert img['style'] == "vertical-align: middle;"
    assert root.find('p').get_text().split() == ["Energy", "here"]


def test_image_asset_mutates_in_place(make_page):
    page = make_page(HTML)
    root = _snapshot(page)
    asset = VisualAsset(node_id=page.id_of('#photo'), encoded_image="data:image/jpeg;base64,BBB")

    assert apply_image_assets(root, [asset]) == 1

    img = root.find(id="photo")
    assert img['src'] == "data:image/jpeg;base64,BBB"
    assert img['alt'] == "photo"
    assert 'srcset' not in img.attrs
    assert 'loading' not in img.attrs


def test_unmatched_assets_are_dropped(make_page):
    page = make_page(HTML)
    root = _snapshot(page)
    before = str(root)

    assert apply_visual_assets(root, [VisualAsset(node_id="99999", encoded_image="data:,x")]) == 0
    # A non-img target is not an image asset target
    assert apply_image_assets(root, [VisualAsset(node_id=page.id_of('p'), encoded_image="data:,x")]) == 0
    assert str(root) == before


def test_nested_target_of_replaced_node_is_skipped(make_page):
    page = make_page(HTML)
    root = _snapshot(page)
    outer = page.id_of('#math')
    inner = page.id_of('#math > span')

    applied = apply_visual_assets(root, [
        VisualAsset(node_id=outer, encoded_image="data:image/png;base64,OUT"),
        VisualAsset(node_id=inner, encoded_image="data:image/png;base64,IN"),
    ])

    assert applied == 1
    assert [i['src'] for i in root.find_all('img') if i['src'].startswith('data:image/png')] == ["data:image/png;base64,OUT"]


def test_snapshot_is_detached(make_page):
    page = make_page(HTML)
    root = _snapshot(page)
    root.find('p').decompose()
    assert page.element('p') is not None


def test_snapshot_failure_is_fatal(make_page):
    page = make_page(HTML)

    async def broken():
        raise RuntimeError("Target closed")

    page.body_html = broken
    with pytest.raises(SnapshotError):
        asyncio.run(clone_live_body(page))
