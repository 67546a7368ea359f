import asyncio
import base64
import io

import pytest
import requests
from PIL import Image

from pagedocx.capture import images
from pagedocx.capture.images import (
    effective_source,
    fetch_with_referrer_fallback,
    is_placeholder,
    process_images,
    to_data_uri,
)
from tests.config import PAGE_ORIGIN, PAGE_URL, TINY_GIF


def _image_bytes(fmt='PNG', size=(3, 2)):
    buffer = io.BytesIO()
    Image.new('RGB', size, (0, 128, 255)).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, content=b"", status_code=200, content_type='image/png'):
        self.content = content
        self.status_code = status_code
        self.headers = {'Content-Type': content_type}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


@pytest.fixture
def fetched(monkeypatch):
    """Record every requests.get and answer with a small PNG."""
    calls = []

    def fake_get(url, headers=None, timeout=None):
        calls.append({'url': url, 'headers': dict(headers or {}), 'timeout': timeout})
        return FakeResponse(_image_bytes())

    monkeypatch.setattr(images.requests, "get", fake_get)
    return calls


def test_placeholders():
    assert is_placeholder("")
    assert is_placeholder(TINY_GIF)
    assert is_placeholder("https://cdn.example.com/img/spacer.gif")
    assert not is_placeholder("https://example.com/a.png")


def test_effective_source_prefers_lazy_attribute():
    lazy = {'data-src': "https://example.com/a.png"}
    assert effective_source(TINY_GIF, lazy, PAGE_URL) == "https://example.com/a.png"
    assert effective_source("https://example.com/real.png", lazy, PAGE_URL) == "https://example.com/real.png"


def test_effective_source_resolves_relative_lazy_url():
    lazy = {'data-original': "../media/b.jpg"}
    assert effective_source("", lazy, PAGE_URL) == "https://example.com/media/b.jpg"


def test_to_data_uri_keeps_native_formats():
    uri = to_data_uri(_image_bytes('JPEG'), 'application/octet-stream')
    assert uri.startswith("data:image/jpeg;base64,")


def test_to_data_uri_normalises_other_formats():
    uri = to_data_uri(_image_bytes('TIFF'), 'image/tiff')
    assert uri.startswith("data:image/png;base64,")
    with Image.open(io.BytesIO(base64.b64decode(uri.split(',', 1)[1]))) as img:
        assert img.format == 'PNG'


def test_to_data_uri_rejects_non_images():
    with pytest.raises(ValueError):
        to_data_uri(b"<html>blocked</html>", 'text/html; charset=utf-8')
    # Undecodable but declared as an image: passed through
    assert to_data_uri(b"<svg/>", 'image/svg+xml').startswith("data:image/svg+xml;base64,")


def test_lazy_image_fetches_absolute_url(make_page, fetched):
    page = make_page(f'<html><body><img src="{TINY_GIF}" data-src="https://example.com/a.png"></body></html>')
    asyncio.run(page.index_nodes('data-docx-id'))

    assets = asyncio.run(process_images(page))

    assert [c['url'] for c in fetched] == ["https://example.com/a.png"]
    assert 'Referer' not in fetched[0]['headers']
    assert fetched[0]['timeout'] == 8
    assert len(assets) == 1
    assert assets[0].node_id == page.id_of('img')
    assert assets[0].encoded_image.startswith("data:image/png;base64,")


def test_embedded_images_are_kept_verbatim(make_page, fetched):
    src = "data:image/png;base64," + "A" * 2500
    page = make_page(f'<html><body><img src="{src}"></body></html>')
    asyncio.run(page.index_nodes('data-docx-id'))

    assets = asyncio.run(process_images(page))

    assert assets[0].encoded_image == src
    assert fetched == []


def test_canvas_result_is_used_first(make_page, fetched):
    page = make_page(
        '<html><body><img src="/pics/c.png"></body></html>',
        rasterize=lambda src, w, h, t: "data:image/png;base64,CANVAS",
    )
    asyncio.run(page.index_nodes('data-docx-id'))

    assets = asyncio.run(process_images(page))

    assert assets[0].encoded_image == "data:image/png;base64,CANVAS"
    assert ('rasterize', "https://example.com/pics/c.png") in page.calls
    assert fetched == []


def test_referrer_retry(monkeypatch):
    calls = []

    def fake_get(url, headers=None, timeout=None):
        calls.append(dict(headers or {}))
        if 'Referer' not in headers:
            return FakeResponse(status_code=403)
        return FakeResponse(_image_bytes())

    monkeypatch.setattr(images.requests, "get", fake_get)

    uri = fetch_with_referrer_fallback("https://img.example.net/x.png", PAGE_URL)

    assert uri.startswith("data:image/png;base64,")
    assert len(calls) == 2
    assert calls[1]['Referer'] == PAGE_ORIGIN


def test_unresolvable_images_produce_no_asset(make_page, monkeypatch):
    def fake_get(url, headers=None, timeout=None):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(images.requests, "get", fake_get)
    page = make_page("""
    <html><body>
      <img src="https://example.com/gone.png">
      <img src="data:image/gif;base64,R0lGOD">
      <img src="https://example.com/also-gone.png">
    </body></html>
    """)
    asyncio.run(page.index_nodes('data-docx-id'))

    assert asyncio.run(process_images(page)) == []


def test_concurrency_is_bounded(make_page, fetched):
    in_flight = 0
    peak = 0

    async def slow_rasterize(src, width=0, height=0, timeout=8):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return "data:image/png;base64,OK"

    body = "".join(f'<img src="/p/{i}.png">' for i in range(12))
    page = make_page(f"<html><body>{body}</body></html>")
    page.rasterize = slow_rasterize
    asyncio.run(page.index_nodes('data-docx-id'))

    messages = []
    assets = asyncio.run(process_images(page, log=messages.append))

    assert len(assets) == 12
    assert peak == 5
    assert messages == ["Processing images: 10/12", "Processing images: 12/12"]
