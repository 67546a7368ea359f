import logging

from bs4 import BeautifulSoup

from pagedocx.core.errors import SnapshotError

logger = logging.getLogger(__name__)


async def clone_live_body(live_page):
    """
    Copy the live ``body`` into a detached BeautifulSoup tree.

    The copy keeps every correlation attribute. Nothing done to it reaches the
    page. Any failure here is fatal to the capture.
    """
    try:
        markup = await live_page.body_html()
    except Exception as e:
        raise SnapshotError(f"Could not read the live document: {e}") from e
    if not markup:
        raise SnapshotError("The live document has no body")

    soup = BeautifulSoup(markup, 'lxml')
    body = soup.body
    if body is None:
        raise SnapshotError("Snapshot markup did not contain a body element")

    logger.info(f"Snapshot created ({len(markup)} bytes of markup)")
    return body
