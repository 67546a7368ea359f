"""
Capture pipeline.

One run goes from the live page to a delivered .docx. Stages run strictly in
order; per-item failures degrade inside their stage, while a failed snapshot
or encode ends the run with no document delivered.
"""

import logging

from pagedocx.capture.formulas import render_raw_latex
from pagedocx.capture.images import process_images
from pagedocx.capture.node_index import index_live_document
from pagedocx.capture.patches import apply_image_assets, apply_visual_assets
from pagedocx.capture.rasterizer import capture_visual_elements
from pagedocx.capture.sanitizer import clean_clone
from pagedocx.capture.scroll import auto_scroll_page
from pagedocx.capture.snapshot import clone_live_body
from pagedocx.capture.styles import inline_styles
from pagedocx.core.config import DEFAULT_FONT_FAMILY, ExportConfig, PageConfig
from pagedocx.core.errors import EncodeError, ExportError
from pagedocx.plugins import get_encoder

logger = logging.getLogger(__name__)


def _noop_log(message):
    logger.info(message)


async def run_export(live_page, config, deliver, log=None, encoder=None,
                     page_config=None, font_family=DEFAULT_FONT_FAMILY):
    """
    Run one capture against ``live_page`` and hand the document to ``deliver``.

    ``deliver(blob, filename)`` decides where the document goes; whatever it
    returns (usually a path) is returned here.
    """
    log = log or _noop_log
    if not isinstance(config, ExportConfig):
        config = ExportConfig.from_dict(config)
    encoder = encoder or get_encoder('docx')
    page_config = page_config or PageConfig()

    log("Starting export...")

    log("Indexing page elements...")
    await index_live_document(live_page)

    if config.auto_scroll:
        log("Scrolling to load content...")
        await auto_scroll_page(live_page)

    log("Rendering formulas and icons...")
    visual_assets = await capture_visual_elements(live_page, log=log)

    log("Scanning for raw LaTeX...")
    await render_raw_latex(live_page)

    log("Processing page images...")
    image_assets = await process_images(live_page, log=log)

    log("Creating document snapshot...")
    snapshot = await clone_live_body(live_page)

    log("Inlining CSS styles (colors, fonts)...")
    hidden_ids = await inline_styles(live_page, snapshot)

    log("Applying formula images...")
    apply_visual_assets(snapshot, visual_assets)
    apply_image_assets(snapshot, image_assets)

    clean_clone(snapshot, hidden_ids=hidden_ids, base_url=live_page.url)

    log("Generating Word document...")
    html = encoder.build_document_html(snapshot.decode_contents(), font_family)
    try:
        blob = encoder.export_to_word(html, page_config)
    except ExportError:
        raise
    except Exception as e:
        raise EncodeError(f"Document encoding failed: {e}") from e

    result = deliver(blob, encoder.output_filename())
    log("Done!")
    return result
