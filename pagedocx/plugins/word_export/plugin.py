import base64
import io
import logging
import re
import tempfile
import time
from pathlib import Path
from urllib.parse import unquote_to_bytes

from bs4 import BeautifulSoup
from docx import Document
from docx.enum.section import WD_ORIENT
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Twips
from htmldocx import HtmlToDocx
from PIL import Image, UnidentifiedImageError

from pagedocx.core.config import DEFAULT_FONT_FAMILY, OUTPUT_PREFIX, PageConfig
from pagedocx.core.errors import EncodeError

logger = logging.getLogger(__name__)

PLUGIN_METADATA = {
    'name': 'Word Export',
    'description': 'Encodes a sanitized page snapshot as a .docx document.',
    'extension': 'docx',
    'version': '0.3.0',
}

# Constants
MAX_EXPORT_HTML_SIZE = 50 * 1024 * 1024  # 50 MB

IMAGE_EXTENSIONS = {'PNG': 'png', 'JPEG': 'jpg', 'GIF': 'gif', 'BMP': 'bmp'}


def build_document_html(body_markup, font_family=DEFAULT_FONT_FAMILY):
    """Wrap snapshot markup in the fixed document shell."""
    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="UTF-8">
    <style>
      body {{ font-family: {font_family}; }}
    </style>
  </head>
  <body>
    {body_markup}
  </body>
</html>
"""


def add_bookmark(paragraph, bookmark_name, bookmark_id):
    """Add a bookmark to a paragraph in a Word document."""
    bookmark_start = OxmlElement('w:bookmarkStart')
    bookmark_start.set(qn('w:id'), str(bookmark_id))
    bookmark_start.set(qn('w:name'), bookmark_name)

    bookmark_end = OxmlElement('w:bookmarkEnd')
    bookmark_end.set(qn('w:id'), str(bookmark_id))

    paragraph._element.insert(0, bookmark_start)
    paragraph._element.append(bookmark_end)


def _decode_data_uri(src):
    header, _, payload = src.partition(',')
    if ';base64' in header:
        return base64.b64decode(payload)
    return unquote_to_bytes(payload)


def materialize_images(soup, directory):
    """
    Write every ``data:`` image to a file and point ``src`` at it.

    htmldocx only loads images from paths or URLs. Images Pillow cannot open
    (e.g. SVG) become their alt-text placeholder, or are dropped.
    """
    factory_soup = BeautifulSoup("", 'html.parser')
    written = 0
    for n, img in enumerate(soup.find_all('img')):
        src = img.get('src') or ''
        if not src.startswith('data:'):
            # Sanitized snapshots never get here; stay safe for direct callers
            logger.warning(f"Word Export: dropping non-embedded image '{src[:80]}'")
            img.decompose()
            continue
        try:
            data = _decode_data_uri(src)
            with Image.open(io.BytesIO(data)) as picture:
                ext = IMAGE_EXTENSIONS.get(picture.format)
                if ext is None:
                    buffer = io.BytesIO()
                    picture.convert('RGBA').save(buffer, format='PNG')
                    data, ext = buffer.getvalue(), 'png'
        except (ValueError, UnidentifiedImageError, OSError) as e:
            logger.debug(f"Word Export: image {n} not embeddable: {e}")
            alt = (img.get('alt') or '').strip()
            if alt:
                span = factory_soup.new_tag('span')
                span.string = f" [Image: {alt}] "
                img.replace_with(span)
            else:
                img.decompose()
            continue

        path = Path(directory) / f"image_{n}.{ext}"
        path.write_bytes(data)
        img['src'] = str(path)
        written += 1
    return written


def apply_page_config(document, page_config):
    section = document.sections[0]
    if page_config.orientation == 'landscape':
        section.orientation = WD_ORIENT.LANDSCAPE
        if section.page_width < section.page_height:
            section.page_width, section.page_height = section.page_height, section.page_width
    else:
        section.orientation = WD_ORIENT.PORTRAIT
        if section.page_width > section.page_height:
            section.page_width, section.page_height = section.page_height, section.page_width
    margins = page_config.margins
    section.top_margin = Twips(margins.get('top', 720))
    section.bottom_margin = Twips(margins.get('bottom', 720))
    section.left_margin = Twips(margins.get('left', 720))
    section.right_margin = Twips(margins.get('right', 720))


SHELL_FONT_RE = re.compile(r"body\s*\{[^}]*font-family\s*:\s*([^;}]+)", re.IGNORECASE)


def apply_shell_font(document, soup):
    """
    Move the shell stylesheet's body font onto the Normal style.

    htmldocx does not read stylesheets, so the <style> blocks are removed here.
    """
    font_name = None
    for style in soup.find_all('style'):
        match = SHELL_FONT_RE.search(style.get_text())
        if match and font_name is None:
            font_name = match.group(1).split(',')[0].strip().strip("'\"")
        style.decompose()
    if not font_name:
        return None

    normal = document.styles['Normal']
    normal.font.name = font_name
    rpr = normal.element.get_or_add_rPr()
    rpr.get_or_add_rFonts().set(qn('w:eastAsia'), font_name)
    return font_name


def fit_pictures(document):
    """Scale pictures wider than the text column down to fit, keeping their aspect ratio."""
    section = document.sections[0]
    usable = section.page_width - section.left_margin - section.right_margin
    for shape in document.inline_shapes:
        if shape.width and shape.width > usable:
            ratio = usable / shape.width
            shape.height = int(shape.height * ratio)
            shape.width = int(usable)


def export_to_word(html_content: str, page_config=None) -> bytes:
    """
    Exports HTML content to a Word (.docx) file byte stream.
    """
    page_config = page_config or PageConfig()

    # Size Check
    html_size = len(html_content.encode('utf-8'))
    if html_size > MAX_EXPORT_HTML_SIZE:
        raise ValueError(f"Content too large ({html_size/1024/1024:.2f} MB). Max {MAX_EXPORT_HTML_SIZE/1024/1024} MB.")

    logger.info(f"Generating Word Document from {html_size} bytes of HTML...")

    soup = BeautifulSoup(html_content, 'lxml')

    heading_ids = {}
    for heading in soup.find_all(['h1', 'h2', 'h3', 'h4', 'h5', 'h6']):
        if heading.get('id'):
            heading_ids[heading.get_text(strip=True)] = heading.get('id')

    doc = Document()
    apply_page_config(doc, page_config)
    apply_shell_font(doc, soup)

    with tempfile.TemporaryDirectory(prefix="pagedocx_") as tmp:
        materialize_images(soup, tmp)
        new_parser = HtmlToDocx()
        try:
            new_parser.add_html_to_document(str(soup), doc)
        except Exception as e:
            logger.error(f"HtmlToDocx conversion failed: {e}")
            raise EncodeError(f"Document encoding failed: {e}") from e

    fit_pictures(doc)

    # Post-processing (Bookmarks)
    bookmark_id = 0
    for paragraph in doc.paragraphs:
        if paragraph.style.name.startswith('Heading') and paragraph.text.strip() in heading_ids:
            add_bookmark(paragraph, heading_ids[paragraph.text.strip()], bookmark_id)
            bookmark_id += 1

    # Post-processing (Styles - Table Grid)
    for table in doc.tables:
        table.style = 'Table Grid'

    # Save to Buffer
    buffer = io.BytesIO()
    doc.save(buffer)
    buffer.seek(0)

    logger.info("Word export complete.")
    return buffer.getvalue()


def output_filename(now=None):
    """Timestamped output name, e.g. Page_Export_1700000000000.docx."""
    millis = int((time.time() if now is None else now) * 1000)
    return f"{OUTPUT_PREFIX}{millis}.{PLUGIN_METADATA['extension']}"


def save_to_directory(output_dir):
    """Delivery callable that writes the blob into ``output_dir`` and returns the file path."""
    output_dir = Path(output_dir)

    def deliver(blob, filename):
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / filename
        path.write_bytes(blob)
        logger.info(f"Saved {path} ({len(blob)} bytes)")
        return path

    return deliver
