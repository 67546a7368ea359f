"""
Inline formula renderer.

Finds raw TeX written straight into page text (``$$...$$``, ``\\[...\\]``,
``$...$``, ``\\(...\\)``) and swaps each text node that contains some for a
span holding rendered math markup.

Known limitation: a bare ``$number`` can still be taken for a delimiter
(``$5$`` renders as math). Only the currency shape ``$<digit>...<space>...$``
is rejected.
"""

import html
import logging
import re

from pagedocx.capture.tex import render_tex
from pagedocx.core.errors import FormulaError
from pagedocx.core.models import TextCandidate

logger = logging.getLogger(__name__)

SKIP_PARENT_TAGS = ['script', 'style', 'noscript', 'textarea']

# Block alternatives come first so "$$x$$" is never read as two inline spans
FORMULA_PATTERN = re.compile(
    r'(?P<block_dollar>\$\$(?P<bd>[\s\S]+?)\$\$)'
    r'|(?P<block_bracket>\\\[(?P<bb>[\s\S]+?)\\\])'
    r'|(?P<inline_dollar>\$(?!\d[^\$\n]*\s)(?P<id>[^\$\n]+?)\$)'
    r'|(?P<inline_paren>\\\((?P<ip>[\s\S]+?)\\\))'
)


def has_formula(text):
    return bool(text) and FORMULA_PATTERN.search(text) is not None


def _render_match(match):
    if match.group('block_dollar') is not None:
        return render_tex(match.group('bd'), display=True)
    if match.group('block_bracket') is not None:
        return render_tex(match.group('bb'), display=True)
    if match.group('inline_dollar') is not None:
        return render_tex(match.group('id'), display=False)
    return render_tex(match.group('ip'), display=False)


def render_formulas(text):
    """
    Return replacement HTML for ``text``, or None when nothing in it rendered.

    Text outside the formulas is escaped so it survives as literal text. A
    formula that fails to render is emitted as its original source.
    """
    if not has_formula(text):
        return None

    parts = []
    rendered_any = False
    cursor = 0
    for match in FORMULA_PATTERN.finditer(text):
        parts.append(html.escape(text[cursor:match.start()], quote=False))
        try:
            parts.append(_render_match(match))
            rendered_any = True
        except FormulaError as e:
            logger.debug(f"Formula left as text ({e}): {match.group(0)[:60]}")
            parts.append(html.escape(match.group(0), quote=False))
        cursor = match.end()
    parts.append(html.escape(text[cursor:], quote=False))

    if not rendered_any:
        return None
    return "".join(parts)


async def render_raw_latex(live_page):
    """Render raw TeX found in the live document's text nodes, in place. Returns the count replaced."""
    raw = await live_page.formula_text_nodes(SKIP_PARENT_TAGS)
    candidates = [TextCandidate(index=item['index'], text=item['text']) for item in raw or []]

    replacements = []
    for candidate in candidates:
        new_html = render_formulas(candidate.text)
        if new_html is not None:
            replacements.append({"index": candidate.index, "text": candidate.text, "html": new_html})

    replaced = await live_page.replace_text_nodes(replacements)
    logger.info(f"Raw TeX: {replaced} text nodes rendered ({len(candidates)} scanned)")
    return replaced
