import asyncio

from bs4 import BeautifulSoup

from pagedocx.capture import formulas
from pagedocx.capture.formulas import has_formula, render_formulas, render_raw_latex
from pagedocx.core.errors import FormulaError
from tests.config import FORMULA_PARAGRAPH


def test_currency_is_not_taken_for_a_delimiter():
    out = render_formulas(FORMULA_PARAGRAPH)
    assert out is not None
    soup = BeautifulSoup(out, 'html.parser')
    spans = soup.find_all('span', class_='math-inline')
    assert len(spans) == 1
    assert spans[0].get_text() == "x+y=5"
    assert soup.get_text().startswith("Cost is $5 and ")
    assert soup.get_text().endswith(" inline")


def test_block_delimiters_win_over_inline():
    out = render_formulas("before $$E=mc^2$$ after")
    soup = BeautifulSoup(out, 'html.parser')
    assert soup.find('div', class_='math-display') is not None
    assert soup.find('span', class_='math-inline') is None


def test_bracket_and_paren_delimiters():
    out = render_formulas(r"see \(a_1\) and \[b^2\]")
    soup = BeautifulSoup(out, 'html.parser')
    assert soup.find('span', class_='math-inline').find('sub').get_text() == "1"
    assert soup.find('div', class_='math-display').find('sup').get_text() == "2"


def test_plain_text_is_left_alone():
    assert not has_formula("no maths here")
    assert render_formulas("no maths here") is None
    assert render_formulas("price: $5") is None


def test_failed_formula_keeps_its_source():
    # "\frac{a}" is missing its denominator
    text = r"ok $x^2$ broken $\frac{a}$ end"
    out = render_formulas(text)
    soup = BeautifulSoup(out, 'html.parser')
    assert soup.find('span', class_='math-inline') is not None
    assert r"broken $\frac{a}$ end" in soup.get_text()


def test_nothing_rendered_returns_none(monkeypatch):
    def boom(tex, display=False):
        raise FormulaError("renderer unavailable")

    monkeypatch.setattr(formulas, "render_tex", boom)
    assert render_formulas("a $x$ b") is None


def test_surrounding_text_is_escaped():
    out = render_formulas("<b> & $x$")
    assert out.startswith("&lt;b&gt; &amp; ")


def test_render_raw_latex_rewrites_live_text(make_page):
    page = make_page(f"""
    <html><body>
      <p id="p">{FORMULA_PARAGRAPH}</p>
      <code>$c$</code>
      <textarea>$x$</textarea>
    </body></html>
    """)
    replaced = asyncio.run(render_raw_latex(page))

    assert replaced == 2
    p = page.element('#p')
    assert p.find('span', class_='math-inline') is not None
    assert page.element('textarea').get_text() == "$x$"


def test_render_raw_latex_skips_changed_nodes(make_page):
    page = make_page("<html><body><p>$x$</p></body></html>")

    original = page.formula_text_nodes

    async def stale(skip_tags):
        found = await original(skip_tags)
        # The page changed between the scan and the splice
        page.soup.p.string.replace_with("$y$")
        return found

    page.formula_text_nodes = stale
    assert asyncio.run(render_raw_latex(page)) == 0
    assert page.soup.p.get_text() == "$y$"


def test_deeply_nested_formula_keeps_its_source(make_page):
    nested = "$" + "{" * 2000 + "x" + "}" * 2000 + "$"
    text = f"a {nested} and $y^2$ b"

    out = render_formulas(text)
    soup = BeautifulSoup(out, 'html.parser')
    assert soup.find('span', class_='math-inline').get_text() == "y2"
    assert nested in soup.get_text()

    page = make_page(f"<html><body><p>a {nested} b</p></body></html>")
    assert asyncio.run(render_raw_latex(page)) == 0
    assert page.soup.p.get_text() == f"a {nested} b"
