import pytest

from pagedocx.capture.tex import render_tex
from pagedocx.core.errors import FormulaError


def test_inline_container():
    out = render_tex("x+y=5")
    assert out.startswith('<span class="math-inline"')
    assert "x+y=5" in out


def test_display_container():
    out = render_tex("a^2", display=True)
    assert out.startswith('<div class="math-display"')
    assert "<sup>2</sup>" in out


def test_scripts_and_groups():
    out = render_tex("x_{i+1}^2")
    assert "<sub>i+1</sub>" in out
    assert "<sup>2</sup>" in out


def test_fraction_and_root():
    out = render_tex(r"\frac{a}{b} + \sqrt[3]{x}")
    assert "<sup>a</sup>⁄<sub>b</sub>" in out
    assert "<sup>3</sup>√(x)" in out


def test_symbols_and_functions():
    out = render_tex(r"\alpha \leq \sin \theta")
    assert "α" in out
    assert "≤" in out
    assert "θ" in out
    assert '<span style="font-style: normal;">sin</span>' in out


def test_text_macro_is_upright():
    out = render_tex(r"\text{if } x")
    assert '<span style="font-style: normal;">if </span>' in out


def test_escaped_characters():
    out = render_tex(r"50\% \$")
    assert "50%" in out
    assert "$" in out


@pytest.mark.parametrize("tex", [
    "x^{2",
    "x}",
    "x^",
    r"\frac{a}",
    "a\\",
    "   ",
    "",
])
def test_malformed_expressions_raise(tex):
    with pytest.raises(FormulaError):
        render_tex(tex)


def test_markup_in_source_is_escaped():
    out = render_tex("a<b")
    assert "a&lt;b" in out


def test_deep_nesting_is_malformed():
    with pytest.raises(FormulaError):
        render_tex("{" * 2000 + "x" + "}" * 2000)
    with pytest.raises(FormulaError):
        render_tex("x" + "^{" * 500 + "2" + "}" * 500)


def test_moderate_nesting_renders():
    out = render_tex("{" * 20 + "x" + "}" * 20)
    assert "x" in out
