"""
Small TeX-to-HTML markup renderer.

Covers what shows up in prose: superscripts, subscripts, groups, fractions,
roots, Greek letters and the common operators. Anything it cannot parse
raises FormulaError so callers can keep the source text instead.
"""

from bs4 import BeautifulSoup

from pagedocx.core.errors import FormulaError

SYMBOLS = {
    'alpha': 'α', 'beta': 'β', 'gamma': 'γ', 'delta': 'δ', 'epsilon': 'ε', 'varepsilon': 'ε',
    'zeta': 'ζ', 'eta': 'η', 'theta': 'θ', 'vartheta': 'ϑ', 'iota': 'ι', 'kappa': 'κ',
    'lambda': 'λ', 'mu': 'μ', 'nu': 'ν', 'xi': 'ξ', 'pi': 'π', 'rho': 'ρ', 'sigma': 'σ',
    'tau': 'τ', 'upsilon': 'υ', 'phi': 'φ', 'varphi': 'φ', 'chi': 'χ', 'psi': 'ψ', 'omega': 'ω',
    'Gamma': 'Γ', 'Delta': 'Δ', 'Theta': 'Θ', 'Lambda': 'Λ', 'Xi': 'Ξ', 'Pi': 'Π',
    'Sigma': 'Σ', 'Phi': 'Φ', 'Psi': 'Ψ', 'Omega': 'Ω',
    'infty': '∞', 'partial': '∂', 'nabla': '∇', 'sum': '∑', 'prod': '∏', 'int': '∫',
    'rightarrow': '→', 'to': '→', 'leftarrow': '←', 'Rightarrow': '⇒', 'Leftarrow': '⇐',
    'leftrightarrow': '↔', 'iff': '⇔', 'mapsto': '↦',
    'approx': '≈', 'neq': '≠', 'ne': '≠', 'le': '≤', 'leq': '≤', 'ge': '≥', 'geq': '≥',
    'equiv': '≡', 'sim': '∼', 'propto': '∝', 'pm': '±', 'mp': '∓',
    'times': '×', 'cdot': '·', 'div': '÷', 'ast': '∗', 'circ': '∘',
    'in': '∈', 'notin': '∉', 'subset': '⊂', 'subseteq': '⊆', 'supset': '⊃', 'cup': '∪', 'cap': '∩',
    'forall': '∀', 'exists': '∃', 'neg': '¬', 'land': '∧', 'lor': '∨', 'emptyset': '∅',
    'ldots': '…', 'cdots': '⋯', 'dots': '…', 'prime': '′', 'degree': '°',
    'langle': '⟨', 'rangle': '⟩', 'lceil': '⌈', 'rceil': '⌉', 'lfloor': '⌊', 'rfloor': '⌋',
    'quad': ' ', 'qquad': '  ',
}

FUNCTIONS = {
    'sin', 'cos', 'tan', 'cot', 'sec', 'csc', 'arcsin', 'arccos', 'arctan',
    'sinh', 'cosh', 'tanh', 'log', 'ln', 'lg', 'exp', 'lim', 'max', 'min',
    'sup', 'inf', 'det', 'gcd', 'deg', 'dim', 'arg', 'mod',
}

# Macros whose single argument is rendered upright (or bold)
TEXT_MACROS = {'text', 'textrm', 'mathrm', 'operatorname', 'mbox', 'textit', 'mathit'}
BOLD_MACROS = {'mathbf', 'textbf', 'boldsymbol'}
IGNORED_MACROS = {'left', 'right', 'displaystyle', 'limits', 'nolimits', 'big', 'Big', 'bigg', 'Bigg'}

ESCAPED_CHARS = {',': ' ', ';': ' ', ':': ' ', '!': '', ' ': ' ',
                 '{': '{', '}': '}', '$': '$', '%': '%', '&': '&', '#': '#', '_': '_', '\\': ' '}

_SPECIAL = ('^', '_', '{', '}', '\\')

# Deeper nesting than this is treated as malformed
MAX_NESTING = 50

INLINE_STYLE = "font-family: 'Times New Roman', serif; font-style: italic;"
DISPLAY_STYLE = "font-family: 'Times New Roman', serif; font-style: italic; text-align: center; margin: 0.5em 0;"


class _TexParser:

    def __init__(self, factory, tex):
        self.factory = factory
        self.tex = tex
        self.cursor = 0
        self.n = len(tex)
        self.depth = 0

    def _peek(self):
        return self.tex[self.cursor] if self.cursor < self.n else None

    def _skip_spaces(self):
        while self.cursor < self.n and self.tex[self.cursor].isspace():
            self.cursor += 1

    def _descend(self):
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise FormulaError(f"Nesting deeper than {MAX_NESTING} levels")

    def parse(self, container):
        self._parse_sequence(container, in_group=False)
        return container

    def _parse_sequence(self, parent, in_group):
        self._descend()
        try:
            self._parse_sequence_body(parent, in_group)
        finally:
            self.depth -= 1

    def _parse_sequence_body(self, parent, in_group):
        while self.cursor < self.n:
            char = self.tex[self.cursor]

            if char in ('^', '_'):
                self.cursor += 1
                elem = self.factory.new_tag('sup' if char == '^' else 'sub')
                self._parse_argument(elem, f"'{char}' without an argument")
                parent.append(elem)

            elif char == '{':
                self.cursor += 1
                group = self.factory.new_tag('span')
                self._parse_sequence(group, in_group=True)
                parent.append(group)

            elif char == '}':
                if not in_group:
                    raise FormulaError(f"Unbalanced '}}' at position {self.cursor}")
                self.cursor += 1
                return

            elif char == '\\':
                self._parse_macro(parent)

            else:
                start = self.cursor
                while self.cursor < self.n and self.tex[self.cursor] not in _SPECIAL:
                    self.cursor += 1
                parent.append(self.factory.new_string(self.tex[start:self.cursor]))

        if in_group:
            raise FormulaError("Unbalanced '{': group is never closed")

    def _parse_argument(self, parent, missing_message):
        self._descend()
        try:
            self._parse_argument_body(parent, missing_message)
        finally:
            self.depth -= 1

    def _parse_argument_body(self, parent, missing_message):
        self._skip_spaces()
        char = self._peek()
        if char is None or char in ('}', '^', '_'):
            raise FormulaError(missing_message)
        if char == '{':
            self.cursor += 1
            self._parse_sequence(parent, in_group=True)
        elif char == '\\':
            self._parse_macro(parent)
        else:
            parent.append(self.factory.new_string(char))
            self.cursor += 1

    def _read_macro_name(self):
        # cursor sits on the backslash
        self.cursor += 1
        start = self.cursor
        while self.cursor < self.n and self.tex[self.cursor].isalpha():
            self.cursor += 1
        if self.cursor == start:
            if self.cursor >= self.n:
                raise FormulaError("Trailing backslash")
            self.cursor += 1
        return self.tex[start:self.cursor]

    def _parse_macro(self, parent):
        name = self._read_macro_name()

        if not name.isalpha():
            parent.append(self.factory.new_string(ESCAPED_CHARS.get(name, name)))
        elif name == 'frac' or name == 'dfrac' or name == 'tfrac':
            frac = self.factory.new_tag('span')
            num = self.factory.new_tag('sup')
            den = self.factory.new_tag('sub')
            self._parse_argument(num, "\\frac is missing its numerator")
            self._parse_argument(den, "\\frac is missing its denominator")
            frac.append(num)
            frac.append(self.factory.new_string('⁄'))
            frac.append(den)
            parent.append(frac)
        elif name == 'sqrt':
            self._skip_spaces()
            if self._peek() == '[':
                end = self.tex.find(']', self.cursor)
                if end < 0:
                    raise FormulaError("\\sqrt index is never closed")
                index = self.factory.new_tag('sup')
                index.string = self.tex[self.cursor + 1:end]
                parent.append(index)
                self.cursor = end + 1
            parent.append(self.factory.new_string('√('))
            self._parse_argument(parent, "\\sqrt is missing its argument")
            parent.append(self.factory.new_string(')'))
        elif name in TEXT_MACROS or name in BOLD_MACROS:
            span = self.factory.new_tag('b' if name in BOLD_MACROS else 'span')
            if name in TEXT_MACROS:
                span['style'] = "font-style: normal;"
            self._parse_argument(span, f"\\{name} is missing its argument")
            parent.append(span)
        elif name in IGNORED_MACROS:
            pass
        elif name in SYMBOLS:
            parent.append(self.factory.new_string(SYMBOLS[name]))
        elif name in FUNCTIONS:
            span = self.factory.new_tag('span')
            span['style'] = "font-style: normal;"
            span.string = name
            parent.append(span)
        else:
            parent.append(self.factory.new_string(name))


def render_tex(tex, display=False):
    """
    Render a TeX expression to an HTML fragment string.

    Display mode produces a block (``div.math-display``), inline mode a
    ``span.math-inline``. Raises FormulaError for malformed expressions.
    """
    if not tex or not tex.strip():
        raise FormulaError("Empty expression")

    factory = BeautifulSoup("", 'html.parser')
    container = factory.new_tag('div' if display else 'span')
    container['class'] = 'math-display' if display else 'math-inline'
    container['style'] = DISPLAY_STYLE if display else INLINE_STYLE
    try:
        _TexParser(factory, tex.strip()).parse(container)
        return str(container)
    except RecursionError as e:
        raise FormulaError("Expression nested too deeply") from e
