import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------------
# Pipeline constants
# -------------------------------------------------------------------------

ID_ATTR = "data-docx-id"

VISIBILITY_FLOOR_PX = 5
GLYPH_MIN_SIZE_PX = 16

IMAGE_BATCH_SIZE = 5
ASSET_TIMEOUT_SECONDS = 8
EMBEDDED_SIZE_FLOOR = 2000
STYLE_CHUNK_SIZE = 100

LAZY_ATTRS = ['data-src', 'data-original', 'data-original-src', 'data-url', 'data-lazy-src']
SPACER_PATTERNS = ['spacer.gif']

MATH_SELECTORS = [
    '.MathJax', '.MathJax_Display', 'mjx-container', '.katex', '.katex-display'
]
ICON_SELECTORS = [
    '.fa', '.fas', '.far', '.fal', '.fab',       # FontAwesome
    '.material-icons', '.material-icons-outlined',  # Google Material
    '.glyphicon',                                # Bootstrap
    '.icon', '.iconfont',
    'svg',
]

STYLE_PROPERTIES = [
    'color', 'background-color',
    'font-size', 'font-family', 'font-weight', 'font-style',
    'text-align', 'text-decoration',
    'border', 'display',
]
IMAGE_STYLE_PROPERTIES = ['width', 'height']
SUPPRESSED_STYLE_VALUES = {'rgba(0, 0, 0, 0)', 'transparent', 'auto', 'normal'}

DEFAULT_FONT_FAMILY = "'SimSun', 'Arial', sans-serif"
OUTPUT_PREFIX = "Page_Export_"

# Auto-scroll (step size in px, tick in ms, settle delay in ms)
SCROLL_STEP_PX = 100
SCROLL_TICK_MS = 20
SCROLL_SETTLE_MS = 500


TRUE_WORDS = ("true", "1", "yes", "on")


def parse_flag(value):
    """Read a boolean that may arrive as a string from a JSON message."""
    if isinstance(value, str):
        return value.strip().lower() in TRUE_WORDS
    return bool(value)


@dataclass
class ExportConfig:
    """The only externally supplied capture parameter set."""
    auto_scroll: bool = False

    @classmethod
    def from_dict(cls, data):
        if data is None:
            data = {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring export config of type {type(data).__name__}, using defaults")
            data = {}
        value = data.get('autoScroll', data.get('auto_scroll', False))
        return cls(auto_scroll=parse_flag(value))


@dataclass
class PageConfig:
    """Page setup handed to the document encoder. Margins are in twips."""
    orientation: str = 'portrait'
    margins: dict = field(default_factory=lambda: {'top': 720, 'bottom': 720, 'left': 720, 'right': 720})


DEFAULT_SETTINGS = {
    "output_dir": ".",
    "headless": True,
    "viewport": {"width": 1920, "height": 1080},
    "user_agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    ),
    "navigation_timeout_ms": 15000,
    "font_family": DEFAULT_FONT_FAMILY,
}


class Settings:
    """
    Runtime settings for the command line front end.

    Values come from an optional ``pagedocx.json`` laid over DEFAULT_SETTINGS.
    The file is looked up next to the executable when frozen, otherwise in the
    working directory.
    """

    def __init__(self, config_path=None):
        if config_path is not None:
            self.config_path = Path(config_path)
        elif getattr(sys, 'frozen', False):
            self.config_path = Path(sys.executable).parent / "pagedocx.json"
        else:
            self.config_path = Path("pagedocx.json").resolve()

        self.values = dict(DEFAULT_SETTINGS)
        self.values.update(self._read())

    def _read(self):
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read settings from {self.config_path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Ignoring settings file {self.config_path}: top level must be an object")
            return {}
        unknown = set(data) - set(DEFAULT_SETTINGS)
        if unknown:
            logger.warning(f"Ignoring unknown settings: {', '.join(sorted(unknown))}")
        return {k: v for k, v in data.items() if k in DEFAULT_SETTINGS}

    def get(self, key, default=None):
        return self.values.get(key, default)

    def override(self, **kwargs):
        """Apply non-None overrides (typically from command line flags)."""
        for key, value in kwargs.items():
            if value is not None:
                self.values[key] = value
        return self

    @property
    def output_dir(self):
        return Path(self.values["output_dir"])
