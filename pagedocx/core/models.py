from dataclasses import dataclass, field
from typing import Optional


@dataclass
class VisualAsset:
    """
    An embeddable image standing in for a live node.

    ``node_id`` is the correlation ID of the node it replaces (math/icon
    assets) or updates (resolved images).
    """
    node_id: str
    encoded_image: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class AssetResult:
    """Tagged outcome of one per-item capture: an asset, or the reason there is none."""
    node_id: Optional[str]
    asset: Optional[VisualAsset] = None
    reason: str = ""

    @classmethod
    def ok(cls, asset):
        return cls(node_id=asset.node_id, asset=asset)

    @classmethod
    def missing(cls, node_id, reason):
        return cls(node_id=node_id, asset=None, reason=reason)

    @property
    def succeeded(self):
        return self.asset is not None


@dataclass
class VisualCandidate:
    """Live-page facts about one math/icon element, as reported by the browser."""
    node_id: str
    tag: str
    width: float
    height: float
    is_math: bool = False
    svg_markup: Optional[str] = None
    svg_error: Optional[str] = None
    inner_svg_markup: Optional[str] = None
    inner_svg_error: Optional[str] = None
    pseudo_content: Optional[str] = None
    font_family: str = ""
    font_size: str = ""
    font_weight: str = ""
    font_style: str = ""
    color: str = ""
    font_sources: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        pseudo = data.get('pseudo') or {}
        return cls(
            node_id=str(data.get('id')),
            tag=(data.get('tag') or '').lower(),
            width=float(data.get('width') or 0),
            height=float(data.get('height') or 0),
            is_math=bool(data.get('isMath')),
            svg_markup=data.get('svg'),
            svg_error=data.get('svgError'),
            inner_svg_markup=data.get('innerSvg'),
            inner_svg_error=data.get('innerSvgError'),
            pseudo_content=pseudo.get('content'),
            font_family=pseudo.get('fontFamily') or '',
            font_size=pseudo.get('fontSize') or '',
            font_weight=pseudo.get('fontWeight') or '',
            font_style=pseudo.get('fontStyle') or '',
            color=pseudo.get('color') or '',
            font_sources=[
                {'url': s} if isinstance(s, str) else dict(s)
                for s in pseudo.get('fontSources') or []
            ],
        )


@dataclass
class ImageCandidate:
    """One live ``img`` element: its resolved ``src`` property and lazy-load attributes."""
    node_id: Optional[str]
    src: str = ""
    lazy: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data):
        node_id = data.get('id')
        return cls(
            node_id=str(node_id) if node_id is not None else None,
            src=data.get('src') or '',
            lazy=dict(data.get('lazy') or {}),
        )


@dataclass
class TextCandidate:
    """A live text node that may contain TeX, addressed by its tree-walker index."""
    index: int
    text: str
