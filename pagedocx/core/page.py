"""
Live page adapter.

Every question the pipeline asks about the rendered page goes through
``LivePage``. Each method evaluates one small script in the page with
Playwright and returns plain JSON-able data; no Playwright handles leak out.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)

# Registry of indexed elements, kept on window so later scripts can resolve a
# correlation ID without re-scanning the document.
_NODE_REGISTRY = "__pagedocxNodes"

INDEX_NODES_JS = """
({attr, registry}) => {
  const nodes = Array.from(document.querySelectorAll('*'));
  nodes.forEach((el, i) => el.setAttribute(attr, String(i)));
  window[registry] = nodes;
  return nodes.length;
}
"""

AUTO_SCROLL_JS = """
({step, tick, settle}) => new Promise(resolve => {
  let total = 0;
  const timer = setInterval(() => {
    const scrollHeight = document.body.scrollHeight;
    window.scrollBy(0, step);
    total += step;
    if (total >= scrollHeight || (window.innerHeight + window.scrollY) >= scrollHeight) {
      clearInterval(timer);
      window.scrollTo(0, 0);
      setTimeout(() => resolve(total), settle);
    }
  }, tick);
})
"""

VISUAL_CANDIDATES_JS = """
({attr, selector, mathSelector}) => {
  const serialize = (svg) => {
    try {
      return {markup: new XMLSerializer().serializeToString(svg)};
    } catch (e) {
      return {error: String(e)};
    }
  };

  const fontCache = new Map();
  const fontSources = (family) => {
    const wanted = (family || '').split(',')[0].replace(/['"]/g, '').trim().toLowerCase();
    if (!wanted) return [];
    if (fontCache.has(wanted)) return fontCache.get(wanted);
    const faces = [];
    for (const sheet of Array.from(document.styleSheets)) {
      let rules;
      try { rules = sheet.cssRules; } catch (e) { continue; }
      for (const rule of Array.from(rules || [])) {
        if (rule.type !== CSSRule.FONT_FACE_RULE) continue;
        const fam = (rule.style.getPropertyValue('font-family') || '').replace(/['"]/g, '').trim().toLowerCase();
        if (fam !== wanted) continue;
        const src = rule.style.getPropertyValue('src') || '';
        const weight = rule.style.getPropertyValue('font-weight') || 'normal';
        const fontStyle = rule.style.getPropertyValue('font-style') || 'normal';
        const re = /url\\(\\s*['"]?([^'")]+)['"]?\\s*\\)/g;
        let m;
        while ((m = re.exec(src))) {
          try {
            faces.push({url: new URL(m[1], sheet.href || document.baseURI).href, weight, style: fontStyle});
          } catch (e) {}
        }
      }
    }
    fontCache.set(wanted, faces);
    return faces;
  };

  const out = [];
  document.querySelectorAll(selector).forEach(el => {
    const id = el.getAttribute(attr);
    if (!id) return;
    if (el.parentElement && el.parentElement.closest(selector)) return;

    const rect = el.getBoundingClientRect();
    const item = {
      id,
      tag: el.tagName.toLowerCase(),
      width: Math.round(rect.width),
      height: Math.round(rect.height),
      isMath: el.matches(mathSelector),
    };

    if (item.tag === 'svg') {
      const s = serialize(el);
      item.svg = s.markup || null;
      item.svgError = s.error || null;
    } else {
      const inner = el.querySelector('svg');
      if (inner) {
        const s = serialize(inner);
        item.innerSvg = s.markup || null;
        item.innerSvgError = s.error || null;
      } else {
        const style = window.getComputedStyle(el, '::before');
        item.pseudo = {
          content: style.content,
          fontFamily: style.fontFamily,
          fontSize: style.fontSize,
          fontWeight: style.fontWeight,
          fontStyle: style.fontStyle,
          color: style.color,
          fontSources: fontSources(style.fontFamily),
        };
      }
    }
    out.push(item);
  });
  return out;
}
"""

RASTERIZE_JS = """
async ({src, width, height, timeout}) => {
  const img = new Image();
  img.crossOrigin = 'anonymous';
  await new Promise((resolve, reject) => {
    const timer = setTimeout(() => reject(new Error('Image load timeout')), timeout);
    img.onload = () => { clearTimeout(timer); resolve(); };
    img.onerror = () => { clearTimeout(timer); reject(new Error('Image decode failed')); };
    img.src = src;
  });
  const canvas = document.createElement('canvas');
  canvas.width = width || img.naturalWidth;
  canvas.height = height || img.naturalHeight;
  if (!canvas.width || !canvas.height) throw new Error('Image has no size');
  canvas.getContext('2d').drawImage(img, 0, 0, canvas.width, canvas.height);
  return canvas.toDataURL('image/png');
}
"""

FORMULA_TEXT_NODES_JS = """
({skip}) => {
  const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT, null);
  const out = [];
  let index = 0;
  let node;
  while ((node = walker.nextNode())) {
    const i = index++;
    const parent = node.parentNode;
    if (!parent || skip.includes(parent.nodeName)) continue;
    const text = node.nodeValue;
    if (text && (text.includes('$') || text.includes('\\\\(') || text.includes('\\\\['))) {
      out.push({index: i, text});
    }
  }
  return out;
}
"""

REPLACE_TEXT_NODES_JS = """
({replacements}) => {
  const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT, null);
  const nodes = [];
  let node;
  while ((node = walker.nextNode())) nodes.push(node);
  let replaced = 0;
  for (const r of replacements) {
    const target = nodes[r.index];
    if (!target || !target.parentNode || target.nodeValue !== r.text) continue;
    const span = document.createElement('span');
    span.innerHTML = r.html;
    target.parentNode.replaceChild(span, target);
    replaced++;
  }
  return replaced;
}
"""

IMAGE_CANDIDATES_JS = """
({attr, lazyAttrs}) => Array.from(document.querySelectorAll('img')).map(img => {
  const lazy = {};
  for (const a of lazyAttrs) {
    const v = img.getAttribute(a);
    if (v) lazy[a] = v;
  }
  return {id: img.getAttribute(attr), src: img.src || '', lazy};
})
"""

BODY_HTML_JS = "() => document.body.outerHTML"

COMPUTED_STYLES_JS = """
({registry, ids, props, imageProps}) => {
  const nodes = window[registry] || [];
  const out = {};
  for (const id of ids) {
    const el = nodes[Number(id)];
    if (!el || !el.isConnected) continue;
    const cs = window.getComputedStyle(el);
    const isImg = el.tagName === 'IMG';
    const styles = {};
    for (const p of (isImg ? props.concat(imageProps) : props)) styles[p] = cs.getPropertyValue(p);
    const rec = {
      tag: el.tagName.toLowerCase(),
      styles,
      hidden: cs.display === 'none' || cs.visibility === 'hidden',
    };
    if (isImg) {
      rec.width = el.width;
      rec.height = el.height;
    }
    out[id] = rec;
  }
  return out;
}
"""


class LivePage:
    """Adapter over a Playwright ``Page`` exposing the queries the pipeline needs."""

    def __init__(self, page):
        self.page = page

    @property
    def url(self):
        return self.page.url

    async def index_nodes(self, attr):
        return await self.page.evaluate(INDEX_NODES_JS, {"attr": attr, "registry": _NODE_REGISTRY})

    async def auto_scroll(self, step, tick, settle):
        return await self.page.evaluate(AUTO_SCROLL_JS, {"step": step, "tick": tick, "settle": settle})

    async def visual_candidates(self, attr, selector, math_selector):
        return await self.page.evaluate(
            VISUAL_CANDIDATES_JS,
            {"attr": attr, "selector": selector, "mathSelector": math_selector},
        )

    async def rasterize(self, src, width=0, height=0, timeout=8):
        """Paint ``src`` onto an in-page canvas and return a PNG data URI.

        Raises when the image cannot load in time, cannot decode, or taints the canvas.
        """
        args = {"src": src, "width": int(width or 0), "height": int(height or 0), "timeout": int(timeout * 1000)}
        return await asyncio.wait_for(self.page.evaluate(RASTERIZE_JS, args), timeout + 1)

    async def screenshot_element(self, attr, node_id, timeout=8):
        locator = self.page.locator(f'[{attr}="{node_id}"]')
        return await locator.first.screenshot(timeout=timeout * 1000, omit_background=True)

    async def formula_text_nodes(self, skip_tags):
        return await self.page.evaluate(FORMULA_TEXT_NODES_JS, {"skip": [t.upper() for t in skip_tags]})

    async def replace_text_nodes(self, replacements):
        if not replacements:
            return 0
        return await self.page.evaluate(REPLACE_TEXT_NODES_JS, {"replacements": replacements})

    async def image_candidates(self, attr, lazy_attrs):
        return await self.page.evaluate(IMAGE_CANDIDATES_JS, {"attr": attr, "lazyAttrs": lazy_attrs})

    async def body_html(self):
        return await self.page.evaluate(BODY_HTML_JS)

    async def computed_styles(self, ids, props, image_props):
        return await self.page.evaluate(
            COMPUTED_STYLES_JS,
            {"registry": _NODE_REGISTRY, "ids": list(ids), "props": props, "imageProps": image_props},
        )
