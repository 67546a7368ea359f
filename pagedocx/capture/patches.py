import logging

from bs4 import BeautifulSoup

from pagedocx.core.config import ID_ATTR

logger = logging.getLogger(__name__)


def _index_snapshot(snapshot_root):
    return {tag[ID_ATTR]: tag for tag in snapshot_root.find_all(attrs={ID_ATTR: True})}


def _is_attached(tag, root):
    """True while ``tag`` is still inside ``root`` (an ancestor may have been replaced)."""
    node = tag
    while node is not None:
        if node is root:
            return True
        node = node.parent
    return False


def apply_visual_assets(snapshot_root, assets):
    """Replace each math/icon placeholder node with an ``img`` carrying its asset."""
    factory_soup = BeautifulSoup("", 'html.parser')
    nodes = _index_snapshot(snapshot_root)
    applied = 0
    for asset in assets:
        target = nodes.get(asset.node_id)
        if target is None or not _is_attached(target, snapshot_root):
            logger.debug(f"Visual asset for node {asset.node_id} has no snapshot target, dropped")
            continue
        img = factory_soup.new_tag('img')
        img['src'] = asset.encoded_image
        if asset.width:
            img['width'] = str(asset.width)
        if asset.height:
            img['height'] = str(asset.height)
        img['style'] = "vertical-align: middle;"
        target.replace_with(img)
        applied += 1
    logger.info(f"Applied {applied}/{len(assets)} formula and icon images")
    return applied


def apply_image_assets(snapshot_root, assets):
    """Point each snapshot ``img`` at its resolved data URI, leaving the element itself in place."""
    nodes = _index_snapshot(snapshot_root)
    applied = 0
    for asset in assets:
        target = nodes.get(asset.node_id)
        if target is None or target.name != 'img' or not _is_attached(target, snapshot_root):
            continue
        target['src'] = asset.encoded_image
        for attr in ('srcset', 'loading'):
            if attr in target.attrs:
                del target[attr]
        applied += 1
    logger.info(f"Applied {applied}/{len(assets)} resolved images")
    return applied
