import logging

from pagedocx.core.config import ID_ATTR

logger = logging.getLogger(__name__)


async def index_live_document(live_page, attr=ID_ATTR):
    """
    Stamp every element of the live document with a correlation ID.

    IDs are the element's position in document order, assigned once per
    capture. The snapshot inherits the attribute, which is how later stages
    find a node's live counterpart.
    """
    count = await live_page.index_nodes(attr)
    logger.info(f"Indexed {count} live elements as [{attr}]")
    return count


def node_id_of(tag, attr=ID_ATTR):
    """Correlation ID of a snapshot tag, or None for nodes that were never indexed."""
    value = tag.get(attr) if hasattr(tag, 'get') else None
    return value if value not in (None, '') else None
