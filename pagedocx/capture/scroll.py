import logging

from pagedocx.core.config import SCROLL_STEP_PX, SCROLL_TICK_MS, SCROLL_SETTLE_MS

logger = logging.getLogger(__name__)


async def auto_scroll_page(live_page, step=SCROLL_STEP_PX, tick=SCROLL_TICK_MS, settle=SCROLL_SETTLE_MS):
    """Scroll to the bottom to trigger lazy loading, then return to the top and let it settle."""
    distance = await live_page.auto_scroll(step, tick, settle)
    logger.info(f"Auto-scrolled {distance}px")
    return distance
