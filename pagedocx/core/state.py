import logging
from enum import Enum

logger = logging.getLogger(__name__)


class ExportPhase(Enum):
    IDLE = "idle"
    RUNNING = "running"


class ExportState:
    """
    Export gate for one page context.

    Only one capture may run per page context. A second start while RUNNING is
    refused rather than queued.
    """

    def __init__(self):
        self.phase = ExportPhase.IDLE

    @property
    def is_exporting(self):
        return self.phase is ExportPhase.RUNNING

    def try_begin(self):
        """Move IDLE -> RUNNING. Returns False (and changes nothing) when already running."""
        if self.phase is ExportPhase.RUNNING:
            logger.debug("ExportState: start refused, capture already running")
            return False
        self.phase = ExportPhase.RUNNING
        logger.debug("ExportState: IDLE -> RUNNING")
        return True

    def finish(self):
        if self.phase is not ExportPhase.IDLE:
            logger.debug("ExportState: RUNNING -> IDLE")
        self.phase = ExportPhase.IDLE
