import asyncio
import logging

from pagedocx.core.config import ExportConfig, Settings
from pagedocx.core.pipeline import run_export
from pagedocx.core.state import ExportState

logger = logging.getLogger(__name__)

ENGINE_ATTR = "_pagedocx_engine"


class ExportEngine:
    """
    Message front end for one page context.

    Answers ``ping`` and ``start_export`` requests and reports progress through
    ``emit(event)``, where every event is a dict with an ``action`` key.
    """

    def __init__(self, live_page, emit, deliver, pipeline=run_export, settings=None):
        self.live_page = live_page
        self.emit = emit
        self.deliver = deliver
        self.pipeline = pipeline
        self.settings = settings or Settings()
        self.state = ExportState()
        self._task = None

    @classmethod
    def attach(cls, live_page, emit, deliver, **kwargs):
        """Return the page's engine, creating it (and announcing readiness) on first use."""
        engine = getattr(live_page, ENGINE_ATTR, None)
        if engine is not None:
            return engine
        engine = cls(live_page, emit, deliver, **kwargs)
        setattr(live_page, ENGINE_ATTR, engine)
        emit({"action": "engine_ready"})
        return engine

    def log(self, message):
        logger.info(message)
        self.emit({"action": "log", "message": message})

    def handle_message(self, request):
        if not isinstance(request, dict):
            logger.debug(f"Ignoring malformed message: {request!r}")
            return None
        action = request.get('action')

        if action == 'ping':
            return {"status": "pong"}

        if action == 'start_export':
            config = ExportConfig.from_dict(request.get('config'))
            if not self.state.try_begin():
                self.log("Export already in progress, please wait...")
                return {"status": "busy"}
            run = self._run(config)
            try:
                self._task = asyncio.create_task(run)
            except Exception:
                run.close()
                self.state.finish()
                raise
            self.emit({"action": "export_start"})
            return {"status": "started"}

        logger.debug(f"Ignoring unknown action: {action}")
        return None

    async def _run(self, config):
        try:
            result = await self.pipeline(
                self.live_page,
                config,
                self.deliver,
                log=self.log,
                font_family=self.settings.get('font_family'),
            )
            self.emit({"action": "export_done", "path": str(result) if result is not None else None})
        except Exception as e:
            logger.error(f"Export failed: {e}", exc_info=True)
            self.emit({"action": "export_error", "message": str(e)})
        finally:
            self.state.finish()

    async def wait_idle(self):
        """Wait for the in-flight capture, if any, to finish."""
        if self._task is not None:
            await self._task
