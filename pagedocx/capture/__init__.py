"""
Capture-and-normalize stages.

Each module here is one step of the pipeline driven by
``pagedocx.core.pipeline.run_export``. Stages that need the live page talk to
it only through ``pagedocx.core.page.LivePage``.
"""
