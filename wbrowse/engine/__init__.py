"""Browser automation engines.

``base`` defines the Engine/Page contract the daemon depends on; the
Playwright implementation lives in ``playwright_engine`` and is imported
lazily so the CLI never pays for it.
"""

from wbrowse.engine.base import ActResult, Engine, Page

__all__ = ["ActResult", "Engine", "Page"]
