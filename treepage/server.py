"""
Process entry point: ``treepage`` (or ``python -m treepage.server``).
"""

from __future__ import annotations

import logging

import uvicorn

from treepage.config import get_settings

logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Server listening on http://localhost:%d", settings.port)
    uvicorn.run(
        "treepage.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
