# src/storypulse/__main__.py
"""Run the bridge server: ``python -m storypulse``."""

from __future__ import annotations

import uvicorn

from storypulse.config import StoryPulseConfig
from storypulse.core.env import load_env
from storypulse.core.logging import get_logger, init_logging
from storypulse.models.chat import UpstreamFlavor


def main() -> None:
    load_env()
    settings = StoryPulseConfig.load()
    init_logging(settings.system.log_level, settings.system.log_format or None)
    logger = get_logger("storypulse.server")

    from storypulse.web.main import create_app

    upstream = settings.upstream
    logger.info("API on http://localhost:%s", settings.server.port)
    logger.info(
        "Using %s at %s",
        "OpenAI-compatible /v1" if upstream.flavor is UpstreamFlavor.OPENAI else "native /api",
        upstream.url,
    )
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover - CLI execution
    main()
