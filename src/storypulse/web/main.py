# src/storypulse/web/main.py
import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storypulse.config import StoryPulseConfig, config
from storypulse.core.dispatcher import UpstreamDispatcher
from storypulse.core.errors import UpstreamError
from storypulse.web.routes import router


def create_app(
    settings: StoryPulseConfig | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the bridge application for ``settings`` (the global config by default)."""
    settings = settings or config
    app = FastAPI(
        title="StoryPulse Bridge",
        description="Normalizes local language model output into story world updates",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Flavor and model table are fixed for the life of the process.
    app.state.settings = settings
    app.state.dispatcher = UpstreamDispatcher.from_config(settings, transport=transport)

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(router)
    return app


# Create the FastAPI application
app = create_app()
