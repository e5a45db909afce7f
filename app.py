"""Application entry point for the mathprep sanitize/render service using FastAPI."""
from __future__ import annotations

from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.config import settings
from core.logger import init_logging, logger
from services.latex.sanitizer import LatexSanitizer
from services.latex.segments import SanitizeOptions, SubjectHint
from services.render.engine import default_engine_handle
from services.render.math_renderer import MathRenderer


class SanitizeRequest(BaseModel):
    content: str
    subject: SubjectHint = SubjectHint.AUTO
    strict: bool = True
    mixed: bool = False


class RenderRequest(BaseModel):
    content: str
    sync: bool = False


def create_app(renderer: Optional[MathRenderer] = None) -> FastAPI:
    """Create FastAPI app with health, sanitize and render routes."""
    app = FastAPI(title="mathprep", version="0.1.0")

    math_renderer = renderer or MathRenderer(default_engine_handle)
    sanitizer = LatexSanitizer()

    @app.on_event("startup")
    async def startup_event() -> None:
        init_logging()
        await math_renderer.warm_up()
        logger.info("FastAPI service started")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "engine": math_renderer.engine_handle.state.value}

    @app.post("/sanitize")
    async def sanitize(request: SanitizeRequest) -> JSONResponse:
        """Sanitize raw or HTML-embedded math."""
        try:
            options = SanitizeOptions(subject=request.subject, strict=request.strict)
            if request.mixed:
                content = sanitizer.sanitize_mixed_content(request.content, options)
            else:
                content = sanitizer.sanitize(request.content, options)
            return JSONResponse({"status": "success", "content": content})
        except Exception as exc:  # noqa: BLE001
            logger.exception("Sanitize failed: %s", exc)
            return JSONResponse({"status": "error", "message": str(exc)}, status_code=500)

    @app.post("/render")
    async def render(request: RenderRequest) -> JSONResponse:
        """Render math in content; ``sync`` skips waiting for the engine."""
        try:
            if request.sync:
                html = math_renderer.render_if_ready(request.content)
            else:
                html = await math_renderer.render(request.content)
            return JSONResponse(
                {
                    "status": "success",
                    "html": html,
                    "engine_ready": math_renderer.engine_handle.is_ready(),
                }
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Render failed: %s", exc)
            return JSONResponse({"status": "error", "message": str(exc)}, status_code=500)

    return app


def main() -> None:
    """Entry point for CLI; serves the API with uvicorn."""
    init_logging()
    logger.info("Starting FastAPI server at %s:%s", settings.host, settings.port)
    uvicorn.run(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
