"""
aicat FastAPI application entry point.

Receives OneBot-11 HTTP POST events. Message events are handed to the
runtime's pipeline as background tasks so the host's POST returns at once;
notice events feed the confirmation tracker inline.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse

from aicat import __version__
from aicat.config import AgentConfig, get_config
from aicat.runtime import AgentRuntime, build_runtime
from aicat.utils import get_logger, install_health_check_filter, setup_logging

logger = get_logger("AICat.Gateway")


async def _process_message(runtime: AgentRuntime, event: Dict[str, Any]) -> None:
    try:
        await runtime.handle_message(event)
    except Exception:
        logger.exception(f"Message event {event.get('message_id')} from {event.get('user_id')} failed")


def create_app(
    config: Optional[AgentConfig] = None,
    runtime: Optional[AgentRuntime] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Build the gateway app. A prebuilt runtime skips build_runtime()."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = config or (runtime.config if runtime else get_config())
        if configure_logging:
            setup_logging(
                log_dir=cfg.log_dir,
                level=logging.DEBUG if cfg.debug else logging.INFO,
                service_name="aicat",
            )
            install_health_check_filter()

        app.state.runtime = runtime or build_runtime(cfg)
        app.state.runtime.context_store.start_cleanup()
        logger.info(f"aicat gateway started (prefix={cfg.prefix!r}, bot={cfg.bot_name})")
        yield
        logger.info("aicat gateway shutting down...")
        await app.state.runtime.context_store.stop_cleanup()

    app = FastAPI(
        title="aicat",
        description="Conversational agent gateway for OneBot-11 chat hosts",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint for container orchestration."""
        rt: Optional[AgentRuntime] = getattr(app.state, "runtime", None)
        return JSONResponse(
            status_code=200,
            content={
                "status": "healthy",
                "service": "aicat",
                "model": rt.active_model.name if rt else None,
            },
        )

    @app.post("/onebot/event")
    async def onebot_event(request: Request, background_tasks: BackgroundTasks):
        """OneBot-11 event sink."""
        rt: Optional[AgentRuntime] = getattr(app.state, "runtime", None)
        if rt is None:
            return JSONResponse(status_code=503, content={"error": "Runtime not initialized"})

        try:
            event = await request.json()
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Body must be a JSON object"})
        if not isinstance(event, dict):
            return JSONResponse(status_code=400, content={"error": "Body must be a JSON object"})

        post_type = event.get("post_type")
        if post_type == "message":
            background_tasks.add_task(_process_message, rt, event)
        elif post_type == "notice":
            matched = rt.handle_notice(event)
            logger.debug(f"Notice {event.get('notice_type')}/{event.get('sub_type')} matched={matched}")

        return {"status": "ok"}

    return app


app = create_app()
