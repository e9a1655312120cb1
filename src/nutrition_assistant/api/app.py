"""FastAPI application factory."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, Header, Request
from fastapi.responses import StreamingResponse

from nutrition_assistant.api.models import ChatRequest
from nutrition_assistant.app_logging import configure_logging
from nutrition_assistant.containers import AppContainer

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/chat")
    async def chat(
        payload: ChatRequest,
        request: Request,
        x_user_id: UUID = Header(),
    ) -> StreamingResponse:
        """Stream progress steps, then the final response, as NDJSON."""
        state_container: AppContainer = request.app.state.container
        history_limit = state_container.settings.history_limit
        history = [item.model_dump() for item in payload.history[-history_limit:]]
        queue: asyncio.Queue[dict[str, object] | None] = asyncio.Queue()
        logger.info("Chat message from %s", x_user_id)

        async def run_turn() -> None:
            try:
                response = await state_container.orchestrator.handle(
                    x_user_id,
                    payload.message,
                    session_id=payload.session_id,
                    timezone=payload.timezone,
                    history=history,
                    on_step=lambda step: queue.put_nowait({"step": step}),
                )
                queue.put_nowait(response.to_dict())
            finally:
                queue.put_nowait(None)

        async def stream() -> AsyncIterator[str]:
            task = asyncio.create_task(run_turn())
            while (item := await queue.get()) is not None:
                yield json.dumps(item, default=str) + "\n"
            await task

        return StreamingResponse(stream(), media_type=NDJSON_MEDIA_TYPE)

    return app
