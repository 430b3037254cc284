"""
FastAPI Backend Server

Exposes the conversation agent over HTTP for voice and chat front ends.

Endpoints:
- POST /process: text turn, newline-delimited JSON chunk stream
- POST /processVoice: voice turn through the caller's voice session
- POST /getHistory: recent chat messages of a caller's channel
- POST /deleteHistory: drop a caller's channel memory
- GET /api/health: liveness probe

Errors are returned as ``{"detail": message}`` with the agent's status
code. A declined or superseded voice turn is a 204 with no body.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from persona_agent.agent import ChunkCallback, ConversationAgent
from persona_agent.config import settings
from persona_agent.conversation.models import (
    DeleteHistoryRequest,
    HistoryRequest,
    PromptRequest,
    PromptResponse,
)
from persona_agent.errors import PersonaAgentError
from persona_agent.logger import get_logger, init_logging
from persona_agent.messages import msg

logger = get_logger(__name__)

NDJSON = "application/x-ndjson"


# Pydantic models for API
class PromptBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    user_id: str = Field(default="", alias="userId")
    personality: Optional[str] = None
    gender: Optional[str] = None
    source_material: Optional[str] = Field(default=None, alias="sourceMaterial")

    def to_request(self) -> PromptRequest:
        return PromptRequest(
            prompt=self.prompt,
            user_id=self.user_id,
            personality=self.personality,
            gender=self.gender,
            source_material=self.source_material,
        )


class HistoryBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(default="", alias="userId")
    limit: int = 0


class DeleteHistoryBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(default="", alias="userId")


# Global agent instance
agent: Optional[ConversationAgent] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup resources."""
    global agent

    init_logging()
    settings.validate_all()
    agent = ConversationAgent()
    logger.info(f"Agent initialized (memory backend: {settings.memory.backend})")

    yield

    agent = None


app = FastAPI(
    title="Persona Voice Agent API",
    description="Role-play conversation agent with memory and voice",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PersonaAgentError)
async def persona_error_handler(request: Request, exc: PersonaAgentError) -> Response:
    if exc.status_code == 204:
        logger.info(f"{request.url.path}: {exc.message}")
        return Response(status_code=204)
    logger.error(f"{request.url.path} failed ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def get_agent() -> ConversationAgent:
    """Get the agent instance."""
    if agent is None:
        raise HTTPException(status_code=503, detail=msg("error.agent_not_ready"))
    return agent


def _line(chunk: PromptResponse) -> str:
    # The newline lets clients split chunks that arrive glued together
    return json.dumps(chunk.to_dict()) + "\n"


async def stream_turn(run: Callable[[ChunkCallback], Awaitable[PromptResponse]]) -> Response:
    """
    Run a turn and stream its chunks as newline-delimited JSON.

    The status code is decided by whatever happens first: an error raised
    before the first chunk becomes a normal error response, while an error
    after streaming began ends the stream with a ``{"detail": ...}`` line.
    A completed turn ends with the full reply and its grounded prompt.
    """
    queue: "asyncio.Queue[PromptResponse]" = asyncio.Queue()

    async def on_chunk(chunk: PromptResponse) -> None:
        await queue.put(chunk)

    task = asyncio.create_task(run(on_chunk))

    getter = asyncio.ensure_future(queue.get())
    done, _ = await asyncio.wait({task, getter}, return_when=asyncio.FIRST_COMPLETED)
    if getter not in done:
        getter.cancel()
        return JSONResponse(content=task.result().to_dict())
    first = getter.result()

    async def generate() -> AsyncGenerator[str, None]:
        yield _line(first)
        while True:
            next_chunk = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({task, next_chunk}, return_when=asyncio.FIRST_COMPLETED)
            if next_chunk in done:
                yield _line(next_chunk.result())
                continue

            next_chunk.cancel()
            while not queue.empty():
                yield _line(queue.get_nowait())

            error = task.exception()
            if error is not None:
                detail = error.message if isinstance(error, PersonaAgentError) else str(error)
                logger.error(f"Turn failed mid-stream: {detail}")
                yield json.dumps({"detail": detail}) + "\n"
            else:
                yield _line(task.result())
            break

    return StreamingResponse(
        generate(),
        media_type=NDJSON,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.post("/process")
async def process(body: PromptBody):
    """Text turn with streamed chunks."""
    current = get_agent()
    return await stream_turn(lambda on_chunk: current.handle_turn(body.to_request(), on_chunk))


@app.post("/processVoice")
async def process_voice(body: PromptBody):
    """Voice turn with debounce, gating and listening mode."""
    current = get_agent()
    return await stream_turn(lambda on_chunk: current.handle_voice_turn(body.to_request(), on_chunk))


@app.post("/getHistory")
async def get_history(body: HistoryBody):
    """Recent chat messages, oldest first."""
    history = await get_agent().get_history(HistoryRequest(user_id=body.user_id, limit=body.limit))
    return history.to_dict()["messages"]


@app.post("/deleteHistory")
async def delete_history(body: DeleteHistoryBody):
    """Delete a caller's conversation memory."""
    status = await get_agent().delete_history(DeleteHistoryRequest(user_id=body.user_id))
    return JSONResponse(status_code=status.status, content={"detail": status.message})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api_server:app",
        host=settings.api.host,
        port=settings.api.port,
    )
