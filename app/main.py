from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import sessions
from app.config import settings
from app.models.schemas import HealthResponse
from app.services import logger as log_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_service.log_event(event_type="startup", message="Arcscan API starting")
    yield
    log_service.log_event(event_type="shutdown", message="Arcscan API stopping")


app = FastAPI(
    title="Arcscan",
    description="Supply chain risk research powered by web search and Gemini",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(sessions.router)


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return {"status": "ok", "service": "arcscan"}


def serve() -> None:
    uvicorn.run("app.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    serve()
