"""FastAPI entrypoint for the learning log backend."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routers import entries, health, images
from .infra.logging import configure_logging


def create_app() -> FastAPI:
    """Instantiate the FastAPI app and register routers."""

    configure_logging()
    application = FastAPI(title="Learning Log API", version="0.1.0")
    allowed_origins = {
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    }
    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(allowed_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for router in (
        health.router,
        entries.router,
        images.router,
    ):
        application.include_router(router)
    return application


app = create_app()
