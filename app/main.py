import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.extensions.router import router as extensions_router
from app.api.v1.gate.router import router as gate_router
from app.api.v1.leaves.router import router as leaves_router
from app.core.config import settings


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Hostel Leave & Gate Backend")

    # CORS: student app and gate scanner call this API directly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(leaves_router)
    app.include_router(extensions_router)
    app.include_router(gate_router)

    return app


app = create_app()
