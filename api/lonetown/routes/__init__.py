from fastapi import FastAPI

from .chat import router as chat_router
from .match import router as match_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(match_router, tags=["matches"])
    app.include_router(chat_router, tags=["chat"])
