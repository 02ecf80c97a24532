# FILE: medstore/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from medstore.core.config import settings
from medstore.core.logging import configure_logging
from medstore.api.exception_handlers import register_exception_handlers
from medstore.api.router import api_router


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.API_V1_STR)

    # Health
    @app.get("/")
    def root():
        return {"message": f"{settings.PROJECT_NAME} running", "version": "v1"}

    return app


app = create_app()
