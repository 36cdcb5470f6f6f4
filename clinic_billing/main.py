# clinic_billing/main.py
from fastapi import FastAPI

from clinic_billing.api.exception_handlers import register_exception_handlers
from clinic_billing.api.router import api_router
from clinic_billing.core.config import settings
from clinic_billing.core.logging import setup_logging


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.API_V1_STR)

    # Health
    @app.get("/")
    def root():
        return {"message": "Clinic billing API running", "version": "v1"}

    return app


app = create_app()
