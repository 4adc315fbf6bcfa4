import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database import ensure_indexes
from dependencies import Services, build_services
from errors import StoreError
from routers import analytics, campaigns, cart, catalog, content, deals, orders, users
from routers.helpers import first_error
from schemas import COLLECTION_SCHEMAS
from security import hash_password

logger = logging.getLogger(__name__)


def seed_superadmin(services: Services) -> None:
    settings = services.settings
    if not settings.admin_email or not settings.admin_password:
        return
    users_repo = services.store.users
    if users_repo.by_email(settings.admin_email):
        return
    users_repo.create({
        "username": "superadmin",
        "email": settings.admin_email.strip().lower(),
        "password": hash_password(settings.admin_password),
        "role": "superadmin",
        "profileImage": None,
    })
    logger.info("Seeded superadmin %s", settings.admin_email)


def create_app(services: Optional[Services] = None) -> FastAPI:
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_indexes(services.store.db)
        seed_superadmin(services)
        services.tasks.start()
        yield
        services.tasks.stop()

    # App setup
    app = FastAPI(title="Storefront API", version="1.0.0", lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        return JSONResponse(
            status_code=400,
            content={"detail": first_error(errors), "errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors
            ]},
        )

    for module in (users, catalog, cart, orders, deals, content, campaigns, analytics):
        app.include_router(module.router, prefix="/api")

    # Health and helpers
    @app.get("/")
    def root():
        return {"message": "Storefront API running"}

    @app.get("/test")
    def test_database():
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
            "connection_status": "Not Connected",
            "collections": [],
            "pending_side_effects": services.tasks.pending(),
        }
        try:
            response["collections"] = services.store.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
        except Exception as e:
            response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
        return response

    @app.get("/schema")
    def schema():
        return {name: model.model_json_schema() for name, model in COLLECTION_SCHEMAS.items()}

    return app


if __name__ == "__main__":
    import uvicorn
    from settings import load_settings

    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(create_app(build_services(settings)), host="0.0.0.0", port=port)
