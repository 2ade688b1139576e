import src.dependencies.firebase  # Initialises the identity provider

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.discount_rules.routes import (
    admin_discount_rules_router,
    discount_rules_router,
)
from src.config.settings import settings
from src.middleware.error import http_exception_handler, validation_exception_handler
from src.middleware.timing import add_process_time_header
from src.shared.utils import get_logger

logger = get_logger(__name__)
logger.info(f"Starting Discount Rules API in {settings.ENVIRONMENT} mode")

app = FastAPI(
    title="Discount Rules API",
    description="Discount rule evaluation for shopping carts.",
    version="1.0.0",
)

app.include_router(discount_rules_router)
app.include_router(admin_discount_rules_router)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, http_exception_handler)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title="Discount Rules API",
        version="1.0.0",
        description="Discount rule evaluation for shopping carts.",
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


app.middleware("http")(add_process_time_header)


@app.get("/", tags=["App"])
async def read_root():
    return {"service": "discount-rules", "status": "ok"}
