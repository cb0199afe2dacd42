from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from family_graph.core.config import settings
from family_graph.core.errors import FamilyGraphError
from family_graph.core.logging import configure_logging, get_logger
from family_graph.routers import accounts, family, health, members

configure_logging(settings.log_level)
logger = get_logger(__name__)

app = FastAPI(
    title="Family Graph API",
    version="1.0.0",
    description="API for member records, households, marriages and family relationship views.",
    # Served behind a path prefix at the edge; /docs below points Swagger at the prefixed schema.
    docs_url=None,
    root_path=settings.root_path,
)


@app.get("/docs", include_in_schema=False)
def swagger_ui():
    prefix = (settings.root_path or "").rstrip("/")
    openapi_url = f"{prefix}{app.openapi_url}"
    return get_swagger_ui_html(openapi_url=openapi_url, title=f"{app.title} - Docs")


@app.exception_handler(FamilyGraphError)
async def family_graph_error_handler(request: Request, exc: FamilyGraphError):
    if exc.status_code >= 500:
        logger.error("request.failed", path=request.url.path, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Validation Failed", "errors": errors})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("store.unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"detail": "store unavailable"})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(members.router)
app.include_router(family.router)
app.include_router(accounts.router)
