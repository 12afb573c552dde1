import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.api.v1 import index
from app.api.v1 import characteristic
from app.api.v1 import tag
from app.api.v1 import material
from app.api.v1 import material_history
from app.api.v1 import file
from app.api.v1 import activity

from app.core.config import settings
from app.core.exceptions import CatalogError
from app.core.logging import setup_logging

setup_logging()

app = FastAPI(title=settings.app_name)

# Middlewares
origins = []

if settings.allowed_hosts:
    origins = settings.allowed_hosts.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CatalogError)
def catalog_error_handler(request: Request, exc: CatalogError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Register routes
app.include_router(index.router, prefix="/api/v1")
app.include_router(characteristic.router,
                   prefix="/api/v1/characteristics", tags=["Characteristics"])
app.include_router(tag.router, prefix="/api/v1/tags", tags=["Tags"])
app.include_router(
    material.router, prefix="/api/v1/materials", tags=["Materials"])
app.include_router(material_history.router,
                   prefix="/api/v1/materials", tags=["Material History"])
app.include_router(file.router, prefix="/api/v1/files", tags=["Files"])
app.include_router(activity.router, prefix="/api/v1/activity", tags=["Activity"])

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=None,
    )
