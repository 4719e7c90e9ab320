"""FastAPI app: capacity, waitlist, cash register and payments API."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from goat.errors import DomainError
from goat.models.base import init_db

from web.api.auth_routes import router as auth_router
from web.api.cash_register_routes import router as cash_register_router
from web.api.feature_routes import router as feature_router
from web.api.payment_routes import expenses_router, payments_router
from web.api.routes import routers as resource_routers
from web.api.waitlist_routes import router as waitlist_router

logger = logging.getLogger("goat.http")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(title="GOAT Core API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Domain errors become {"detail": message} with the error's status code."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.debug("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(auth_router)
app.include_router(feature_router)
for resource_router in resource_routers:
    app.include_router(resource_router)
app.include_router(waitlist_router)
app.include_router(cash_register_router)
app.include_router(payments_router)
app.include_router(expenses_router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
