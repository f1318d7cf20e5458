import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from database import init_db
from errors import install_error_handlers
from ratelimit import general_limiter
from routers import admin, auth, todos
from settings import settings

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(
        "Todo API started (environment=%s, rate limit storage=%s)",
        settings.ENVIRONMENT, settings.RATE_LIMIT_STORAGE_URI.split("://", 1)[0],
    )
    yield


app = FastAPI(title="Todo API", lifespan=lifespan)

# Add security middlewares
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.ALLOWED_HOSTS,
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


install_error_handlers(app)


@app.get("/")
async def index():
    return {"message": "API is working!"}


# Health check sits outside the throttled /api router
@app.get("/api/health")
async def health():
    return {
        "status": "success",
        "message": "Todo App API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.ENVIRONMENT,
    }


api = APIRouter(prefix="/api", dependencies=[Depends(general_limiter)])
api.include_router(auth.router)
api.include_router(todos.router)
api.include_router(admin.router)
app.include_router(api)
