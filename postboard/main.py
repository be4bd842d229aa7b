import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from postboard.config import settings
from postboard.errors import InvalidInput, NotFound, Unauthorized
from postboard.mail import Mailer
from postboard.middleware import TimingMiddleware
from postboard.routers import posts, users
from postboard.tokens import create_redis

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: one Redis client and one mailer for the whole process.
    app.state.redis = create_redis()
    app.state.mailer = Mailer()
    logger.info("Redis client created for %s (%s)", settings.REDIS_URL, settings.APP_ENV)
    yield
    # Shutdown
    await app.state.redis.aclose()

app = FastAPI(
    title="postboard",
    description="Post-sharing API with a cursor-paginated feed, voting and password reset",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Domain errors
@app.exception_handler(Unauthorized)
async def unauthorized_handler(request: Request, exc: Unauthorized):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=401, content={"detail": exc.detail})

@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": exc.detail})

@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return JSONResponse(
        status_code=422,
        content={"errors": [e.model_dump() for e in exc.errors]},
    )

# Routers
app.include_router(posts.router)
app.include_router(users.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
