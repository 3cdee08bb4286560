import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .container import build_services
from .database import async_session_maker, init_db
from .errors import PetflixError
from .routers.follows import router as follows_router
from .routers.notifications import router as notifications_router
from .routers.videos import router as videos_router
from .schemas import UserCreate, UserRead, UserUpdate
from .settings.config import settings
from .users import auth_backend, fastapi_users

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Petflix")

# Enable CORS if needed
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------
# Route Includes
# ----------------------
app.include_router(videos_router)
app.include_router(follows_router)
app.include_router(notifications_router)

# Authentication Routes
app.include_router(
    fastapi_users.get_auth_router(auth_backend),
    prefix="/auth/jwt",
    tags=["auth"]
)

app.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"]
)

app.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"]
)


# -----------------------------------------------------
# Domain errors become {"error": ..., "code": ...}
# -----------------------------------------------------
@app.exception_handler(PetflixError)
async def _petflix_error_handler(request: Request, exc: PetflixError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
    )


@app.on_event("startup")
async def on_startup():
    await init_db()
    app.state.services = build_services(async_session_maker, settings)
    if not settings.YOUTUBE_API_KEY:
        logger.warning("YOUTUBE_API_KEY not set; search will only return Petflix videos")


@app.on_event("shutdown")
async def on_shutdown():
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.aclose()


@app.get("/health")
async def health():
    return {"status": "ok"}
