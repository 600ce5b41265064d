from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.core.config import get_settings
from app.core.database import engine, Base
from app.core.errors import register_exception_handlers
from app.core.tokens import get_token_codec
from app import models  # ensure models are registered with SQLAlchemy
from app.routers import auth, invites, reservations
from app.utils.logger import get_logger

logger = get_logger("http")

settings = get_settings()

app = FastAPI(
    title="Reservation Portal API",
    description="Invite-gated reservation requests and staff administration",
    version="0.1.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
    logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
    return response

@app.on_event("startup")
async def startup():
    # Refuse to start without the invite token secret
    get_token_codec()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Reservation portal started")

app.include_router(auth.router)
app.include_router(invites.router)
app.include_router(reservations.router)
app.include_router(reservations.admin_router)

@app.get("/health")
async def health_check():
    return {"status": "ok"}
