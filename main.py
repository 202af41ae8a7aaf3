"""
Main application entry point for the NoteChat API.

This module initializes the FastAPI application, sets up logging and
CORS, installs the JSON error handlers, initializes the rate limiter on
the shared Redis client, creates the database tables, and includes the
routers for authentication, users, notes, chat and the realtime channel.

Modules:
- FastAPI: Web framework
- CORSMiddleware: Middleware for handling CORS
- FastAPILimiter: Rate limiting
- notechat.database: Database engine and Redis client
- notechat.auth: Authentication router
- notechat.users: User account router
- notechat.notes: Notes router
- notechat.chat: Chat router
- notechat.realtime: WebSocket channel
- notechat.core: Application settings
"""

from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi_limiter import FastAPILimiter

from notechat.core import configuration_report, configure_logging, get_settings
from notechat.database import close_redis, get_redis, init_db
from notechat.errors import install_error_handlers
from notechat.auth import router as auth_router
from notechat.users import router as users_router
from notechat.notes import router as notes_router
from notechat.chat import router as chat_router
from notechat.realtime import router as realtime_router

configure_logging()
settings = get_settings()

# Initialize FastAPI application
app = FastAPI(title="NoteChat API")

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)


@app.on_event("startup")
async def startup_event():
    """
    FastAPI startup event handler.

    Creates missing tables and initializes the rate limiter on the shared
    Redis client. Startup fails if Redis is unreachable and the in-process
    fallback is not allowed.
    """
    init_db()
    await FastAPILimiter.init(await get_redis())


@app.on_event("shutdown")
async def shutdown_event():
    await close_redis()


# Include routers for application areas
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(notes_router)
app.include_router(chat_router)
app.include_router(realtime_router)


@app.get("/")
def root():
    """
    Health endpoint for the API.

    Reports whether each configuration variable is set, never its value.

    Returns:
        dict: Service status and configuration presence
    """
    return {
        "status": "OK",
        "message": "NoteChat backend is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "config": configuration_report(get_settings()),
    }


def run():
    """Serve the application with uvicorn on ``HOST``/``PORT``."""
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
