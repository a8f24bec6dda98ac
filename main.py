"""
FastAPI backend for Phrontier.

Serves the shared resource catalog, binary uploads, AI enrichment and live
resource updates for the Phrontier web client.
"""

import os
import traceback

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse

from phrontier.shared.logger import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)

from broadcast import broadcaster
from phrontier import __version__
from phrontier.catalog import demo_resources
from phrontier.errors import PhrontierError
from phrontier.generate import router as generate_router
from phrontier.resources import router as resources_router
from phrontier.services import services
from phrontier.system import router as system_router
from phrontier.upload import router as upload_router

# Create FastAPI app
app = FastAPI(
    title="Phrontier API",
    description="Catalog API for interactive physics simulations, worksheets and cheat sheets",
    version=__version__,
    default_response_class=ORJSONResponse,
)


# ============= Exception Handlers =============


@app.exception_handler(PhrontierError)
async def phrontier_exception_handler(request: Request, exc: PhrontierError):
    """Render taxonomy errors as ``{error, code, hint}``."""
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Schema errors in request bodies become plain validation errors."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid {location}: {first.get('msg')}" if location else "Invalid request body"
    return JSONResponse(status_code=400, content={"error": message, "code": "validation_error"})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Log server-side HTTP exceptions and return the same error shape."""
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Log unexpected exceptions and return JSON response."""
    logger.error(
        "Unhandled %s on %s: %s\n%s",
        type(exc).__name__, request.url.path, exc, traceback.format_exc(),
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include API routes
app.include_router(resources_router, prefix="/api", tags=["resources"])
app.include_router(upload_router, prefix="/api", tags=["upload"])
app.include_router(generate_router, prefix="/api", tags=["generate"])
app.include_router(system_router, prefix="/api", tags=["system"])


# ============= Startup Events =============


@app.on_event("startup")
async def startup_event():
    """Log configuration and optionally seed demo content."""
    settings = services.settings
    logger.info("Phrontier %s starting...", __version__)
    for name, ok in settings.configuration_status().items():
        if not ok:
            logger.warning("%s is not configured", name)

    if settings.seed_demo:
        try:
            services.store.seed(demo_resources())
        except PhrontierError as e:
            logger.error("Could not seed demo resources: %s", e.message)


# ============= WebSocket Endpoints =============


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for live resource updates.

    Clients subscribe to the ``resources`` channel to receive
    ``resource_created`` / ``resource_updated`` / ``resource_deleted``.

    Message format (JSON):
    {
        "type": "subscribe" | "unsubscribe" | "ping",
        "channel": "resources"
    }
    """
    await broadcaster.connect(websocket)

    try:
        while True:
            message_text = await websocket.receive_text()
            reply = await broadcaster.handle_message(websocket, message_text)
            if reply:
                await websocket.send_text(reply)

    except WebSocketDisconnect:
        broadcaster.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        broadcaster.disconnect(websocket)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Phrontier backend server")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PHRONTIER_PORT", 8000)),
        help="Port to run the server on (default: 8000 or PHRONTIER_PORT env var)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable auto-reload",
    )
    args = parser.parse_args()

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )
