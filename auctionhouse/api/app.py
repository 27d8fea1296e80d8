"""
HTTP application factory.

Domain failures (AuctionError) become a flat `{"error": message}` body with
the error's status code; anything else propagates as a 500.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from auctionhouse.core.errors import AuctionError
from auctionhouse.core.service import AuctionService
from auctionhouse.network.gateway import RealtimeGateway
from auctionhouse.utils.logger import get_logger

from .routes import router

logger = get_logger("api")


def create_app(service: AuctionService, run_scheduler: bool = True) -> FastAPI:
    """
    Build the FastAPI app around an existing service.

    Args:
        service: Engine facade the routes call into
        run_scheduler: Recover and start the scheduler thread with the app's
            lifespan. Tests pass False and drive the scheduler by hand.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_scheduler:
            service.start()
        try:
            yield
        finally:
            if run_scheduler:
                service.shutdown()

    app = FastAPI(title="auctionhouse", lifespan=lifespan)
    app.state.service = service
    app.state.gateway = RealtimeGateway(service)

    @app.exception_handler(AuctionError)
    async def auction_error_handler(request: Request, exc: AuctionError):
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code} {exc.kind}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    app.include_router(router)
    return app


def serve(service: AuctionService, host: str = "127.0.0.1", port: int = 8000,
          log_level: Optional[str] = "info") -> None:
    """Run the API with uvicorn until interrupted."""
    import uvicorn

    uvicorn.run(create_app(service), host=host, port=port, log_level=log_level)
