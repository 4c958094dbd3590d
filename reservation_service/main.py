from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    ReservationError,
    ResourceNotFoundError,
)
from .middleware import RequestLoggingMiddleware
from .rabbitmq import publisher
from .redis_client import close_redis
from .routes import internal_router, router

ERROR_STATUS = {
    NotFoundError: 404,
    ResourceNotFoundError: 404,
    ForbiddenError: 403,
    InvalidRequestError: 400,
    InvalidStateError: 400,
    ConflictError: 409,
}

app = FastAPI(title="Reservation Service")

app.add_middleware(RequestLoggingMiddleware)
app.include_router(router)
app.include_router(internal_router)


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    body = {"detail": exc.message}
    if isinstance(exc, ConflictError) and exc.retryable:
        body["retryable"] = True
    return JSONResponse(status_code=status_code, content=body)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": "reservation-service",
        "events_enabled": publisher.enabled,
    }


@app.on_event("startup")
async def startup():
    # Never crash service if RabbitMQ is temporarily unavailable
    try:
        await publisher.connect()
    except Exception as e:
        print(f"[reservation-service] RabbitMQ connect failed at startup; continuing without events: {e}")


@app.on_event("shutdown")
async def shutdown():
    try:
        await publisher.close()
    except Exception as e:
        print(f"[reservation-service] RabbitMQ close failed: {e}")
    try:
        await close_redis()
    except Exception as e:
        print(f"[reservation-service] Redis close failed: {e}")
