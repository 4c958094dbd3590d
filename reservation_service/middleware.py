import json
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        line = {
            "service": "reservation-service",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        try:
            response: Response = await call_next(request)
        except Exception:
            line["status"] = 500
            line["duration_ms"] = round((time.perf_counter() - start) * 1000, 2)
            print(json.dumps(line))
            raise

        response.headers["X-Request-Id"] = request_id

        line["status"] = response.status_code
        line["duration_ms"] = round((time.perf_counter() - start) * 1000, 2)
        line["user_sub"] = getattr(request.state, "user_sub", None)
        line["user_roles"] = getattr(request.state, "user_roles", None)
        print(json.dumps(line))
        return response
