import uvicorn
import time
import logging
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from crashlog.api.errors import register_error_handlers
from crashlog.api.occurrences import router as occurrences_router
from crashlog.api.registry import router as registry_router
from crashlog.utils.logging_config import setup_logging

setup_logging()
logger = logging.getLogger("main")

app = FastAPI(title="Crashlog Occurrence Service")


# ---------------------------------------------------------------------------
# Logging Middleware
# ---------------------------------------------------------------------------
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_host = request.client.host if request.client else "unknown"
        logger.info("Incoming: %s %s from %s", request.method, request.url.path, client_host)

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = (time.time() - start_time) * 1000
            logger.error("Request failed: %s %s after %.2fms - %s", request.method, request.url.path, elapsed, e)
            raise
        elapsed = (time.time() - start_time) * 1000
        logger.info(
            "Outgoing: %s %s - Status: %d - Time: %.2fms",
            request.method, request.url.path, response.status_code, elapsed,
        )
        return response


app.add_middleware(LoggingMiddleware)
register_error_handlers(app)


@app.get("/health")
async def health_check():
    return {"status": "ok"}


app.include_router(registry_router)
app.include_router(occurrences_router)

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
