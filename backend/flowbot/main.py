# /flowbot/main.py

import os
import time
import uvicorn
from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from flowbot.config.settings import settings
from flowbot.utils.lifecycle import lifespan
from flowbot.utils.metrics import response_time_histogram
from flowbot.routes import automation, webhooks

app = FastAPI(
    title="Flowbot WhatsApp Automation",
    version="1.0.0",
    description="Keyword-triggered automation flows for WhatsApp",
    lifespan=lifespan,
    openapi_url=f"/api/{settings.api_version}/openapi.json" if settings.environment != "production" else None,
    docs_url=f"/api/{settings.api_version}/docs" if settings.environment != "production" else None,
    redoc_url=None,
)


@app.middleware("http")
async def performance_middleware(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response_time_histogram.labels(endpoint=request.url.path).observe(process_time)
    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.get("/health", tags=["Public"])
async def health_check():
    return {"status": "healthy", "version": app.version}


@app.get("/metrics", tags=["Public"])
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


# --- API Routers ---
app.include_router(automation.router, prefix=f"/api/{settings.api_version}")
app.include_router(webhooks.router, prefix=f"/api/{settings.api_version}/webhooks")

# --- Main Entry Point for Uvicorn (for local development) ---
if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    host = os.getenv("HOST", "127.0.0.1")

    uvicorn.run(
        "flowbot.main:app",
        host=host,
        port=port,
        reload=settings.environment == "development",
    )
