from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

from readnext.core.config import settings
from readnext.routers import recommendations
from readnext.database import init_db

# ----------------------------
# Logging
# ----------------------------
logger = logging.getLogger("readnext")
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(debug=settings.DEBUG)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("[UNHANDLED] %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# ----------------------------
# Routers
# ----------------------------
app.include_router(recommendations.router, prefix="/api")


@app.on_event("startup")
def on_startup() -> None:
    logger.info("[BOOT] readnext starting")
    init_db()


@app.get("/health")
def health_check():
    return {"status": "ok"}
