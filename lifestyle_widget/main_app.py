#=================================================================
# lifestyle_widget/main_app.py
# FastAPI application entry-point for the lifestyle widget runtime.
#=================================================================

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from lifestyle_widget.config import settings
from lifestyle_widget.logging_filters import install_log_filter
from lifestyle_widget.routes import router as widget_router

# --- FastAPI instance ---
app = FastAPI(
    title="Lifestyle Widget Runtime",
    description="Serves the embeddable lifestyle image widget and its SKU detection helpers.",
)

# --- Logging setup (console, INFO level) ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s | %(message)s"
)
logger = logging.getLogger("uvicorn.error")
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
install_log_filter()

# --- CORS (the widget is embedded on third-party storefronts) ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# ---------------- Include routers ----------------
app.include_router(widget_router)  # /widget, /api/widget/*


# --- Root endpoint ---
@app.get("/")
async def home():
    return {"status": "running", "service": "Lifestyle Widget Runtime"}


# --- Global error handler (keeps full stack trace in logs) ---
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "reason": "internal_error", "detail": str(exc)},
    )


def run():
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
