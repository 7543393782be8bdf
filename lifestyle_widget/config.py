# ----------------------------------------------------------------
# Import configuration variables to be used throughout the project
# ----------------------------------------------------------------
import os
from urllib.parse import urlparse
from dotenv import load_dotenv

# Load .env (allow container env to override file values)
load_dotenv(override=True)


def _rstrip_slash(s: str) -> str:
    return (s or "").rstrip("/")


def _get_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on", "y"}


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _origin_of(url: str) -> str:
    p = urlparse(url or "")
    if not p.scheme or not p.netloc:
        return ""
    return f"{p.scheme}://{p.netloc}"


class Settings:
    # ── Remote widget API ────────────────────────────────────────────────────
    WIDGET_API_BASE: str = _rstrip_slash(os.getenv("WIDGET_API_BASE", "http://localhost:3000/api"))
    WIDGET_REQUEST_TIMEOUT: float = _get_float("WIDGET_REQUEST_TIMEOUT", 10.0)
    WIDGET_MAX_RENDERS: int = _get_int("WIDGET_MAX_RENDERS", 2)

    # ── Embed ────────────────────────────────────────────────────────────────
    # Where /widget is served; the parent listener only trusts this origin
    WIDGET_BASE_URL: str = _rstrip_slash(os.getenv("WIDGET_BASE_URL", "http://localhost:3000"))
    WIDGET_ORIGIN: str = _rstrip_slash(
        os.getenv("WIDGET_ORIGIN", "") or _origin_of(os.getenv("WIDGET_BASE_URL", "http://localhost:3000"))
    )

    # ── Session identity ─────────────────────────────────────────────────────
    WIDGET_SESSION_KEY: str = os.getenv("WIDGET_SESSION_KEY", "shopify-widget-session")

    # ── Widget behaviour ─────────────────────────────────────────────────────
    WIDGET_PREHYDRATE_LIKES: bool = _get_bool("WIDGET_PREHYDRATE_LIKES", True)
    # "always" → one like event per successful toggle; "liked_only" → only on toggle-to-true
    LIKE_EVENT_POLICY: str = (os.getenv("LIKE_EVENT_POLICY", "always") or "always").strip().lower()

    # Comma-separated CSS selectors, tried in order by init()
    WIDGET_TARGET_SELECTORS: list[str] = [
        s.strip() for s in os.getenv(
            "WIDGET_TARGET_SELECTORS",
            ".product-single__description, .product__description, .product-form",
        ).split(",") if s.strip()
    ]

    # ── Server ───────────────────────────────────────────────────────────────
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = _get_int("PORT", 8000)

    # ── CORS ─────────────────────────────────────────────────────────────────
    # Comma-separated list in .env, e.g. "https://example.com, https://foo.bar"
    CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


settings = Settings()
