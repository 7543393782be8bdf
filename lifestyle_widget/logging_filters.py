# --- Log sanitizer: host pages are whole HTML documents, session ids are per-visitor ---
import logging, re

_HTML_SIG_RE  = re.compile(r'(?is)<!DOCTYPE html|<html[^>]*>|<body[^>]*>')
_TITLE_RE     = re.compile(r'(?is)<title[^>]*>(.*?)</title>')
_TAG_RE       = re.compile(r'(?is)<[^>]+>')
_SCRIPT_RE    = re.compile(r'(?is)<(script|style)[^>]*>.*?</\1>')
_LD_JSON_RE   = re.compile(r'(?is)<script[^>]+application/ld\+json')
_SESSION_RE   = re.compile(r'\b([0-9a-f]{8})-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}\b', re.I)

MAX_HTML_CHARS = 200


def _visible_text(s: str) -> str:
    s = _SCRIPT_RE.sub('', s)
    s = _TAG_RE.sub(' ', s)
    return re.sub(r'\s+', ' ', s).strip()


def summarize_html(s: str, limit: int = MAX_HTML_CHARS) -> str:
    """'<title or first text> [HTML n chars, k ld+json] trimmed' for a page-sized blob."""
    m = _TITLE_RE.search(s)
    preview = (_visible_text(m.group(1)) if m else "") or _visible_text(s)[:limit]
    ld = len(_LD_JSON_RE.findall(s))
    extra = f", {ld} ld+json" if ld else ""
    return f"{preview} [HTML {len(s)} chars{extra} trimmed]"


def mask_session_ids(s: str) -> str:
    return _SESSION_RE.sub(lambda m: f"{m.group(1)}…", s)


class WidgetLogFilter(logging.Filter):
    """
    Rewrites a record's message before it is emitted:
    a host page pasted into a log line becomes a one-line summary, and
    session ids are cut to their first group.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except (TypeError, ValueError):
            return True
        if not isinstance(msg, str):
            return True
        out = msg
        if len(out) > MAX_HTML_CHARS and _HTML_SIG_RE.search(out):
            out = summarize_html(out)
        out = mask_session_ids(out)
        if out != msg:
            record.msg = out
            record.args = ()
        return True


def install_log_filter(names=("", "uvicorn", "uvicorn.error")) -> None:
    """Install once on common loggers (root + uvicorn family)."""
    for name in names:
        lg = logging.getLogger(name)
        if not any(isinstance(f, WidgetLogFilter) for f in lg.filters):
            lg.addFilter(WidgetLogFilter())
