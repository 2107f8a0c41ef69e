from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.i18n import set_locale

DEFAULT_LOCALE = "en"


def pick_accept_language(header: str) -> str:
    """Return the highest-weighted tag of an Accept-Language header.

    'fr-FR,fr;q=0.9,en;q=0.8' -> 'fr-FR'
    """
    best, best_q = DEFAULT_LOCALE, -1.0
    for part in header.split(","):
        lang, _, params = part.strip().partition(";")
        lang = lang.strip()
        if not lang or lang == "*":
            continue
        q = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                q = float(params[2:])
            except ValueError:
                q = 0.0
        if q > best_q:
            best, best_q = lang, q
    return best


def normalize_locale(lang: str) -> str:
    """en-US / en_GB -> en; other tags keep their primary subtag."""
    tag = (lang or DEFAULT_LOCALE).replace("_", "-").lower()
    return tag.split("-", 1)[0] or DEFAULT_LOCALE


class LocaleMiddleware(BaseHTTPMiddleware):
    """Parse locale from query/header and set into context.

    Priority: ?lang=xx > X-Lang > Accept-Language > default 'en'.
    """

    async def dispatch(self, request: Request, call_next):
        lang = request.query_params.get("lang") or request.headers.get("X-Lang")
        if not lang:
            header = request.headers.get("Accept-Language", "")
            lang = pick_accept_language(header) if header else DEFAULT_LOCALE
        locale = normalize_locale(lang)
        set_locale(locale)
        request.state.locale = locale
        return await call_next(request)
