from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from core.i18n import set_locale

SUPPORTED_LOCALES = ("vi", "en")


def _pick_from_accept_language(al: str) -> str:
    """Parse Accept-Language with q weights, return the best tag.

    Examples:
      'vi-VN,vi;q=0.9,en-US;q=0.8,en;q=0.7' -> 'vi-VN'
    """
    items = []
    for part in al.split(","):
        p = part.strip()
        if not p:
            continue
        seg = p.split(";", 1)
        q = 1.0
        if len(seg) == 2 and seg[1].strip().startswith("q="):
            try:
                q = float(seg[1].strip()[2:])
            except ValueError:
                q = 1.0
        items.append((seg[0].strip(), q))
    if not items:
        return settings.DEFAULT_LOCALE
    # sort by q desc, keep order for ties
    items.sort(key=lambda x: x[1], reverse=True)
    return items[0][0]


def _normalize(lang: str) -> str:
    """Map browser tags such as ``vi-VN`` or ``en_US`` onto a supported locale."""
    base = (lang or "").replace("_", "-").split("-", 1)[0].lower()
    return base if base in SUPPORTED_LOCALES else settings.DEFAULT_LOCALE


class LocaleMiddleware(BaseHTTPMiddleware):
    """Parse locale from query/header and set it into context.

    Priority: ?lang=xx > X-Lang > Accept-Language > default 'vi'.
    """

    async def dispatch(self, request: Request, call_next):
        lang = request.query_params.get("lang") or request.headers.get("X-Lang")
        if not lang:
            al = request.headers.get("Accept-Language", "")
            lang = _pick_from_accept_language(al) if al else settings.DEFAULT_LOCALE
        locale = _normalize(lang)
        set_locale(locale)
        request.state.locale = locale
        return await call_next(request)
