from __future__ import annotations

"""Heuristics for "this remote asset does not really exist".

Third-party catalogs answer 200 with placeholder artwork or a soft "not found"
page instead of a 404. All of those string patterns live here so they can be
updated without touching fetch logic.
"""

from typing import Optional

import httpx


PLACEHOLDER_IMAGE_MARKERS: tuple[str, ...] = (
    "now_printing",
    "nowprinting",
    "now-printing",
    "noimage",
    "no_image",
)

NOT_FOUND_BODY_MARKERS: tuple[str, ...] = (
    "404 not found",
    "page not found",
    "ページが見つかりません",
    "お探しのページは見つかりません",
    "指定されたページが見つかりません",
    "お探しの商品が見つかりません",
    "この商品は現在お取り扱いしておりません",
)

# Soft-404 markers sit in the title or first heading; only the head of the body is scanned.
SOFT_404_SCAN_CHARS = 30000


def is_placeholder_image(url: Optional[str]) -> bool:
    if not url:
        return False
    lowered = url.lower()
    return any(marker in lowered for marker in PLACEHOLDER_IMAGE_MARKERS)


def is_miss_response(response: Optional[httpx.Response]) -> bool:
    """True when the response should be treated as "does not exist"."""
    if response is None:
        return True
    if not response.is_success:
        return True

    try:
        request: Optional[httpx.Request] = response.request
    except RuntimeError:
        request = None

    if request is not None and is_placeholder_image(str(request.url)):
        return True
    for hop in response.history:
        if is_placeholder_image(hop.headers.get("location")):
            return True

    content_type = response.headers.get("content-type", "").lower()
    if content_type.startswith("image/") or (request is not None and request.method == "HEAD"):
        return False

    try:
        text = response.text
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return False
    lowered = text[:SOFT_404_SCAN_CHARS].lower()
    return any(marker in lowered for marker in NOT_FOUND_BODY_MARKERS)
