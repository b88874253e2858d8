"""Caller identity helpers.

認証そのものは対象外。上流（リバースプロキシ等）が付与した X-User-Id を
そのまま所有者IDとして扱い、無ければ既定ユーザとみなす。
"""

from fastapi import Request

from .config import settings

USER_ID_HEADER = "X-User-Id"


def get_request_user_id(request: Request) -> str:
    raw = request.headers.get(USER_ID_HEADER)
    text = (raw or "").strip()
    return text or settings.default_user_id
