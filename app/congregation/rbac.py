from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, has_request_context, redirect, request, url_for

from app.congregation.models import User


def permission_keys(user: User | None) -> frozenset[str]:
    """
    All permission keys granted to the user through their roles.
    Cached on `g` for the current request since templates ask repeatedly.
    """
    if not user or not user.is_active:
        return frozenset()
    cache: dict[int, frozenset[str]] | None = None
    if has_request_context():
        cache = g.setdefault("_permission_cache", {})
        if user.id in cache:
            return cache[user.id]
    keys = frozenset(p.key for role in user.roles for p in role.permissions)
    if cache is not None:
        cache[user.id] = keys
    return keys


def user_has_permission(user: User | None, permission_key: str) -> bool:
    return permission_key in permission_keys(user)


def require_permission(*permission_keys_any: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Grants access when the user holds any one of the given keys."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                nxt = request.full_path or request.path
                if nxt.endswith("?"):
                    nxt = nxt[:-1]
                return redirect(url_for("auth.login_get", next=nxt))
            granted = permission_keys(user)
            if not any(k in granted for k in permission_keys_any):
                g.missing_permission = " | ".join(permission_keys_any)
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
