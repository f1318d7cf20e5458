"""Fixed-window rate limiting.

Counters are kept in a ``limits`` storage backend (the same engine slowapi
runs on): ``memory://`` holds them per process, a ``redis://`` URI shares
them between instances. Each :class:`RateLimiter` is a FastAPI dependency
with its own window and key function.
"""
import logging
import math
import time
from typing import Callable

from fastapi import Request, Response
from jose import JWTError
from limits import RateLimitItem, RateLimitItemPerMinute
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter
from slowapi.util import get_remote_address

from errors import AppError, ErrorKind
from security import bearer_token, decode_access_token
from settings import settings

logger = logging.getLogger(__name__)

KeyFunc = Callable[[Request], str]


def key_by_ip(request: Request) -> str:
    return f"ip:{get_remote_address(request)}"


def key_by_user_or_ip(request: Request) -> str:
    token = bearer_token(request)
    if token:
        try:
            return f"user:{decode_access_token(token)}"
        except JWTError:
            pass
    return key_by_ip(request)


class RateLimiter:
    def __init__(self, name: str, item: RateLimitItem, key_func: KeyFunc, message: str, storage: Storage):
        self.name = name
        self.item = item
        self.key_func = key_func
        self.message = message
        self.storage = storage
        self.strategy = FixedWindowRateLimiter(storage)

    def hit(self, key: str):
        """Count one request for ``key``; return (allowed, remaining, reset_time)."""
        allowed = self.strategy.hit(self.item, self.name, key)
        reset_time, remaining = self.strategy.get_window_stats(self.item, self.name, key)
        return allowed, remaining, reset_time

    def peek(self, key: str):
        reset_time, remaining = self.strategy.get_window_stats(self.item, self.name, key)
        return remaining, reset_time

    def clear(self, key: str):
        self.strategy.clear(self.item, self.name, key)

    async def __call__(self, request: Request, response: Response):
        key = self.key_func(request)
        allowed, remaining, reset_time = self.hit(key)
        headers = {
            "X-RateLimit-Limit": str(self.item.amount),
            "X-RateLimit-Remaining": str(max(0, remaining)),
            "X-RateLimit-Reset": str(int(math.ceil(reset_time))),
        }
        if not allowed:
            retry_after = max(0, int(math.ceil(reset_time - time.time())))
            headers["Retry-After"] = str(retry_after)
            logger.warning("Rate limit %r exceeded for %s", self.name, key)
            raise AppError(
                ErrorKind.RATE_LIMIT,
                self.message,
                headers=headers,
                extra={"retryAfter": retry_after},
            )
        response.headers.update(headers)


storage = storage_from_string(settings.RATE_LIMIT_STORAGE_URI)

general_limiter = RateLimiter(
    "general",
    RateLimitItemPerMinute(100, 15),
    key_by_ip,
    "Too many requests from this IP, please try again later.",
    storage,
)

auth_limiter = RateLimiter(
    "auth",
    RateLimitItemPerMinute(20, 15),
    key_by_ip,
    "Too many authentication attempts, please try again later.",
    storage,
)

user_limiter = RateLimiter(
    "user",
    RateLimitItemPerMinute(200, 15),
    key_by_user_or_ip,
    "Too many requests, please try again later.",
    storage,
)

todo_creation_limiter = RateLimiter(
    "todo-creation",
    RateLimitItemPerMinute(10, 1),
    key_by_user_or_ip,
    "Too many todo creations, please slow down.",
    storage,
)


def reset_all():
    storage.reset()
