import redis

from ...application.ports.rate_limiter import RateLimiter


class RedisRateLimiter(RateLimiter):
    """Fixed window per key; INCR and the first EXPIRE run in one MULTI block."""

    def __init__(self, url: str = None, prefix: str = "rl:", client=None) -> None:
        self.client = client if client is not None else redis.Redis.from_url(url)
        self.prefix = prefix

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        rk = f"{self.prefix}{key}:{window_seconds}"
        pipe = self.client.pipeline(transaction=True)
        pipe.incr(rk, 1)
        # NX keeps the window anchored at the first hit instead of sliding it
        pipe.expire(rk, window_seconds, nx=True)
        count, _ = pipe.execute()
        return int(count) <= int(max_requests)
