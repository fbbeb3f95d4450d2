import inspect

from .auth import _zero_cost
from .pool import AsyncTokenPool


# ---------- aiohttp (async) ----------
# aiohttp has no client-side auth flow, so each request gets its own async
# context manager that owns one pool dispatch and preserves the
# 'async with client.get(...) as resp' pattern.
class _AiohttpRequestCtx:
    def __init__(self, outer, method, url, kwargs):
        self.outer = outer
        self.method = method
        self.url = url
        self.kwargs = kwargs
        self._resp = None
        self._call = None

    async def __aenter__(self):
        self._call = await self.outer.pool.begin_dispatch()
        ac = self.outer.auth_config
        try:
            headers = {**self.kwargs.pop("headers", {}), **self._call.auth_headers(ac)}
            params = {**self.kwargs.pop("params", {}), **self._call.auth_params(ac)}
            self._call.pre_check(self.outer.request_cost(self.kwargs))
            self._resp = await self.outer.session.request(
                self.method, self.url, headers=headers, params=params, **self.kwargs
            )
        except BaseException:
            self._call.close(cancelled=True)
            raise
        return self._resp

    async def __aexit__(self, exc_type, exc, tb):
        try:
            if exc_type is None:
                cost = self.outer.response_cost(self._resp)
                if inspect.isawaitable(cost):
                    cost = await cost
                self._call.post_process(cost)
        finally:
            try:
                if self._resp is not None and not self._resp.closed:
                    await self._resp.release()
            finally:
                self._call.close(cancelled=exc_type is not None)
        return False


class AiohttpClientContext:
    """Per-request pool dispatch over an aiohttp.ClientSession.

    Other keywords for kwargs:
    - auth_config: AuthConfig object (defaults to the pool's)
    - request_cost: fn(request_kwargs) -> int, e.g. reading the ``json`` payload
    - response_cost: fn(response) -> int | awaitable, run before the response is released
    """

    def __init__(self, pool: AsyncTokenPool, session=None, **kwargs):
        self.pool = pool
        self.session = session
        self.auth_config = kwargs.get("auth_config") or pool._auth_config
        self.request_cost = kwargs.get("request_cost", _zero_cost)
        self.response_cost = kwargs.get("response_cost", _zero_cost)
        self._own_session = False

    async def __aenter__(self):
        if self.session is None:
            import aiohttp  # noqa: PLC0415

            self.session = aiohttp.ClientSession()
            self._own_session = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._own_session:
            await self.session.close()
            self.session = None
            self._own_session = False
        return False

    # Return an async context manager per call, preserving aiohttp's pattern
    def request(self, method, url, **kwargs):
        return _AiohttpRequestCtx(self, method, url, kwargs)

    def get(self, url, **kw):
        return self.request("GET", url, **kw)

    def post(self, url, **kw):
        return self.request("POST", url, **kw)

    def put(self, url, **kw):
        return self.request("PUT", url, **kw)

    def delete(self, url, **kw):
        return self.request("DELETE", url, **kw)
