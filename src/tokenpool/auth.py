import inspect

import httpx

from .types import AuthConfig


def _zero_cost(_obj) -> int:
    return 0


class PoolAuth(httpx.Auth):
    """One object that plugs pool dispatch into requests and httpx.

    - requests: __call__(request) protocol injects the credential, charges the request
        cost, and registers a response hook that charges the response cost.
    - httpx: auth_flow / async_auth_flow wrap each request in a pool dispatch, so a
        transport error or cancellation closes the dispatch without a response charge.

    Other keywords for kwargs:
    - auth_config: AuthConfig object (defaults to the pool's)
    - request_cost: fn(request) -> int, charged through pre_check before sending
    - response_cost: fn(response) -> int, charged through post_process on response;
        with httpx.AsyncClient it may also return an awaitable
    - read_response_body: httpx only, read the body before response_cost runs
        (default: True when response_cost is given)
    """

    def __init__(self, pool, **kwargs):
        self.pool = pool
        self.auth_config: AuthConfig = kwargs.get("auth_config") or pool._auth_config
        self.request_cost = kwargs.get("request_cost", _zero_cost)
        self.response_cost = kwargs.get("response_cost", _zero_cost)
        self.requires_response_body = kwargs.get(
            "read_response_body", "response_cost" in kwargs
        )
        self._async = inspect.iscoroutinefunction(getattr(pool, "begin_dispatch", None))

    # ------------------------ requests auth protocol ------------------------
    def __call__(self, r):
        """Inject the credential into a requests.PreparedRequest.

        requests only reports back through response hooks. If the adapter raises,
        the hook never runs: the dispatch stays open but unreachable, and only the
        request cost is charged. Redirect responses are not charged; the hook
        travels with the redirected request and charges the final response.
        """
        if self._async:
            raise RuntimeError("Use httpx.AsyncClient (not requests) with an AsyncTokenPool.")
        call = self.pool.begin_dispatch()
        r.headers.update(call.auth_headers(self.auth_config))
        params = call.auth_params(self.auth_config)
        if params:
            r.prepare_url(r.url, params)
        try:
            call.pre_check(self.request_cost(r))
        except Exception:
            call.close(cancelled=True)
            raise

        def _hook(resp, *args, **kwargs):
            if resp.is_redirect:
                return resp
            call.post_process(self.response_cost(resp))
            call.close()
            return resp

        r.register_hook("response", _hook)
        return r

    def _inject(self, request: httpx.Request, call) -> None:
        request.headers.update(call.auth_headers(self.auth_config))
        params = call.auth_params(self.auth_config)
        if params:
            request.url = request.url.copy_merge_params(params)

    # ------------------------ httpx sync ------------------------
    def auth_flow(self, request):
        if self._async:
            raise RuntimeError("Use an AsyncClient or async_auth_flow with an AsyncTokenPool.")
        with self.pool.dispatch() as call:
            self._inject(request, call)
            call.pre_check(self.request_cost(request))
            response = yield request
            call.post_process(self.response_cost(response))

    # ------------------------ httpx async ------------------------
    async def async_auth_flow(self, request):
        if not self._async:
            raise RuntimeError("Use a Client or auth_flow with a TokenPool.")
        async with self.pool.dispatch() as call:
            self._inject(request, call)
            call.pre_check(self.request_cost(request))
            response = yield request
            if self.requires_response_body:
                await response.aread()
            cost = self.response_cost(response)
            if inspect.isawaitable(cost):
                cost = await cost
            call.post_process(cost)
