import asyncio
import logging
import threading
from typing import Union

from .auth import PoolAuth
from .dispatch import Dispatch
from .env import load_tokens_from_env
from .errors import PoolExhausted
from .policies import coerce_algorithm
from .store import TokenStore
from .types import AuthConfig, TokenConfig, TokenRecord

# env loader flags forwarded by from_env; everything else goes to the pool
_LOADER_FLAGS = {"to_lower_names", "split_commas", "strip_prefix"}


def _as_config(token: Union[str, TokenConfig]) -> TokenConfig:
    return token if isinstance(token, TokenConfig) else TokenConfig(credential=token)


def _resolve_auth_config(kwargs: dict) -> AuthConfig:
    # Prefer AuthConfig if provided, else build one from the auth_* keywords
    if kwargs.get("auth_config") is not None:
        return kwargs["auth_config"]
    return AuthConfig(
        header=kwargs.get("auth_header", "Authorization"),
        scheme=kwargs.get("auth_scheme", "Bearer"),
        in_=kwargs.get("auth_in", "header"),
        query_param=kwargs.get("auth_query_param", "api_key"),
    )


# ---------- Base pool (shared logic; synchronization handled by subclasses) ----------


class _PoolCore:
    def __init__(
        self,
        api_key: Union[str, TokenConfig],
        tokens: Union[list[TokenConfig], None],
        algorithm: Union[object, None],
        log_level: Union[int, None],
        auth_config: AuthConfig,
    ):
        """Initialize a pool seeded with api_key, then any extra tokens in order.

        Args:
            api_key (str | TokenConfig): initial credential, always id 1
            tokens (list[TokenConfig] | None): further credentials, optionally with
                prior usage and limits (e.g. when rebuilding a pool at startup)
            algorithm: selection algorithm, name ("round_robin" | "strict") or callable
            log_level (int | None): level for the "tokenpool" logger
            auth_config (AuthConfig): how credentials are injected into requests

        Raises:
            ValueError: if api_key is empty
        """
        seed = _as_config(api_key)
        if not seed.credential:
            raise ValueError("tokenpool: an initial api_key is required")
        self._store = TokenStore()
        self._algorithm = coerce_algorithm(algorithm)
        # grows by one per successful selection; taken modulo at selection time
        self._cursor = 0
        # most recently dispatched token, for reporting only; hooks never read it
        self._current_id: Union[int, None] = None
        self._auth_config = auth_config
        self._logger = logging.getLogger("tokenpool")
        if log_level is not None:
            self._logger.setLevel(log_level)
        for cfg in [seed, *(_as_config(t) for t in tokens or [])]:
            self._seed(cfg)

    def _seed(self, cfg: TokenConfig) -> TokenRecord:
        rec = self._store.add(cfg.credential)
        if cfg.limit is not None or cfg.usage is not None:
            rec = self._store.update(rec.id, limit=cfg.limit, usage=cfg.usage)
        self._logger.debug(
            f"seeded token id={rec.id} name={cfg.name} limit={rec.limit} usage={rec.usage}"
        )
        return rec

    # ---------- management API ----------
    def add_token(self, credential: str) -> TokenRecord:
        rec = self._store.add(credential)
        self._logger.info(f"added token id={rec.id}")
        return rec

    def get_token(self, token_id: int) -> Union[TokenRecord, None]:
        return self._store.get(token_id)

    def update_token(self, token_id: int, **changes) -> Union[TokenRecord, None]:
        """Merge changes (usage, limit, credential) into a record; None if the id is unknown."""
        return self._store.update(token_id, **changes)

    def delete_token(self, token_id: int) -> bool:
        removed = self._store.delete(token_id)
        if removed:
            self._logger.info(f"deleted token id={token_id}")
        return removed

    def list_tokens(self) -> list[TokenRecord]:
        return self._store.snapshot()

    def set_selection_algorithm(self, algorithm) -> None:
        self._algorithm = coerce_algorithm(algorithm)

    def get_current_token(self) -> Union[TokenRecord, None]:
        if self._current_id is None:
            return None
        return self._store.get(self._current_id)

    # ---------- selection (caller holds the pool lock) ----------
    def _select(self) -> Dispatch:
        records = self._store.snapshot()
        try:
            chosen = self._algorithm(records, self._cursor)
        except Exception:
            self._logger.exception(f"selection algorithm failed on pool of size {len(records)}")
            chosen = None
        else:
            if chosen is not None and not (
                isinstance(chosen, TokenRecord) and chosen in records
            ):
                self._logger.warning(
                    f"selection algorithm returned {type(chosen).__name__}, "
                    "not a record of this pool; treating as exhausted"
                )
                chosen = None
        if chosen is None:
            self._logger.warning(f"no available token found in token pool of size {len(records)}")
            raise PoolExhausted(len(records))
        self._cursor += 1
        self._current_id = chosen.id
        self._logger.debug(f"selected token id={chosen.id} cursor={self._cursor}")
        return Dispatch(self, chosen)

    # ---------- convenience: build tokens from env ----------
    @classmethod
    def from_env(
        cls,
        names=None,
        prefix: Union[str, None] = None,
        limit: Union[int, None] = None,
        env_path: Union[str, None] = None,
        **kwargs,
    ):
        """Create a pool from environment variables.

        The first credential found seeds the pool; the rest are added in order.

        Args:
            names (Iterable[str], optional): explicit env var names
            prefix (Union[str, None], optional): env var name prefix to scan
            limit (Union[int, None], optional): usage limit applied to every credential
            env_path (Union[str, None], optional): .env file to augment the environment

            kwargs keywords:
            to_lower_names: make names lowercase
            split_commas: split comma-separated values
            strip_prefix: strip prefix from names
            anything else is passed to the pool constructor

        Raises:
            ValueError: if no credential was found
        """
        loader_keys = {k: kwargs.pop(k) for k in list(kwargs.keys()) if k in _LOADER_FLAGS}
        configs = load_tokens_from_env(
            names=names, prefix=prefix, limit=limit, env_path=env_path, **loader_keys
        )
        if not configs:
            raise ValueError("tokenpool: no credentials found in environment")
        return cls(configs[0], tokens=configs[1:], **kwargs)


# ---------- Sync pool (threads, requests, httpx.Client) ----------


class TokenPool(_PoolCore):
    def __init__(
        self,
        api_key: Union[str, TokenConfig],
        tokens: Union[list[TokenConfig], None] = None,
        algorithm: Union[object, None] = None,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        """Initialize a TokenPool.

        kwargs:
        - auth_config: AuthConfig object
        - auth_header: str
        - auth_scheme: str
        - auth_in: str
        - auth_query_param: str
        """
        super().__init__(api_key, tokens, algorithm, log_level, _resolve_auth_config(kwargs))
        self._lock = threading.Lock()

    def dispatch(self):
        """Context manager yielding a Dispatch for one call."""
        return _SyncDispatchLease(self)

    def begin_dispatch(self) -> Dispatch:
        """Select a credential for one call; the caller must close() the result."""
        with self._lock:
            return self._select()

    def auth(self, **kwargs) -> PoolAuth:
        """Return a PoolAuth usable with requests and httpx.Client."""
        return PoolAuth(self, **kwargs)


# ---------- Async pool (asyncio, httpx.AsyncClient, aiohttp) ----------


class AsyncTokenPool(_PoolCore):
    def __init__(
        self,
        api_key: Union[str, TokenConfig],
        tokens: Union[list[TokenConfig], None] = None,
        algorithm: Union[object, None] = None,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        """Initialize an AsyncTokenPool.

        Takes the same keywords as TokenPool. Management operations stay
        synchronous; only dispatch is awaited.
        """
        super().__init__(api_key, tokens, algorithm, log_level, _resolve_auth_config(kwargs))
        self._lock = asyncio.Lock()

    def dispatch(self):
        """Async context manager yielding a Dispatch for one call."""
        return _AsyncDispatchLease(self)

    async def begin_dispatch(self) -> Dispatch:
        async with self._lock:
            return self._select()

    def auth(self, **kwargs) -> PoolAuth:
        """Return a PoolAuth usable with httpx.AsyncClient."""
        return PoolAuth(self, **kwargs)

    def aiohttp_client(self, session=None, **kwargs):
        from .adapters import AiohttpClientContext  # noqa: PLC0415

        return AiohttpClientContext(self, session=session, **kwargs)


# ---------- Dispatch leases (charge on success, no-op after cancellation) ----------


class _SyncDispatchLease:
    def __init__(self, pool: TokenPool):
        self.pool = pool
        self.call: Union[Dispatch, None] = None

    def __enter__(self) -> Dispatch:
        self.call = self.pool.begin_dispatch()
        return self.call

    def __exit__(self, exc_type, exc, tb):
        # an exception means the call never completed
        self.call.close(cancelled=exc_type is not None)
        return False


class _AsyncDispatchLease:
    def __init__(self, pool: AsyncTokenPool):
        self.pool = pool
        self.call: Union[Dispatch, None] = None

    async def __aenter__(self) -> Dispatch:
        self.call = await self.pool.begin_dispatch()
        return self.call

    async def __aexit__(self, exc_type, exc, tb):
        self.call.close(cancelled=exc_type is not None)
        return False
