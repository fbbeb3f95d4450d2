from .adapters import AiohttpClientContext
from .auth import PoolAuth
from .dispatch import Dispatch
from .env import load_tokens_from_env, parse_token_entry
from .errors import PoolExhausted
from .policies import coerce_algorithm, round_robin, strict_round_robin
from .pool import AsyncTokenPool, TokenPool
from .store import TokenStore
from .types import AuthConfig, SelectionAlgorithm, TokenConfig, TokenRecord

__all__ = [
    "TokenRecord",
    "TokenConfig",
    "AuthConfig",
    "SelectionAlgorithm",
    "TokenStore",
    "TokenPool",
    "AsyncTokenPool",
    "Dispatch",
    "PoolExhausted",
    "round_robin",
    "strict_round_robin",
    "coerce_algorithm",
    "PoolAuth",
    "AiohttpClientContext",
    "load_tokens_from_env",
    "parse_token_entry",
]
