from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Literal, Optional


@dataclass(frozen=True)
class TokenRecord:
    id: int
    credential: str = field(repr=False)
    # None means nothing charged yet; compares like 0
    usage: int | None = None
    # None means unlimited
    limit: int | None = None

    @property
    def exhausted(self) -> bool:
        return self.limit is not None and (self.usage or 0) >= self.limit

    @property
    def remaining(self) -> int | None:
        if self.limit is None:
            return None
        return max(0, self.limit - (self.usage or 0))


@dataclass
class TokenConfig:
    credential: str
    limit: int | None = None
    usage: int | None = None
    # Only used for log lines; the credential itself is never logged.
    name: str | None = None


@dataclass(frozen=True)
class AuthConfig:
    header: str = "Authorization"
    scheme: str = "Bearer"
    in_: Literal["header", "query"] = "header"
    query_param: str = "api_key"


# algorithm(records, cursor) -> record to use, or None when nothing is eligible
SelectionAlgorithm = Callable[[Sequence[TokenRecord], int], Optional[TokenRecord]]
