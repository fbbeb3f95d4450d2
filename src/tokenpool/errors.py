class PoolExhausted(RuntimeError):
    """Raised at dispatch time when no credential in the pool can be used.

    Not retried by the pool: add credentials or raise limits, then try again.
    """

    def __init__(self, pool_size: int, message: str | None = None):
        self.pool_size = pool_size
        super().__init__(
            message or f"tokenpool: no available token in pool of size {pool_size}"
        )
