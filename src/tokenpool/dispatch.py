from .types import AuthConfig, TokenRecord


class Dispatch:
    """Scope of one outbound call: the selected credential plus its usage hooks.

    The record is fixed when the pool selects it, so both hooks always charge
    the credential that actually authenticated this call, whatever other
    dispatches do meanwhile.

    Hooks are live only while the scope is open. Once closed (normally by
    leaving ``pool.dispatch()``), late invocations are ignored, so a call
    cancelled before its response arrives is never charged the response cost.
    """

    def __init__(self, pool, record: TokenRecord):
        self.pool = pool
        self.token_id = record.id
        self.credential = record.credential
        # latest snapshot seen by this call; refreshed after each charge
        self.record = record
        self.closed = False
        self.cancelled = False

    def __repr__(self):
        state = "cancelled" if self.cancelled else ("closed" if self.closed else "open")
        return f"<Dispatch token_id={self.token_id} {state}>"

    # ---------- hooks invoked by the request pipeline ----------
    def pre_check(self, cost: int) -> bool:
        """Charge the estimated cost before the request goes out.

        Always allows the call while the scope is open; the limit is only
        consulted at selection time.
        """
        if self.closed:
            self.pool._logger.warning(
                f"pre-check on closed dispatch for token id={self.token_id}; ignored"
            )
            return False
        self._charge(cost, "pre-check")
        return True

    def post_process(self, cost: int) -> None:
        """Charge the actual cost reported once the response was received."""
        if self.closed:
            self.pool._logger.debug(
                f"post-process on closed dispatch for token id={self.token_id}; ignored"
            )
            return
        self._charge(cost, "post-process")

    def close(self, cancelled: bool = False) -> None:
        if self.closed:
            return
        self.closed = True
        self.cancelled = cancelled
        if cancelled:
            self.pool._logger.debug(f"dispatch for token id={self.token_id} cancelled")

    def _charge(self, cost: int, stage: str) -> None:
        rec = self.pool._store.charge(self.token_id, cost)
        if rec is None:
            self.pool._logger.info(
                f"token id={self.token_id} removed during call; {stage} charge of {cost} dropped"
            )
            return
        self.record = rec
        self.pool._logger.debug(
            f"{stage} charged {cost} to token id={self.token_id} usage={rec.usage}"
        )

    # ---------- credential injection ----------
    def auth_headers(self, auth_config: AuthConfig | None = None) -> dict[str, str]:
        ac = auth_config or AuthConfig()
        if ac.in_ == "query":
            return {}
        return {ac.header: f"{ac.scheme} {self.credential}".strip()}

    def auth_params(self, auth_config: AuthConfig | None = None) -> dict[str, str]:
        ac = auth_config or AuthConfig()
        if ac.in_ != "query":
            return {}
        return {ac.query_param: self.credential}
