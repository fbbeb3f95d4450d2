"""Build TokenConfig lists from environment variables.

Each variable holds one or more credential entries separated by commas. An
entry may carry its own accounting after the credential, so a host can rebuild
a pool with the usage it had before a restart::

    OPENAI_KEYS="sk-a;limit=100000;usage=2500, sk-b;limit=50000, sk-c"

Options not given on an entry fall back to the loader's ``limit`` argument
(for ``limit``) or stay unset (for ``usage``).
"""

import os
from collections.abc import Iterable

from .types import TokenConfig

_ENTRY_OPTIONS = ("limit", "usage")


def _read_dotenv(env_path: str) -> dict[str, str]:
    """Return KEY=VALUE assignments from a .env file; a missing file reads as empty.

    Blank lines, ``#`` comments and an optional ``export`` keyword are skipped;
    one layer of matching quotes around a value is removed.
    """
    if not os.path.exists(env_path):
        return {}
    assignments: dict[str, str] = {}
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if line.startswith("export "):
                line = line[len("export ") :].lstrip()
            key, sep, value = line.partition("=")
            key, value = key.strip(), value.strip()
            if not sep or not key or key.startswith("#"):
                continue
            if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":  # noqa: PLR2004
                value = value[1:-1]
            assignments[key] = value
    return assignments


def parse_token_entry(entry: str, name: str | None = None, limit: int | None = None) -> TokenConfig:
    """Parse ``credential[;limit=N][;usage=N]`` into a TokenConfig.

    Raises:
        ValueError: on an unknown option, a non-integer or negative amount, or an
            empty credential
    """
    credential, *options = (part.strip() for part in entry.split(";"))
    if not credential:
        raise ValueError(f"tokenpool: empty credential in {name or 'entry'}")
    amounts: dict[str, int | None] = {"limit": limit, "usage": None}
    for option in options:
        if not option:
            continue
        key, _, raw = option.partition("=")
        key = key.strip().lower()
        if key not in _ENTRY_OPTIONS:
            raise ValueError(f"tokenpool: unknown option {key!r} in {name or 'entry'}")
        try:
            amount = int(raw)
        except ValueError:
            raise ValueError(f"tokenpool: {key} must be an integer in {name or 'entry'}") from None
        if amount < 0:
            raise ValueError(f"tokenpool: {key} must be non-negative in {name or 'entry'}")
        amounts[key] = amount
    return TokenConfig(credential=credential, name=name, **amounts)


def load_tokens_from_env(
    names: Iterable[str] | None = None,
    prefix: str | None = None,
    limit: int | None = None,
    env_path: str | None = None,
    **kwargs,
) -> list[TokenConfig]:
    """Create TokenConfig objects from environment variables.

    Variables are taken from 'names' (in the given order), then every variable
    starting with 'prefix' (sorted by name); a variable matched twice is read
    once. Values found in the process environment win over the .env file at
    'env_path'. 'limit' is the default limit for entries that do not set one.

    kwargs keywords:
    to_lower_names: make names lowercase (default False)
    split_commas: treat commas as entry separators (default True)
    strip_prefix: strip prefix from names (default False)
    """
    environ = {**(_read_dotenv(env_path) if env_path else {}), **os.environ}
    split_commas = kwargs.get("split_commas", True)
    to_lower_names = kwargs.get("to_lower_names", False)
    strip_prefix = kwargs.get("strip_prefix", False)

    selected = list(dict.fromkeys(names or []))
    if prefix:
        selected += [v for v in sorted(environ) if v.startswith(prefix) and v not in selected]

    configs: list[TokenConfig] = []
    for var in selected:
        value = environ.get(var, "")
        entries = [e for e in (value.split(",") if split_commas else [value]) if e.strip()]
        if not entries:
            continue
        label = var[len(prefix) :] if strip_prefix and prefix and var.startswith(prefix) else var
        if to_lower_names:
            label = label.lower()
        for idx, entry in enumerate(entries):
            entry_name = f"{label}_{idx + 1}" if len(entries) > 1 else label
            configs.append(parse_token_entry(entry, name=entry_name, limit=limit))
    return configs
