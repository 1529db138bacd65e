"""Front-end channel names and the backend routes they map to."""

from dataclasses import dataclass
from typing import Iterable
from urllib.parse import quote

# Characters encodeURIComponent leaves alone on top of quote()'s "_.-~"
_URI_COMPONENT_SAFE = "!*'()"


@dataclass(frozen=True)
class Route:
    channel: str
    prefix: str
    deferrable: bool = True


DEFAULT_ROUTES: tuple[Route, ...] = (
    Route("configSync", "/config-sync/"),
    Route("export", "/export/"),
    Route("payAssets", "/pay-assets/"),
    Route("payInfo", "/pay/"),
    Route("payTxs", "/pay-txs/"),
    Route("txInfo", "/tx/"),
    Route("status", "/status/"),
    Route("stakeAssets", "/stake-assets/"),
    Route("stakeInfo", "/stake/"),
    Route("stakeTxs", "/stake-txs/"),
    Route("sync", "/sync/", deferrable=False),
)

STATUS_PREFIX = "/status/"


def format_param(value: object) -> str:
    """Render one positional parameter the way the front end spells it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_target(prefix: str, params: Iterable[object]) -> str:
    """Join *prefix* with URL-escaped *params*, e.g. ``/pay/`` + ``["a b"]`` -> ``/pay/a%20b``."""
    return prefix + "/".join(quote(format_param(p), safe=_URI_COMPONENT_SAFE) for p in params)


def route_table(routes: Iterable[Route]) -> dict[str, Route]:
    table: dict[str, Route] = {}
    for route in routes:
        if route.channel in table:
            raise ValueError(f"duplicate route for channel {route.channel!r}")
        table[route.channel] = route
    return table
