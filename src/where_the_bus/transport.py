"""How upstream URLs are reached.

Some deployments cannot open the train feed's non-standard port, so the
request goes through an HTTP relay that takes the real URL as a
percent-encoded query parameter. The choice is made once, from settings.
"""

import logging
from abc import ABC, abstractmethod
from urllib.parse import quote

import httpx

from where_the_bus.config import Settings
from where_the_bus.models import VehicleClass

logger = logging.getLogger(__name__)


class Transport(ABC):
    name = "base"

    @abstractmethod
    def resolve_url(self, url: str) -> str:
        """URL actually requested to reach ``url``."""

    async def get(
        self, client: httpx.AsyncClient, url: str, timeout: float
    ) -> httpx.Response:
        return await client.get(
            self.resolve_url(url), timeout=timeout, follow_redirects=True
        )


class DirectTransport(Transport):
    name = "direct"

    def resolve_url(self, url: str) -> str:
        return url


class RelayTransport(Transport):
    name = "relayed"

    def __init__(self, relay_url: str, param: str = "url"):
        self.relay_url = relay_url
        self.param = param

    def resolve_url(self, url: str) -> str:
        sep = "&" if "?" in self.relay_url else "?"
        return f"{self.relay_url}{sep}{self.param}={quote(url, safe='')}"


def build_transports(settings: Settings) -> dict[VehicleClass, Transport]:
    """Pick a transport per feed type.

    The bus feed is on a standard port and is always fetched directly;
    only the train feed goes through the relay in relayed deployments.
    """
    train: Transport = DirectTransport()
    if settings.relayed:
        train = RelayTransport(settings.relay_url)
    logger.info("Train feed transport: %s", train.name)
    return {
        VehicleClass.BUS: DirectTransport(),
        VehicleClass.TRAIN: train,
    }
