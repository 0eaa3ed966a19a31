import pytest

from where_the_bus.config import Settings

BASE_ENV = {
    "BUS_FEED_URL": "https://bus.example.com/vehicles.json",
    "TRAIN_FEED_URL": "http://rail.example.com:8443/gtfs-rt/vehiclepositions",
    "SERVICE_AREA_BBOX": "33.40,-84.80,34.20,-83.90",
    "DEPLOYMENT_CONTEXT": "direct",
    "MOCK_MODE": "false",
    "WARM_CACHE": "false",
}


@pytest.fixture
def make_settings(monkeypatch):
    """Build Settings from BASE_ENV plus overrides."""

    def _make(**overrides) -> Settings:
        for key, value in {**BASE_ENV, **overrides}.items():
            monkeypatch.setenv(key, value)
        return Settings()

    return _make
