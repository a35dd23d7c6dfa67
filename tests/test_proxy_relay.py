from urllib.parse import parse_qs, urlsplit

from config.settings import CrawlSettings
from core.proxy_relay import ProxyRelay


def test_wrap_encodes_target_url():
    relay = ProxyRelay("https://proxy.scrapeops.io/v1", api_key="abc")

    wrapped = relay.wrap("https://www.chocolate.co.uk/collections/all?page=2&sort=asc")

    parts = urlsplit(wrapped)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://proxy.scrapeops.io/v1"
    assert parse_qs(parts.query) == {
        "api_key": ["abc"],
        "url": ["https://www.chocolate.co.uk/collections/all?page=2&sort=asc"],
    }


def test_api_key_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv("SCRAPEOPS_API_KEY", "from-env")

    assert ProxyRelay("https://relay.test").api_key == "from-env"


def test_from_settings_disabled_by_default():
    assert ProxyRelay.from_settings(CrawlSettings()) is None


def test_from_settings_without_key_navigates_directly(monkeypatch):
    monkeypatch.delenv("SCRAPEOPS_API_KEY", raising=False)

    assert ProxyRelay.from_settings(CrawlSettings(proxy_relay_enabled=True)) is None


def test_from_settings_with_key():
    relay = ProxyRelay.from_settings(
        CrawlSettings(proxy_relay_enabled=True, scrapeops_api_key="k")
    )

    assert relay.endpoint == "https://proxy.scrapeops.io/v1"
    assert relay.api_key == "k"
