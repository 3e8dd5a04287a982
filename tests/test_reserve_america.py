import pytest
import responses as resp_mock

from campsite_alerts.exceptions import TransientUpstreamError
from campsite_alerts.models import ParkSystem
from campsite_alerts.sources import SCRAPER_CLASSES, get_scraper
from campsite_alerts.sources.reserve_america import ReserveAmericaScraper

SEARCH_URL = "https://www.reserveamerica.com/campgroundAvailability.do"


@pytest.fixture
def scraper(scraper_config, sleeps):
    return ReserveAmericaScraper(config=scraper_config, sleep=sleeps.append)


@pytest.fixture
def alert(make_alert):
    return make_alert(park_system=ParkSystem.RESERVE_AMERICA, park_id="NY-123", campground_id="77")


@resp_mock.activate
def test_no_parser_means_zero_availability_not_failure(scraper, alert):
    resp_mock.add(resp_mock.GET, SEARCH_URL, body="<html>calendar</html>", status=200)

    assert ReserveAmericaScraper.parser_implemented is False
    assert scraper.check_availability(alert) == []

    url = resp_mock.calls[0].request.url
    assert "parkId=NY-123" in url
    assert "arvdate=2024-08-01" in url
    assert "campgroundId=77" in url


@resp_mock.activate
def test_fetch_failures_still_surface(scraper, alert, sleeps):
    for _ in range(3):
        resp_mock.add(resp_mock.GET, SEARCH_URL, body="down", status=503)

    with pytest.raises(TransientUpstreamError):
        scraper.check_availability(alert)
    assert sleeps == [1.0, 2.0]


def test_reservation_url(scraper):
    assert scraper.get_reservation_url("5", "77") == "https://www.reserveamerica.com/campsite/77/5"


def test_registry_covers_every_park_system():
    assert set(SCRAPER_CLASSES) == set(ParkSystem)
    assert get_scraper(ParkSystem.RESERVE_AMERICA) is get_scraper(ParkSystem.RESERVE_AMERICA)
