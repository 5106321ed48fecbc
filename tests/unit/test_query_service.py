import pytest

from gas_stations.common.errors import InvalidQuery
from gas_stations.common.models import GasStation
from gas_stations.service.query import ProximityQueryService


class RecordingRepository:
    def __init__(self):
        self.calls = []

    def nearby(self, latitude, longitude, radius_km):
        self.calls.append((latitude, longitude, radius_km))
        return []

    def list_all(self):
        return [GasStation(object_id=1, address="A", longitude=6.9, latitude=50.9)]


def test_find_nearby_converts_meters_to_kilometers():
    repo = RecordingRepository()
    service = ProximityQueryService(repo)

    service.find_nearby("50.9413", "6.9583", "2000")

    assert repo.calls == [(50.9413, 6.9583, 2.0)]


def test_find_nearby_defaults_radius_to_one_kilometer():
    repo = RecordingRepository()
    service = ProximityQueryService(repo)

    service.find_nearby(50.9, 6.9)
    service.find_nearby(50.9, 6.9, "")

    assert [call[2] for call in repo.calls] == [1.0, 1.0]


def test_find_nearby_uses_configured_default_radius():
    repo = RecordingRepository()
    ProximityQueryService(repo, default_radius_meters=500).find_nearby(50.9, 6.9)

    assert repo.calls[0][2] == 0.5


@pytest.mark.parametrize(
    ("lat", "lng", "radius"),
    [
        (None, 6.95, 1000),
        ("50.9", None, 1000),
        ("", "6.95", None),
        ("north", "6.95", None),
        ("NaN", "6.95", None),
        ("50.9", "inf", None),
        ("91", "6.95", None),
        ("50.9", "-180.01", None),
        ("50.9", "6.95", "0"),
        ("50.9", "6.95", "-5"),
        ("50.9", "6.95", "wide"),
    ],
)
def test_find_nearby_invalid_input_never_reaches_repository(lat, lng, radius):
    repo = RecordingRepository()
    service = ProximityQueryService(repo)

    with pytest.raises(InvalidQuery):
        service.find_nearby(lat, lng, radius)
    assert repo.calls == []


def test_list_all_delegates():
    service = ProximityQueryService(RecordingRepository())
    assert [s.object_id for s in service.list_all()] == [1]
