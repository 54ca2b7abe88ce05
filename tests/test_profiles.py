import pytest

from travel_matrix.schemas.artifact import TravelMatrixArtifact
from travel_matrix.services.profiles.deriver import (
    NODE_PENALTIES,
    PROFILES,
    CongestionProfileDeriver,
    ProfileKey,
    base_duration_minutes,
    profile_duration_minutes,
)


def _raw(distances) -> TravelMatrixArtifact:
    size = len(distances)
    return TravelMatrixArtifact(
        metadata={"source": "OSRM (Open Source Routing Machine)"},
        communes=[f"C{index}" for index in range(size)],
        distances=distances,
        durations=[[0] * size for _ in range(size)],
    )


def test_reference_values() -> None:
    base = base_duration_minutes(20, 40)

    assert base == 30
    assert profile_duration_minutes(base, 0.25) == 120
    assert profile_duration_minutes(base, 1.00) == 30


def test_non_positive_coefficient_is_rejected() -> None:
    with pytest.raises(ValueError):
        profile_duration_minutes(30, 0)


@pytest.mark.parametrize("speed_cap", [0, -10])
def test_non_positive_speed_cap_is_rejected(speed_cap: float) -> None:
    with pytest.raises(ValueError):
        CongestionProfileDeriver(speed_cap_kmh=speed_cap)


def test_diagonal_is_zero_even_with_nonzero_distance() -> None:
    derived = CongestionProfileDeriver(speed_cap_kmh=40).derive(_raw([[5.0, 20.0], [20.0, 3.0]]))

    assert derived.durations == [[0, 30.0], [30.0, 0]]
    for profile in derived.profiles.values():
        assert profile.durations[0][0] == 0
        assert profile.durations[1][1] == 0


def test_every_profile_is_square_and_index_aligned() -> None:
    distances = [[0, 12.0, 7.0], [12.1, 0, None], [6.9, 4.2, 0]]

    derived = CongestionProfileDeriver(speed_cap_kmh=40).derive(_raw(distances))

    assert set(derived.profiles) == {key.value for key in ProfileKey}
    assert derived.distances == distances
    assert derived.communes == ["C0", "C1", "C2"]
    for key, profile in derived.profiles.items():
        assert len(profile.durations) == 3 and all(len(row) == 3 for row in profile.durations)
        assert profile.coeff == PROFILES[ProfileKey(key)].coeff
        assert profile.durations[1][2] is None
    assert derived.profiles["morning_peak"].durations[0][1] == 72
    assert derived.durations[0][1] == 18.0


def test_smaller_coefficient_means_longer_trip() -> None:
    derived = CongestionProfileDeriver(speed_cap_kmh=40).derive(_raw([[0, 20.0], [20.0, 0]]))

    night = derived.profiles["night"].durations[0][1]
    evening = derived.profiles["evening"].durations[0][1]
    peak = derived.profiles["morning_peak"].durations[0][1]
    assert night < evening < peak


@pytest.mark.parametrize("distance_km", [0.5, 1.3, 7.9, 20.0, 41.7])
def test_lower_speed_cap_never_shortens_free_flow(distance_km: float) -> None:
    free_flow_minutes = distance_km / (49 / 60)

    assert base_duration_minutes(distance_km, 40) >= free_flow_minutes


def test_metadata_carries_penalties_without_applying_them() -> None:
    derived = CongestionProfileDeriver(speed_cap_kmh=40).derive(_raw([[0, 20.0], [20.0, 0]]), based_on="travel-osrm.json")

    assert derived.metadata["nodePenalties"] == [dict(item) for item in NODE_PENALTIES]
    assert derived.metadata["basedOn"] == "travel-osrm.json"
    assert derived.metadata["speedCapKmh"] == 40
    assert derived.profiles["night"].durations[0][1] == 30
    assert derived.default_profile == "midday"


def test_document_uses_camel_case_keys() -> None:
    document = CongestionProfileDeriver(speed_cap_kmh=40).derive(_raw([[0, 1.0], [1.0, 0]])).to_document()

    assert document["defaultProfile"] == "midday"
    assert document["profiles"]["midday"]["speedRange"] == "12-14 km/h"
    assert TravelMatrixArtifact.model_validate(document).profiles["midday"].coeff == 0.35
