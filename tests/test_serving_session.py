import pytest

from travel_matrix.errors import SessionStateError
from travel_matrix.schemas.artifact import ProfileMatrix, TravelMatrixArtifact
from travel_matrix.services.serving.session import (
    NO_DATA_STYLE,
    ORIGIN_STYLE,
    MatrixServingSession,
    bucket_index,
    format_duration,
)

THRESHOLDS = (15, 30, 45, 60, 90)
COLORS = ("#c0", "#c1", "#c2", "#c3", "#c4", "#c5")


def _profile(label: str, coeff: float, durations) -> ProfileMatrix:
    return ProfileMatrix(label=label, hours="-", coeff=coeff, speed_range="-", traffic="-", durations=durations)


def _artifact() -> TravelMatrixArtifact:
    return TravelMatrixArtifact(
        communes=["Gombe", "Kalamu", "Lemba"],
        distances=[[0, 10.0, None], [10.0, 0, 5.0], [None, 5.0, 0]],
        durations=[[0, 15.0, None], [15.0, 0, 7.5], [None, 7.5, 0]],
        default_profile="night",
        profiles={
            "night": _profile("Night", 1.0, [[0, 15, None], [15, 0, 8], [None, 8, 0]]),
            "morning_peak": _profile("Morning peak", 0.25, [[0, 60, None], [60, 0, 30], [None, 30, 0]]),
        },
    )


def _session(artifact: TravelMatrixArtifact | None = None) -> MatrixServingSession:
    return MatrixServingSession(artifact or _artifact(), thresholds=THRESHOLDS, colors=COLORS)


def test_session_starts_idle_on_default_profile() -> None:
    session = _session()

    assert session.is_idle
    assert session.active_profile == "night"
    assert session.row == []
    assert session.hover(1) is None
    assert "Night" in session.instructions()


def test_select_origin_colours_destinations() -> None:
    session = _session()

    row = session.select_origin(0)

    assert session.origin_index == 0
    assert row[0].is_origin and row[0].style == ORIGIN_STYLE
    assert row[1].duration_minutes == 15 and row[1].bucket == 1 and row[1].style.fill_color == "#c1"
    assert row[2].duration_minutes is None and row[2].style == NO_DATA_STYLE and row[2].bucket is None


def test_switch_profile_keeps_origin_and_changes_values() -> None:
    session = _session()
    session.select_origin(0)

    row = session.switch_profile("morning_peak")

    assert session.origin_index == 0
    assert session.active_profile == "morning_peak"
    assert row[1].duration_minutes == 60
    assert row[1].bucket == 4


def test_select_new_origin_uses_active_profile() -> None:
    session = _session()
    session.select_origin(0)
    session.switch_profile("morning_peak")

    row = session.select_origin(1)

    assert session.origin_index == 1
    assert [view.duration_minutes for view in row] == [60, 0, 30]
    assert row[2].bucket == 2
    assert row[1].is_origin


def test_reselecting_same_origin_is_a_noop() -> None:
    session = _session()
    first = session.select_origin(2)

    assert session.select_origin(2) == first
    assert session.origin_index == 2


def test_switch_profile_requires_selected_origin() -> None:
    session = _session()

    with pytest.raises(SessionStateError):
        session.switch_profile("morning_peak")


def test_unknown_profile_and_index_are_rejected() -> None:
    session = _session()
    session.select_origin(0)

    with pytest.raises(KeyError):
        session.switch_profile("rush")
    with pytest.raises(IndexError):
        session.select_origin(3)


def test_hover_reports_duration_distance_and_speed() -> None:
    session = _session()
    session.select_origin(0)
    session.switch_profile("morning_peak")

    info = session.hover(1)
    missing = session.hover(2)

    assert (info.duration_minutes, info.distance_km) == (60, 10.0)
    assert info.speed_kmh == pytest.approx(10.0)
    assert missing.duration_minutes is None and missing.speed_kmh is None
    assert session.origin_index == 0


def test_zero_duration_is_a_real_bucket_not_no_data() -> None:
    session = _session()

    bucket, style = session.style_for(0)

    assert bucket == 0
    assert style != NO_DATA_STYLE


def test_legacy_single_matrix_artifact() -> None:
    legacy = TravelMatrixArtifact(communes=["A", "B"], distances=[[0, 2.0], [2.0, 0]], durations=[[0, 40], [40, 0]])
    session = _session(legacy)

    row = session.select_origin(0)

    assert session.active_profile is None
    assert session.available_profiles() == []
    assert row[1].duration_minutes == 40 and row[1].bucket == 2
    with pytest.raises(KeyError):
        session.switch_profile("night")


def test_popup_text() -> None:
    session = _session()
    row = session.select_origin(1)

    assert row[1].popup("Kalamu") == "Kalamu\nStarting point"
    assert row[0].popup("Kalamu") == "Gombe\nFrom Kalamu:\n15 min\n10.0 km\nAvg. speed: 40 km/h"


def test_palette_must_match_thresholds() -> None:
    with pytest.raises(ValueError):
        MatrixServingSession(_artifact(), thresholds=(10, 20), colors=("#a", "#b"))


@pytest.mark.parametrize(
    "value,expected", [(0, 0), (14.9, 0), (15, 1), (59, 3), (90, 5), (500, 5)]
)
def test_bucket_index(value: float, expected: int) -> None:
    assert bucket_index(value, THRESHOLDS) == expected


@pytest.mark.parametrize("minutes,expected", [(42, "42 min"), (60, "1h"), (65, "1h05"), (120, "2h"), (134.6, "2h15")])
def test_format_duration(minutes: float, expected: str) -> None:
    assert format_duration(minutes) == expected
