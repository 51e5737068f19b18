import pytest

from cadence.domain.parameters import (
    DEFAULT_PARAMETERS,
    PARAMETER_BOUNDS,
    PARAMETER_NAMES,
    FsrsParameters,
    clamp_to_bounds,
    clamp_weight,
    within_bounds,
)


def test_defaults_have_seventeen_weights_inside_bounds():
    assert len(DEFAULT_PARAMETERS.as_tuple()) == 17
    assert within_bounds(DEFAULT_PARAMETERS)
    assert set(PARAMETER_BOUNDS) == set(PARAMETER_NAMES)


def test_from_sequence_rejects_wrong_length():
    with pytest.raises(ValueError, match="Expected 17 weights"):
        FsrsParameters.from_sequence([1.0] * 16)


def test_from_dict_round_trips_to_dict():
    params = FsrsParameters.from_dict(DEFAULT_PARAMETERS.to_dict())
    assert params == DEFAULT_PARAMETERS


def test_from_dict_reports_missing_weights():
    data = DEFAULT_PARAMETERS.to_dict()
    del data["w3"]
    with pytest.raises(ValueError, match="w3"):
        FsrsParameters.from_dict(data)


def test_parameters_are_immutable():
    with pytest.raises(AttributeError):
        DEFAULT_PARAMETERS.w0 = 1.0  # type: ignore[misc]


def test_replace_returns_new_instance():
    tuned = DEFAULT_PARAMETERS.replace(w10=0.2)
    assert tuned.w10 == 0.2
    assert DEFAULT_PARAMETERS.w10 == 1.0461


def test_clamp_weight_and_clamp_to_bounds():
    assert clamp_weight("w0", 50.0) == 2.0
    assert clamp_weight("w6", -9.0) == -2.0

    wild = DEFAULT_PARAMETERS.replace(w0=-1.0, w3=100.0, w12=0.5)
    assert not within_bounds(wild)
    clamped = clamp_to_bounds(wild)
    assert within_bounds(clamped)
    assert (clamped.w0, clamped.w3, clamped.w12) == (0.1, 30.0, 0.3)
