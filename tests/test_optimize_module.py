import pytest

from sitekit.exceptions import InvalidParamError, MissingRequiredParamError


@pytest.fixture()
def optimize(plugin):
    return plugin.modules.get_module("optimize")


@pytest.mark.unit
def test_save_and_read_settings(optimize):
    saved = optimize.set_data("settings", {"optimizeID": "GTM-ABC123", "ampExperimentJSON": '{"x": 1}'})
    assert saved == {"optimizeID": "GTM-ABC123", "ampExperimentJSON": '{"x": 1}'}
    assert optimize.get_data("settings")["optimizeID"] == "GTM-ABC123"
    assert optimize.is_connected()


@pytest.mark.unit
@pytest.mark.parametrize("bad_id", ["UA-123", "opt-abc", "OPT-", "OPT-abc"])
def test_rejects_malformed_optimize_id(optimize, bad_id):
    with pytest.raises(InvalidParamError):
        optimize.set_data("settings", {"optimizeID": bad_id})


@pytest.mark.unit
def test_rejects_invalid_amp_experiment_json(optimize):
    with pytest.raises(InvalidParamError) as exc:
        optimize.set_data("settings", {"optimizeID": "OPT-ABC", "ampExperimentJSON": "{nope"})
    assert exc.value.data["param"] == "ampExperimentJSON"


@pytest.mark.unit
def test_requires_optimize_id(optimize):
    with pytest.raises(MissingRequiredParamError):
        optimize.set_data("settings", {"ampExperimentJSON": ""})
