"""Configuration repository and config hash tests."""
import pytest

from reward_engine.config_hash import get_config_hash
from reward_engine.errors import ConfigurationNotFound
from reward_engine.logic.models import GameMode, ModeAssignment
from reward_engine.repository import ConfigRepository

from conftest import make_scenario_repository, make_scenario_rules, make_scenario_weights


class TestConfigRepository:
    def test_with_defaults(self):
        repository = ConfigRepository.with_defaults()
        assert repository.weight_table(1).name == "default"
        assert repository.rule_set(1).scheme_id == 1
        assert repository.assigned_pairs() == {(1, 1)}

    def test_missing_entries(self):
        repository = ConfigRepository()
        with pytest.raises(ConfigurationNotFound):
            repository.weight_table(1)
        with pytest.raises(ConfigurationNotFound):
            repository.rule_set(1)
        with pytest.raises(ConfigurationNotFound):
            repository.assignment(GameMode.NORMAL)

    def test_assigned_pairs_filtering(self):
        repository = ConfigRepository()
        repository.assign(ModeAssignment(mode=GameMode.NORMAL, weight_config_id=1, scheme_id=1))
        repository.assign(ModeAssignment(mode=GameMode.ADVANCED, weight_config_id=2, scheme_id=1))
        repository.assign(ModeAssignment(mode=GameMode.SUPREME, weight_config_id=2, scheme_id=3))
        assert repository.assigned_pairs(scheme_id=1) == {(1, 1), (2, 1)}
        assert repository.assigned_pairs(weight_config_id=2) == {(2, 1), (2, 3)}
        assert repository.assigned_pairs(weight_config_id=2, scheme_id=3) == {(2, 3)}

    def test_is_current_tracks_replacements(self):
        repository = make_scenario_repository()
        weights, rules = make_scenario_weights(), make_scenario_rules()
        assert repository.is_current(weights, rules)

        repository.put_rule_set(make_scenario_rules(version=2))
        assert not repository.is_current(weights, rules)

        repository.remove_weight_table(weights.config_id)
        assert not repository.is_current(weights, make_scenario_rules(version=2))


class TestConfigHash:
    def test_stable_for_equal_inputs(self):
        assert get_config_hash(make_scenario_weights(), make_scenario_rules()) == get_config_hash(
            make_scenario_weights(), make_scenario_rules()
        )

    def test_changes_with_any_input(self):
        base = get_config_hash(make_scenario_weights(), make_scenario_rules())
        assert get_config_hash(make_scenario_weights(version=2), make_scenario_rules()) != base
        assert get_config_hash(make_scenario_weights(), make_scenario_rules(version=2)) != base
        assert len(base) == 16
