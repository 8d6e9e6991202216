"""Default weight configs, reward scheme and hall assignments (portal seed data)."""
from reward_engine.logic.loader import rule_set_from_rows, weight_table_from_row
from reward_engine.logic.models import (
    Consecutiveness,
    GameMode,
    ModeAssignment,
    RuleSet,
    WeightTable,
)

DEFAULT_WEIGHT_ROWS: list[dict] = [
    {
        "id": 1,
        "config_name": "default",
        "weight_m": 100, "weight_t": 100, "weight_n": 100, "weight_j": 100,
        "weight_lq": 100, "weight_bj": 100, "weight_zft": 100, "weight_bdk": 100,
        "weight_lsh": 25, "weight_man": 25,
        "updated_at": 1,
    },
    {
        "id": 2,
        "config_name": "high-risk",
        "weight_m": 50, "weight_t": 50, "weight_n": 50, "weight_j": 50,
        "weight_lq": 80, "weight_bj": 80, "weight_zft": 100, "weight_bdk": 120,
        "weight_lsh": 150,
        "updated_at": 1,
    },
    {
        "id": 3,
        "config_name": "low-risk",
        "weight_m": 150, "weight_t": 140, "weight_n": 130, "weight_j": 120,
        "weight_lq": 30, "weight_bj": 20, "weight_zft": 10, "weight_bdk": 5,
        "weight_lsh": 2,
        "updated_at": 1,
    },
]

DEFAULT_SCHEME_ID = 1
DEFAULT_SCHEME_NAME = "normal-standard"

DEFAULT_RULE_ROWS: list[dict] = [
    {"id": 1, "rule_name": "jntm in order", "rule_type": "super_jackpot",
     "match_pattern": "sequence", "match_count": 4, "required_symbols": '["j","n","t","m"]',
     "win_multiplier": 256, "grant_free_spin": 0, "priority": 100, "is_active": 1},
    {"id": 2, "rule_name": "jntm any order", "rule_type": "special_combo",
     "match_pattern": "combination", "match_count": 4, "required_symbols": '["j","n","t","m"]',
     "win_multiplier": 16, "grant_free_spin": 0, "priority": 85, "is_active": 1},
    {"id": 3, "rule_name": "four of a kind", "rule_type": "quad",
     "match_pattern": "any", "match_count": 4, "required_symbols": None,
     "win_multiplier": 32, "grant_free_spin": 1, "priority": 80, "is_active": 1},
    {"id": 4, "rule_name": "strict triple", "rule_type": "triple_strict",
     "match_pattern": "consecutive", "match_count": 3, "required_symbols": None,
     "win_multiplier": 12, "grant_free_spin": 1, "priority": 70, "is_active": 1},
    {"id": 5, "rule_name": "triple", "rule_type": "triple",
     "match_pattern": "any", "match_count": 3, "required_symbols": None,
     "win_multiplier": 8, "grant_free_spin": 0, "priority": 60, "is_active": 1},
    {"id": 6, "rule_name": "two pairs", "rule_type": "double_pair",
     "match_pattern": "double_pair", "match_count": 2, "required_symbols": None,
     "win_multiplier": 5, "grant_free_spin": 0, "priority": 50, "is_active": 1},
    {"id": 7, "rule_name": "strict double", "rule_type": "double_strict",
     "match_pattern": "consecutive", "match_count": 2, "required_symbols": None,
     "win_multiplier": 3, "grant_free_spin": 0, "priority": 40, "is_active": 1},
    {"id": 8, "rule_name": "double", "rule_type": "double",
     "match_pattern": "any", "match_count": 2, "required_symbols": None,
     "win_multiplier": 2, "grant_free_spin": 0, "priority": 30, "is_active": 1},
]

DEFAULT_PUNISHMENT_ROWS: list[dict] = [
    {"lsh_count": 1, "deduct_multiplier": 1, "ban_hours": 0, "is_active": 1},
    {"lsh_count": 2, "deduct_multiplier": 2, "ban_hours": 0, "is_active": 1},
    {"lsh_count": 3, "deduct_multiplier": 3, "ban_hours": 60, "is_active": 1},
    {"lsh_count": 4, "deduct_multiplier": 4, "ban_hours": 60, "is_active": 1},
]


def default_weight_tables() -> list[WeightTable]:
    return [weight_table_from_row(row) for row in DEFAULT_WEIGHT_ROWS]


def default_rule_set() -> RuleSet:
    return rule_set_from_rows(
        DEFAULT_SCHEME_ID,
        DEFAULT_RULE_ROWS,
        DEFAULT_PUNISHMENT_ROWS,
        version=1,
        name=DEFAULT_SCHEME_NAME,
    )


def default_assignments() -> list[ModeAssignment]:
    """All halls start on weight config 1 + the standard scheme; advanced matches strictly."""
    return [
        ModeAssignment(mode=GameMode.NORMAL, weight_config_id=1, scheme_id=DEFAULT_SCHEME_ID),
        ModeAssignment(
            mode=GameMode.ADVANCED,
            weight_config_id=1,
            scheme_id=DEFAULT_SCHEME_ID,
            consecutiveness=Consecutiveness.STRICT,
        ),
        ModeAssignment(mode=GameMode.SUPREME, weight_config_id=1, scheme_id=DEFAULT_SCHEME_ID),
    ]
