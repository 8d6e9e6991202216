"""
Build weight tables and rule sets from admin-layer rows.

Rows use the admin database shape: weight rows carry one ``weight_<symbol>``
column per symbol, rule rows carry a legacy ``match_pattern`` string plus
``match_count`` / ``required_symbols`` (JSON text or list), punishment rows
are keyed by ``lsh_count``. Legacy match patterns map onto the rule variants:

    sequence          -> strict pattern with every placeholder bound, K wide
    combination       -> lenient symbol-set
    consecutive, N-consecutive -> strict count
    any, N-any        -> lenient count
    double_pair       -> lenient pattern "AABB"
    symmetric         -> strict pattern "ABBA"
"""
import json
import re
import string
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from reward_engine.config import settings
from reward_engine.errors import InvalidRule
from reward_engine.logic.models import (
    Consecutiveness,
    CountRule,
    PatternRule,
    Punishment,
    RuleBase,
    RuleSet,
    SymbolSetRule,
    WeightTable,
)

Row = Mapping[str, Any]

WEIGHT_COLUMN_PREFIX = "weight_"
_COUNT_PATTERN = re.compile(r"^(?:(\d+)-)?(consecutive|any)$")


def weight_table_from_row(row: Row) -> WeightTable:
    """
    Build a WeightTable from a weight-config row.

    Missing or zero symbol columns mean the symbol is not in the draw.
    ``updated_at`` is used as the version.
    """
    weights = {
        column[len(WEIGHT_COLUMN_PREFIX):]: int(value)
        for column, value in row.items()
        if column.startswith(WEIGHT_COLUMN_PREFIX) and value
    }
    return WeightTable(
        config_id=int(row["id"]),
        version=int(row.get("updated_at") or 0),
        name=row.get("config_name") or "",
        weights=weights,
    )


def parse_required_symbols(raw: Any, rule_id: Any = None) -> list[str]:
    """Parse ``required_symbols`` from a JSON array string or a list."""
    if isinstance(raw, str):
        text = raw.strip()
        if not text.startswith("[") or not text.endswith("]"):
            raise InvalidRule(f"Rule {rule_id}: required_symbols is not a JSON array: {raw!r}")
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidRule(f"Rule {rule_id}: malformed required_symbols: {e}") from e

    if (
        not isinstance(raw, list)
        or not raw
        or not all(isinstance(symbol, str) and symbol for symbol in raw)
    ):
        raise InvalidRule(
            f"Rule {rule_id}: required_symbols must be a non-empty list of symbols."
        )
    return raw


def shape_of(symbols: list[str]) -> tuple[str, dict[str, str]]:
    """Placeholder shape and bindings for a literal symbol sequence."""
    letters: dict[str, str] = {}
    for symbol in symbols:
        if symbol not in letters:
            letters[symbol] = string.ascii_uppercase[len(letters)]
    pattern = "".join(letters[symbol] for symbol in symbols)
    return pattern, {letter: symbol for symbol, letter in letters.items()}


def rule_from_row(row: Row) -> RuleBase:
    """Map one rule row onto a Pattern/Count/SymbolSet rule."""
    rule_id = row.get("id")
    match_pattern = (row.get("match_pattern") or "").strip()
    common = {
        "id": rule_id,
        "name": row.get("rule_name") or "",
        "rule_type": row.get("rule_type") or "custom",
        "priority": int(row.get("priority") or 0),
        "multiplier": row.get("win_multiplier"),
        "grants_free_spin": bool(row.get("grant_free_spin")),
        "active": bool(row.get("is_active", 1)),
    }

    try:
        if match_pattern == "sequence":
            symbols = parse_required_symbols(row.get("required_symbols"), rule_id)
            if len(symbols) != settings.reel_count:
                raise InvalidRule(
                    f"Rule {rule_id}: sequence needs {settings.reel_count} symbols, "
                    f"got {len(symbols)}."
                )
            pattern, bind = shape_of(symbols)
            return PatternRule(
                pattern=pattern,
                bind=bind,
                consecutiveness=Consecutiveness.STRICT,
                **common,
            )

        if match_pattern == "combination":
            symbols = parse_required_symbols(row.get("required_symbols"), rule_id)
            return SymbolSetRule(
                required_symbols=tuple(symbols),
                consecutiveness=Consecutiveness.LENIENT,
                **common,
            )

        if match_pattern == "double_pair":
            return PatternRule(
                pattern="AABB", consecutiveness=Consecutiveness.LENIENT, **common
            )

        if match_pattern == "symmetric":
            return PatternRule(
                pattern="ABBA", consecutiveness=Consecutiveness.STRICT, **common
            )

        count_match = _COUNT_PATTERN.match(match_pattern)
        if count_match:
            prefix, family = count_match.groups()
            match_count = int(prefix) if prefix else int(row.get("match_count") or 2)
            return CountRule(
                match_count=match_count,
                consecutiveness=(
                    Consecutiveness.STRICT
                    if family == "consecutive"
                    else Consecutiveness.LENIENT
                ),
                **common,
            )
    except ValidationError as e:
        raise InvalidRule(f"Rule {rule_id}: {e}") from e

    raise InvalidRule(f"Rule {rule_id}: unknown match_pattern {match_pattern!r}")


def punishment_from_row(row: Row) -> Punishment:
    try:
        return Punishment(
            citation_count=row["lsh_count"],
            deduct_multiplier=row["deduct_multiplier"],
            ban_hours=int(row.get("ban_hours") or 0),
            active=bool(row.get("is_active", 1)),
        )
    except (KeyError, ValidationError) as e:
        raise InvalidRule(f"Invalid punishment row {dict(row)!r}: {e}") from e


def rule_set_from_rows(
    scheme_id: int,
    rule_rows: Iterable[Row],
    punishment_rows: Iterable[Row] = (),
    version: int = 0,
    name: str = "",
    citation_symbol: str | None = None,
) -> RuleSet:
    """Build and validate a RuleSet from a scheme's rule and punishment rows."""
    extra = {"citation_symbol": citation_symbol} if citation_symbol else {}
    return RuleSet(
        scheme_id=scheme_id,
        version=version,
        name=name,
        rules=tuple(rule_from_row(row) for row in rule_rows),
        punishments=tuple(punishment_from_row(row) for row in punishment_rows),
        **extra,
    )
