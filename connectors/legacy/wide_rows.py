"""Legacy report row parsing.

The legacy replenishment query returns one WIDE row per item: identifying
columns plus a column group per location code:

    kode_item | nama_item | hpp_ref | JKT_Stock | JKT_S_M1 | JKT_S_M2 | JKT_S_M3
              |           |         | JKT_L_M1 | JKT_L_M2 | JKT_L_M3 | SBY_Stock | ...

S_M* are sales (outbound) per month, L_M* other movement; M3 is the oldest
month. An optional {CODE}_Buffer column overrides the configured buffer.
Location codes are discovered from the column names, so new locations need
no code change.
"""

import re
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from reconciliation.models import SourceARow


# {CODE}_Stock, {CODE}_S_M1, {CODE}_L_M3, {CODE}_Buffer
LOCATION_COLUMN = re.compile(r"^(?P<code>[A-Za-z0-9\-]+?)_(?P<field>Stock|S_M[123]|L_M[123]|Buffer)$")

_FIELD_NAMES = {
    "Stock": "stock",
    "S_M1": "sales_m1",
    "S_M2": "sales_m2",
    "S_M3": "sales_m3",
    "L_M1": "other_m1",
    "L_M2": "other_m2",
    "L_M3": "other_m3",
}

_ITEM_CODE_KEYS = ("kode_item", "item_code")
_ITEM_NAME_KEYS = ("nama_item", "item_name")
_COST_KEYS = ("hpp_ref", "reference_cost")


def to_number(value: Any) -> float:
    """Coerce a database cell to float; NULL, blanks and junk read as 0."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    try:
        return float(str(value).strip() or 0)
    except ValueError:
        return 0.0


def _optional_number(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_number(value)


def _first(row: Mapping[str, Any], keys) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def expand_wide_row(row: Mapping[str, Any]) -> List[SourceARow]:
    """Split one legacy report row into per-location SourceARow records.

    Rows that already carry a location_code column are treated as
    per-location rows and converted one-to-one. A location group is kept
    whenever it carries a figure, zeros included; groups whose cells are
    all NULL or missing are dropped.

    Args:
        row: Mapping of column name to cell value

    Returns:
        Zero or more SourceARow records, in column order
    """
    item_code = _first(row, _ITEM_CODE_KEYS)
    if item_code is None or str(item_code).strip() == "":
        return []
    item_code = str(item_code).strip()
    item_name = str(_first(row, _ITEM_NAME_KEYS) or "").strip()
    reference_cost = _optional_number(_first(row, _COST_KEYS))

    if row.get("location_code"):
        return [_narrow_row(row, item_code, item_name, reference_cost)]

    groups: Dict[str, Dict[str, Any]] = {}
    for column, value in row.items():
        match = LOCATION_COLUMN.match(str(column))
        if not match:
            continue
        group = groups.setdefault(match.group("code"), {})
        group[match.group("field")] = value

    rows: List[SourceARow] = []
    for code, cells in groups.items():
        if all(_optional_number(cells.get(column)) is None for column in _FIELD_NAMES):
            continue
        figures = {name: to_number(cells.get(column)) for column, name in _FIELD_NAMES.items()}
        rows.append(SourceARow(
            item_code=item_code,
            item_name=item_name,
            location_code=code,
            reference_cost=reference_cost,
            buffer=_optional_number(cells.get("Buffer")),
            **figures,
        ))
    return rows


def _narrow_row(
    row: Mapping[str, Any],
    item_code: str,
    item_name: str,
    reference_cost: Optional[float],
) -> SourceARow:
    return SourceARow(
        item_code=item_code,
        item_name=item_name,
        location_code=str(row["location_code"]).strip(),
        stock=to_number(row.get("stock")),
        sales_m1=to_number(row.get("sales_m1")),
        sales_m2=to_number(row.get("sales_m2")),
        sales_m3=to_number(row.get("sales_m3")),
        other_m1=to_number(row.get("other_m1")),
        other_m2=to_number(row.get("other_m2")),
        other_m3=to_number(row.get("other_m3")),
        reference_cost=reference_cost,
        buffer=_optional_number(row.get("buffer")),
    )
