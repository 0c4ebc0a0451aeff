"""Source B adapter: ERPNext stock and flow by warehouse.

The ERP server method returns one row per item x warehouse, each warehouse
tagged with the branch code it belongs to. Field names follow the server
method; the canonical SourceBRow names are accepted too.
"""

from typing import Any, Dict, List, Mapping, Optional

from connectors.erpnext.erpnext_client import (
    ERPNextApiError,
    ERPNextClient,
    ERPNextConfig,
)
from connectors.legacy.wide_rows import to_number
from connectors.source_base import SourceAdapter, register_adapter
from core.observability.logging import get_logger
from reconciliation.exceptions import SourceFetchError
from reconciliation.models import SourceBRow, SourceFilter, SourceName


logger = get_logger(__name__)

DEFAULT_STOCK_METHOD = "get_stock_flow_by_warehouse"


# =============================================================================
# Response Parsing
# =============================================================================

def unwrap_method_rows(payload: Any, source: str = SourceName.B.value) -> List[Dict[str, Any]]:
    """Extract the row list from a server method response.

    Accepted shapes, checked in order:
        {"data": {"data": [...]}}
        {"message": [...]}
        {"data": [...]}
        [...]

    Raises:
        SourceFetchError: The payload matches none of the known shapes
    """
    if isinstance(payload, list):
        return payload

    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            return data["data"]
        # Frappe wraps whitelisted method results in "message"
        if isinstance(payload.get("message"), list):
            return payload["message"]
        if isinstance(data, list):
            return data

    raise SourceFetchError(source, f"unexpected ERP response shape: {type(payload).__name__}")


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def parse_source_b_row(raw: Mapping[str, Any]) -> SourceBRow:
    """Map one ERP row into a SourceBRow.

    Raises:
        ValueError: item_code or branch code is missing
    """
    item_code = _pick(raw, "item_code")
    location_code = _pick(raw, "branch_code", "location_code")
    if not item_code or not location_code:
        raise ValueError(f"ERP row missing item_code or branch_code: {dict(raw)!r}")

    location_id = _pick(raw, "warehouse", "location_id") or location_code
    location_name = _pick(raw, "branch_name", "location_name")
    company = _pick(raw, "company")

    return SourceBRow(
        item_code=str(item_code).strip(),
        item_name=str(_pick(raw, "item_name") or "").strip(),
        location_code=str(location_code).strip(),
        location_id=str(location_id).strip(),
        location_name=str(location_name).strip() if location_name else None,
        company=str(company).strip() if company else None,
        current_stock=to_number(_pick(raw, "current_qty", "current_stock")),
        delivery_qty_m1=to_number(_pick(raw, "delivery_note_qty_m1", "delivery_qty_m1")),
        delivery_qty_m2=to_number(_pick(raw, "delivery_note_qty_m2", "delivery_qty_m2")),
        delivery_qty_m3=to_number(_pick(raw, "delivery_note_qty_m3", "delivery_qty_m3")),
        issue_qty_m1=to_number(_pick(raw, "material_issue_qty_m1", "issue_qty_m1")),
        issue_qty_m2=to_number(_pick(raw, "material_issue_qty_m2", "issue_qty_m2")),
        issue_qty_m3=to_number(_pick(raw, "material_issue_qty_m3", "issue_qty_m3")),
    )


# =============================================================================
# Adapter
# =============================================================================

@register_adapter("erpnext")
class ERPNextStockAdapter(SourceAdapter):
    """Reads per-warehouse stock and flow from ERPNext.

    Usage:
        adapter = ERPNextStockAdapter(
            client=ERPNextClient(ERPNextConfig(base_url, api_key, api_secret)),
        )
        rows = await adapter.fetch(SourceFilter())

    The search term reaches the server method only with search_pushdown;
    otherwise every row is returned and filtering happens after the merge.
    """

    def __init__(
        self,
        client: Optional[ERPNextClient] = None,
        config: Optional[ERPNextConfig] = None,
        method: str = DEFAULT_STOCK_METHOD,
        search_pushdown: bool = False,
        name: str = SourceName.B.value,
    ):
        super().__init__(name)
        if client is None:
            if config is None:
                raise ValueError("Either client or config is required")
            client = ERPNextClient(config)
        self.client = client
        self.method = method
        self.search_pushdown = search_pushdown

    async def fetch(self, source_filter: SourceFilter) -> List[SourceBRow]:
        params = None
        if self.search_pushdown and source_filter.search:
            params = {"search": source_filter.search}
        try:
            payload = await self.client.call_method(self.method, params=params)
        except ERPNextApiError as e:
            raise SourceFetchError(self.name, f"ERP call {self.method} failed: {e}") from e

        rows: List[SourceBRow] = []
        skipped = 0
        for raw in unwrap_method_rows(payload, self.name):
            if not isinstance(raw, Mapping):
                skipped += 1
                continue
            try:
                rows.append(parse_source_b_row(raw))
            except ValueError:
                skipped += 1

        if skipped:
            logger.warning(
                f"Skipped {skipped} malformed ERP rows",
                extra_fields={"method": self.method, "parsed": len(rows)},
            )
        return rows

    async def close(self) -> None:
        await self.client.close()
