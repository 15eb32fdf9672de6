# tools.py
# Tool registry and executor.
#
# TOOL_DECLARATIONS is what the backend is told about on every round.
# ToolExecutor maps a FunctionCallPart onto the warehouse store and always
# hands back a plain dict, either a success payload or {"error": ...}. The single
# exception is get_top_stocks, whose store failures propagate to the caller.

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from warehouse_assistant import display
from warehouse_assistant.models import (
    AnalyzeMaterialFlowArgs,
    CheckStockPerLocationArgs,
    FunctionCallPart,
    GetTopStocksArgs,
    ParameterField,
    ParameterSchema,
    SearchMaterialsArgs,
    ToolDeclaration,
)
from warehouse_assistant.store import StoreError, WarehouseStore

ToolResult = dict[str, Any]

SEARCH_LIMIT = 10
DEFAULT_TOP_LIMIT = 5
FLOW_WINDOW_DAYS = 30
RECENT_TRANSACTIONS = 5
DAYS_TO_EMPTY_SENTINEL = 9999

UNKNOWN_FUNCTION = "unknown function"
NOT_FOUND_IN_DATABASE = "Barang tidak ditemukan dalam database."
NOT_FOUND = "Barang tidak ditemukan."
DATABASE_FAILURE = "Terjadi kesalahan saat mengakses database gudang."

# Tools whose StoreErrors are raised instead of returned as {"error": ...}.
PROPAGATING_TOOLS = frozenset({"get_top_stocks"})


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

TOOL_DECLARATIONS: tuple[ToolDeclaration, ...] = (
    ToolDeclaration(
        name="search_materials",
        description="Mencari master data barang di gudang berdasarkan kata kunci nama.",
        parameters=ParameterSchema(
            properties={
                "keyword": ParameterField(
                    type="string", description="Nama barang atau fragmen nama yang dicari"
                ),
            },
            required=("keyword",),
        ),
    ),
    ToolDeclaration(
        name="check_stock_per_location",
        description="Mengecek posisi stok barang tertentu tersebar di lokasi mana saja.",
        parameters=ParameterSchema(
            properties={
                "item_name": ParameterField(
                    type="string", description="Nama spesifik barang yang ingin dilacak"
                ),
            },
            required=("item_name",),
        ),
    ),
    ToolDeclaration(
        name="get_top_stocks",
        description=(
            "Melihat daftar barang dengan jumlah stok terbanyak "
            "(stok tertinggi) di seluruh gudang."
        ),
        parameters=ParameterSchema(
            properties={
                "limit": ParameterField(
                    type="number",
                    description="Jumlah barang yang ingin ditampilkan, default adalah 5.",
                ),
            },
        ),
    ),
    ToolDeclaration(
        name="analyze_material_flow",
        description=(
            "Menganalisa riwayat transaksi barang untuk mengetahui kenapa stok "
            "banyak/sedikit dan memprediksi kapan stok habis."
        ),
        parameters=ParameterSchema(
            properties={
                "item_name": ParameterField(
                    type="string", description="Nama barang yang ingin dianalisa"
                ),
            },
            required=("item_name",),
        ),
    ),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def resolve_limit(raw: Any, default: int = DEFAULT_TOP_LIMIT) -> int:
    """
    Leading-integer parse of a backend-supplied limit.

    "7 items" -> 7, 3.9 -> 3, "abc" / None / NaN / inf / 0 / negatives -> default.
    """
    if isinstance(raw, bool) or raw is None:
        return default
    if isinstance(raw, float) and not math.isfinite(raw):
        return default
    if isinstance(raw, (int, float)):
        value = int(raw)
    else:
        match = re.match(r"\s*([+-]?\d+)", str(raw))
        if not match:
            return default
        value = int(match.group(1))
    return value if value > 0 else default


def _first_material(store: WarehouseStore, fragment: str) -> dict | None:
    rows = store.find_materials(fragment, 1)
    return rows[0] if rows else None


# ---------------------------------------------------------------------------
# Tool implementations
# ---------------------------------------------------------------------------


def _tool_search_materials(executor: "ToolExecutor", args: SearchMaterialsArgs) -> ToolResult:
    display.tool_progress(f'Mencari data "{args.keyword}"...')
    rows = executor.store.find_materials(args.keyword, SEARCH_LIMIT)
    return {
        "result": [
            {
                "name": r["name"],
                "unit": r["unit"],
                "stock": r["stock"],
                "department": r.get("department"),
            }
            for r in rows
        ]
    }


def _tool_check_stock_per_location(
    executor: "ToolExecutor", args: CheckStockPerLocationArgs
) -> ToolResult:
    display.tool_progress(f'Melacak lokasi "{args.item_name}"...')
    material = _first_material(executor.store, args.item_name)
    if material is None:
        return {"error": NOT_FOUND_IN_DATABASE}

    breakdown = executor.store.stock_by_location(material["id"])
    return {
        "material": material["name"],
        "unit": material["unit"],
        "locations": breakdown or [],
    }


def _tool_get_top_stocks(executor: "ToolExecutor", args: GetTopStocksArgs) -> ToolResult:
    limit = resolve_limit(args.limit)
    display.tool_progress(f"Mengambil {limit} stok terbanyak...")
    rows = executor.store.top_stocks(limit)
    return {
        "description": f"Daftar {limit} barang dengan stok tertinggi saat ini.",
        "limit": limit,
        "items": rows or [],
    }


def _tool_analyze_material_flow(
    executor: "ToolExecutor", args: AnalyzeMaterialFlowArgs
) -> ToolResult:
    display.tool_progress(f'Menganalisa riwayat "{args.item_name}"...')
    material = _first_material(executor.store, args.item_name)
    if material is None:
        return {"error": NOT_FOUND}

    since = executor.now() - timedelta(days=FLOW_WINDOW_DAYS)
    transactions = executor.store.transactions_since(material["id"], since)

    total_in = sum(t["quantity"] for t in transactions if t["type"] == "IN")
    total_out = sum(t["quantity"] for t in transactions if t["type"] == "OUT")

    avg_daily_out = total_out / FLOW_WINDOW_DAYS
    if avg_daily_out > 0:
        days_to_empty = round(material["stock"] / avg_daily_out, 1)
        days_note = None
    else:
        days_to_empty = DAYS_TO_EMPTY_SENTINEL
        days_note = "Stok sangat aman (tidak ada pengeluaran signifikan)"

    stats = {
        "total_in": total_in,
        "total_out": total_out,
        "avg_daily_out": round(avg_daily_out, 2),
        "days_to_empty": days_to_empty,
    }
    if days_note:
        stats["days_to_empty_note"] = days_note

    return {
        "material": {
            "name": material["name"],
            "current_stock": material["stock"],
            "unit": material["unit"],
        },
        "last_30_days": stats,
        "recent_transactions": transactions[:RECENT_TRANSACTIONS],
        "verdict": "stock increasing" if total_in > total_out else "stock decreasing",
    }


TOOLS: dict[str, tuple[type[BaseModel], Callable[["ToolExecutor", Any], ToolResult]]] = {
    "search_materials": (SearchMaterialsArgs, _tool_search_materials),
    "check_stock_per_location": (CheckStockPerLocationArgs, _tool_check_stock_per_location),
    "get_top_stocks": (GetTopStocksArgs, _tool_get_top_stocks),
    "analyze_material_flow": (AnalyzeMaterialFlowArgs, _tool_analyze_material_flow),
}


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolExecutor:
    """
    Runs FunctionCallParts against a WarehouseStore.

    `now` is injectable so the 30-day window can be pinned in tests.
    """

    def __init__(self, store: WarehouseStore, now: Callable[[], datetime] = _utcnow) -> None:
        self.store = store
        self.now = now

    def execute(self, call: FunctionCallPart) -> ToolResult:
        display.tool_call(call.name, call.args)

        if call.name not in TOOLS:
            display.tool_not_found(call.name)
            return {"error": UNKNOWN_FUNCTION}

        args_model, handler = TOOLS[call.name]
        try:
            args = args_model.model_validate(call.args)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in e["loc"]) for e in exc.errors())
            result = {"error": f"Argumen tidak valid untuk {call.name}: {fields}"}
            display.tool_result(call.name, result)
            return result

        try:
            result = handler(self, args)
        except Exception as exc:
            if call.name in PROPAGATING_TOOLS and isinstance(exc, StoreError):
                raise
            display.tool_error(call.name, exc)
            result = {"error": DATABASE_FAILURE}

        display.tool_result(call.name, result)
        return result
