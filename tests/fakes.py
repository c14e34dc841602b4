"""In-memory stand-in for the parts of the async Supabase client the services use."""
import copy
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from postgrest.exceptions import APIError


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sort_key(value):
    return (value is None, value if value is not None else 0)


class FakeQuery:
    """Records a postgrest builder chain and runs it against FakeSupabase.tables."""

    def __init__(self, db: "FakeSupabase", name: str, rpc_params: Optional[Dict[str, Any]] = None):
        self.db = db
        self.name = name
        self.rpc_params = rpc_params
        self.operation = "rpc" if rpc_params is not None else "select"
        self.payload: Any = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.orders: List[tuple] = []
        self.limit_count: Optional[int] = None
        self.count: Optional[str] = None
        self.head = False
        self.on_conflict: List[str] = []

    # --- operations ---

    def select(self, columns: str = "*", count: Optional[str] = None, head: bool = False):
        self.operation = "select"
        self.count = count
        self.head = head
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def upsert(self, payload, on_conflict: str = "", **kwargs):
        self.operation = "upsert"
        self.payload = payload
        self.on_conflict = [column.strip() for column in on_conflict.split(",") if column.strip()]
        return self

    def update(self, payload):
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # --- filters ---

    def eq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def contains(self, column: str, values):
        self.filters.append(lambda row: all(v in (row.get(column) or []) for v in values))
        return self

    def gte(self, column: str, value):
        self.filters.append(lambda row: row.get(column) is not None and str(row.get(column)) >= str(value))
        return self

    def lte(self, column: str, value):
        self.filters.append(lambda row: row.get(column) is not None and str(row.get(column)) <= str(value))
        return self

    def order(self, column: str, desc: bool = False):
        self.orders.append((column, desc))
        return self

    def limit(self, count: int):
        self.limit_count = count
        return self

    # --- execution ---

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(f(row) for f in self.filters)

    def _shape(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for column, desc in reversed(self.orders):
            rows = sorted(rows, key=lambda r: _sort_key(r.get(column)), reverse=desc)
        if self.limit_count is not None:
            rows = rows[:self.limit_count]
        return rows

    async def execute(self):
        self.db.calls.append((self.name, self.operation))
        error = self.db.errors.get(self.name)
        if error is not None:
            raise APIError({"message": error, "code": "PGRST500", "details": None, "hint": None})

        if self.operation == "rpc":
            rows = self.db.run_rpc(self.name, self.rpc_params)
            return SimpleNamespace(data=copy.deepcopy(self._shape(rows)), count=None)

        table = self.db.tables.setdefault(self.name, [])

        if self.operation == "insert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for row in rows:
                row = copy.deepcopy(row)
                row.setdefault("id", str(uuid4()))
                row.setdefault("created_at", _now())
                table.append(row)
                inserted.append(row)
            return SimpleNamespace(data=copy.deepcopy(inserted), count=None)

        if self.operation == "upsert":
            written = []
            for row in (self.payload if isinstance(self.payload, list) else [self.payload]):
                row = copy.deepcopy(row)
                existing = next(
                    (r for r in table if self.on_conflict and all(r.get(c) == row.get(c) for c in self.on_conflict)),
                    None,
                )
                if existing is None:
                    row.setdefault("id", str(uuid4()))
                    row.setdefault("created_at", _now())
                    table.append(row)
                    existing = row
                else:
                    existing.update(row)
                written.append(existing)
            return SimpleNamespace(data=copy.deepcopy(written), count=None)

        if self.operation == "update":
            updated = []
            for row in table:
                if self._matches(row):
                    row.update(copy.deepcopy(self.payload))
                    updated.append(row)
            return SimpleNamespace(data=copy.deepcopy(updated), count=None)

        if self.operation == "delete":
            removed = [row for row in table if self._matches(row)]
            self.db.tables[self.name] = [row for row in table if not self._matches(row)]
            return SimpleNamespace(data=copy.deepcopy(removed), count=None)

        matched = [row for row in table if self._matches(row)]
        count = len(matched) if self.count else None
        data = [] if self.head else copy.deepcopy(self._shape(matched))
        return SimpleNamespace(data=data, count=count)


class FakeFunctions:
    def __init__(self):
        self.response: Any = {"response": "The stars are aligned in your favour."}
        self.error: Optional[Exception] = None
        self.invocations: List[tuple] = []

    async def invoke(self, function_name: str, invoke_options: Optional[Dict[str, Any]] = None):
        self.invocations.append((function_name, invoke_options or {}))
        if self.error is not None:
            raise self.error
        return self.response


class FakeAuth:
    def __init__(self):
        self.users: Dict[str, SimpleNamespace] = {}

    def add_user(self, token: str, user_id: str, email: str = "user@example.com", role: Optional[str] = None):
        app_metadata = {"role": role} if role else {}
        self.users[token] = SimpleNamespace(id=user_id, email=email, app_metadata=app_metadata)

    async def get_user(self, jwt: Optional[str] = None):
        user = self.users.get(jwt)
        return SimpleNamespace(user=user) if user else None


class FakeSupabase:
    """
    Tables are plain lists of dicts. `fail(name)` makes every query against a
    table or RPC of that name raise the APIError postgrest would raise.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(tables or {})
        self.errors: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.functions = FakeFunctions()
        self.auth = FakeAuth()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> FakeQuery:
        return FakeQuery(self, name, rpc_params=params or {})

    def fail(self, name: str, message: str = "backend unavailable"):
        self.errors[name] = message

    def recover(self, name: str):
        self.errors.pop(name, None)

    def call_count(self, name: str, operation: Optional[str] = None) -> int:
        return sum(1 for n, op in self.calls if n == name and (operation is None or op == operation))

    def run_rpc(self, name: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        if name == "get_active_ads_for_zone":
            zone = params.get("zone_name")
            now = _now()
            rows = [
                row for row in self.tables.get("ad_banners", [])
                if row.get("is_active", True)
                and zone in (row.get("zones") or [])
                and (not row.get("start_date") or row["start_date"] <= now)
                and (not row.get("end_date") or row["end_date"] >= now)
            ]
            rows = sorted(rows, key=lambda r: r.get("created_at") or "", reverse=True)
            return sorted(rows, key=lambda r: r.get("priority", 0), reverse=True)
        if name == "track_ad_event":
            self.tables.setdefault("ad_analytics", []).append({
                "id": str(uuid4()),
                "ad_banner_id": params.get("p_ad_banner_id"),
                "event_type": params.get("p_event_type"),
                "user_id": params.get("p_user_id"),
                "zone": params.get("p_zone"),
                "user_agent": params.get("p_user_agent"),
                "created_at": _now(),
            })
            return []
        raise APIError({"message": f"function {name} does not exist", "code": "42883", "details": None, "hint": None})


# --- row builders ---

def chart_row(generator, chart_id: str, user_id: str = "user-1", name: str = "Ada", **overrides) -> Dict[str, Any]:
    from astro_portal.models.astrology import BirthLocation

    location = BirthLocation(city="London", country="UK", latitude=51.5, longitude=-0.12, timezone="Europe/London")
    row = {
        "id": chart_id,
        "user_id": user_id,
        "name": name,
        "birth_date": "1990-06-15",
        "birth_time": "14:30",
        "birth_location": location.model_dump(),
        "chart_data": generator.generate(location).model_dump(mode="json", exclude_none=True),
        "chart_type": "natal",
        "is_public": False,
        "created_at": _now(),
    }
    row.update(overrides)
    return row


def report_row(report_id: str, chart_id: str, user_id: str = "user-1", title: str = "Ada's Natal Chart", **overrides) -> Dict[str, Any]:
    row = {
        "id": report_id,
        "user_id": user_id,
        "birth_chart_id": chart_id,
        "report_type": "natal",
        "title": title,
        "content": "# Overview\n\nA **bright** chart.\n\n## Planets\n\n- Sun in Gemini\n- Moon in Leo",
        "is_premium": False,
        "created_at": _now(),
    }
    row.update(overrides)
    return row


def banner_row(banner_id: str, priority: int = 0, zones=("sidebar",), created_at: str = "2024-01-01T00:00:00+00:00", **overrides) -> Dict[str, Any]:
    row = {
        "id": banner_id,
        "title": f"Banner {banner_id}",
        "ad_type": "image",
        "content": "https://cdn.example.com/banner.png",
        "zones": list(zones),
        "priority": priority,
        "is_active": True,
        "created_at": created_at,
    }
    row.update(overrides)
    return row
