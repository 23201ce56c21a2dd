"""Static sync registry — entity groups, query map, critical sets.

This is configuration, not runtime state. It is loaded at import time and
validated once when a KeyMapper is built (see vampsync.sync.keys).

Server keys are snake_case (the names the version store uses), client keys
are camelCase (the names views and the ClientVersionCache use). Each
entity group has exactly one server name and one client name; historical
spellings are listed separately as aliases of a canonical name.
"""

# ─── Entity groups: (server key, client key) ─────────────

ENTITY_GROUPS: tuple[tuple[str, str], ...] = (
    ("monthly_planners", "monthlyPlanners"),
    ("planner_slots", "plannerSlots"),
    ("planner_assignments", "plannerAssignments"),
    ("monthly_contracts", "monthlyContracts"),
    ("monthly_invoices", "monthlyInvoices"),
    ("musicians", "musicians"),
    ("venues", "venues"),
    ("events", "events"),
    ("event_categories", "eventCategories"),
    ("musician_pay_rates", "musicianPayRates"),
    ("availability", "availability"),
)

# Old spellings still emitted by older code paths → canonical key (either form)
LEGACY_ALIASES: dict[str, str] = {
    "planner_data": "monthly_planners",
    "planners": "monthly_planners",
    "planners_slots": "planner_slots",
    "planners_assignments": "planner_assignments",
    "monthly_data": "monthly_contracts",
    "categories": "event_categories",
}

# Sentinel entity meaning "every group"
ALL_ENTITIES = "all"

# ─── Client key → cached query identifiers ───────────────

QUERY_MAP: dict[str, tuple[str, ...]] = {
    "monthlyPlanners": ("/api/planners",),
    "plannerSlots": ("/api/planner-slots",),
    "plannerAssignments": ("/api/planner-assignments",),
    "monthlyContracts": ("/api/monthly-contracts",),
    "monthlyInvoices": ("/api/monthly-invoices",),
    "musicians": ("/api/musicians",),
    "venues": ("/api/venues",),
    "events": ("/api/events",),
    "eventCategories": ("/api/event-categories", "/api/categories"),
    "musicianPayRates": ("/api/musician-pay-rates",),
    "availability": ("/api/availability",),
}

# ─── Critical set ────────────────────────────────────────
# Changes to these groups on these views force a full reload.

CRITICAL_KEYS: frozenset[str] = frozenset({
    "monthlyPlanners",
    "plannerSlots",
    "plannerAssignments",
    "monthlyContracts",
    "monthlyInvoices",
})

CRITICAL_VIEW_PREFIXES: tuple[str, ...] = (
    "/events/planner",
    "/monthly/contracts",
    "/monthly/contract-detail",
)

# ─── Views ───────────────────────────────────────────────

# Old path → canonical path, applied before a forced reload
LEGACY_PATHS: dict[str, str] = {
    "/planner": "/events/planner",
    "/planner/": "/events/planner/",
    "/planner/index": "/events/planner",
}

# Views on which the sync session runs at all
AUTO_REFRESH_ROUTES: tuple[str, ...] = (
    "/events/planner",
    "/events",
    "/musicians",
    "/contracts",
    "/monthly/contracts",
    "/monthly/contract-detail",
    "/monthly/status",
)

# Query parameter carrying the reload freshness token
FRESHNESS_PARAM = "refresh"
