# tools.py  –  read / search tools (registered on the MCP server in server.py)
#
# Each tool: fetch through the throttled client → filter or score in memory
# → return a compact envelope. Remote failures become ToolErrors carrying the
# operation and, for unreliable searches, a tool to retry with.

from datetime import date, timedelta
from typing import Annotated, Any, Dict, List, Optional

from .client import MAX_PAGE, PipedriveClient
from .config import log, log_error
from .errors import InvalidQuery, RemoteCallFailure
from .fields import id_value
from .filters import FieldPredicate, MatchMode, filter_records
from .scoring import DEFAULT_CAP, MatchQuery, fuzzy_find
from .shaping import (
    DEFAULT_REASONS, shape_empty_search_diagnostic, shape_read_result,
    shape_scored_results, shape_search_result, tool_error,
)

DEALS_SHOWN = 30        # deals are summarized, but still big; cap what the LLM sees
NOTES_PAGE = 100


def _clamp(limit: Optional[int], default: int, ceiling: int = MAX_PAGE) -> int:
    if limit is None or limit <= 0:
        return default
    return min(limit, ceiling)

def _name(value: Any) -> Optional[str]:
    """Name out of a wrapped reference ({'name': ..., 'value': id}) or a plain string."""
    if isinstance(value, dict):
        return value.get("name")
    return value if isinstance(value, str) else None

def summarize_deal(deal: Dict[str, Any], booking_field_key: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id":                 deal.get("id"),
        "title":              deal.get("title"),
        "value":              deal.get("value"),
        "currency":           deal.get("currency"),
        "status":             deal.get("status"),
        "stage_id":           id_value(deal, "stage_id"),
        "pipeline_id":        id_value(deal, "pipeline_id"),
        "owner_name":         deal.get("owner_name") or _name(deal.get("user_id")) or "Unknown",
        "organization_name":  deal.get("org_name") or _name(deal.get("org_id")),
        "person_name":        deal.get("person_name") or _name(deal.get("person_id")),
        "add_time":           deal.get("add_time"),
        "last_activity_date": deal.get("last_activity_date"),
        "close_time":         deal.get("close_time"),
        "won_time":           deal.get("won_time"),
        "lost_time":          deal.get("lost_time"),
        "notes_count":        deal.get("notes_count") or 0,
        "booking_details":    deal.get(booking_field_key) if booking_field_key else None,
    }

def note_person_id(note: Dict[str, Any]) -> Optional[int]:
    """Person id of a note: ``person_id`` (raw or wrapped) or ``person.id``."""
    pid = id_value(note, "person_id")
    if pid is not None:
        return pid
    person = note.get("person")
    if isinstance(person, dict) and person.get("id") is not None:
        return int(person["id"])
    return None


class PipedriveTools:
    def __init__(self, client: PipedriveClient):
        self.client = client

    @property
    def booking_field_key(self) -> Optional[str]:
        return self.client.settings.booking_field_key

    # ──────────────────────────────────────────────────────────
    # Users
    # ──────────────────────────────────────────────────────────
    async def get_users(self) -> dict:
        """
        Get all users/owners from Pipedrive. Use this first to find owner IDs for filtering deals.
        """
        try:
            users = await self.client.fetch_all("user")
        except RemoteCallFailure as exc:
            raise tool_error("fetching users", exc) from exc
        users = [{
            "id": u.get("id"),
            "name": u.get("name"),
            "email": u.get("email"),
            "active_flag": u.get("active_flag"),
            "role_name": u.get("role_name"),
        } for u in users]
        return {"summary": f"Found {len(users)} users in your Pipedrive account", "users": users}

    # ──────────────────────────────────────────────────────────
    # Deals
    # ──────────────────────────────────────────────────────────
    async def get_deals(
        self,
        search_title: Annotated[Optional[str], "Deal title contains (case-insensitive partial match)"] = None,
        days_back:    Annotated[int, "Only deals with activity in the last N days (default 365; ignored with search_title)"] = 365,
        owner_id:     Annotated[Optional[int], "Owner/user ID (use get_users to find IDs)"] = None,
        stage_id:     Annotated[Optional[int], "Stage ID (use get_stages)"] = None,
        status:       Annotated[str, "open | won | lost | deleted (default open)"] = "open",
        pipeline_id:  Annotated[Optional[int], "Pipeline ID (use get_pipelines)"] = None,
        min_value:    Annotated[Optional[float], "Minimum deal value"] = None,
        max_value:    Annotated[Optional[float], "Maximum deal value"] = None,
        limit:        Annotated[int, "Max deals fetched from Pipedrive (default/max 500)"] = 500,
    ) -> dict:
        """
        Use for: Listing deals with flexible filters: title, recent activity, owner, stage, status, pipeline, value range.
        Title matching is done client-side and is reliable for partial titles, unlike search_deals.
        Use get_users first to find owner IDs.
        """
        if status not in ("open", "won", "lost", "deleted"):
            raise tool_error("fetching deals", ValueError(f"status must be open, won, lost or deleted, got '{status}'"))
        limit = _clamp(limit, MAX_PAGE)
        try:
            deals = await self.client.fetch_all(
                "deal", limit=limit, sort="last_activity_date DESC", status=status,
                user_id=owner_id, stage_id=stage_id, pipeline_id=pipeline_id)
        except RemoteCallFailure as exc:
            raise tool_error("fetching deals", exc) from exc

        since = None if search_title else date.today() - timedelta(days=days_back)
        deals, applied = filter_records(deals, [
            FieldPredicate("title", search_title),
            FieldPredicate("last_activity_date", since, MatchMode.SINCE),
            FieldPredicate("status", status, MatchMode.EXACT),
            FieldPredicate("user_id", owner_id, MatchMode.EQUALS, label="owner_id"),
            FieldPredicate("stage_id", stage_id, MatchMode.EQUALS),
            FieldPredicate("pipeline_id", pipeline_id, MatchMode.EQUALS),
            FieldPredicate("value", min_value, MatchMode.AT_LEAST, default=0),
            FieldPredicate("value", max_value, MatchMode.AT_MOST, default=0),
        ])
        log("🔎 get_deals", len(deals), "after", applied)

        summary = (f'Found {len(deals)} deals matching title search "{search_title}"' if search_title
                   else f"Found {len(deals)} deals matching the specified filters")
        return shape_read_result(
            "deal", [summarize_deal(d, self.booking_field_key) for d in deals], applied,
            limit=DEALS_SHOWN, summary=summary)

    async def get_deal(self, deal_id: Annotated[int, "Pipedrive deal ID"]) -> dict:
        """Get a specific deal by ID including custom fields."""
        try:
            return await self.client.fetch_by_id("deal", deal_id)
        except RemoteCallFailure as exc:
            raise tool_error(f"fetching deal {deal_id}", exc) from exc

    async def get_deal_notes(
        self,
        deal_id: Annotated[int, "Pipedrive deal ID"],
        limit:   Annotated[int, "Max notes to return (default 20)"] = 20,
    ) -> dict:
        """Get the notes and custom booking details of a deal. Partial failures are reported inline."""
        result: Dict[str, Any] = {"deal_id": deal_id, "notes": [], "booking_details": None}
        try:
            deal = await self.client.fetch_by_id("deal", deal_id)
            if self.booking_field_key:
                result["booking_details"] = deal.get(self.booking_field_key)
        except RemoteCallFailure as exc:
            log_error(f"Error fetching deal details for {deal_id}:", exc)
            result["deal_error"] = exc.message
        try:
            result["notes"] = await self.client.fetch_all("note", limit=_clamp(limit, 20), deal_id=deal_id)
        except RemoteCallFailure as exc:
            log_error(f"Error fetching notes for deal {deal_id}:", exc)
            result["notes_error"] = exc.message
        return {
            "summary": f"Retrieved {len(result['notes'])} notes and booking details for deal {deal_id}",
            **result,
        }

    async def search_deals(self, term: Annotated[str, "Search term for deals"]) -> dict:
        """Search deals with Pipedrive's search API. If it returns nothing, use get_deals with search_title."""
        try:
            items = await self.client.remote_search("deal", term)
        except RemoteCallFailure as exc:
            raise tool_error("searching deals", exc, f"Try get_deals with search_title=\"{term}\" instead") from exc
        if not items:
            return shape_empty_search_diagnostic(
                term, "Try get_deals with search_title for client-side title matching, which is more reliable.",
                alternative=f'Use: get_deals with search_title="{term}"')
        return shape_search_result("deal", items, term)

    # ──────────────────────────────────────────────────────────
    # Persons
    # ──────────────────────────────────────────────────────────
    async def get_persons(
        self,
        filter_name:       Annotated[Optional[str], "Name contains (case-insensitive)"] = None,
        filter_email:      Annotated[Optional[str], "Email contains (case-insensitive)"] = None,
        filter_phone:      Annotated[Optional[str], "Phone contains"] = None,
        organization_id:   Annotated[Optional[int], "Organization ID"] = None,
        organization_name: Annotated[Optional[str], "Organization name contains (case-insensitive)"] = None,
        limit:             Annotated[int, "Max persons to return (default 100, max 500)"] = 100,
    ) -> dict:
        """
        Use for: Listing persons with optional filters on name, email, phone and organization.
        All filters must match (AND). Use find_person for ranked fuzzy lookups.
        """
        limit = _clamp(limit, 100)
        try:
            persons = await self.client.fetch_all("person", limit=limit)
        except RemoteCallFailure as exc:
            raise tool_error("fetching persons", exc) from exc
        persons, applied = filter_records(persons, [
            FieldPredicate("name", filter_name),
            FieldPredicate("email", filter_email),
            FieldPredicate("phone", filter_phone),
            FieldPredicate("org_id", organization_id, MatchMode.EQUALS),
            FieldPredicate("org_name", organization_name),
        ])
        return shape_read_result("person", persons, applied, limit=limit)

    async def get_person(self, person_id: Annotated[int, "Pipedrive person ID"]) -> dict:
        """Get a specific person by ID including custom fields."""
        try:
            return await self.client.fetch_by_id("person", person_id)
        except RemoteCallFailure as exc:
            raise tool_error(f"fetching person {person_id}", exc) from exc

    async def search_persons(
        self,
        term:            Annotated[str, "Search term (3+ characters recommended)"],
        fields:          Annotated[Optional[str], "Comma-separated: name, email, phone, notes, custom_fields"] = None,
        exact_match:     Annotated[Optional[bool], "Only exact matches (not case sensitive)"] = None,
        organization_id: Annotated[Optional[int], "Restrict to an organization ID"] = None,
        limit:           Annotated[Optional[int], "Max entries (default 100, max 500)"] = None,
    ) -> dict:
        """
        ⚠️ FALLBACK TOOL - use find_person for most lookups. Pipedrive's native search often returns empty results.
        Use only for: (1) searching note content with fields='notes', (2) custom fields, (3) exact matching.
        """
        try:
            items = await self.client.remote_search(
                "person", term, fields=fields, exact_match=exact_match,
                organization_id=organization_id, limit=_clamp(limit, 100) if limit else None)
        except RemoteCallFailure as exc:
            raise tool_error("searching persons", exc, "Try find_person or get_persons with filters instead") from exc
        if not items:
            return shape_empty_search_diagnostic(
                term,
                "The search API may require specific conditions. Try find_person for fuzzy matching, "
                "or get_persons with filter parameters.",
                reasons=DEFAULT_REASONS + ["Try searching by different fields (name, email, organization)"],
                alternative=f'Use: find_person with name="{term}"')
        return shape_search_result("person", items, term)

    async def get_person_notes(
        self,
        person_id: Annotated[int, "Pipedrive person ID"],
        limit:     Annotated[int, "Max notes to return (default 100)"] = 100,
    ) -> dict:
        """Get all notes attached to a specific person."""
        try:
            notes = await self.client.fetch_all("note", limit=_clamp(limit, 100), person_id=person_id)
        except RemoteCallFailure as exc:
            raise tool_error(f"fetching notes for person {person_id}", exc) from exc
        return {
            "summary": f"Retrieved {len(notes)} notes for person {person_id}",
            "person_id": person_id,
            "notes": notes,
        }

    async def search_persons_by_notes(
        self,
        keyword: Annotated[str, "Keyword to look for in note content (case-insensitive)"],
        limit:   Annotated[int, "Max notes to scan (default 500)"] = 500,
    ) -> dict:
        """
        Use for: Finding persons who have notes containing a keyword (e.g. a product, an event, a topic).
        Scans note content client-side, then loads each matching person.
        """
        if not keyword or not keyword.strip():
            raise tool_error("searching persons by notes", InvalidQuery("keyword is required"))
        limit = _clamp(limit, 500, ceiling=10_000)
        notes: List[Dict[str, Any]] = []
        start, more = 0, True
        try:
            while more and len(notes) < limit:
                page, more = await self.client.fetch_page("note", start=start, limit=NOTES_PAGE)
                if not page:
                    break
                notes.extend(page)
                start += len(page)
        except RemoteCallFailure as exc:
            raise tool_error("searching persons by notes", exc) from exc

        linked = [n for n in notes[:limit] if note_person_id(n) is not None]
        matching, _ = filter_records(linked, [FieldPredicate("content", keyword.strip())])

        results = []
        for pid in dict.fromkeys(note_person_id(n) for n in matching):
            try:
                person = await self.client.fetch_by_id("person", pid)
            except RemoteCallFailure as exc:
                log_error(f"Error fetching person {pid}:", exc)
                continue
            results.append({
                "person": {k: person.get(k) for k in ("id", "name", "email", "phone", "org_id", "org_name")},
                "matching_notes": [
                    {k: n.get(k) for k in ("id", "content", "add_time", "update_time")}
                    for n in matching if note_person_id(n) == pid
                ],
            })
        return {
            "summary": f'Found {len(results)} persons with notes containing "{keyword}"',
            "keyword": keyword,
            "notes_scanned": len(notes[:limit]),
            "results": results,
        }

    async def find_person(
        self,
        name:    Annotated[Optional[str], "Person name (fuzzy: substring or word prefix)"] = None,
        company: Annotated[Optional[str], "Company/organization name (fuzzy)"] = None,
        email:   Annotated[Optional[str], "Email (partial match)"] = None,
        phone:   Annotated[Optional[str], "Phone number (partial match)"] = None,
        limit:   Annotated[int, "Max results (default 20)"] = DEFAULT_CAP,
    ) -> dict:
        """
        ⭐ PRIMARY TOOL for finding persons - USE THIS BY DEFAULT.
        Reliable fuzzy matching across name, email, phone and company; results are scored
        (name 10, company 8, email 7, phone 6) and ranked by relevance, each with match reasons.
        """
        query = MatchQuery.for_person(name=name, company=company, email=email, phone=phone)
        try:
            query.validate()
        except InvalidQuery as exc:
            raise tool_error("finding persons", exc) from exc
        try:
            persons = await self.client.fetch_all("person", limit=MAX_PAGE)
        except RemoteCallFailure as exc:
            raise tool_error("finding persons", exc) from exc
        results = fuzzy_find(persons, query, cap=_clamp(limit, DEFAULT_CAP, ceiling=DEFAULT_CAP))
        return shape_scored_results(results, query.describe())

    async def get_persons_by_organization(
        self,
        organization_id: Annotated[int, "Organization ID"],
        limit:           Annotated[int, "Max persons to return (default 100)"] = 100,
    ) -> dict:
        """Get all persons belonging to a specific organization."""
        try:
            persons = await self.client.fetch_all("person", limit=MAX_PAGE)
        except RemoteCallFailure as exc:
            raise tool_error("fetching persons for organization", exc) from exc
        persons, applied = filter_records(persons, [FieldPredicate("org_id", organization_id, MatchMode.EQUALS)])
        return shape_read_result(
            "person", persons, applied, limit=_clamp(limit, 100),
            summary=f"Found {len(persons)} persons in organization {organization_id}",
            organization_id=organization_id)

    # ──────────────────────────────────────────────────────────
    # Organizations
    # ──────────────────────────────────────────────────────────
    async def get_organizations(
        self,
        filter_name: Annotated[Optional[str], "Name contains (case-insensitive)"] = None,
        limit:       Annotated[int, "Max organizations (default 100, max 500)"] = 100,
    ) -> dict:
        """Get organizations, optionally filtered by a partial name. More reliable than search_organizations."""
        limit = _clamp(limit, 100)
        try:
            orgs = await self.client.fetch_all("organization", limit=limit)
        except RemoteCallFailure as exc:
            raise tool_error("fetching organizations", exc) from exc
        orgs, applied = filter_records(orgs, [FieldPredicate("name", filter_name)])
        return shape_read_result("organization", orgs, applied, limit=limit)

    async def get_organization(self, organization_id: Annotated[int, "Pipedrive organization ID"]) -> dict:
        """Get a specific organization by ID including custom fields."""
        try:
            return await self.client.fetch_by_id("organization", organization_id)
        except RemoteCallFailure as exc:
            raise tool_error(f"fetching organization {organization_id}", exc) from exc

    async def search_organizations(self, term: Annotated[str, "Search term (3+ characters recommended)"]) -> dict:
        """Search organizations with Pipedrive's search API. If empty, use get_organizations with filter_name."""
        try:
            items = await self.client.remote_search("organization", term)
        except RemoteCallFailure as exc:
            raise tool_error("searching organizations", exc,
                             "Try get_organizations with filter_name instead") from exc
        if not items:
            return shape_empty_search_diagnostic(
                term, "Try get_organizations with filter_name for client-side filtering, which is more reliable.",
                alternative=f'Use: get_organizations with filter_name="{term}"')
        return shape_search_result("organization", items, term)

    # ──────────────────────────────────────────────────────────
    # Pipelines & stages
    # ──────────────────────────────────────────────────────────
    async def get_pipelines(self) -> list:
        """Get all pipelines."""
        try:
            return await self.client.fetch_all("pipeline")
        except RemoteCallFailure as exc:
            raise tool_error("fetching pipelines", exc) from exc

    async def get_pipeline(self, pipeline_id: Annotated[int, "Pipedrive pipeline ID"]) -> dict:
        """Get a specific pipeline by ID."""
        try:
            return await self.client.fetch_by_id("pipeline", pipeline_id)
        except RemoteCallFailure as exc:
            raise tool_error(f"fetching pipeline {pipeline_id}", exc) from exc

    async def get_stages(self) -> list:
        """Get the stages of every pipeline, each tagged with its pipeline_name."""
        try:
            pipelines = await self.client.fetch_all("pipeline")
        except RemoteCallFailure as exc:
            raise tool_error("fetching stages", exc) from exc
        stages = []
        for p in pipelines:
            try:
                found = await self.client.fetch_stages(p.get("id"))
            except RemoteCallFailure as exc:
                log_error(f"Error fetching stages for pipeline {p.get('id')}:", exc)
                continue
            stages.extend({**s, "pipeline_name": p.get("name")} for s in found)
        return stages

    # ──────────────────────────────────────────────────────────
    # Leads & global search
    # ──────────────────────────────────────────────────────────
    async def get_leads(
        self,
        filter_title: Annotated[Optional[str], "Lead title contains (case-insensitive)"] = None,
        limit:        Annotated[int, "Max leads (default 100, max 500)"] = 100,
    ) -> dict:
        """Get leads, optionally filtered by a partial title. More reliable than search_leads."""
        limit = _clamp(limit, 100)
        try:
            leads = await self.client.fetch_all("lead", limit=limit)
        except RemoteCallFailure as exc:
            raise tool_error("fetching leads", exc) from exc
        leads, applied = filter_records(leads, [FieldPredicate("title", filter_title)])
        return shape_read_result("lead", leads, applied, limit=limit)

    async def search_leads(self, term: Annotated[str, "Search term for leads"]) -> dict:
        """Search leads with Pipedrive's search API. If empty, use get_leads with filter_title."""
        try:
            items = await self.client.remote_search("lead", term)
        except RemoteCallFailure as exc:
            raise tool_error("searching leads", exc, "Try get_leads with filter_title instead") from exc
        if not items:
            return shape_empty_search_diagnostic(
                term, "Try get_leads with filter_title for client-side filtering, which is more reliable.",
                alternative=f'Use: get_leads with filter_title="{term}"')
        return shape_search_result("lead", items, term)

    async def search_all(
        self,
        term:       Annotated[str, "Search term (3+ characters recommended)"],
        item_types: Annotated[Optional[str], "Comma-separated: deal,person,organization,product,file,activity,lead"] = None,
    ) -> dict:
        """
        Search across all item types with Pipedrive's search API.
        NOTE: If this returns nothing, use find_person, get_persons, get_organizations or get_deals with filters.
        """
        try:
            items = await self.client.item_search(term, item_types)
        except RemoteCallFailure as exc:
            raise tool_error("performing search", exc,
                             "Try find_person, get_persons, get_organizations or get_deals with filters") from exc
        if not items:
            return shape_empty_search_diagnostic(
                term,
                "Pipedrive's search API may require specific conditions. Try specific tools with filter parameters instead:",
                alternatives={
                    "for_persons":       f'find_person with name="{term}" or get_persons with filter_name="{term}"',
                    "for_organizations": f'get_organizations with filter_name="{term}"',
                    "for_deals":         f'get_deals with search_title="{term}"',
                },
                reasons=DEFAULT_REASONS[:2] + ["Search index may not be fully populated for this item type"],
                item_types=item_types or "all")
        return shape_search_result("item", items, term, item_types=item_types or "all")


READ_TOOLS = [
    "get_users",
    "get_deals", "get_deal", "get_deal_notes", "search_deals",
    "get_persons", "get_person", "search_persons", "get_person_notes",
    "search_persons_by_notes", "find_person", "get_persons_by_organization",
    "get_organizations", "get_organization", "search_organizations",
    "get_pipelines", "get_pipeline", "get_stages",
    "get_leads", "search_leads", "search_all",
]
