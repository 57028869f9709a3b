# mutations.py  –  create / update / delete tools
#
# Thin pass-through: arguments are mapped onto Pipedrive's field names and
# sent as-is. Deletes are soft (30-day recovery) and require confirm=True.

from typing import Annotated, Any, Dict, Optional

from .client import PipedriveClient
from .errors import PipedriveError, RemoteCallFailure
from .shaping import tool_error

VISIBILITY = ("1", "3", "5", "7")   # owner, owner+followers, all users, entire company
SOFT_DELETE_NOTE = ("This is a soft delete. The {kind} can be recovered within 30 days via "
                    "Pipedrive UI: Settings > Data fields > Deleted items")


def compact(**fields) -> Dict[str, Any]:
    """Drop unset (None) arguments so updates only touch what was given."""
    return {k: v for k, v in fields.items() if v is not None}

def _require(value: Optional[str], what: str, operation: str) -> str:
    if value is None or not str(value).strip():
        raise tool_error(operation, PipedriveError(f"'{what}' is required and cannot be empty"))
    return str(value).strip()

def _check_visibility(visible_to: Optional[str], operation: str) -> None:
    if visible_to is not None and visible_to not in VISIBILITY:
        raise tool_error(operation, PipedriveError(f"visible_to must be one of {', '.join(VISIBILITY)}"))


class PipedriveMutations:
    def __init__(self, client: PipedriveClient):
        self.client = client

    async def _create(self, kind: str, payload: Dict[str, Any], label: str) -> dict:
        operation = f"creating {kind}"
        try:
            created = await self.client.create(kind, payload)
        except RemoteCallFailure as exc:
            raise tool_error(operation, exc) from exc
        if not created:
            raise tool_error(operation, PipedriveError("API returned no data"))
        return {
            "success": True,
            "message": f'{kind.capitalize()} "{created.get(label, "")}" created successfully',
            f"{kind}_id": created.get("id"),
            kind: created,
        }

    async def _update(self, kind: str, record_id: Any, payload: Dict[str, Any]) -> dict:
        operation = f"updating {kind} {record_id}"
        if not payload:
            raise tool_error(operation, PipedriveError("No fields to update were provided"))
        try:
            updated = await self.client.update(kind, record_id, payload)
        except RemoteCallFailure as exc:
            raise tool_error(operation, exc) from exc
        return {
            "success": True,
            "message": f"{kind.capitalize()} {record_id} updated successfully",
            "updated_fields": sorted(payload),
            kind: updated,
        }

    async def _delete(self, kind: str, record_id: Any, confirm: bool, label: str) -> dict:
        operation = f"deleting {kind} {record_id}"
        if confirm is not True:
            raise tool_error(operation, PipedriveError("confirm must be set to true to delete"))
        try:
            existing = await self.client.fetch_by_id(kind, record_id)
            await self.client.delete(kind, record_id)
        except RemoteCallFailure as exc:
            raise tool_error(operation, exc) from exc
        return {
            "success": True,
            "message": f'{kind.capitalize()} "{existing.get(label, record_id)}" (ID: {record_id}) has been deleted',
            "note": SOFT_DELETE_NOTE.format(kind=kind),
            f"deleted_{kind}_id": record_id,
        }

    # ── deals ────────────────────────────────────────────────
    async def create_deal(
        self,
        title:               Annotated[str, "Deal title (required)"],
        value:               Annotated[Optional[float], "Deal value"] = None,
        currency:            Annotated[Optional[str], "Currency code, e.g. USD"] = None,
        person_id:           Annotated[Optional[int], "Person ID"] = None,
        org_id:              Annotated[Optional[int], "Organization ID"] = None,
        stage_id:            Annotated[Optional[int], "Stage ID (use get_stages)"] = None,
        pipeline_id:         Annotated[Optional[int], "Pipeline ID (use get_pipelines)"] = None,
        status:              Annotated[Optional[str], "open | won | lost"] = None,
        expected_close_date: Annotated[Optional[str], "YYYY-MM-DD"] = None,
        probability:         Annotated[Optional[int], "Success probability 0-100"] = None,
        lost_reason:         Annotated[Optional[str], "Only with status=lost"] = None,
        visible_to:          Annotated[Optional[str], "1=owner, 3=owner+followers, 5=all users, 7=company"] = None,
        owner_id:            Annotated[Optional[int], "Owner user ID (use get_users)"] = None,
    ) -> dict:
        """Create a new deal. All deals created through the API have origin='API'."""
        title = _require(title, "title", "creating deal")
        _check_visibility(visible_to, "creating deal")
        return await self._create("deal", compact(
            title=title, value=value, currency=currency, person_id=person_id, org_id=org_id,
            stage_id=stage_id, pipeline_id=pipeline_id, status=status,
            expected_close_date=expected_close_date, probability=probability,
            lost_reason=lost_reason, visible_to=visible_to, user_id=owner_id), "title")

    async def update_deal(
        self,
        id:                  Annotated[int, "Deal ID (required)"],
        title:               Annotated[Optional[str], "Deal title"] = None,
        value:               Annotated[Optional[float], "Deal value"] = None,
        currency:            Annotated[Optional[str], "Currency code"] = None,
        person_id:           Annotated[Optional[int], "Person ID"] = None,
        org_id:              Annotated[Optional[int], "Organization ID"] = None,
        stage_id:            Annotated[Optional[int], "Stage ID"] = None,
        pipeline_id:         Annotated[Optional[int], "Pipeline ID"] = None,
        status:              Annotated[Optional[str], "open | won | lost"] = None,
        expected_close_date: Annotated[Optional[str], "YYYY-MM-DD"] = None,
        probability:         Annotated[Optional[int], "Success probability 0-100"] = None,
        lost_reason:         Annotated[Optional[str], "Reason for lost deal"] = None,
        visible_to:          Annotated[Optional[str], "Visibility setting"] = None,
        owner_id:            Annotated[Optional[int], "Owner user ID"] = None,
    ) -> dict:
        """Update an existing deal. Only the given fields change."""
        _check_visibility(visible_to, f"updating deal {id}")
        return await self._update("deal", id, compact(
            title=title, value=value, currency=currency, person_id=person_id, org_id=org_id,
            stage_id=stage_id, pipeline_id=pipeline_id, status=status,
            expected_close_date=expected_close_date, probability=probability,
            lost_reason=lost_reason, visible_to=visible_to, user_id=owner_id))

    async def delete_deal(self, id: Annotated[int, "Deal ID"],
                          confirm: Annotated[bool, "Must be true to confirm deletion"] = False) -> dict:
        """Delete a deal (soft delete with 30-day recovery). CAUTION: destructive."""
        return await self._delete("deal", id, confirm, "title")

    # ── persons ──────────────────────────────────────────────
    async def create_person(
        self,
        name:       Annotated[str, "Person's name (required)"],
        email:      Annotated[Optional[str], "Email address"] = None,
        phone:      Annotated[Optional[str], "Phone number"] = None,
        org_id:     Annotated[Optional[int], "Organization ID"] = None,
        owner_id:   Annotated[Optional[int], "Owner user ID"] = None,
        visible_to: Annotated[Optional[str], "1=owner, 3=owner+followers, 5=all users, 7=company"] = None,
    ) -> dict:
        """Create a new person (contact)."""
        name = _require(name, "name", "creating person")
        if email is not None and "@" not in email:
            raise tool_error("creating person", PipedriveError(f"'{email}' is not a valid email address"))
        _check_visibility(visible_to, "creating person")
        return await self._create("person", compact(
            name=name,
            email=[{"value": email, "primary": True, "label": "work"}] if email else None,
            phone=[{"value": phone, "primary": True, "label": "work"}] if phone else None,
            org_id=org_id, owner_id=owner_id, visible_to=visible_to), "name")

    async def update_person(
        self,
        id:         Annotated[int, "Person ID (required)"],
        name:       Annotated[Optional[str], "Person's name"] = None,
        email:      Annotated[Optional[str], "Email address"] = None,
        phone:      Annotated[Optional[str], "Phone number"] = None,
        org_id:     Annotated[Optional[int], "Organization ID"] = None,
        owner_id:   Annotated[Optional[int], "Owner user ID"] = None,
        visible_to: Annotated[Optional[str], "Visibility setting"] = None,
    ) -> dict:
        """Update an existing person. Only the given fields change."""
        _check_visibility(visible_to, f"updating person {id}")
        return await self._update("person", id, compact(
            name=name,
            email=[{"value": email, "primary": True, "label": "work"}] if email else None,
            phone=[{"value": phone, "primary": True, "label": "work"}] if phone else None,
            org_id=org_id, owner_id=owner_id, visible_to=visible_to))

    async def delete_person(self, id: Annotated[int, "Person ID"],
                            confirm: Annotated[bool, "Must be true to confirm deletion"] = False) -> dict:
        """Delete a person (soft delete with 30-day recovery). CAUTION: destructive."""
        return await self._delete("person", id, confirm, "name")

    # ── organizations ────────────────────────────────────────
    async def create_organization(
        self,
        name:       Annotated[str, "Organization name (required)"],
        owner_id:   Annotated[Optional[int], "Owner user ID"] = None,
        visible_to: Annotated[Optional[str], "1=owner, 3=owner+followers, 5=all users, 7=company"] = None,
        address:    Annotated[Optional[str], "Full address"] = None,
    ) -> dict:
        """Create a new organization."""
        name = _require(name, "name", "creating organization")
        _check_visibility(visible_to, "creating organization")
        return await self._create("organization", compact(
            name=name, owner_id=owner_id, visible_to=visible_to, address=address), "name")

    async def update_organization(
        self,
        id:         Annotated[int, "Organization ID (required)"],
        name:       Annotated[Optional[str], "Organization name"] = None,
        owner_id:   Annotated[Optional[int], "Owner user ID"] = None,
        visible_to: Annotated[Optional[str], "Visibility setting"] = None,
        address:    Annotated[Optional[str], "Full address"] = None,
    ) -> dict:
        """Update an existing organization. Only the given fields change."""
        _check_visibility(visible_to, f"updating organization {id}")
        return await self._update("organization", id, compact(
            name=name, owner_id=owner_id, visible_to=visible_to, address=address))

    async def delete_organization(self, id: Annotated[int, "Organization ID"],
                                  confirm: Annotated[bool, "Must be true to confirm deletion"] = False) -> dict:
        """Delete an organization (soft delete with 30-day recovery). CAUTION: destructive."""
        return await self._delete("organization", id, confirm, "name")

    # ── activities ───────────────────────────────────────────
    async def create_activity(
        self,
        subject:   Annotated[str, "Activity subject (required)"],
        type:      Annotated[str, "call, meeting, task, deadline, email, lunch (required)"],
        due_date:  Annotated[Optional[str], "YYYY-MM-DD"] = None,
        due_time:  Annotated[Optional[str], "HH:MM"] = None,
        duration:  Annotated[Optional[str], "HH:MM"] = None,
        deal_id:   Annotated[Optional[int], "Deal ID"] = None,
        person_id: Annotated[Optional[int], "Person ID"] = None,
        org_id:    Annotated[Optional[int], "Organization ID"] = None,
        note:      Annotated[Optional[str], "Note content"] = None,
        done:      Annotated[Optional[bool], "Mark as done (default false)"] = None,
    ) -> dict:
        """Create a new activity (task, call, meeting, etc.)."""
        subject = _require(subject, "subject", "creating activity")
        type = _require(type, "type", "creating activity")
        return await self._create("activity", compact(
            subject=subject, type=type, due_date=due_date, due_time=due_time, duration=duration,
            deal_id=deal_id, person_id=person_id, org_id=org_id, note=note,
            done=None if done is None else int(done)), "subject")

    async def update_activity(
        self,
        id:        Annotated[int, "Activity ID (required)"],
        subject:   Annotated[Optional[str], "Activity subject"] = None,
        type:      Annotated[Optional[str], "Activity type"] = None,
        due_date:  Annotated[Optional[str], "YYYY-MM-DD"] = None,
        due_time:  Annotated[Optional[str], "HH:MM"] = None,
        duration:  Annotated[Optional[str], "HH:MM"] = None,
        deal_id:   Annotated[Optional[int], "Deal ID"] = None,
        person_id: Annotated[Optional[int], "Person ID"] = None,
        org_id:    Annotated[Optional[int], "Organization ID"] = None,
        note:      Annotated[Optional[str], "Note content"] = None,
        done:      Annotated[Optional[bool], "Mark as done/undone"] = None,
    ) -> dict:
        """Update an existing activity. Only the given fields change."""
        return await self._update("activity", id, compact(
            subject=subject, type=type, due_date=due_date, due_time=due_time, duration=duration,
            deal_id=deal_id, person_id=person_id, org_id=org_id, note=note,
            done=None if done is None else int(done)))

    async def delete_activity(self, id: Annotated[int, "Activity ID"],
                              confirm: Annotated[bool, "Must be true to confirm deletion"] = False) -> dict:
        """Delete an activity. CAUTION: destructive."""
        return await self._delete("activity", id, confirm, "subject")

    # ── notes ────────────────────────────────────────────────
    async def create_note(
        self,
        content:   Annotated[str, "Note content (required, HTML allowed)"],
        deal_id:   Annotated[Optional[int], "Deal to attach to"] = None,
        person_id: Annotated[Optional[int], "Person to attach to"] = None,
        org_id:    Annotated[Optional[int], "Organization to attach to"] = None,
        lead_id:   Annotated[Optional[str], "Lead (UUID) to attach to"] = None,
    ) -> dict:
        """Create a note and attach it to a deal, person, organization or lead."""
        content = _require(content, "content", "creating note")
        if not any((deal_id, person_id, org_id, lead_id)):
            raise tool_error("creating note", PipedriveError(
                "A note must be attached to a deal, person, organization or lead"))
        return await self._create("note", compact(
            content=content, deal_id=deal_id, person_id=person_id, org_id=org_id, lead_id=lead_id), "content")

    async def update_note(self, id: Annotated[int, "Note ID (required)"],
                          content: Annotated[str, "Updated note content (required)"]) -> dict:
        """Update the content of an existing note."""
        content = _require(content, "content", f"updating note {id}")
        return await self._update("note", id, {"content": content})

    async def delete_note(self, id: Annotated[int, "Note ID"],
                          confirm: Annotated[bool, "Must be true to confirm deletion"] = False) -> dict:
        """Delete a note. CAUTION: destructive."""
        return await self._delete("note", id, confirm, "id")

    # ── leads ────────────────────────────────────────────────
    async def create_lead(
        self,
        title:               Annotated[str, "Lead title (required)"],
        person_id:           Annotated[Optional[int], "Person ID"] = None,
        organization_id:     Annotated[Optional[int], "Organization ID"] = None,
        value:               Annotated[Optional[float], "Potential value"] = None,
        currency:            Annotated[str, "Currency of value"] = "USD",
        owner_id:            Annotated[Optional[int], "Owner user ID"] = None,
        expected_close_date: Annotated[Optional[str], "YYYY-MM-DD"] = None,
    ) -> dict:
        """Create a new lead. Must be linked to a person or an organization (or both)."""
        title = _require(title, "title", "creating lead")
        if not person_id and not organization_id:
            raise tool_error("creating lead", PipedriveError(
                "Lead must be linked to at least one person (person_id) or organization (organization_id)"))
        return await self._create("lead", compact(
            title=title, person_id=person_id, organization_id=organization_id,
            value={"amount": value, "currency": currency} if value is not None else None,
            owner_id=owner_id, expected_close_date=expected_close_date), "title")

    async def update_lead(
        self,
        id:                  Annotated[str, "Lead ID (UUID, required)"],
        title:               Annotated[Optional[str], "Lead title"] = None,
        person_id:           Annotated[Optional[int], "Person ID"] = None,
        organization_id:     Annotated[Optional[int], "Organization ID"] = None,
        value:               Annotated[Optional[float], "Lead value"] = None,
        currency:            Annotated[str, "Currency of value"] = "USD",
        owner_id:            Annotated[Optional[int], "Owner user ID"] = None,
        expected_close_date: Annotated[Optional[str], "YYYY-MM-DD"] = None,
    ) -> dict:
        """Update an existing lead. Only the given fields change."""
        return await self._update("lead", id, compact(
            title=title, person_id=person_id, organization_id=organization_id,
            value={"amount": value, "currency": currency} if value is not None else None,
            owner_id=owner_id, expected_close_date=expected_close_date))

    async def delete_lead(self, id: Annotated[str, "Lead ID (UUID)"],
                          confirm: Annotated[bool, "Must be true to confirm deletion"] = False) -> dict:
        """Delete a lead. CAUTION: destructive."""
        return await self._delete("lead", id, confirm, "title")

    async def convert_lead_to_deal(
        self,
        id:              Annotated[str, "Lead ID (UUID) to convert"],
        stage_id:        Annotated[Optional[int], "Stage ID for the new deal"] = None,
        deal_title:      Annotated[Optional[str], "Deal title (defaults to lead title)"] = None,
        person_id:       Annotated[Optional[int], "Person ID if different from the lead's"] = None,
        organization_id: Annotated[Optional[int], "Organization ID if different from the lead's"] = None,
    ) -> dict:
        """Convert a lead to a deal. Returns a conversion job ID for tracking status."""
        operation = f"converting lead {id}"
        try:
            data = await self.client.convert_lead(id, compact(
                stage_id=stage_id, deal_title=deal_title, person_id=person_id,
                organization_id=organization_id))
        except RemoteCallFailure as exc:
            raise tool_error(operation, exc) from exc
        if not data:
            raise tool_error(operation, PipedriveError("API returned no data"))
        return {
            "success": True,
            "message": "Lead conversion initiated successfully",
            "conversion_id": data.get("conversion_id"),
            "note": "Conversion is processing. Use the conversion_id to check status via Pipedrive API if needed.",
            "data": data,
        }


WRITE_TOOLS = [
    "create_deal", "update_deal", "delete_deal",
    "create_person", "update_person", "delete_person",
    "create_organization", "update_organization", "delete_organization",
    "create_activity", "update_activity", "delete_activity",
    "create_note", "update_note", "delete_note",
    "create_lead", "update_lead", "delete_lead", "convert_lead_to_deal",
]
