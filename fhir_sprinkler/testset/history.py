"""History interaction tests on resource, type and system level."""

from datetime import datetime, timedelta, timezone

from fhir_sprinkler.client import Bundle
from fhir_sprinkler.framework import (
    SprinklerModule,
    module_initialize,
    sprinkler_module,
    sprinkler_test,
)
from fhir_sprinkler.framework import asserts
from fhir_sprinkler.testset.builders import (
    create_and_locate,
    identity_of,
    new_patient,
    with_telecom,
)


def _has_identity(resource: dict) -> bool:
    return bool(resource.get("id") or (resource.get("meta") or {}).get("versionId"))


@sprinkler_module("History")
class HistoryTest(SprinklerModule):
    """History of a patient created, updated twice and deleted at init."""

    def __init__(self) -> None:
        self.history_start: datetime | None = None
        self.location: str | None = None
        self.versions: list[str | None] = []

    @module_initialize
    async def initialize(self) -> None:
        """Create, update and delete a patient to build up its history."""
        self.history_start = datetime.now(timezone.utc)
        patient, identity = await create_and_locate(
            self.client, new_patient("Chalmers", "Peter", "James")
        )
        self.location = str(identity.without_version())
        self.versions.append(identity.version_id)

        current = {**(patient or {}), "id": identity.id}
        current = with_telecom(current, "email", "info@furore.com")
        for _ in range(2):
            updated = await self.client.update(current, version_aware=True)
            updated_identity = identity_of(self.client, updated)
            self.versions.append(updated_identity.version_id)
            current = {**(updated or current), "id": identity.id}

        await self.client.delete(self.location)

    def _check_basic_requirements(self, history: Bundle) -> None:
        asserts.entry_ids_present(history)
        asserts.all_entries(
            history,
            lambda entry: entry.request is not None,
            "A history entry must contain a transaction element",
        )
        asserts.all_resources(
            history,
            lambda r: not _has_identity(r) or r.get("meta") is not None,
            "A resource in a history entry must contain a meta element",
        )
        asserts.all_resources(
            history,
            lambda r: not _has_identity(r) or asserts.last_updated(r) is not None,
            "A resource in a history entry must contain LastUpdate information",
        )
        asserts.resources_in_reverse_order(history)

    def _before_start(self) -> datetime:
        if self.history_start is None:
            asserts.skip("history start time was not recorded")
        return self.history_start - timedelta(minutes=1)

    @staticmethod
    def _future() -> datetime:
        return datetime.now(timezone.utc) + timedelta(hours=1)

    @sprinkler_test("HI01", "Request full history for specific resource")
    async def history_for_specific_resource(self) -> None:
        history = await self.client.history(self.location)

        # One more than the recorded versions, the deletion has no version id
        asserts.minimum_entries(history, len(self.versions) + 1)
        self._check_basic_requirements(history)

    @sprinkler_test(
        "HI02",
        "Request full history for specific resource using the _since parameter "
        "(set to before the resource was created)",
    )
    async def history_since_before_creation(self) -> None:
        history = await self.client.history(self.location, since=self._before_start())

        self._check_basic_requirements(history)
        asserts.contains_all_versions(history, self.versions)

    @sprinkler_test(
        "HI03",
        "Request full history for specific resource using the _since parameter "
        "(set to a future date)",
    )
    async def history_since_future_date(self) -> None:
        history = await self.client.history(self.location, since=self._future())

        asserts.bundle_empty(history)

    @sprinkler_test(
        "HI04", "Fetching history of non-existing resource returns exception"
    )
    async def history_for_non_existing_resource(self) -> None:
        await asserts.fails(
            self.client, lambda: self.client.history("Patient/3141592unlikely"), 404
        )

    @sprinkler_test(
        "HI05",
        "Get all history for a resource type with _since "
        "(set to before test initialization data was created)",
    )
    async def type_history_since_before_creation(self) -> None:
        history = await self.client.history("Patient", since=self._before_start())

        self._check_basic_requirements(history)
        asserts.all_resources(
            history, _has_identity, "Resources must have id/versionId information"
        )

    @sprinkler_test(
        "HI06", "Get all history for a resource type with _since (set to a future date)"
    )
    async def type_history_since_future_date(self) -> None:
        history = await self.client.history("Patient", since=self._future())

        asserts.bundle_empty(history)

    @sprinkler_test(
        "HI07",
        "Get the history for the whole system with _since "
        "(set to before test initialization data was created)",
    )
    async def system_history_since_before_creation(self) -> None:
        history = await self.client.history(since=self._before_start())

        self._check_basic_requirements(history)
        asserts.all_resources(
            history, _has_identity, "Resources must have id/versionId information"
        )

    @sprinkler_test(
        "HI08",
        "Get the history for the whole system with _since (set to a future date)",
    )
    async def system_history_since_future_date(self) -> None:
        history = await self.client.history(since=self._future())

        asserts.bundle_empty(history)

    @sprinkler_test(
        "HI09", "Paging forward and backward through a resource type history"
    )
    async def page_through_type_history(self) -> None:
        page_size = 1
        first = await self.client.history(
            "Patient", since=self._before_start(), page_size=page_size
        )

        forward = await self._count_pages(first, "next", page_size)
        last = await self.client.continue_page(first, "last")
        backward = await self._count_pages(last, "previous", page_size)

        if forward != backward:
            asserts.fail(
                f"Paging forward returns {forward} pages, "
                f"backwards returned {backward}"
            )

    async def _count_pages(
        self, page: Bundle | None, relation: str, page_size: int
    ) -> int:
        count = 0
        while page is not None:
            count += 1
            asserts.all_resources(
                page, _has_identity, "Resources must have id/versionId information"
            )
            asserts.maximum_entries(page, page_size)
            page = await self.client.continue_page(page, relation)
        return count

    @sprinkler_test("HI11", "Fetch first page of full history")
    async def full_history(self) -> None:
        history = await self.client.history()

        asserts.minimum_entries(history, len(self.versions) + 1)
        self._check_basic_requirements(history)
