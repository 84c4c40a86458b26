"""Tag tests using meta.tag, the $meta operations and _tag search."""

import random
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, TypeAlias

from fhir_sprinkler.client import Resource, ResourceIdentity, params_resource
from fhir_sprinkler.framework import SprinklerModule, sprinkler_module, sprinkler_test
from fhir_sprinkler.framework import asserts
from fhir_sprinkler.testset.builders import create_and_locate, new_patient

READ_TAG_SYSTEM = "http://readtag.hl7.nl"

Coding: TypeAlias = Mapping[str, Any]


def tag(system: str, code: str) -> dict[str, str]:
    """Tag coding."""
    return {"system": system, "code": code}


def tags_of(resource: Mapping[str, Any] | None) -> Sequence[Coding]:
    """Tags of a resource, or of the Meta carried by a $meta response."""
    if not resource:
        return ()
    if resource.get("resourceType") == "Parameters":
        for parameter in resource.get("parameter", ()):
            if "valueMeta" in parameter:
                return parameter["valueMeta"].get("tag", ())
        return ()
    return (resource.get("meta") or {}).get("tag", ())


def find(tags: Iterable[Coding], system: str) -> Sequence[Coding]:
    """Tags with the given system."""
    return [t for t in tags if t.get("system") == system]


def meta_parameters(*tags: Coding) -> Resource:
    """Parameters resource for $meta-add and $meta-delete."""
    return params_resource(meta={"valueMeta": {"tag": list(tags)}})


@sprinkler_module("Tags")
class TagTest(SprinklerModule):
    """Tags on create and update, the $meta operations and search by tag."""

    def __init__(self) -> None:
        self.other_tag_system = f"http://othertag{random.randint(0, 2**31)}.hl7.nl"
        self.original: ResourceIdentity | None = None
        self.latest: ResourceIdentity | None = None

    def _check_tag(
        self, tags: Iterable[Coding], system: str, code: str, what: str
    ) -> None:
        matches = find(tags, system)
        if len(matches) != 1 or matches[0].get("code") != code:
            asserts.fail(f"{what} did not return specified tag")

    def _check_both_tags(self, resource: Mapping[str, Any] | None, what: str) -> None:
        systems = {t.get("system") for t in tags_of(resource)}
        if READ_TAG_SYSTEM not in systems or self.other_tag_system not in systems:
            asserts.fail(f"expected tags not found in {what}")

    def _require_latest(self) -> ResourceIdentity:
        if self.latest is None:
            asserts.skip("no tagged resource was created")
        return self.latest

    @sprinkler_test("TA01", "Create and retrieve tags with create/read")
    async def tags_on_create_and_read(self) -> None:
        patient = {
            **new_patient("Tagged", "Tessa"),
            "meta": {"tag": [tag(READ_TAG_SYSTEM, "readTagTest")]},
        }
        created, identity = await create_and_locate(self.client, patient)
        if not tags_of(created):
            asserts.fail("create did not return any tags")
        self._check_tag(tags_of(created), READ_TAG_SYSTEM, "readTagTest", "create")

        read = await self.client.read(str(identity.without_version()))
        if not tags_of(read):
            asserts.fail("read did not return any tags")
        self._check_tag(tags_of(read), READ_TAG_SYSTEM, "readTagTest", "read")

        if identity.has_version:
            vread = await self.client.read(str(identity))
            self._check_tag(tags_of(vread), READ_TAG_SYSTEM, "readTagTest", "vread")

        self.original = self.latest = identity

    @sprinkler_test("TA02", "Read tags from non existing resources")
    async def tags_on_non_existing(self) -> None:
        await asserts.fails(
            self.client, lambda: self.client.read("Patient/nonexisting"), 404
        )
        await asserts.fails(
            self.client,
            lambda: self.client.operation("Patient/nonexisting", "meta"),
            404,
        )

    @sprinkler_test("TA03", "Update tags with update")
    async def update_tags_on_update(self) -> None:
        if self.original is None:
            asserts.skip("no tagged resource was created")
        location = str(self.original.without_version())

        current = await asserts.succeeds(
            self.client, lambda: self.client.read(location)
        )
        new_tags = [
            tag(READ_TAG_SYSTEM, "readTagTest2"),
            tag(self.other_tag_system, "dummy"),
        ]
        updated = {**(current or {}), "meta": {"tag": new_tags}}
        await asserts.succeeds(self.client, lambda: self.client.update(updated))

        read = await self.client.read(location)
        read_tags = tags_of(read)
        if not read_tags:
            asserts.fail("fetch after update did not return any tags")
        if len(read_tags) != 2:
            asserts.fail(
                f"Wrong number of tags after update: {len(read_tags)}, expected 2"
            )
        self._check_tag(read_tags, READ_TAG_SYSTEM, "readTagTest2", "update")
        self._check_tag(read_tags, self.other_tag_system, "dummy", "update")
        self.latest = ResourceIdentity.of(read) or self.original

    @sprinkler_test("TA04", "Retrieve server-wide tags")
    async def server_wide_tags(self) -> None:
        self._require_latest()
        meta = await asserts.succeeds(
            self.client, lambda: self.client.operation(None, "meta")
        )
        self._check_both_tags(meta, "server-wide tag list")

    @sprinkler_test("TA05", "Retrieve resource-wide tags")
    async def resource_wide_tags(self) -> None:
        self._require_latest()
        meta = await asserts.succeeds(
            self.client, lambda: self.client.operation("Patient", "meta")
        )
        self._check_both_tags(meta, "resource-wide tag list")

        other = await asserts.succeeds(
            self.client, lambda: self.client.operation("Organization", "meta")
        )
        if find(tags_of(other), self.other_tag_system):
            asserts.fail("tags showed up while listing tags for another resource type")

    @sprinkler_test("TA06", "Retrieve resource instance tags")
    async def instance_tags(self) -> None:
        latest = self._require_latest()
        meta = await asserts.succeeds(
            self.client,
            lambda: self.client.operation(str(latest.without_version()), "meta"),
        )
        self._check_both_tags(meta, "resource instance tag list")

    @sprinkler_test("TA07", "Retrieve resource history tags")
    async def instance_history_tags(self) -> None:
        latest = self._require_latest()
        asserts.skip_when(not latest.has_version, "server does not report versions")
        meta = await asserts.succeeds(
            self.client, lambda: self.client.operation(str(latest), "meta")
        )
        self._check_both_tags(meta, "resource version tag list")

    @sprinkler_test("TA08", "Search resource using tags")
    async def search_using_tag(self) -> None:
        self._require_latest()
        result = await asserts.succeeds(
            self.client,
            lambda: self.client.search(
                "Patient", {"_tag": f"{self.other_tag_system}|dummy"}
            ),
        )
        tagged = [
            r for r in result.resources() if find(tags_of(r), self.other_tag_system)
        ]
        if len(tagged) != 1:
            asserts.fail("could not retrieve patient by its tag")

    @sprinkler_test("TA09", "Add tags using $meta-add")
    async def add_tags_using_meta_add(self) -> None:
        latest = self._require_latest()
        location = str(latest.without_version())
        added = tag(READ_TAG_SYSTEM, "newVersion")

        await asserts.succeeds(
            self.client,
            lambda: self.client.operation(
                location, "meta-add", meta_parameters(added)
            ),
        )

        read = await self.client.read(location)
        if not find(tags_of(read), self.other_tag_system):
            asserts.fail("update removed an existing but unchanged tag")
        if added not in [dict(t) for t in tags_of(read)]:
            asserts.fail("$meta-add did not add the tag")
        identity = ResourceIdentity.of(read)
        if identity is not None and identity.version_id != latest.version_id:
            asserts.fail("updating the tags created a new version")

    @sprinkler_test("TA10", "Delete tags using $meta-delete")
    async def delete_tags_using_meta_delete(self) -> None:
        latest = self._require_latest()
        location = str(latest.without_version())
        removed = find(await self._current_tags(location), READ_TAG_SYSTEM)

        await asserts.succeeds(
            self.client,
            lambda: self.client.operation(
                location, "meta-delete", meta_parameters(*removed)
            ),
        )

        read = await self.client.read(location)
        if find(tags_of(read), READ_TAG_SYSTEM):
            asserts.fail("$meta-delete did not remove the tag")
        if not find(tags_of(read), self.other_tag_system):
            asserts.fail("$meta-delete removed a tag that should be untouched")

    async def _current_tags(self, location: str) -> Sequence[Coding]:
        return tags_of(await self.client.read(location))
