"""Tests for CampaignStore against SQLite."""

import asyncio
from datetime import date

import pytest
from pydantic import ValidationError

from smartlink.config import Settings
from smartlink.core.audit import AuditEntry
from smartlink.core.errors import EntityNotFound, GroupLocked, ShortCodeExhausted, StoreUnavailable
from smartlink.models import store as store_module
from smartlink.models.database import Database
from smartlink.models.store import CampaignStore
from smartlink.models.tables import GroupStatus

ACTOR = "ops@example.com"


async def _published_link(store: CampaignStore, code_count: int = 1):
    group = await store.create_group("Launch", 1, ACTOR)
    await store.set_group_status(group.id, GroupStatus.PUBLISHED)
    links = await store.create_links(group.subgroups[0].id, code_count, date(2099, 1, 1), ACTOR,
                                     target_url="https://example.com/talk")
    return group, links


class TestGroups:
    async def test_create_group_with_default_subgroups(self, sql_store):
        group = await sql_store.create_group("Launch", 3, ACTOR)

        assert group.status == "unpublished"
        assert group.published_at is None
        assert group.created_by == ACTOR
        assert [s.name for s in group.subgroups] == ["Subgroup 1", "Subgroup 2", "Subgroup 3"]

        tree = await sql_store.list_groups_with_tree()
        assert len(tree) == 1
        assert [s.name for s in tree[0].subgroups] == ["Subgroup 1", "Subgroup 2", "Subgroup 3"]
        assert all(s.links == [] for s in tree[0].subgroups)

    async def test_publish_stamps_once(self, sql_store):
        group = await sql_store.create_group("Launch", 0, ACTOR)

        published, changed = await sql_store.set_group_status(group.id, GroupStatus.PUBLISHED)
        assert changed is True
        assert published.status == "published"
        first_stamp = published.published_at
        assert first_stamp is not None

        again, changed = await sql_store.set_group_status(group.id, GroupStatus.PUBLISHED)
        assert changed is False
        assert again.status == "published"
        assert again.published_at == first_stamp

    async def test_unpublish_clears_published_at(self, sql_store):
        group = await sql_store.create_group("Launch", 0, ACTOR)
        await sql_store.set_group_status(group.id, GroupStatus.PUBLISHED)

        unpublished, changed = await sql_store.set_group_status(group.id, GroupStatus.UNPUBLISHED)

        assert changed is True
        assert unpublished.published_at is None
        assert (await sql_store.get_group(group.id)).published_at is None

    async def test_published_group_cannot_be_renamed_or_deleted(self, sql_store):
        group = await sql_store.create_group("Launch", 1, ACTOR)
        await sql_store.set_group_status(group.id, GroupStatus.PUBLISHED)

        with pytest.raises(GroupLocked):
            await sql_store.rename_group(group.id, "Renamed")
        with pytest.raises(GroupLocked):
            await sql_store.delete_group(group.id)

        assert (await sql_store.get_group(group.id)).name == "Launch"

    async def test_rename_unpublished_group(self, sql_store):
        group = await sql_store.create_group("Launch", 0, ACTOR)
        renamed = await sql_store.rename_group(group.id, "Relaunch")
        assert renamed.name == "Relaunch"

    async def test_delete_group_cascades(self, sql_store):
        group, links = await _published_link(sql_store, 3)
        await sql_store.create_subgroup(group.id, "Extra", ACTOR)
        await sql_store.set_group_status(group.id, GroupStatus.UNPUBLISHED)

        counts = await sql_store.delete_group(group.id)

        assert counts == {"subgroups": 2, "links": 3}
        assert await sql_store.list_groups_with_tree() == []
        for link in links:
            assert await sql_store.find_link_target(link.short_code) is None
            with pytest.raises(EntityNotFound):
                await sql_store.get_link(link.id)

    async def test_missing_group(self, sql_store):
        with pytest.raises(EntityNotFound):
            await sql_store.get_group("nope")
        with pytest.raises(EntityNotFound):
            await sql_store.set_group_status("nope", GroupStatus.PUBLISHED)


class TestSubgroups:
    async def test_subgroup_lifecycle(self, sql_store):
        group = await sql_store.create_group("Launch", 0, ACTOR)
        subgroup = await sql_store.create_subgroup(group.id, "Speakers", ACTOR)
        await sql_store.create_links(subgroup.id, 2, date(2099, 1, 1), ACTOR)

        renamed = await sql_store.rename_subgroup(subgroup.id, "Keynotes")
        assert renamed.name == "Keynotes"

        removed = await sql_store.delete_subgroup(subgroup.id)
        assert removed == 2
        assert (await sql_store.get_group(group.id)).subgroups == []

    async def test_subgroup_requires_existing_group(self, sql_store):
        with pytest.raises(EntityNotFound):
            await sql_store.create_subgroup("nope", "Speakers", ACTOR)


class TestLinks:
    async def test_bulk_create_assigns_unique_prefixed_codes(self, sql_store):
        group = await sql_store.create_group("Launch", 1, ACTOR)
        links = await sql_store.create_links(group.subgroups[0].id, 25, date(2026, 12, 31), ACTOR)

        codes = [link.short_code for link in links]
        assert len(set(codes)) == 25
        assert all(code.startswith("INS-") and len(code) == 10 for code in codes)
        assert all(link.clicks == 0 for link in links)
        assert all(link.target_url == "https://home.test" for link in links)
        assert links[0].label == "Link 1"
        assert links[-1].label == "Link 25"

    async def test_labels_continue_numbering(self, sql_store):
        group = await sql_store.create_group("Launch", 1, ACTOR)
        sub_id = group.subgroups[0].id
        await sql_store.create_links(sub_id, 2, date(2099, 1, 1), ACTOR)
        more = await sql_store.create_links(sub_id, 1, date(2099, 1, 1), ACTOR)
        assert more[0].label == "Link 3"

    async def test_collision_is_retried_with_new_code(self, sql_store, monkeypatch):
        group = await sql_store.create_group("Launch", 1, ACTOR)
        sub_id = group.subgroups[0].id

        codes = iter(["INS-AAAAAA", "INS-AAAAAA", "INS-AAAAAA", "INS-BBBBBB"])
        monkeypatch.setattr(store_module, "generate_short_code", lambda prefix, length: next(codes))

        first = await sql_store.create_links(sub_id, 1, date(2099, 1, 1), ACTOR)
        second = await sql_store.create_links(sub_id, 1, date(2099, 1, 1), ACTOR)

        assert first[0].short_code == "INS-AAAAAA"
        assert second[0].short_code == "INS-BBBBBB"

    async def test_collision_inside_one_batch_is_retried(self, sql_store, monkeypatch):
        group = await sql_store.create_group("Launch", 1, ACTOR)
        codes = iter(["INS-AAAAAA", "INS-AAAAAA", "INS-CCCCCC"])
        monkeypatch.setattr(store_module, "generate_short_code", lambda prefix, length: next(codes))

        links = await sql_store.create_links(group.subgroups[0].id, 2, date(2099, 1, 1), ACTOR)

        assert [link.short_code for link in links] == ["INS-AAAAAA", "INS-CCCCCC"]

    async def test_endless_collisions_give_up(self, sql_store, monkeypatch):
        group = await sql_store.create_group("Launch", 1, ACTOR)
        sub_id = group.subgroups[0].id
        monkeypatch.setattr(store_module, "generate_short_code", lambda prefix, length: "INS-SAME00")

        await sql_store.create_links(sub_id, 1, date(2099, 1, 1), ACTOR)
        with pytest.raises(ShortCodeExhausted):
            await sql_store.create_links(sub_id, 1, date(2099, 1, 1), ACTOR)

    async def test_conflict_at_commit_retries_batch_with_fresh_codes(self, sql_store, monkeypatch):
        group = await sql_store.create_group("Launch", 1, ACTOR)
        sub_id = group.subgroups[0].id
        existing = await sql_store.create_links(sub_id, 1, date(2099, 1, 1), ACTOR)
        taken = existing[0].short_code

        allocate = sql_store._allocate_codes
        calls = []

        async def stale_then_fresh(session, count):
            # first draw looks free but another writer already committed it
            calls.append(count)
            if len(calls) == 1:
                return [taken]
            return await allocate(session, count)

        monkeypatch.setattr(sql_store, "_allocate_codes", stale_then_fresh)

        links = await sql_store.create_links(sub_id, 1, date(2099, 1, 1), ACTOR)

        assert len(calls) == 2
        assert links[0].short_code != taken
        stored = (await sql_store.get_group(group.id)).subgroups[0].links
        assert sorted(link.short_code for link in stored) == sorted([taken, links[0].short_code])

    async def test_conflict_at_every_commit_gives_up(self, sql_store, monkeypatch):
        group = await sql_store.create_group("Launch", 1, ACTOR)
        sub_id = group.subgroups[0].id
        existing = await sql_store.create_links(sub_id, 1, date(2099, 1, 1), ACTOR)
        calls = []

        async def always_taken(session, count):
            calls.append(count)
            return [existing[0].short_code]

        monkeypatch.setattr(sql_store, "_allocate_codes", always_taken)

        with pytest.raises(ShortCodeExhausted):
            await sql_store.create_links(sub_id, 1, date(2099, 1, 1), ACTOR)
        assert len(calls) == 10
        assert len((await sql_store.get_group(group.id)).subgroups[0].links) == 1

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(short_code_max_attempts=0)

    async def test_update_and_delete_link(self, sql_store):
        _, links = await _published_link(sql_store)
        link = links[0]

        updated = await sql_store.update_link(link.id, label="Keynote", expires_at=date(2027, 1, 31))
        assert updated.label == "Keynote"
        assert updated.expires_at == date(2027, 1, 31)
        assert updated.target_url == "https://example.com/talk"

        await sql_store.delete_link(link.id)
        with pytest.raises(EntityNotFound):
            await sql_store.delete_link(link.id)

    async def test_create_links_requires_existing_subgroup(self, sql_store):
        with pytest.raises(EntityNotFound):
            await sql_store.create_links("nope", 1, date(2099, 1, 1), ACTOR)


class TestRedirectPath:
    async def test_find_link_target_joins_group(self, sql_store):
        group, links = await _published_link(sql_store)

        target = await sql_store.find_link_target(links[0].short_code)

        assert target.link_id == links[0].id
        assert target.group_id == group.id
        assert target.group_status == "published"
        assert target.target_url == "https://example.com/talk"
        assert target.expires_at == date(2099, 1, 1)

    async def test_find_unknown_code(self, sql_store):
        assert await sql_store.find_link_target("INS-NOPE00") is None

    async def test_concurrent_increments_are_not_lost(self, sql_store):
        _, links = await _published_link(sql_store)
        link_id = links[0].id

        await asyncio.gather(*(sql_store.increment_click(link_id) for _ in range(20)))

        assert (await sql_store.get_link(link_id)).clicks == 20


class TestLogs:
    async def test_audit_round_trip_newest_first(self, sql_store):
        await sql_store.append_audit(AuditEntry("group", "g1", "CREATE", ACTOR, "Launch"))
        await sql_store.append_audit(AuditEntry("link", "l1", "CLICK_REAL", "system"))

        records = await sql_store.list_audit()
        assert [r.action for r in records] == ["CLICK_REAL", "CREATE"]

        only_groups = await sql_store.list_audit(entity_type="group")
        assert [r.entity_id for r in only_groups] == ["g1"]


class TestUnavailable:
    async def test_unreachable_database_raises_store_unavailable(self, tmp_path):
        db = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}")
        store = CampaignStore(db)
        try:
            with pytest.raises(StoreUnavailable):
                await store.find_link_target("INS-AAAAAA")
        finally:
            await db.dispose()

    async def test_constraint_violation_outside_link_insert_is_store_unavailable(self, sql_store):
        # actor_email is NOT NULL
        with pytest.raises(StoreUnavailable):
            await sql_store.append_audit(AuditEntry("group", "g1", "CREATE", None))
