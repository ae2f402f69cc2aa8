"""
Campaign store: all persistence for the Group → Subgroup → Link tree.

Rules enforced here:
  - Every multi-row mutation is one transaction (group + default subgroups,
    cascading deletes, bulk link creation)
  - short_code uniqueness: each candidate is checked against the table and
    the current batch; a unique-index violation at commit retries the whole
    batch with fresh codes, bounded by short_code_max_attempts
  - clicks are bumped with a single UPDATE ... SET clicks = clicks + 1
  - any SQLAlchemy / connection failure surfaces as StoreUnavailable
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from smartlink.config import Settings, get_settings
from smartlink.core.audit import AuditEntry, ErrorReport
from smartlink.core.clock import utcnow
from smartlink.core.errors import EntityNotFound, ShortCodeExhausted, StoreUnavailable
from smartlink.core.publish_policy import GroupAction, check_group_mutation
from smartlink.core.short_code import generate_short_code
from smartlink.models.database import Database
from smartlink.models.tables import AuditLog, ErrorLog, Group, GroupStatus, Link, Subgroup

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class LinkTarget:
    """Everything the resolver needs from the Link → Subgroup → Group join."""
    link_id: str
    short_code: str
    target_url: str
    expires_at: date
    group_id: str
    group_status: str


def _tree_options():
    return selectinload(Group.subgroups).selectinload(Subgroup.links)


class CampaignStore:
    def __init__(self, database: Database, settings: Settings | None = None):
        self._db = database
        self._settings = settings or get_settings()

    @asynccontextmanager
    async def _session(self, passthrough: tuple[type[Exception], ...] = ()):
        """Session scope; storage failures become StoreUnavailable unless listed in `passthrough`."""
        try:
            async with self._db.session() as session:
                yield session
        except passthrough:
            raise
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            logger.error("store_unavailable", error=str(exc))
            raise StoreUnavailable(str(exc)) from exc

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def _load_group(self, session: AsyncSession, group_id: str, *, tree: bool = False,
                          for_update: bool = False) -> Group:
        stmt = select(Group).where(Group.id == group_id)
        if tree:
            stmt = stmt.options(_tree_options())
        if for_update:
            stmt = stmt.with_for_update()
        group = (await session.execute(stmt)).scalar_one_or_none()
        if group is None:
            raise EntityNotFound("group", group_id)
        return group

    async def create_group(self, name: str, subgroup_count: int, actor: str) -> Group:
        """Create an unpublished group and its default subgroups atomically."""
        now = utcnow()
        async with self._session() as session:
            async with session.begin():
                group = Group(
                    name=name,
                    status=GroupStatus.UNPUBLISHED.value,
                    created_at=now,
                    created_by=actor,
                    subgroups=[
                        Subgroup(name=f"Subgroup {n}", created_by=actor,
                                 created_at=now + timedelta(microseconds=n), links=[])
                        for n in range(1, subgroup_count + 1)
                    ],
                )
                session.add(group)

        logger.info("group_created", group_id=group.id, subgroups=subgroup_count, actor=actor)
        return group

    async def get_group(self, group_id: str) -> Group:
        async with self._session() as session:
            return await self._load_group(session, group_id, tree=True)

    async def list_groups_with_tree(self) -> list[Group]:
        """Every group with its subgroups, each populated with its links."""
        async with self._session() as session:
            stmt = select(Group).options(_tree_options()).order_by(Group.created_at.desc())
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def set_group_status(self, group_id: str, status: GroupStatus) -> tuple[Group, bool]:
        """Move a group to `status`. Returns (group, changed).

        published_at is stamped only on an actual transition to published and
        cleared on a transition away from it; re-setting the same status
        leaves it untouched.
        """
        async with self._session() as session:
            async with session.begin():
                group = await self._load_group(session, group_id, for_update=True)
                check_group_mutation(group, GroupAction.SET_STATUS, self._settings.lock_published_groups)

                if group.status == status.value:
                    return group, False

                previous = group.status
                group.status = status.value
                group.published_at = utcnow() if status is GroupStatus.PUBLISHED else None

        logger.info("group_status_changed", group_id=group_id, previous=previous, status=status.value)
        return group, True

    async def rename_group(self, group_id: str, name: str) -> Group:
        async with self._session() as session:
            async with session.begin():
                group = await self._load_group(session, group_id, for_update=True)
                check_group_mutation(group, GroupAction.RENAME, self._settings.lock_published_groups)
                group.name = name
        return group

    async def delete_group(self, group_id: str) -> dict[str, int]:
        """Delete a group with all its subgroups and links in one transaction."""
        async with self._session() as session:
            async with session.begin():
                group = await self._load_group(session, group_id, for_update=True)
                check_group_mutation(group, GroupAction.DELETE, self._settings.lock_published_groups)

                subgroup_ids = select(Subgroup.id).where(Subgroup.group_id == group_id)
                links = await session.execute(
                    delete(Link).where(Link.subgroup_id.in_(subgroup_ids))
                )
                subgroups = await session.execute(
                    delete(Subgroup).where(Subgroup.group_id == group_id)
                )
                await session.execute(delete(Group).where(Group.id == group_id))

        counts = {"subgroups": subgroups.rowcount, "links": links.rowcount}
        logger.info("group_deleted", group_id=group_id, **counts)
        return counts

    # ------------------------------------------------------------------
    # Subgroups
    # ------------------------------------------------------------------

    async def _load_subgroup(self, session: AsyncSession, subgroup_id: str) -> Subgroup:
        subgroup = await session.get(Subgroup, subgroup_id)
        if subgroup is None:
            raise EntityNotFound("subgroup", subgroup_id)
        return subgroup

    async def create_subgroup(self, group_id: str, name: str, actor: str) -> Subgroup:
        async with self._session() as session:
            async with session.begin():
                await self._load_group(session, group_id)
                subgroup = Subgroup(group_id=group_id, name=name, created_by=actor,
                                    created_at=utcnow(), links=[])
                session.add(subgroup)
        return subgroup

    async def rename_subgroup(self, subgroup_id: str, name: str) -> Subgroup:
        async with self._session() as session:
            async with session.begin():
                subgroup = await self._load_subgroup(session, subgroup_id)
                subgroup.name = name
        return subgroup

    async def delete_subgroup(self, subgroup_id: str) -> int:
        """Delete a subgroup and its links. Returns the number of links removed."""
        async with self._session() as session:
            async with session.begin():
                await self._load_subgroup(session, subgroup_id)
                links = await session.execute(delete(Link).where(Link.subgroup_id == subgroup_id))
                await session.execute(delete(Subgroup).where(Subgroup.id == subgroup_id))
        return links.rowcount

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    async def _allocate_codes(self, session: AsyncSession, count: int) -> list[str]:
        """Draw `count` codes that are free right now, retrying collisions."""
        settings = self._settings
        codes: list[str] = []
        collisions = 0
        while len(codes) < count:
            code = generate_short_code(settings.short_code_prefix, settings.short_code_length)
            taken = code in codes or (
                await session.scalar(select(Link.id).where(Link.short_code == code))
            ) is not None
            if not taken:
                codes.append(code)
                continue

            collisions += 1
            logger.warning("short_code_collision", code=code, collisions=collisions)
            if collisions >= settings.short_code_max_attempts:
                raise ShortCodeExhausted(f"gave up after {collisions} collisions")
        return codes

    async def create_links(
        self,
        subgroup_id: str,
        count: int,
        expires_at: date,
        actor: str,
        target_url: str | None = None,
        label: str | None = None,
    ) -> list[Link]:
        """Create `count` links with fresh, globally unique short codes."""
        target_url = target_url or self._settings.home_url

        for attempt in range(1, self._settings.short_code_max_attempts + 1):
            try:
                links = await self._insert_links(subgroup_id, count, expires_at, actor, target_url, label)
            except IntegrityError as exc:
                # A concurrent writer claimed one of our codes between check and commit.
                logger.warning("short_code_conflict_retry", subgroup_id=subgroup_id,
                               attempt=attempt, error=str(exc.orig))
                continue
            logger.info("links_created", subgroup_id=subgroup_id, count=len(links), actor=actor)
            return links

        raise ShortCodeExhausted(
            f"unique short codes not committed after {self._settings.short_code_max_attempts} attempts"
        )

    async def _insert_links(self, subgroup_id, count, expires_at, actor, target_url, label) -> list[Link]:
        async with self._session(passthrough=(IntegrityError,)) as session:
            async with session.begin():
                subgroup = await self._load_subgroup(session, subgroup_id)
                offset = await session.scalar(
                    select(func.count(Link.id)).where(Link.subgroup_id == subgroup.id)
                ) or 0

                codes = await self._allocate_codes(session, count)
                now = utcnow()
                links = [
                    Link(
                        subgroup_id=subgroup.id,
                        label=label or f"Link {offset + n}",
                        target_url=target_url,
                        short_code=code,
                        clicks=0,
                        created_at=now + timedelta(microseconds=n),  # keeps batch order stable
                        expires_at=expires_at,
                        created_by=actor,
                    )
                    for n, code in enumerate(codes, start=1)
                ]
                session.add_all(links)
        return links

    async def update_link(
        self,
        link_id: str,
        label: str | None = None,
        target_url: str | None = None,
        expires_at: date | None = None,
    ) -> Link:
        async with self._session() as session:
            async with session.begin():
                link = await session.get(Link, link_id)
                if link is None:
                    raise EntityNotFound("link", link_id)
                if label is not None:
                    link.label = label
                if target_url is not None:
                    link.target_url = target_url
                if expires_at is not None:
                    link.expires_at = expires_at
        return link

    async def delete_link(self, link_id: str) -> None:
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(delete(Link).where(Link.id == link_id))
                if result.rowcount == 0:
                    raise EntityNotFound("link", link_id)

    async def get_link(self, link_id: str) -> Link:
        async with self._session() as session:
            link = await session.get(Link, link_id)
            if link is None:
                raise EntityNotFound("link", link_id)
            return link

    # ------------------------------------------------------------------
    # Redirect path
    # ------------------------------------------------------------------

    async def find_link_target(self, short_code: str) -> LinkTarget | None:
        """Join Link → Subgroup → Group by short code."""
        async with self._session() as session:
            stmt = (
                select(
                    Link.id,
                    Link.short_code,
                    Link.target_url,
                    Link.expires_at,
                    Group.id.label("group_id"),
                    Group.status.label("group_status"),
                )
                .join(Subgroup, Subgroup.id == Link.subgroup_id)
                .join(Group, Group.id == Subgroup.group_id)
                .where(Link.short_code == short_code)
            )
            row = (await session.execute(stmt)).first()

        if row is None:
            return None
        return LinkTarget(
            link_id=row.id,
            short_code=row.short_code,
            target_url=row.target_url,
            expires_at=row.expires_at,
            group_id=row.group_id,
            group_status=row.group_status,
        )

    async def increment_click(self, link_id: str) -> None:
        """Atomic +1 in a single statement; safe under concurrent redirects."""
        async with self._session() as session:
            async with session.begin():
                await session.execute(
                    update(Link).where(Link.id == link_id).values(clicks=Link.clicks + 1)
                )

    # ------------------------------------------------------------------
    # Append-only logs
    # ------------------------------------------------------------------

    async def append_audit(self, entry: AuditEntry) -> None:
        async with self._session() as session:
            async with session.begin():
                session.add(AuditLog(
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    action=entry.action,
                    actor_email=entry.actor_email,
                    details=entry.details,
                    created_at=entry.timestamp,
                ))

    async def list_audit(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        async with self._session() as session:
            stmt = select(AuditLog).order_by(AuditLog.id.desc()).limit(limit)
            if entity_type:
                stmt = stmt.where(AuditLog.entity_type == entity_type)
            if entity_id:
                stmt = stmt.where(AuditLog.entity_id == entity_id)
            if action:
                stmt = stmt.where(AuditLog.action == action)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def append_error(self, report: ErrorReport) -> None:
        async with self._session() as session:
            async with session.begin():
                session.add(ErrorLog(
                    endpoint=report.endpoint,
                    method=report.method,
                    message=report.message,
                    stacktrace=report.stacktrace,
                    request_context=report.request_context,
                    created_at=report.timestamp,
                ))
