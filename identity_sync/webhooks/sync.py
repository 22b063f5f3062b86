"""
Identity synchronizer: applies verified webhook events to the local tables.

Every write is an upsert keyed on the provider's external id, so replaying an
event leaves the same end state. Rows remember the provider time of the last
event applied to them (``last_event_at``) and events older than that are
skipped, which keeps out-of-order deliveries from overwriting newer data.
Each public method runs in one transaction: it commits on success and rolls
back and raises PersistenceError on any database failure.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..organizations.crud import MembershipDAO, OrganizationDAO
from ..organizations.models import Organization, OrganizationMembership
from ..users.crud import UserDAO
from ..users.models import User
from .adapters import MembershipAttributes, OrganizationAttributes, UserAttributes
from .exceptions import PersistenceError
from .schemas import WebhookEvent

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_stale(stored_at: Optional[datetime], event_at: Optional[datetime]) -> bool:
    """True when the event happened strictly before the last applied one."""
    if stored_at is None or event_at is None:
        return False
    return _as_utc(event_at) < _as_utc(stored_at)


class IdentitySynchronizer:

    def __init__(self, db: AsyncSession, default_role: Optional[str] = None):
        self.db = db
        self.default_role = default_role or settings.default_user_role

    async def _fail(self, operation: str, error: Exception) -> None:
        await self.db.rollback()
        if isinstance(error, PersistenceError):
            raise error
        raise PersistenceError(operation, error)

    # --- Users ---

    async def upsert_user(self, event: WebhookEvent) -> Optional[User]:
        """Handle user.created / user.updated. Returns None when the event is stale."""
        attrs = UserAttributes.from_data(event.data)
        try:
            user = await UserDAO.get_user_by_external_id(self.db, attrs.external_id)
            if user is None:
                try:
                    user = await UserDAO.create_user(
                        self.db,
                        external_id=attrs.external_id,
                        email=attrs.email,
                        name=attrs.name,
                        avatar=attrs.avatar,
                        role=attrs.role or self.default_role,
                        provider=event.provider,
                        last_event_at=event.created_at,
                    )
                    await self.db.commit()
                    logger.info(f"Created user {user.id} for external_id {attrs.external_id}")
                    return user
                except IntegrityError:
                    # A concurrent delivery inserted the same external id first
                    await self.db.rollback()
                    logger.info(f"Duplicate key for external_id {attrs.external_id}; updating existing user")
                    user = await UserDAO.get_user_by_external_id(self.db, attrs.external_id)
                    if user is None:
                        raise PersistenceError(f"upsert_user: {attrs.external_id} vanished after duplicate key")

            if is_stale(user.last_event_at, event.created_at):
                logger.info(
                    f"Skipping stale {event.type} {event.id} for user {user.id}: "
                    f"{event.created_at} < {user.last_event_at}"
                )
                return None

            await UserDAO.update_user(
                self.db,
                user,
                email=attrs.email,
                name=attrs.name,
                avatar=attrs.avatar,
                role=attrs.role,
                last_event_at=event.created_at,
            )
            await self.db.commit()
            logger.info(f"Updated user {user.id} for external_id {attrs.external_id}")
            return user
        except (SQLAlchemyError, PersistenceError) as e:
            await self._fail("upsert_user", e)

    async def archive_user(self, event: WebhookEvent) -> Optional[User]:
        """Handle user.deleted with a soft delete. Unknown users are a no-op."""
        attrs = UserAttributes.from_data(event.data)
        try:
            user = await UserDAO.get_user_by_external_id(self.db, attrs.external_id)
            if user is None:
                logger.info(f"User {attrs.external_id} not found or already deleted")
                return None
            if is_stale(user.last_event_at, event.created_at):
                logger.info(f"Skipping stale {event.type} {event.id} for user {user.id}")
                return None
            await UserDAO.archive_user(self.db, user, last_event_at=event.created_at)
            await self.db.commit()
            logger.info(f"Archived user {user.id} for external_id {attrs.external_id}")
            return user
        except SQLAlchemyError as e:
            await self._fail("archive_user", e)

    # --- Organizations ---

    async def _upsert_organization(self, attrs: OrganizationAttributes, event: WebhookEvent) -> Optional[Organization]:
        """Flushes but does not commit. Returns None for a stale event."""
        organization = await OrganizationDAO.get_by_external_id(self.db, attrs.external_id)
        if organization is None:
            return await OrganizationDAO.create_organization(
                self.db,
                external_id=attrs.external_id,
                name=attrs.name,
                slug=attrs.slug,
                domain=attrs.domain,
                provider=event.provider,
                last_event_at=event.created_at,
            )
        if is_stale(organization.last_event_at, event.created_at):
            logger.info(f"Skipping stale {event.type} {event.id} for organization {organization.id}")
            return None
        return await OrganizationDAO.update_organization(
            self.db,
            organization,
            name=attrs.name,
            slug=attrs.slug,
            domain=attrs.domain,
            last_event_at=event.created_at,
        )

    async def create_organization(self, event: WebhookEvent) -> Optional[Organization]:
        """
        Handle organization.created.

        The organization and its creator's admin membership are written in one
        transaction, organization first. If the creator is not known locally
        the whole event fails and nothing is kept.
        """
        attrs = OrganizationAttributes.from_data(event.data)
        try:
            organization = await self._upsert_organization(attrs, event)
            if organization is None:
                return None

            if attrs.created_by:
                creator = await UserDAO.get_user_by_external_id(self.db, attrs.created_by)
                if creator is None:
                    raise PersistenceError(
                        f"create_organization: creator {attrs.created_by} of "
                        f"{attrs.external_id} not found; process user.created first"
                    )
                await MembershipDAO.upsert_membership(
                    self.db,
                    user_id=creator.id,
                    organization_id=organization.id,
                    role="admin",
                    status="active",
                )

            await self.db.commit()
            logger.info(f"Synced organization {organization.id} for external_id {attrs.external_id}")
            return organization
        except (SQLAlchemyError, PersistenceError) as e:
            await self._fail("create_organization", e)

    async def update_organization(self, event: WebhookEvent) -> Optional[Organization]:
        attrs = OrganizationAttributes.from_data(event.data)
        try:
            organization = await self._upsert_organization(attrs, event)
            await self.db.commit()
            return organization
        except SQLAlchemyError as e:
            await self._fail("update_organization", e)

    async def archive_organization(self, event: WebhookEvent) -> Optional[Organization]:
        attrs = OrganizationAttributes.from_data(event.data)
        try:
            organization = await OrganizationDAO.get_by_external_id(self.db, attrs.external_id)
            if organization is None:
                logger.info(f"Organization {attrs.external_id} not found or already deleted")
                return None
            if is_stale(organization.last_event_at, event.created_at):
                logger.info(f"Skipping stale {event.type} {event.id} for organization {organization.id}")
                return None
            await OrganizationDAO.archive_organization(self.db, organization, last_event_at=event.created_at)
            await self.db.commit()
            logger.warning(f"Organization {organization.id} archived; its memberships remain in the database")
            return organization
        except SQLAlchemyError as e:
            await self._fail("archive_organization", e)

    # --- Memberships ---

    async def _resolve_membership_parties(self, attrs: MembershipAttributes):
        user = await UserDAO.get_user_by_external_id(self.db, attrs.user_external_id)
        organization = await OrganizationDAO.get_by_external_id(self.db, attrs.organization_external_id)
        return user, organization

    async def upsert_membership(self, event: WebhookEvent) -> OrganizationMembership:
        """Handle organization_membership.created / .updated."""
        attrs = MembershipAttributes.from_data(event.data)
        try:
            user, organization = await self._resolve_membership_parties(attrs)
            if user is None:
                raise PersistenceError(f"upsert_membership: user {attrs.user_external_id} not found")
            if organization is None:
                raise PersistenceError(
                    f"upsert_membership: organization {attrs.organization_external_id} not found"
                )
            membership = await MembershipDAO.upsert_membership(
                self.db,
                user_id=user.id,
                organization_id=organization.id,
                role=attrs.role,
                status=attrs.status,
                external_id=attrs.external_id,
            )
            await self.db.commit()
            logger.info(f"Synced membership {membership.id}: user {user.id} -> organization {organization.id} ({membership.role})")
            return membership
        except (SQLAlchemyError, PersistenceError) as e:
            await self._fail("upsert_membership", e)

    async def deactivate_membership(self, event: WebhookEvent) -> Optional[OrganizationMembership]:
        """Handle organization_membership.deleted by flagging the row inactive."""
        attrs = MembershipAttributes.from_data(event.data)
        try:
            user, organization = await self._resolve_membership_parties(attrs)
            membership = None
            if user is not None and organization is not None:
                membership = await MembershipDAO.get_membership(self.db, user.id, organization.id)
            if membership is None:
                logger.info(
                    f"Membership {attrs.user_external_id}/{attrs.organization_external_id} "
                    "already removed or not found"
                )
                return None
            await MembershipDAO.deactivate_membership(self.db, membership)
            await self.db.commit()
            return membership
        except SQLAlchemyError as e:
            await self._fail("deactivate_membership", e)
