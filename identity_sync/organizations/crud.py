import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .models import Organization, OrganizationMembership

logger = logging.getLogger(__name__)


class OrganizationDAO:

    @staticmethod
    async def get_by_external_id(db: AsyncSession, external_id: str) -> Optional[Organization]:
        result = await db.execute(select(Organization).where(Organization.external_id == external_id))
        return result.scalars().first()

    @staticmethod
    async def create_organization(
        db: AsyncSession,
        external_id: str,
        name: Optional[str],
        slug: Optional[str] = None,
        domain: Optional[str] = None,
        provider: Optional[str] = None,
        last_event_at: Optional[datetime] = None,
    ) -> Organization:
        logger.info(f"Creating organization for external_id: {external_id}")
        organization = Organization(
            external_id=external_id,
            provider=provider,
            name=name or external_id,
            slug=slug,
            domain=domain,
            archived=False,
            last_event_at=last_event_at,
        )
        db.add(organization)
        await db.flush()
        return organization

    @staticmethod
    async def update_organization(
        db: AsyncSession,
        organization: Organization,
        name: Optional[str] = None,
        slug: Optional[str] = None,
        domain: Optional[str] = None,
        last_event_at: Optional[datetime] = None,
    ) -> Organization:
        if name is not None:
            organization.name = name
        if slug is not None:
            organization.slug = slug
        if domain is not None:
            organization.domain = domain
        if organization.archived:
            organization.archived = False
            organization.archived_at = None
        if last_event_at is not None:
            organization.last_event_at = last_event_at
        await db.flush()
        return organization

    @staticmethod
    async def archive_organization(
        db: AsyncSession, organization: Organization, last_event_at: Optional[datetime] = None
    ) -> Organization:
        # Memberships are left alone; they still resolve to the archived row.
        if not organization.archived:
            organization.archived = True
            organization.archived_at = datetime.now(timezone.utc)
        if last_event_at is not None:
            organization.last_event_at = last_event_at
        await db.flush()
        return organization


class MembershipDAO:

    @staticmethod
    async def get_membership(db: AsyncSession, user_id: int, organization_id: int) -> Optional[OrganizationMembership]:
        result = await db.execute(
            select(OrganizationMembership).where(
                OrganizationMembership.user_id == user_id,
                OrganizationMembership.organization_id == organization_id,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def upsert_membership(
        db: AsyncSession,
        user_id: int,
        organization_id: int,
        role: str,
        status: str = "active",
        external_id: Optional[str] = None,
    ) -> OrganizationMembership:
        membership = await MembershipDAO.get_membership(db, user_id, organization_id)
        if membership is None:
            membership = OrganizationMembership(
                user_id=user_id,
                organization_id=organization_id,
                role=role,
                status=status,
                external_id=external_id,
            )
            db.add(membership)
        else:
            membership.role = role
            membership.status = status
            if external_id is not None:
                membership.external_id = external_id
        await db.flush()
        return membership

    @staticmethod
    async def deactivate_membership(db: AsyncSession, membership: OrganizationMembership) -> OrganizationMembership:
        membership.status = "inactive"
        await db.flush()
        return membership
