"""Restriction cascade and public-listing visibility.

A restricted ENTERPRISE organisation drags down everything it manages. The
management graph is walked exactly two hops (enterprise -> its workspaces ->
organisations linked to those workspaces) and then unioned with organisations
the enterprise claimed through link requests. Nothing is cached; restriction
changes take effect on the next call.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from core.plan_constants import LinkIntentType, LinkRequestStatus, OrgStatus, PlanType
from models.organization import Organization
from models.workspace import EnterpriseOrgLinkRequest, WorkspaceOrganization

_EMPTY: FrozenSet[uuid.UUID] = frozenset()


@dataclass(frozen=True, slots=True)
class ManagementGraph:
    """Organisations reachable from a set of enterprises."""

    enterprise_ids: FrozenSet[uuid.UUID]
    workspace_ids: FrozenSet[uuid.UUID]
    workspace_organization_ids: FrozenSet[uuid.UUID]
    requested_organization_ids: FrozenSet[uuid.UUID]

    @property
    def managed_organization_ids(self) -> FrozenSet[uuid.UUID]:
        return self.enterprise_ids | self.workspace_organization_ids | self.requested_organization_ids


def _managing_request_clause() -> ColumnElement[bool]:
    return or_(
        EnterpriseOrgLinkRequest.status == LinkRequestStatus.APPROVED.value,
        and_(
            EnterpriseOrgLinkRequest.intent_type == LinkIntentType.CREATE_UNDER_ENTERPRISE.value,
            EnterpriseOrgLinkRequest.status == LinkRequestStatus.PENDING_APPROVAL.value,
        ),
    )


def build_management_graph(session: Session, enterprise_ids: Iterable[uuid.UUID]) -> ManagementGraph:
    roots = frozenset(value for value in enterprise_ids if value is not None)
    if not roots:
        return ManagementGraph(_EMPTY, _EMPTY, _EMPTY, _EMPTY)

    workspace_ids = frozenset(
        session.execute(
            select(WorkspaceOrganization.workspace_id).where(WorkspaceOrganization.organization_id.in_(list(roots)))
        ).scalars()
    )
    workspace_organization_ids: FrozenSet[uuid.UUID] = _EMPTY
    if workspace_ids:
        workspace_organization_ids = frozenset(
            session.execute(
                select(WorkspaceOrganization.organization_id).where(
                    WorkspaceOrganization.workspace_id.in_(list(workspace_ids))
                )
            ).scalars()
        )

    requested_organization_ids = frozenset(
        session.execute(
            select(EnterpriseOrgLinkRequest.organization_id).where(
                EnterpriseOrgLinkRequest.enterprise_id.in_(list(roots)),
                _managing_request_clause(),
            )
        ).scalars()
    )

    return ManagementGraph(
        enterprise_ids=roots,
        workspace_ids=workspace_ids,
        workspace_organization_ids=workspace_organization_ids,
        requested_organization_ids=requested_organization_ids,
    )


def restricted_enterprise_ids(session: Session) -> FrozenSet[uuid.UUID]:
    stmt = select(Organization.id).where(
        Organization.plan_type == PlanType.ENTERPRISE.value,
        Organization.is_restricted.is_(True),
    )
    return frozenset(session.execute(stmt).scalars())


def enterprise_managed_organization_ids(session: Session, enterprise_id: Optional[uuid.UUID]) -> FrozenSet[uuid.UUID]:
    """The enterprise itself plus every organisation it manages."""

    if enterprise_id is None:
        return _EMPTY
    return build_management_graph(session, [enterprise_id]).managed_organization_ids


def effectively_restricted_organization_ids(session: Session) -> FrozenSet[uuid.UUID]:
    enterprises = restricted_enterprise_ids(session)
    if not enterprises:
        return _EMPTY
    return build_management_graph(session, enterprises).managed_organization_ids


def is_effectively_restricted(session: Session, organization_id: Optional[uuid.UUID]) -> bool:
    if organization_id is None:
        return False
    direct = session.execute(
        select(Organization.is_restricted).where(Organization.id == organization_id)
    ).scalar_one_or_none()
    if direct:
        return True
    return organization_id in effectively_restricted_organization_ids(session)


def visible_organization_clause(session: Session) -> ColumnElement[bool]:
    """Boolean clause selecting organisations that may appear in public search and browse listings."""

    clauses = [
        Organization.status == OrgStatus.APPROVED.value,
        Organization.is_restricted.is_(False),
    ]
    restricted = effectively_restricted_organization_ids(session)
    if restricted:
        clauses.append(Organization.id.not_in(list(restricted)))
    return and_(*clauses)


def is_publicly_visible(session: Session, organization_id: uuid.UUID) -> bool:
    stmt = select(Organization.id).where(Organization.id == organization_id, visible_organization_clause(session))
    return session.execute(stmt).scalar_one_or_none() is not None


__all__ = [
    "ManagementGraph",
    "build_management_graph",
    "effectively_restricted_organization_ids",
    "enterprise_managed_organization_ids",
    "is_effectively_restricted",
    "is_publicly_visible",
    "restricted_enterprise_ids",
    "visible_organization_clause",
]
