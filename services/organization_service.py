"""
OrganizationService - organizations, join tokens and memberships.

An organization is the unit an enterprise subscription attaches to; every
member inherits enterprise features through AccessPolicy.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from domain.models import (
    Organization,
    OrganizationMember,
    OrganizationRole,
    OrganizationSummary,
    Plan,
    Subscription,
    SubscriptionStatus,
    UserContext,
    utc_now,
)
from ports.metadata_store import OrganizationStorePort, SubscriptionStorePort
from shared_utils.constants import LogScope, OrganizationConfig
from shared_utils.error_handler import (
    AuthorizationError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from shared_utils.logging_utils import ContextualLogger
from shared_utils.validation import InputValidator


logger = ContextualLogger(scope=LogScope.ORGANIZATIONS)


def generate_org_token() -> str:
    return "".join(
        secrets.choice(OrganizationConfig.TOKEN_ALPHABET) for _ in range(OrganizationConfig.TOKEN_LENGTH)
    )


class OrganizationService:

    def __init__(
        self,
        *,
        organizations: OrganizationStorePort,
        subscriptions: SubscriptionStorePort,
        clock: Callable[[], datetime] = utc_now,
        token_generator: Callable[[], str] = generate_org_token,
    ) -> None:
        self._orgs = organizations
        self._subs = subscriptions
        self._clock = clock
        self._new_token = token_generator

    def create_organization(self, user: UserContext, name: str, domain: Optional[str] = None) -> Organization:
        """Create an organization owned by ``user`` with a free subscription.

        Raises:
            ValidationError: Missing name or caller e-mail.
            ExternalServiceError: Owner membership could not be stored
                (organization rolled back).
        """
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Organization name required")
        if not user.email:
            raise ValidationError("User email not found")
        domain = (domain or "").strip().lower().lstrip("@") or None

        org = self._insert_organization(user, name.strip(), domain)

        owner = OrganizationMember(
            organization_id=org.id,
            user_id=user.user_id,
            email=user.email.lower(),
            role=OrganizationRole.OWNER,
            joined_at=self._clock(),
        )
        try:
            added = self._orgs.add_organization_member(owner)
        except Exception as exc:
            logger.error("organization_owner_write_failed", organization_id=org.id, error=str(exc))
            added = False
        if not added:
            self._orgs.delete_organization(org.id)
            raise ExternalServiceError("Metadata store", "Failed to add owner as member")

        try:
            self._subs.put_subscription(
                Subscription(
                    organization_id=org.id,
                    plan=Plan.FREE,
                    status=SubscriptionStatus.ACTIVE,
                    updated_at=self._clock(),
                )
            )
        except Exception as exc:
            # Upgrade via checkout creates the row later
            logger.warning("organization_subscription_write_failed", organization_id=org.id, error=str(exc))

        logger.info("organization_created", organization_id=org.id, user_id=user.user_id)
        return org

    def _insert_organization(self, user: UserContext, name: str, domain: Optional[str]) -> Organization:
        for _ in range(OrganizationConfig.TOKEN_ATTEMPTS):
            org = Organization(
                id=uuid.uuid4().hex,
                name=name,
                domain=domain,
                token=self._new_token().upper(),
                owner_id=user.user_id,
                created_at=self._clock(),
            )
            if self._orgs.create_organization(org):
                return org
            logger.debug("organization_token_collision")
        raise ExternalServiceError("Metadata store", "Failed to generate organization token")

    def join_organization(self, user: UserContext, token: str) -> Organization:
        """Join by token.

        Raises:
            NotFoundError: Unknown token.
            AuthorizationError: E-mail domain does not match the restriction.
            ValidationError: Already a member.
        """
        if not isinstance(token, str) or not token.strip():
            raise ValidationError("Organization token required")
        if not user.email:
            raise ValidationError("User email not found")

        org = self._orgs.get_organization_by_token(InputValidator.normalize_code(token))
        if org is None:
            raise NotFoundError("Invalid organization token")

        email = user.email.strip().lower()
        if org.domain and email.split("@")[-1] != org.domain:
            raise AuthorizationError(
                f"You must use an @{org.domain} email address to join this organization",
                context={"organization_id": org.id},
            )

        member = OrganizationMember(
            organization_id=org.id,
            user_id=user.user_id,
            email=email,
            role=OrganizationRole.MEMBER,
            joined_at=self._clock(),
        )
        if not self._orgs.add_organization_member(member):
            raise ValidationError("Already a member of this organization")

        logger.info("organization_joined", organization_id=org.id, user_id=user.user_id)
        return org

    def list_organizations(self, user: UserContext) -> List[OrganizationSummary]:
        summaries = []
        for membership in self._orgs.list_user_memberships(user.user_id):
            org = self._orgs.get_organization(membership.organization_id)
            if org is None:
                logger.warning("orphaned_membership_skipped", organization_id=membership.organization_id)
                continue
            summaries.append(
                OrganizationSummary(
                    id=org.id,
                    name=org.name,
                    token=org.token,
                    role=membership.role,
                    member_count=len(self._orgs.list_organization_members(org.id)),
                )
            )
        return summaries

    def get_owned_organization(self, user: UserContext, organization_id: str) -> Organization:
        org = self._orgs.get_organization(organization_id)
        if org is None:
            raise NotFoundError("Organization not found", context={"organization_id": organization_id})
        if org.owner_id != user.user_id:
            raise AuthorizationError("Only the organization owner can do this")
        return org

    def primary_membership(self, user_id: str) -> Optional[OrganizationMember]:
        memberships = self._orgs.list_user_memberships(user_id)
        return memberships[0] if memberships else None
