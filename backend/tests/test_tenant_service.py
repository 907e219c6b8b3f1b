# Overview: Pytest coverage for businesses, invitations, sessions, permissions and workflow roles.

"""
Tenancy and Access Tests

SECURITY TESTS: a user only reaches a business through an active membership,
invitations are single use and bound to one email, and permission overrides
never narrow Owner/Admin.
"""

from datetime import timedelta

import pytest

from fintab.models import Membership, SecurityEvent
from fintab.services import permission_service, session_service, tenant_service, workflow_role_service
from fintab.services.permission_service import PermissionDeniedError
from fintab.services.session_service import SessionError
from fintab.services.tenant_service import InvitationError, TenantError
from fintab.services.workflow_role_service import WorkflowRoleError
from fintab.time_utils import utcnow

from conftest import make_user


class TestBusinessRegistration:

    def test_creator_becomes_owner(self, db_session, business, owner):
        membership = db_session.query(Membership).filter_by(business_id=business.id, user_id=owner.id).one()
        assert membership.role == "Owner"
        assert business.payment_methods == ["Cash", "Card", "Bank Receipt"]
        assert business.enforce_unique_signers is True

    def test_blank_name_is_rejected(self, owner):
        with pytest.raises(TenantError):
            tenant_service.register_business(owner=owner, name="   ")

    def test_settings_update(self, business):
        tenant_service.update_business_settings(business, {
            "default_tax_rate": "7.5",
            "payment_methods": ["Cash", "Cash", "Mobile Money"],
            "enforce_unique_signers": False,
        })
        assert str(business.default_tax_rate) in {"7.5", "7.500"}
        assert business.payment_methods == ["Cash", "Mobile Money"]
        assert business.enforce_unique_signers is False

    @pytest.mark.parametrize("patch", [
        {"unknown_key": 1},
        {"default_tax_rate": "-1"},
        {"payment_methods": []},
        {"weekly_check_count": 0},
        {"enforce_unique_signers": "yes"},
    ])
    def test_invalid_settings_are_rejected(self, business, patch):
        with pytest.raises(TenantError):
            tenant_service.update_business_settings(business, patch)

    def test_last_owner_cannot_be_demoted(self, business, owner):
        with pytest.raises(TenantError):
            tenant_service.update_member(business_id=business.id, user_id=owner.id, role="Manager")


class TestInvitations:

    def test_redeem_is_case_insensitive_and_single_use(self, db_session, business, owner):
        invitation = tenant_service.create_invitation(
            business_id=business.id, email="New.Hire@Corner.Shop", role="Cashier", invited_by_user_id=owner.id,
        )
        assert invitation.invited_email == "new.hire@corner.shop"

        hire = make_user("NEW.HIRE@corner.shop", "New Hire")
        membership = tenant_service.redeem_invitation(token=invitation.token, user=hire)

        assert membership.business_id == business.id
        assert membership.role == "Cashier"
        db_session.refresh(invitation)
        assert invitation.status == "accepted"
        assert invitation.accepted_by_user_id == hire.id

        with pytest.raises(InvitationError, match="accepted"):
            tenant_service.redeem_invitation(token=invitation.token, user=hire)

    def test_other_email_cannot_redeem(self, business, owner):
        invitation = tenant_service.create_invitation(
            business_id=business.id, email="invitee@corner.shop", role="Staff", invited_by_user_id=owner.id,
        )
        stranger = make_user("stranger@corner.shop", "Stranger")
        with pytest.raises(InvitationError, match="different email"):
            tenant_service.redeem_invitation(token=invitation.token, user=stranger)

    def test_expired_invitation(self, db_session, business, owner):
        invitation = tenant_service.create_invitation(
            business_id=business.id, email="late@corner.shop", role="Staff", invited_by_user_id=owner.id,
        )
        invitation.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        late = make_user("late@corner.shop", "Late")
        with pytest.raises(InvitationError, match="expired"):
            tenant_service.redeem_invitation(token=invitation.token, user=late)
        db_session.refresh(invitation)
        assert invitation.status == "expired"

    def test_owner_role_cannot_be_invited(self, business, owner):
        with pytest.raises(InvitationError):
            tenant_service.create_invitation(
                business_id=business.id, email="x@corner.shop", role="Owner", invited_by_user_id=owner.id,
            )

    def test_existing_member_cannot_be_invited(self, business, owner):
        with pytest.raises(InvitationError, match="already belongs"):
            tenant_service.create_invitation(
                business_id=business.id, email="OWNER@corner.shop", role="Staff", invited_by_user_id=owner.id,
            )

    def test_revoked_invitation_cannot_be_redeemed(self, business, owner):
        invitation = tenant_service.create_invitation(
            business_id=business.id, email="gone@corner.shop", role="Staff", invited_by_user_id=owner.id,
        )
        tenant_service.revoke_invitation(business_id=business.id, invitation_id=invitation.id)
        gone = make_user("gone@corner.shop", "Gone")
        with pytest.raises(InvitationError, match="revoked"):
            tenant_service.redeem_invitation(token=invitation.token, user=gone)


class TestSessions:

    def test_single_membership_is_selected_on_sign_in(self, business, staff, staff_membership):
        session, token = session_service.create_session(staff)
        context = session_service.validate_session(token)

        assert session.business_id == business.id
        assert context.membership.id == staff_membership.id

    def test_switch_to_foreign_business_is_refused(self, db_session, business, staff, staff_membership):
        other_owner = make_user("rival@other.shop", "Rival")
        other = tenant_service.register_business(owner=other_owner, name="Other Shop")
        session, _token = session_service.create_session(staff)

        with pytest.raises(SessionError):
            session_service.switch_business(session, other.id)

    def test_suspended_member_loses_business_context(self, business, staff, staff_membership):
        _session, token = session_service.create_session(staff)
        tenant_service.update_member(business_id=business.id, user_id=staff.id, status="Suspended")

        context = session_service.validate_session(token)
        assert context.business_id is None
        assert context.membership is None

    def test_revoked_token_is_invalid(self, staff, staff_membership):
        _session, token = session_service.create_session(staff)
        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None


class TestPermissions:

    def test_role_defaults(self, owner, owner_membership, staff, staff_membership):
        assert permission_service.has_access(owner, owner_membership, "VERIFY_BANK_SALE")
        assert permission_service.has_access(staff, staff_membership, "CASH_SALE")
        assert not permission_service.has_access(staff, staff_membership, "APPLY_DISCOUNT")

    def test_grant_and_deny_overrides(self, business, owner, staff, staff_membership):
        permission_service.set_permission_override(
            business_id=business.id, user_id=staff.id, permission_code="APPLY_DISCOUNT",
            override_type="GRANT", granted_by_user_id=owner.id,
        )
        permission_service.set_permission_override(
            business_id=business.id, user_id=staff.id, permission_code="CASH_SALE",
            override_type="DENY", granted_by_user_id=owner.id,
        )
        assert permission_service.has_access(staff, staff_membership, "APPLY_DISCOUNT")
        assert not permission_service.has_access(staff, staff_membership, "CASH_SALE")

        permission_service.clear_permission_override(business_id=business.id, user_id=staff.id, permission_code="CASH_SALE")
        assert permission_service.has_access(staff, staff_membership, "CASH_SALE")

    def test_owner_is_not_narrowed_by_deny(self, business, owner, owner_membership):
        permission_service.set_permission_override(
            business_id=business.id, user_id=owner.id, permission_code="CASH_SALE",
            override_type="DENY", granted_by_user_id=owner.id,
        )
        assert permission_service.has_access(owner, owner_membership, "CASH_SALE")

    def test_unknown_permission_code(self, business, owner, staff, staff_membership):
        with pytest.raises(ValueError):
            permission_service.set_permission_override(
                business_id=business.id, user_id=staff.id, permission_code="FLY",
                override_type="GRANT", granted_by_user_id=owner.id,
            )

    def test_denial_is_logged(self, db_session, business, staff, staff_membership):
        with pytest.raises(PermissionDeniedError):
            permission_service.require_permission(staff, staff_membership, "APPROVE_EXPENSE", resource="expenses.review")

        event = db_session.query(SecurityEvent).filter_by(user_id=staff.id).one()
        assert event.event_type == "PERMISSION_DENIED"
        assert event.business_id == business.id
        assert event.action == "APPROVE_EXPENSE"


class TestWorkflowRoles:

    def test_owner_holds_every_role(self, owner, owner_membership):
        for key in workflow_role_service.WORKFLOW_ROLES:
            assert workflow_role_service.holds_workflow_role(owner, owner_membership, key)

    def test_assignment_and_removal(self, business, owner, staff, staff_membership):
        assert not workflow_role_service.holds_workflow_role(staff, staff_membership, "cash_counter")
        workflow_role_service.assign_workflow_role(
            business=business, role_key="cash_counter", user_id=staff.id, assigned_by_user_id=owner.id,
        )
        assert workflow_role_service.holds_workflow_role(staff, staff_membership, "cash_counter")

        workflow_role_service.unassign_workflow_role(business_id=business.id, role_key="cash_counter", user_id=staff.id)
        assert not workflow_role_service.holds_workflow_role(staff, staff_membership, "cash_counter")

    def test_single_assignee_mode_replaces_holder(self, db_session, business, owner, staff, staff_membership, manager, manager_membership):
        business.allow_multiple_assignees = False
        db_session.commit()

        for user in (staff, manager):
            workflow_role_service.assign_workflow_role(
                business=business, role_key="stock_verifier", user_id=user.id, assigned_by_user_id=owner.id,
            )
        assert workflow_role_service.holder_user_ids(business.id, "stock_verifier") == [manager.id]

    def test_unknown_role_key(self, business, owner, staff, staff_membership):
        with pytest.raises(WorkflowRoleError):
            workflow_role_service.assign_workflow_role(
                business=business, role_key="janitor", user_id=staff.id, assigned_by_user_id=owner.id,
            )

    def test_assignee_must_be_member(self, business, owner):
        outsider = make_user("outsider@corner.shop", "Outsider")
        with pytest.raises(WorkflowRoleError):
            workflow_role_service.assign_workflow_role(
                business=business, role_key="cash_counter", user_id=outsider.id, assigned_by_user_id=owner.id,
            )
