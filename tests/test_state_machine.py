"""
Tests that prove the lifecycle invariants.

Each test verifies a specific transition rule or guard of the approval
state machine.
"""
from datetime import date

import pytest
from pydantic import ValidationError

from cardflow.errors import GuardCode, GuardViolation
from cardflow.models.enums import (
    ApprovalEventAction,
    AuditAction,
    ContentStatus,
    LifecycleAction,
    MediaType,
)
from cardflow.services.audit_ledger import entries_of


def _actions(entries):
    return [e.action for e in entries]


class TestCreateCard:

    def test_new_card_is_draft_with_created_entry(self, draft_card, author):
        assert draft_card.status == ContentStatus.DRAFT
        assert _actions(draft_card.audit_log) == [AuditAction.CREATED]
        assert draft_card.audit_log[0].performed_by == author.name
        assert draft_card.audit_log[0].details == "Content card created manually"

    def test_hashtags_are_normalised(self, draft_card):
        assert draft_card.hashtags == ("launch", "teaser")

    @pytest.mark.parametrize("time", ["99:99", "24:00", "12:60", "9:30"])
    def test_schedule_time_must_be_a_clock_time(self, machine, author, time):
        with pytest.raises(ValidationError):
            machine.create_card(
                project_id="proj_1",
                platform="instagram",
                title="Bad time",
                actor=author,
                scheduled_date=date(2025, 1, 10),
                scheduled_time=time,
            )

    @pytest.mark.parametrize("time", ["00:00", "09:30", "23:59"])
    def test_valid_schedule_times(self, machine, author, time):
        card = machine.create_card(
            project_id="proj_1",
            platform="instagram",
            title="Good time",
            actor=author,
            scheduled_date=date(2025, 1, 10),
            scheduled_time=time,
        )

        assert card.scheduled_time == time


class TestSubmitForApproval:

    def test_draft_moves_to_pending(self, machine, draft_card, author):
        result = machine.submit_for_approval(draft_card, author)

        assert result.ok
        assert result.card.status == ContentStatus.PENDING_APPROVAL
        assert _actions(result.entries) == [AuditAction.SUBMITTED_FOR_APPROVAL]

    def test_entry_lists_approver_display_names(self, machine, draft_card, author):
        result = machine.submit_for_approval(draft_card, author, approvers=["tm1", "tm3"])

        assert result.entries[0].details == "Submitted for approval to: Aisha Rahman, Chloe Tan"
        assert result.card.approvers == ("tm1", "tm3")

    def test_unknown_member_falls_back_to_id(self, machine, draft_card, author):
        result = machine.submit_for_approval(draft_card, author, approvers=["tm404"])

        assert result.entries[0].details == "Submitted for approval to: tm404"

    def test_no_approvers_is_refused(self, machine, draft_card, author):
        """
        INVARIANT: Submission requires at least one approver.
        """
        result = machine.submit_for_approval(draft_card, author, approvers=[])

        assert not result.ok
        assert result.refusal.guard == GuardCode.NO_APPROVERS
        assert result.card is draft_card
        assert result.entries == ()

    def test_cannot_submit_pending_card(self, machine, pending_card, author):
        result = machine.submit_for_approval(pending_card, author)

        assert result.refusal.guard == GuardCode.INVALID_STATUS
        assert len(result.card.audit_log) == len(pending_card.audit_log)

    def test_resubmission_clears_rejection(self, machine, pending_card, approver, author):
        rejected = machine.reject(pending_card, approver, "Wrong logo").unwrap()

        resubmitted = machine.submit_for_approval(rejected, author).unwrap()

        assert resubmitted.status == ContentStatus.PENDING_APPROVAL
        assert resubmitted.rejected_by is None
        assert resubmitted.rejected_by_name is None
        assert resubmitted.rejected_at is None
        assert resubmitted.rejection_reason is None

    def test_submission_emits_approval_event(self, machine, draft_card, author):
        result = machine.submit_for_approval(draft_card, author)

        assert result.approval_event.action == ApprovalEventAction.SUBMITTED_FOR_APPROVAL
        assert result.approval_event.card_id == draft_card.id
        assert result.approval_event.platform == "Instagram"
        assert result.notification is None


class TestApprove:

    def test_approve_without_schedule(self, machine, pending_card, approver, clock):
        result = machine.approve(pending_card, approver)
        card = result.card

        assert card.status == ContentStatus.APPROVED
        assert card.approved_by == "tm1"
        assert card.approved_by_name == "Aisha Rahman"
        assert card.approved_at == clock()
        assert _actions(result.entries) == [AuditAction.APPROVED, AuditAction.EMAIL_NOTIFICATION]
        assert result.entries[0].details == "Content approved"

    def test_approve_with_schedule_routes_to_scheduled(self, machine, author, approver):
        card = machine.create_card(
            project_id="proj_1",
            platform="linkedin",
            title="Hiring post",
            actor=author,
            approvers=["tm1"],
            scheduled_date=date(2025, 1, 10),
            scheduled_time="09:30",
        )
        card = machine.submit_for_approval(card, author).unwrap()

        result = machine.approve(card, approver)

        assert result.card.status == ContentStatus.SCHEDULED
        assert _actions(result.entries) == [
            AuditAction.APPROVED,
            AuditAction.SCHEDULED,
            AuditAction.EMAIL_NOTIFICATION,
        ]
        scheduled = result.entries[1]
        assert scheduled.performed_by == "System"
        assert scheduled.details == "Auto-scheduled for Jan 10, 2025 at 09:30 on LinkedIn"

    def test_entries_of_one_transition_share_a_timestamp(self, machine, pending_card, approver, clock):
        result = machine.approve(pending_card, approver)

        assert {e.timestamp for e in result.entries} == {clock()}

    def test_non_approver_is_refused(self, machine, pending_card, outsider):
        """
        INVARIANT: Only a designated approver may approve.
        """
        result = machine.approve(pending_card, outsider)

        assert result.refusal.guard == GuardCode.NOT_AN_APPROVER
        assert result.card.status == ContentStatus.PENDING_APPROVAL
        assert result.card.audit_log == pending_card.audit_log

    def test_same_name_different_member_is_refused(self, machine, pending_card, namesake):
        """
        INVARIANT: Approver identity is the member id, never the display name.
        """
        result = machine.approve(pending_card, namesake)

        assert result.refusal.guard == GuardCode.NOT_AN_APPROVER

    def test_second_approve_is_a_no_op(self, machine, pending_card, approver):
        """
        INVARIANT: A second approve after the card left pending_approval is ignored.
        """
        first = machine.approve(pending_card, approver).unwrap()
        second = machine.approve(first, approver)

        assert second.refusal.guard == GuardCode.INVALID_STATUS
        assert second.card is first
        assert len(entries_of(second.card, AuditAction.APPROVED)) == 1

    def test_notification_goes_to_creator(self, machine, pending_card, approver):
        result = machine.approve(pending_card, approver)
        message = result.notification

        assert message.to == "sarah.chen@example.com"
        assert message.to_name == "Sarah Chen"
        assert message.subject == '✅ Your content has been approved — "Launch teaser"'
        assert result.entries[-1].details == (
            "Email notification sent to Sarah Chen (sarah.chen@example.com): "
            "Content approved by Aisha Rahman"
        )

    def test_custom_details_from_call_site(self, machine, pending_card, approver):
        result = machine.approve(pending_card, approver, details="Content approved via inline action strip")

        assert result.entries[0].details == "Content approved via inline action strip"


class TestReject:

    def test_empty_reason_is_a_no_op(self, machine, pending_card, approver):
        """
        INVARIANT: Rejection without a reason is refused.
        """
        result = machine.reject(pending_card, approver, "")

        assert result.refusal.guard == GuardCode.REASON_REQUIRED
        assert result.card is pending_card

    def test_whitespace_reason_is_a_no_op(self, machine, pending_card, approver):
        result = machine.reject(pending_card, approver, "   ")

        assert result.refusal.guard == GuardCode.REASON_REQUIRED

    def test_reason_is_recorded_verbatim(self, machine, pending_card, approver, clock):
        result = machine.reject(pending_card, approver, "needs redesign")
        card = result.card

        assert card.status == ContentStatus.REJECTED
        assert result.entries[0].action == AuditAction.REJECTED
        assert result.entries[0].details == "needs redesign"
        assert card.rejection_reason == "needs redesign"
        assert card.rejected_by == "tm1"
        assert card.rejected_by_name == "Aisha Rahman"
        assert card.rejected_at == clock()
        assert card.approved_by is None

    def test_rejection_notifies_with_reason(self, machine, pending_card, approver):
        result = machine.reject(pending_card, approver, "needs redesign")

        assert _actions(result.entries) == [AuditAction.REJECTED, AuditAction.EMAIL_NOTIFICATION]
        assert "Reason: needs redesign" in result.notification.body
        assert result.approval_event.reason == "needs redesign"

    def test_non_approver_cannot_reject(self, machine, pending_card, outsider):
        result = machine.reject(pending_card, outsider, "needs redesign")

        assert result.refusal.guard == GuardCode.NOT_AN_APPROVER


class TestRevertToDraft:

    def test_revert_clears_rejection_provenance(self, machine, pending_card, approver, author):
        """
        INVARIANT: Reverting a rejected card clears every rejection field.
        """
        rejected = machine.reject(pending_card, approver, "Off-brand colours").unwrap()

        result = machine.revert_to_draft(rejected, author, "Reworking the visuals")
        card = result.card

        assert card.status == ContentStatus.DRAFT
        assert card.rejected_by is None
        assert card.rejected_by_name is None
        assert card.rejected_at is None
        assert card.rejection_reason is None
        assert _actions(result.entries) == [AuditAction.STATUS_CHANGED, AuditAction.EMAIL_NOTIFICATION]
        assert result.entries[0].details == (
            "Reverted to draft status for re-editing: Reworking the visuals"
        )

    def test_revert_from_pending(self, machine, pending_card, author):
        result = machine.revert_to_draft(pending_card, author, "Forgot the CTA")

        assert result.card.status == ContentStatus.DRAFT
        assert result.approval_event.action == ApprovalEventAction.REVERTED_TO_DRAFT

    def test_revert_requires_reason(self, machine, pending_card, author):
        result = machine.revert_to_draft(pending_card, author, None)

        assert result.refusal.guard == GuardCode.REASON_REQUIRED

    def test_cannot_revert_approved_card(self, machine, pending_card, approver, author):
        approved = machine.approve(pending_card, approver).unwrap()

        result = machine.revert_to_draft(approved, author, "Changed my mind")

        assert result.refusal.guard == GuardCode.INVALID_STATUS
        assert result.card.approved_by == "tm1"


class TestMarkPublished:

    def _scheduled(self, machine, author, approver):
        card = machine.create_card(
            project_id="proj_1",
            platform="twitter",
            title="Teaser thread",
            actor=author,
            approvers=["tm1"],
            scheduled_date=date(2025, 1, 5),
        )
        card = machine.submit_for_approval(card, author).unwrap()
        return machine.approve(card, approver).unwrap()

    def test_scheduled_card_is_published_by_anyone(self, machine, author, approver, outsider):
        scheduled = self._scheduled(machine, author, approver)

        result = machine.mark_published(scheduled, outsider)

        assert result.card.status == ContentStatus.PUBLISHED
        assert _actions(result.entries) == [AuditAction.PUBLISHED]
        assert result.entries[0].details == "Marked as published on X (Twitter)"
        assert result.notification is None

    def test_approved_card_cannot_be_published(self, machine, pending_card, approver):
        approved = machine.approve(pending_card, approver).unwrap()

        result = machine.mark_published(approved, approver)

        assert result.refusal.guard == GuardCode.INVALID_STATUS


class TestEdit:

    def test_edit_records_changed_fields(self, machine, draft_card, author, clock):
        result = machine.edit(draft_card, author, {"title": "Launch teaser v2", "hashtags": ["#new"]})

        assert result.card.status == ContentStatus.DRAFT
        assert result.card.title == "Launch teaser v2"
        assert result.card.hashtags == ("new",)
        assert result.card.last_edited_by == "Sarah Chen"
        assert result.card.last_edited_at == clock()
        assert result.entries[0].action == AuditAction.EDITED
        assert result.entries[0].details == "Content updated — title, hashtags modified"

    def test_edit_without_changes_is_still_recorded(self, machine, clock, draft_card, author):
        """
        INVARIANT: Every accepted save appends an edited entry, even when nothing changed.
        """
        clock.advance(minutes=3)

        result = machine.edit(draft_card, author, {"title": draft_card.title})

        assert result.ok
        assert result.card.title == draft_card.title
        assert result.card.last_edited_by == "Sarah Chen"
        assert result.card.last_edited_at == clock()
        assert _actions(result.entries) == [AuditAction.EDITED]
        assert result.entries[0].details == "Content saved — no fields modified"

    def test_invalid_schedule_time_is_refused(self, machine, draft_card, author):
        result = machine.edit(draft_card, author, {"scheduled_time": "99:99"})

        assert result.refusal.guard == GuardCode.INVALID_PAYLOAD
        assert "scheduled_time" in result.refusal.message
        assert result.card is draft_card

    def test_non_mapping_changes_are_refused(self, machine, draft_card, author):
        result = machine.apply(draft_card, "edit", author, {"changes": ["title"]})

        assert result.refusal.guard == GuardCode.INVALID_PAYLOAD

    def test_pending_card_cannot_be_edited(self, machine, pending_card, author):
        result = machine.edit(pending_card, author, {"caption": "New caption"})

        assert result.refusal.guard == GuardCode.INVALID_STATUS

    def test_schedule_can_be_set_and_cleared(self, machine, draft_card, author):
        scheduled = machine.edit(
            draft_card, author, {"scheduled_date": date(2025, 2, 1), "scheduled_time": "18:00"}
        ).unwrap()
        cleared = machine.edit(scheduled, author, {"clear_schedule": True}).unwrap()

        assert scheduled.scheduled_date == date(2025, 2, 1)
        assert cleared.scheduled_date is None
        assert cleared.scheduled_time is None


class TestMedia:

    def test_attach_and_remove_media(self, machine, draft_card, author):
        attached = machine.attach_media(
            draft_card, author, "https://cdn.example.com/hero.png", "image", "hero.png"
        ).unwrap()
        removed = machine.remove_media(attached, author).unwrap()

        assert attached.media_type == MediaType.IMAGE
        assert attached.audit_log[-1].details == "Uploaded image: hero.png"
        assert removed.media_url is None
        assert removed.audit_log[-1].action == AuditAction.MEDIA_REMOVED

    def test_remove_without_media_is_refused(self, machine, draft_card, author):
        result = machine.remove_media(draft_card, author)

        assert result.refusal.guard == GuardCode.NO_MEDIA

    def test_attach_with_empty_payload_is_refused(self, machine, draft_card, author):
        """
        INVARIANT: A malformed payload is a refusal, never an exception.
        """
        result = machine.apply(draft_card, "attach_media", author, {})

        assert result.refusal.guard == GuardCode.INVALID_PAYLOAD
        assert result.refusal.message == "Missing media_url, file_name."
        assert result.card is draft_card

    def test_attach_with_unknown_media_type_is_refused(self, machine, draft_card, author):
        result = machine.apply(
            draft_card,
            "attach_media",
            author,
            {"media_url": "https://cdn.example.com/a.gif", "media_type": "gif", "file_name": "a.gif"},
        )

        assert result.refusal.guard == GuardCode.INVALID_PAYLOAD
        assert result.card.media_url is None


class TestApplyAndLedger:

    def test_apply_dispatches_by_action_name(self, machine, pending_card, approver):
        result = machine.apply(pending_card, "reject", approver, {"reason": "Too long"})

        assert result.action == LifecycleAction.REJECT
        assert result.card.status == ContentStatus.REJECTED

    def test_unwrap_raises_guard_violation(self, machine, pending_card, outsider):
        with pytest.raises(GuardViolation) as exc_info:
            machine.approve(pending_card, outsider).unwrap()

        assert exc_info.value.code == "NOT_AN_APPROVER"

    def test_ledger_grows_monotonically(self, machine, clock, draft_card, author, approver):
        """
        INVARIANT: Every accepted transition strictly grows the audit log.
        """
        card = draft_card
        steps = [
            lambda c: machine.submit_for_approval(c, author),
            lambda c: machine.reject(c, approver, "Needs a stronger hook"),
            lambda c: machine.edit(c, author, {"caption": "A stronger hook"}),
            lambda c: machine.submit_for_approval(c, author),
            lambda c: machine.approve(c, approver),
        ]
        for step in steps:
            clock.advance(minutes=5)
            before = len(card.audit_log)
            card = step(card).unwrap()
            assert len(card.audit_log) > before

        timestamps = [e.timestamp for e in card.audit_log]
        assert timestamps == sorted(timestamps)

    def test_transition_never_mutates_input(self, machine, pending_card, approver):
        snapshot = pending_card.model_dump()

        machine.approve(pending_card, approver)

        assert pending_card.model_dump() == snapshot

    def test_available_actions(self, machine, pending_card, approver, outsider):
        assert set(machine.available_actions(pending_card, approver)) == {
            LifecycleAction.APPROVE,
            LifecycleAction.REJECT,
            LifecycleAction.REVERT_TO_DRAFT,
            LifecycleAction.ATTACH_MEDIA,
        }
        assert LifecycleAction.APPROVE not in machine.available_actions(pending_card, outsider)
