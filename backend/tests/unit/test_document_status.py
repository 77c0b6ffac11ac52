"""Unit tests for DocumentStatus state machine"""

import pytest

from domain.documents import (
    ALLOWED_TRANSITIONS,
    DocumentStatus,
    can_transition,
    get_allowed_transitions,
)


class TestDocumentStatusStateMachine:
    """Test DocumentStatus enum and state transition validation"""

    def test_document_status_enum_values(self):
        """Test DocumentStatus enum has all required values"""
        assert DocumentStatus.DRAFT.value == "draft"
        assert DocumentStatus.PENDING.value == "pending"
        assert DocumentStatus.APPROVED.value == "approved"
        assert DocumentStatus.REJECTED.value == "rejected"
        assert DocumentStatus.ARCHIVED.value == "archived"

    def test_draft_to_pending(self):
        """Test DRAFT → PENDING transition (workflow started)"""
        assert can_transition(DocumentStatus.DRAFT, DocumentStatus.PENDING) is True

    def test_pending_outcomes(self):
        """Test PENDING → APPROVED | REJECTED | DRAFT (cancelled)"""
        assert can_transition(DocumentStatus.PENDING, DocumentStatus.APPROVED) is True
        assert can_transition(DocumentStatus.PENDING, DocumentStatus.REJECTED) is True
        assert can_transition(DocumentStatus.PENDING, DocumentStatus.DRAFT) is True

    def test_rejected_to_draft(self):
        """Test REJECTED → DRAFT transition (resubmission)"""
        assert can_transition(DocumentStatus.REJECTED, DocumentStatus.DRAFT) is True

    def test_draft_invalid_transitions(self):
        """Test a draft cannot be decided without a workflow"""
        assert can_transition(DocumentStatus.DRAFT, DocumentStatus.APPROVED) is False
        assert can_transition(DocumentStatus.DRAFT, DocumentStatus.REJECTED) is False

    def test_archived_is_terminal(self):
        """Test ARCHIVED has no outgoing transitions here"""
        assert get_allowed_transitions(DocumentStatus.ARCHIVED) == []
        for target in DocumentStatus:
            assert can_transition(DocumentStatus.ARCHIVED, target) is False

    def test_every_status_has_rules(self):
        assert set(ALLOWED_TRANSITIONS) == set(DocumentStatus)
