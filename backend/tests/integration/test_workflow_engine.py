"""Integration tests for the workflow engine

Tests cover:
- Start, advance, approve, reject and cancel against a real schema
- Single active instance per document
- Assignee / administrative override authorization
- Terminal immutability and stale-client detection
- Document status mirroring
- Step definitions snapshotted at start
- Notifications and activity entries emitted per transition
"""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from documents.service import resubmit_document
from auth.roles import RoleOverridePolicy
from domain.workflows import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    Approved,
    Cancelled,
    Running,
    WorkflowStatus,
)
from models.document import Document
from models.workflow import WorkflowInstance, WorkflowStep
from workflows.engine import utcnow


pytestmark = pytest.mark.integration


def steps_of(db_session: Session, instance_id: int):
    return list(
        db_session.execute(
            select(WorkflowStep)
            .where(WorkflowStep.instance_id == instance_id)
            .order_by(WorkflowStep.step_number)
        ).scalars()
    )


class TestStartWorkflow:
    """Test WorkflowEngine.start_workflow"""

    def test_start_opens_first_step(self, engine, db_session, two_step_template, document, initiator, reviewer):
        """Test instance at step 1, step-1 record for A, document pending"""
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        assert instance.status == "in_progress"
        assert instance.current_step == 1
        assert instance.started_by == initiator.id
        assert instance.completed_at is None
        assert document.status == "pending"

        steps = steps_of(db_session, instance.id)
        assert len(steps) == 1
        assert steps[0].step_number == 1
        assert steps[0].step_name == "Review"
        assert steps[0].assigned_to == reviewer.id
        assert steps[0].completed_at is None

    def test_start_notifies_first_assignee(self, engine, notifier, activity, two_step_template, document, initiator, reviewer):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        assert notifier.types_for(reviewer.id) == ["workflow_task"]
        assert notifier.sent[0]["link"] == f"/documents/{document.uuid}"
        assert activity.actions == ["workflow_start"]
        assert activity.entries[0]["entity_id"] == instance.id
        assert activity.entries[0]["actor_id"] == initiator.id

    def test_start_accepts_uuids(self, engine, two_step_template, document, initiator):
        instance = engine.start_workflow(str(two_step_template.uuid), document.uuid, initiator.id)
        assert instance.document_id == document.id

    def test_second_start_conflicts(self, engine, db_session, two_step_template, document, initiator):
        """Test a second start while one is running fails with Conflict"""
        engine.start_workflow(two_step_template.id, document.id, initiator.id)

        with pytest.raises(ConflictError) as exc_info:
            engine.start_workflow(two_step_template.id, document.id, initiator.id)

        assert "already running" in exc_info.value.message
        active = db_session.execute(
            select(WorkflowInstance).where(WorkflowInstance.status == "in_progress")
        ).scalars().all()
        assert len(active) == 1

    def test_inactive_template_conflicts(self, engine, make_template, reviewer, document, initiator):
        template = make_template("Retired", [("Review", reviewer)], is_active=False)

        with pytest.raises(ConflictError):
            engine.start_workflow(template.id, document.id, initiator.id)

        assert document.status == "draft"

    def test_archived_document_conflicts(self, engine, db_session, two_step_template, document, initiator):
        document.is_archived = True
        db_session.commit()

        with pytest.raises(ConflictError):
            engine.start_workflow(two_step_template.id, document.id, initiator.id)

    def test_unknown_template(self, engine, document, initiator):
        with pytest.raises(NotFoundError):
            engine.start_workflow(9999, document.id, initiator.id)

    def test_unknown_document(self, engine, two_step_template, initiator):
        with pytest.raises(NotFoundError):
            engine.start_workflow(two_step_template.id, uuid4(), initiator.id)

    def test_refused_start_writes_nothing(self, engine, db_session, notifier, two_step_template, initiator):
        with pytest.raises(NotFoundError):
            engine.start_workflow(two_step_template.id, 9999, initiator.id)

        assert db_session.execute(select(WorkflowInstance)).scalars().all() == []
        assert notifier.sent == []


class TestProcessStep:
    """Test WorkflowEngine.process_step"""

    def test_two_step_approval(self, engine, db_session, notifier, activity, two_step_template, document, initiator, reviewer, signer):
        """Test approve advances to step 2, then approves the run"""
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        engine.process_step(instance.id, reviewer.id, "approve", "looks good")

        assert instance.status == "in_progress"
        assert instance.current_step == 2
        assert document.status == "pending"
        steps = steps_of(db_session, instance.id)
        assert [s.step_number for s in steps] == [1, 2]
        assert steps[0].action == "approve"
        assert steps[0].comment == "looks good"
        assert steps[0].completed_by == reviewer.id
        assert steps[1].step_name == "Final Sign-off"
        assert steps[1].assigned_to == signer.id
        assert notifier.types_for(signer.id) == ["workflow_task"]

        engine.process_step(instance.id, signer.id, "approve", "ok")

        assert instance.status == "approved"
        assert instance.completed_at is not None
        assert document.status == "approved"
        assert notifier.types_for(initiator.id) == ["workflow_completed"]
        assert activity.actions == ["workflow_start", "workflow_approve", "workflow_approve"]

    def test_reject_terminates_early(self, engine, db_session, notifier, activity, two_step_template, document, initiator, reviewer):
        """Test reject at step 1 never creates step 2"""
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        engine.process_step(instance.id, reviewer.id, "reject", "missing signature")

        assert instance.status == "rejected"
        assert instance.completed_at is not None
        assert document.status == "rejected"
        steps = steps_of(db_session, instance.id)
        assert len(steps) == 1
        assert steps[0].action == "reject"
        assert notifier.types_for(initiator.id) == ["workflow_rejected"]
        assert "missing signature" in notifier.sent[-1]["message"]
        assert activity.actions[-1] == "workflow_reject"

    def test_outsider_forbidden(self, engine, db_session, two_step_template, document, initiator, outsider):
        """Test a non-assignee without override cannot act; state unchanged"""
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        with pytest.raises(ForbiddenError):
            engine.process_step(instance.id, outsider.id, "approve", "")

        assert instance.status == "in_progress"
        assert instance.current_step == 1
        assert steps_of(db_session, instance.id)[0].completed_at is None
        assert document.status == "pending"

    def test_admin_override(self, engine, db_session, two_step_template, document, initiator, admin_user):
        """Test an admin may complete a step assigned to someone else"""
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        engine.process_step(instance.id, admin_user.id, "approve", "on behalf")

        step = steps_of(db_session, instance.id)[0]
        assert step.completed_by == admin_user.id
        assert instance.current_step == 2

    def test_override_follows_policy_not_role_name(self, engine_factory, db_session, two_step_template, document, initiator, manager_user):
        """Test a MANAGER gains the override only when the policy grants it"""
        engine = engine_factory(db_session, override_roles=["MANAGER"])
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        engine.process_step(instance.id, manager_user.id, "reject", "policy says yes")

        assert instance.status == "rejected"

    def test_unsupported_action(self, engine, two_step_template, document, initiator, reviewer):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        with pytest.raises(InvalidInputError):
            engine.process_step(instance.id, reviewer.id, "escalate")

        assert instance.current_step == 1

    def test_unknown_instance(self, engine, reviewer):
        with pytest.raises(NotFoundError):
            engine.process_step(9999, reviewer.id, "approve")
        with pytest.raises(NotFoundError):
            engine.process_step("not-an-id", reviewer.id, "approve")

    def test_process_by_uuid(self, engine, two_step_template, document, initiator, reviewer):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        engine.process_step(str(instance.uuid), reviewer.id, "approve")

        assert instance.current_step == 2

    def test_stale_expected_step(self, engine, db_session, two_step_template, document, initiator, reviewer, admin_user):
        """Test a client acting on a step it saw earlier is refused"""
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)
        engine.process_step(instance.id, reviewer.id, "approve", expected_step=1)

        with pytest.raises(InvalidStateError) as exc_info:
            engine.process_step(instance.id, admin_user.id, "approve", expected_step=1)

        assert exc_info.value.details["current_step"] == 2
        assert instance.current_step == 2
        assert steps_of(db_session, instance.id)[1].completed_at is None

    @pytest.mark.parametrize("final_action", ["approve", "reject"])
    def test_terminal_instance_is_immutable(self, engine, make_template, document, initiator, reviewer, admin_user, final_action):
        """Test no process or cancel succeeds after a terminal status"""
        template = make_template("Single", [("Review", reviewer)])
        instance = engine.start_workflow(template.id, document.id, initiator.id)
        engine.process_step(instance.id, reviewer.id, final_action)

        with pytest.raises(InvalidStateError):
            engine.process_step(instance.id, reviewer.id, "approve")
        with pytest.raises(InvalidStateError):
            engine.process_step(instance.id, admin_user.id, "reject")
        with pytest.raises(InvalidStateError):
            engine.cancel_workflow(instance.id, initiator.id)

    def test_monotonic_advancement(self, engine, make_template, document, initiator, reviewer, signer, outsider):
        """Test current_step moves 1, 2, 3 and then the run is approved"""
        template = make_template(
            "3-step approval",
            [("Review", reviewer), ("Legal", outsider), ("Final Sign-off", signer)],
        )
        instance = engine.start_workflow(template.id, document.id, initiator.id)

        observed = [instance.current_step]
        for actor in (reviewer, outsider):
            engine.process_step(instance.id, actor.id, "approve")
            observed.append(instance.current_step)
        engine.process_step(instance.id, signer.id, "approve")

        assert observed == [1, 2, 3]
        assert instance.status == "approved"
        # Position of a finished run carries no step
        assert not hasattr(instance.position, "step")

    def test_steps_come_from_snapshot(self, engine, db_session, two_step_template, document, initiator, reviewer, signer, outsider):
        """Test editing the template mid-flight does not reach the running instance"""
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        two_step_template.steps = [
            {"name": "Review", "assignee_id": reviewer.id},
            {"name": "Rewritten", "assignee_id": outsider.id},
        ]
        db_session.commit()

        engine.process_step(instance.id, reviewer.id, "approve")

        second = steps_of(db_session, instance.id)[1]
        assert second.step_name == "Final Sign-off"
        assert second.assigned_to == signer.id


class TestCancelWorkflow:
    """Test WorkflowEngine.cancel_workflow"""

    def test_initiator_cancels(self, engine, notifier, activity, two_step_template, document, initiator, reviewer):
        """Test cancel by initiator resets the document and blocks processing"""
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        engine.cancel_workflow(instance.id, initiator.id)

        assert instance.status == "cancelled"
        assert instance.completed_at is not None
        assert document.status == "draft"
        assert notifier.types_for(reviewer.id) == ["workflow_task", "workflow_cancelled"]
        assert activity.actions[-1] == "workflow_cancel"

        with pytest.raises(InvalidStateError):
            engine.process_step(instance.id, reviewer.id, "approve")

    def test_cancelled_task_leaves_task_list(self, engine, two_step_template, document, initiator, reviewer):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)
        engine.cancel_workflow(instance.id, initiator.id)

        assert engine.my_pending_tasks(reviewer.id) == []

    def test_outsider_cannot_cancel(self, engine, two_step_template, document, initiator, outsider):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        with pytest.raises(ForbiddenError):
            engine.cancel_workflow(instance.id, outsider.id)

        assert instance.status == "in_progress"

    def test_assignee_is_not_initiator(self, engine, two_step_template, document, initiator, reviewer):
        """Test being assigned a step does not allow cancelling the run"""
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        with pytest.raises(ForbiddenError):
            engine.cancel_workflow(instance.id, reviewer.id)

    def test_admin_cancels(self, engine, two_step_template, document, initiator, admin_user):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        engine.cancel_workflow(instance.id, admin_user.id)

        assert instance.status == "cancelled"

    def test_cancel_unknown(self, engine, initiator):
        with pytest.raises(NotFoundError):
            engine.cancel_workflow(uuid4(), initiator.id)

    def test_restart_after_cancel(self, engine, two_step_template, document, initiator):
        first = engine.start_workflow(two_step_template.id, document.id, initiator.id)
        engine.cancel_workflow(first.id, initiator.id)

        second = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        assert second.id != first.id
        assert document.status == "pending"


class TestRejectResubmitRestart:
    """Test the rejection → resubmission → new run cycle"""

    def test_cycle(self, engine, db_session, two_step_template, document, initiator, reviewer):
        first = engine.start_workflow(two_step_template.id, document.id, initiator.id)
        engine.process_step(first.id, reviewer.id, "reject", "missing signature")

        resubmit_document(db_session, document.id, initiator.id, RoleOverridePolicy(db_session, ["ADMIN"]))
        assert document.status == "draft"

        second = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        assert second.id != first.id
        assert first.status == "rejected"
        runs = engine.list_document_instances(document.id)
        assert [r.id for r in runs] == [second.id, first.id]
        assert [r.status.value for r in runs] == ["in_progress", "rejected"]

    def test_list_instances_unknown_document(self, engine):
        with pytest.raises(NotFoundError):
            engine.list_document_instances(9999)


class TestPendingTasks:
    """Test WorkflowEngine.my_pending_tasks"""

    def test_tasks_follow_the_current_step(self, engine, two_step_template, document, initiator, reviewer, signer):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        tasks = engine.my_pending_tasks(reviewer.id)
        assert len(tasks) == 1
        task = tasks[0]
        assert task.instance_id == instance.id
        assert task.step_number == 1
        assert task.step_name == "Review"
        assert task.workflow_name == "2-step approval"
        assert task.document_title == "Supplier contract"
        assert task.document_uuid == document.uuid
        assert task.started_by_name == "Carol Owner"
        assert engine.my_pending_tasks(signer.id) == []

        engine.process_step(instance.id, reviewer.id, "approve")

        assert engine.my_pending_tasks(reviewer.id) == []
        assert [t.step_name for t in engine.my_pending_tasks(signer.id)] == ["Final Sign-off"]

    def test_newest_task_first(self, engine, db_session, two_step_template, document, initiator, reviewer):
        other = Document(title="Price list", owner_id=initiator.id)
        db_session.add(other)
        db_session.commit()

        engine.start_workflow(two_step_template.id, document.id, initiator.id)
        engine.start_workflow(two_step_template.id, other.id, initiator.id)

        titles = [t.document_title for t in engine.my_pending_tasks(reviewer.id)]
        assert titles == ["Price list", "Supplier contract"]

    def test_finished_runs_have_no_tasks(self, engine, make_template, document, initiator, reviewer):
        template = make_template("Single", [("Review", reviewer)])
        instance = engine.start_workflow(template.id, document.id, initiator.id)
        engine.process_step(instance.id, reviewer.id, "approve")

        assert engine.my_pending_tasks(reviewer.id) == []


class TestHistory:
    """Test WorkflowEngine.get_history replays exactly the reached steps"""

    def test_approved_run_has_every_step(self, engine, two_step_template, document, initiator, reviewer, signer):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)
        engine.process_step(instance.id, reviewer.id, "approve", "looks good")
        engine.process_step(instance.id, signer.id, "approve", "ok")

        history = engine.get_history(instance.id)

        assert history.instance.status is WorkflowStatus.APPROVED
        assert history.instance.current_step is None
        assert [s.step_number for s in history.steps] == [1, 2]
        assert [s.action for s in history.steps] == ["approve", "approve"]
        assert [s.completed_by_name for s in history.steps] == ["Alice Reviewer", "Bob Signer"]

    def test_rejected_run_stops_at_the_rejected_step(self, engine, two_step_template, document, initiator, reviewer):
        """Test later steps are absent rather than pending"""
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)
        engine.process_step(instance.id, reviewer.id, "reject", "missing signature")

        history = engine.get_history(instance.id)

        assert history.instance.status is WorkflowStatus.REJECTED
        assert history.instance.total_steps == 2
        assert len(history.steps) == 1
        assert history.steps[0].action == "reject"
        assert history.steps[0].comment == "missing signature"

    def test_running_instance_shows_open_step(self, engine, two_step_template, document, initiator, reviewer, signer):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)
        engine.process_step(instance.id, reviewer.id, "approve")

        history = engine.get_history(str(instance.uuid))

        assert history.instance.status is WorkflowStatus.IN_PROGRESS
        assert history.instance.current_step == 2
        assert [s.step_number for s in history.steps] == [1, 2]
        current = history.steps[1]
        assert current.assigned_to_id == signer.id
        assert current.action is None
        assert current.completed_at is None
        assert current.completed_by_id is None

    def test_cancelled_run_keeps_its_open_step(self, engine, two_step_template, document, initiator, reviewer):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)
        engine.cancel_workflow(instance.id, initiator.id)

        history = engine.get_history(instance.id)

        assert history.instance.status is WorkflowStatus.CANCELLED
        assert history.instance.completed_at is not None
        assert len(history.steps) == 1
        assert history.steps[0].assigned_to_id == reviewer.id
        assert history.steps[0].action is None

    def test_total_steps_come_from_snapshot(self, engine, db_session, two_step_template, document, initiator, reviewer):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)

        two_step_template.steps = [{"name": "Only", "assignee_id": reviewer.id}]
        db_session.commit()

        history = engine.get_history(instance.id)
        assert history.instance.total_steps == 2

    def test_unknown_instance(self, engine):
        with pytest.raises(NotFoundError):
            engine.get_history(9999)


class TestTransitionTable:
    """Test instance moves are gated by the workflow transition table"""

    @pytest.mark.parametrize("target", [Running(2), Approved(), Cancelled()])
    def test_finished_instance_cannot_move(self, engine, db_session, two_step_template, document, initiator, reviewer, target):
        instance = engine.start_workflow(two_step_template.id, document.id, initiator.id)
        engine.process_step(instance.id, reviewer.id, "reject")

        with pytest.raises(InvalidStateError) as exc_info:
            engine._move(instance, target, utcnow())

        assert exc_info.value.details == {"status": "rejected"}
        db_session.rollback()
        assert instance.status == "rejected"
        assert instance.current_step == 1
