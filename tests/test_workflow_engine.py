"""Workflow instance engine: creation, processing, rejection paths and concurrency"""
import threading

import pytest

from ticketflow.domain.models import (
    FormDefinition, ReviewDefinition, FieldDefinition, SingleLineTextDefine,
    DynamicDefault, DynamicDefaultRef, FormSubmission, ReviewSubmission,
    FormFlowValue, EmptyFlowValue, NoOperator
)
from ticketflow.domain.enums import TicketStatus
from ticketflow.domain.errors import (
    AlreadyFinishedError, AuthorizationError, InvalidSubmissionError, FieldErrors,
    TicketHaltedError, InvalidStateError, AssignmentValidationError,
    ConcurrencyError, SchemaNotFoundError, ValidationError, DomainError
)
from ticketflow.engine.engine import ticket_locks
from ticketflow.repositories.ticket_repo import TicketRepository
from ticketflow.services.ticket_service import TicketService


@pytest.fixture
def service(directory):
    return TicketService()


def form(**answers):
    return FormSubmission(value=answers)


def review(approved, comment=None):
    return ReviewSubmission(approved=approved, comment=comment)


def stored(ticket_id):
    return TicketRepository().get_ticket_or_raise(ticket_id)


class TestInstantiate:
    def test_binds_every_step(self, service, form_review_schema):
        schema = form_review_schema()
        ticket = service.create_ticket(schema.schema_id, "alice")

        assert ticket.status == TicketStatus.PENDING
        assert ticket.title == "Access request"
        assert [item.user_id for item in ticket.flows] == [None, "bob"]
        assert [item.order for item in ticket.flows] == [0, 1]
        assert all(not item.finished for item in ticket.flows)
        assert service.engine.current_step(ticket).flow_id == schema.flows[0].flow_id

    def test_role_override(self, service, publish, make_text_field, role_operator):
        schema = publish(
            (NoOperator(), FormDefinition(fields=[make_text_field("a")])),
            (role_operator, ReviewDefinition()),
        )
        review_flow = schema.flows[1].flow_id

        ticket = service.create_ticket(schema.schema_id, "alice", assign_flow_users={review_flow: "carol"})
        assert ticket.flows[1].user_id == "carol"

        with pytest.raises(AssignmentValidationError):
            service.create_ticket(schema.schema_id, "alice", assign_flow_users={"not-a-flow": "carol"})

    def test_unknown_schema(self, service):
        with pytest.raises(SchemaNotFoundError):
            service.create_ticket("nope", "alice")


class TestProcess:
    def test_happy_path_to_finished(self, service, form_review_schema, test_db):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")

        ticket = service.process(ticket.ticket_id, "alice", form(reason="  need access  "))
        assert ticket.status == TicketStatus.IN_PROGRESS
        assert ticket.flows[0].finished
        assert ticket.flows[0].value.value == {"reason": "need access"}

        ticket = service.process(ticket.ticket_id, "bob", review(True, "ok"))
        assert ticket.status == TicketStatus.FINISHED
        assert ticket.finished
        assert ticket.finished_at is not None
        assert service.engine.current_step(ticket) is None

        events = [doc["event_type"] for doc in test_db["audit_events"].find({"ticket_id": ticket.ticket_id})]
        assert events.count("TICKET_FINISHED") == 1
        assert "SUBMIT_FORM" in events and "APPROVE" in events

    def test_only_bound_operator_may_act(self, service, form_review_schema):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")
        with pytest.raises(AuthorizationError):
            service.process(ticket.ticket_id, "bob", form(reason="x"))

    def test_submission_type_must_match_step(self, service, form_review_schema):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")
        with pytest.raises(InvalidSubmissionError):
            service.process(ticket.ticket_id, "alice", review(True))

    def test_failed_process_leaves_ticket_untouched(self, service, form_review_schema):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")
        before = stored(ticket.ticket_id)

        with pytest.raises(FieldErrors):
            service.process(ticket.ticket_id, "alice", form(reason=""))

        after = stored(ticket.ticket_id)
        assert after.version == before.version
        assert after.status == before.status
        assert service.engine.current_step(after).flow_item_id == service.engine.current_step(before).flow_item_id

    def test_finished_ticket_is_terminal(self, service, form_review_schema):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")
        service.process(ticket.ticket_id, "alice", form(reason="x"))
        done = service.process(ticket.ticket_id, "bob", review(True))

        for actor, submission in (("bob", review(False)), ("alice", form(reason="again"))):
            with pytest.raises(AlreadyFinishedError):
                service.process(ticket.ticket_id, actor, submission)

        assert stored(ticket.ticket_id).model_dump() == done.model_dump()

    def test_idempotency_key_replays(self, service, form_review_schema):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")
        first = service.process(ticket.ticket_id, "alice", form(reason="x"), idempotency_key="k-1")
        again = service.process(ticket.ticket_id, "alice", form(reason="x"), idempotency_key="k-1")

        assert again.version == first.version
        assert "k-1" in again.applied_keys
        assert service.engine.current_step(again).flow_id == first.flows[1].flow_id

    def test_stale_version_is_a_conflict(self, service, form_review_schema):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")
        repo = TicketRepository()
        repo.replace_ticket(ticket, expected_version=ticket.version)

        with pytest.raises(ConcurrencyError):
            repo.replace_ticket(ticket, expected_version=ticket.version)

    def test_concurrent_submissions_advance_once(self, form_review_schema, directory, test_db):
        ticket = TicketService().create_ticket(form_review_schema().schema_id, "alice")
        barrier = threading.Barrier(8)
        outcomes = []

        def submit(n):
            barrier.wait()
            try:
                TicketService().process(ticket.ticket_id, "alice", form(reason=f"attempt {n}"))
                outcomes.append("ok")
            except DomainError as e:
                outcomes.append(type(e).__name__)

        threads = [threading.Thread(target=submit, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["AuthorizationError"] * 7 + ["ok"]
        after = stored(ticket.ticket_id)
        assert after.version == ticket.version + 1
        assert [item.finished for item in after.flows] == [True, False]
        assert test_db["audit_events"].count_documents(
            {"ticket_id": ticket.ticket_id, "event_type": "SUBMIT_FORM"}
        ) == 1
        assert len(ticket_locks) == 0

    def test_locks_released_after_finish(self, service, form_review_schema):
        schema = form_review_schema()
        for _ in range(5):
            ticket = service.create_ticket(schema.schema_id, "alice")
            service.process(ticket.ticket_id, "alice", form(reason="x"))
            service.process(ticket.ticket_id, "bob", review(True))

        assert len(ticket_locks) == 0

    def test_audit_failure_does_not_fail_committed_step(self, service, form_review_schema, monkeypatch):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")

        def broken(*args, **kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(service.engine.audit_writer, "write_submit_form", broken)
        saved = service.process(ticket.ticket_id, "alice", form(reason="x"))

        assert saved.flows[0].finished
        assert stored(ticket.ticket_id).version == saved.version


class TestRejection:
    def _at_review(self, service, schema):
        ticket = service.create_ticket(schema.schema_id, "alice")
        return service.process(ticket.ticket_id, "alice", form(reason="first"))

    def test_restart_resets_every_step(self, service, form_review_schema):
        ticket = self._at_review(service, form_review_schema(restarted=True))

        ticket = service.process(ticket.ticket_id, "bob", review(False, "start over"))

        assert ticket.status == TicketStatus.PENDING
        assert not ticket.halted
        assert ticket.restart_count == 1
        assert all(not item.finished for item in ticket.flows)
        assert all(isinstance(item.value, EmptyFlowValue) for item in ticket.flows)
        assert ticket.flows[1].review_history[0].comment == "start over"
        assert service.engine.current_step(ticket).order == 0

        # resubmission is validated again
        with pytest.raises(FieldErrors):
            service.process(ticket.ticket_id, "alice", form())
        ticket = service.process(ticket.ticket_id, "alice", form(reason="second"))
        assert ticket.status == TicketStatus.IN_PROGRESS

    def test_non_restart_rejection_halts(self, service, form_review_schema):
        ticket = self._at_review(service, form_review_schema())

        ticket = service.process(ticket.ticket_id, "bob", review(False, "missing detail"))

        assert ticket.halted
        assert ticket.status == TicketStatus.IN_PROGRESS
        assert ticket.flows[0].finished
        assert service.engine.current_step(ticket).order == 1

        with pytest.raises(TicketHaltedError):
            service.process(ticket.ticket_id, "alice", form(reason="more"))

        ticket = service.process(ticket.ticket_id, "bob", review(True, "fine now"))
        assert ticket.finished
        assert not ticket.halted
        assert [d.comment for d in ticket.flows[1].review_history] == ["missing detail", "fine now"]

    def test_manager_reopens_previous_step(self, service, form_review_schema):
        ticket = self._at_review(service, form_review_schema())
        service.process(ticket.ticket_id, "bob", review(False))

        with pytest.raises(AuthorizationError):
            service.reopen_previous_step(ticket.ticket_id, "bob")

        ticket = service.reopen_previous_step(ticket.ticket_id, "carol")

        assert not ticket.halted
        current = service.engine.current_step(ticket)
        assert current.order == 0
        assert isinstance(current.value, FormFlowValue)
        assert current.value.value == {"reason": "first"}

        with pytest.raises(InvalidStateError):
            service.reopen_previous_step(ticket.ticket_id, "carol")

        ticket = service.process(ticket.ticket_id, "alice", form(reason="revised"))
        assert service.engine.current_step(ticket).order == 1


class TestDynamicDefaults:
    def test_non_editable_field_copies_earlier_answer(self, service, publish, make_text_field):
        profile = FormDefinition(form_id="profile", fields=[make_text_field("dept")])
        ref = DynamicDefaultRef(form_id="profile", field_key="dept", value="unknown")
        confirm = FormDefinition(fields=[
            FieldDefinition(
                key="dept_confirmed",
                editable=False,
                define=SingleLineTextDefine(max_texts=50, default=DynamicDefault(content=ref)),
            ),
        ])
        schema = publish((NoOperator(), profile), (NoOperator(), confirm))

        ticket = service.create_ticket(schema.schema_id, "alice")
        service.process(ticket.ticket_id, "alice", form(dept="Finance"))
        ticket = service.process(ticket.ticket_id, "alice", form(dept_confirmed="Sales"))

        assert ticket.flows[1].value.value == {"dept_confirmed": "Finance"}


class TestViews:
    def test_status_is_per_viewer(self, service, form_review_schema):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")
        assert service.viewer_status(ticket, "alice") == TicketStatus.PENDING
        assert service.viewer_status(ticket, "bob") == TicketStatus.IN_PROGRESS

        ticket = service.process(ticket.ticket_id, "alice", form(reason="x"))
        assert service.viewer_status(ticket, "alice") == TicketStatus.IN_PROGRESS
        assert service.viewer_status(ticket, "bob") == TicketStatus.PENDING

        pending = service.list_tickets_for_user("bob", status=TicketStatus.PENDING)
        assert [row["ticket_id"] for row in pending] == [ticket.ticket_id]
        assert service.list_tickets_for_user("alice", status=TicketStatus.PENDING) == []

        ticket = service.process(ticket.ticket_id, "bob", review(True))
        assert service.viewer_status(ticket, "bob") == TicketStatus.FINISHED

    def test_detail_requires_involvement(self, service, form_review_schema):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")

        detail = service.get_ticket_detail(ticket.ticket_id, "bob")
        assert detail["steps"][1]["operator_user_ids"] == ["bob"]
        assert detail["steps"][0]["is_current"]
        assert not detail["can_process"]

        assert service.get_ticket_detail(ticket.ticket_id, "carol")["is_manager"]
        with pytest.raises(AuthorizationError):
            service.get_ticket_detail(ticket.ticket_id, "dave")

    def test_schema_ticket_list_is_for_managers(self, service, form_review_schema):
        schema = form_review_schema()
        service.create_ticket(schema.schema_id, "alice")

        assert len(service.list_tickets_for_schema(schema.schema_id, "carol")) == 1
        with pytest.raises(AuthorizationError):
            service.list_tickets_for_schema(schema.schema_id, "bob")

    def test_audit_trail(self, service, form_review_schema):
        ticket = service.create_ticket(form_review_schema().schema_id, "alice")
        service.process(ticket.ticket_id, "alice", form(reason="x"))

        events = service.get_audit_trail(ticket.ticket_id, "bob")
        assert {event.event_type for event in events} == {"CREATE_TICKET", "SUBMIT_FORM"}
        assert service.get_audit_trail(ticket.ticket_id, "bob", since="2999-01-01T00:00:00Z") == []

        with pytest.raises(ValidationError):
            service.get_audit_trail(ticket.ticket_id, "bob", since="yesterday")
