"""Schema store: publication checks and catalog queries"""
import pytest

from ticketflow.domain.models import (
    SchemaDraft, FlowStepDraft, FormDefinition, ReviewDefinition, FieldDefinition,
    SingleChoiceDefine, MultipleChoiceDefine, FileDefine, ImageDefine, ChoiceOption,
    IfEqualDefine, IfEndDefine, StaticDefault, DynamicDefault, DynamicDefaultRef,
    SingleLineTextDefine, UserOperator, RoleOperator, NoOperator
)
from ticketflow.domain.errors import SchemaValidationError, SchemaNotFoundError, FlowNotFoundError
from ticketflow.engine.form_engine import FormEngine
from ticketflow.services.schema_service import SchemaService


@pytest.fixture
def service(directory):
    return SchemaService()


def error_types(exc_info):
    return [error["type"] for error in exc_info.value.details["errors"]]


class TestPublish:
    def test_publish_assigns_dense_order_and_managers(self, service, make_text_field):
        draft = SchemaDraft(
            title_en="Laptop",
            manager_ids=["carol", "alice"],
            flows=[
                FlowStepDraft(order=20, operator=UserOperator(user_id="bob"), module=ReviewDefinition()),
                FlowStepDraft(order=5, module=FormDefinition(fields=[make_text_field("model")])),
            ],
        )

        schema = service.publish(draft, "alice")

        assert [flow.order for flow in schema.flows] == [0, 1]
        assert schema.flows[0].module.type == "Form"
        assert schema.manager_ids == ["alice", "carol"]
        assert schema.published_by == "alice"
        assert service.get_schema(schema.schema_id).flows[1].flow_id == schema.flows[1].flow_id

    def test_publish_writes_audit_event(self, service, make_text_field, test_db):
        schema = service.publish(
            SchemaDraft(flows=[FlowStepDraft(module=FormDefinition(fields=[make_text_field("a")]))]),
            "alice",
        )
        event = test_db["audit_events"].find_one({"schema_id": schema.schema_id})
        assert event["event_type"] == "PUBLISH_SCHEMA"
        assert event["details"] == {"flow_count": 1}

    def test_empty_schema_rejected(self, service):
        with pytest.raises(SchemaValidationError) as exc_info:
            service.publish(SchemaDraft(title_en="Empty"), "alice")
        assert error_types(exc_info) == ["EMPTY_FLOWS"]

    def test_all_problems_reported_together(self, service, make_text_field):
        form = FormDefinition(fields=[
            make_text_field("a"),
            make_text_field("a"),
            FieldDefinition(key="pick", define=SingleChoiceDefine(options=[])),
            FieldDefinition(key="multi", define=MultipleChoiceDefine(
                options=[ChoiceOption(text="x", value=1), ChoiceOption(text="y", value=1)],
                max_options=0,
            )),
            FieldDefinition(key="doc", define=FileDefine(max_size=10, mimes=["text/x-unknown"])),
            FieldDefinition(key="img", define=ImageDefine(max_size=10, min_width=50, max_width=10)),
            FieldDefinition(key="k", define=IfEqualDefine(key="k", from_=StaticDefault(content=1), value=[1])),
        ])
        draft = SchemaDraft(flows=[
            FlowStepDraft(order=1, flow_id="s1", module=form),
            FlowStepDraft(order=1, flow_id="s1", operator=UserOperator(user_id="ghost"), module=ReviewDefinition()),
            FlowStepDraft(operator=RoleOperator(role_id="nope"), module=ReviewDefinition()),
        ])

        with pytest.raises(SchemaValidationError) as exc_info:
            service.publish(draft, "alice")

        types = error_types(exc_info)
        for expected in (
            "DUPLICATE_ORDER", "DUPLICATE_FLOW_ID", "OPERATOR_NOT_FOUND",
            "DUPLICATE_FIELD_KEY", "UNCLOSED_BLOCK", "EMPTY_OPTIONS",
            "DUPLICATE_OPTION", "INVALID_MAX_OPTIONS", "INVALID_MIME", "INVALID_BOUNDS",
        ):
            assert expected in types
        assert types.count("OPERATOR_NOT_FOUND") == 2

    def test_form_ids_are_unique_across_schemas(self, service, make_text_field):
        form = FormDefinition(form_id="shared-form", fields=[make_text_field("a")])
        service.publish(SchemaDraft(flows=[FlowStepDraft(module=form)]), "alice")

        with pytest.raises(SchemaValidationError) as exc_info:
            service.publish(SchemaDraft(flows=[FlowStepDraft(module=form)]), "alice")
        assert error_types(exc_info) == ["FORM_ID_IN_USE"]

    def test_dynamic_default_must_reference_known_field(self, service, make_text_field):
        first = FormDefinition(form_id="profile", fields=[make_text_field("dept")])

        def referencing(field_key):
            ref = DynamicDefaultRef(form_id="profile", field_key=field_key, value="")
            return FormDefinition(fields=[
                FieldDefinition(key="dept_copy", define=SingleLineTextDefine(
                    max_texts=50, default=DynamicDefault(content=ref)
                )),
            ])

        schema = service.publish(
            SchemaDraft(flows=[FlowStepDraft(module=first), FlowStepDraft(module=referencing("dept"))]),
            "alice",
        )
        assert len(schema.flows) == 2

        with pytest.raises(SchemaValidationError) as exc_info:
            service.publish(SchemaDraft(flows=[FlowStepDraft(module=referencing("missing"))]), "alice")
        assert error_types(exc_info) == ["DYNAMIC_DEFAULT_REF"]

    def test_dynamic_default_resolves_against_earlier_step_of_draft(self, service, make_text_field):
        intake = FormDefinition(form_id="intake", fields=[make_text_field("dept")])

        def confirm(field_key):
            ref = DynamicDefaultRef(form_id="intake", field_key=field_key, value="")
            return FormDefinition(fields=[
                FieldDefinition(key="dept_copy", define=SingleLineTextDefine(
                    max_texts=50, default=DynamicDefault(content=ref)
                )),
            ])

        with pytest.raises(SchemaValidationError) as exc_info:
            service.publish(
                SchemaDraft(flows=[FlowStepDraft(module=intake), FlowStepDraft(module=confirm("missing"))]),
                "alice",
            )
        assert error_types(exc_info) == ["DYNAMIC_DEFAULT_REF"]

        schema = service.publish(
            SchemaDraft(flows=[FlowStepDraft(module=intake), FlowStepDraft(module=confirm("dept"))]),
            "alice",
        )
        assert schema.flows[1].module.fields[0].define.default.content.form_id == "intake"

    def test_loaded_schema_keeps_compiled_layout(self, service, make_text_field):
        schema = service.publish(SchemaDraft(flows=[FlowStepDraft(module=FormDefinition(
            fields=[make_text_field("reason")]
        ))]), "alice")

        loaded = service.get_schema(schema.schema_id)
        FormEngine().layout_for(loaded.flows[0].module)

        again = service.get_schema(schema.schema_id)
        assert again is loaded
        assert again.flows[0].module._layout is not None

    def test_if_equal_from_survives_storage(self, service, make_text_field):
        form = FormDefinition(fields=[
            FieldDefinition(key="vpn", define=IfEqualDefine(key="vpn", from_=StaticDefault(content=False), value=[True])),
            make_text_field("reason"),
            FieldDefinition(key="vpn", define=IfEndDefine(key="vpn")),
        ])
        schema = service.publish(SchemaDraft(flows=[FlowStepDraft(module=form)]), "alice")

        stored = service.get_schema(schema.schema_id).flows[0].module.fields[0].define
        assert stored.from_.content is False
        assert stored.value == [True]


class TestCatalog:
    def test_missing_schema(self, service):
        with pytest.raises(SchemaNotFoundError):
            service.get_schema("nope")

    def test_available_schemas_follow_first_step_operator(self, service, publish, make_text_field, role_operator):
        open_schema = publish((NoOperator(), FormDefinition(fields=[make_text_field("a")])))
        reviewers_only = publish((role_operator, FormDefinition(fields=[make_text_field("b")])))

        assert {s.schema_id for s in service.list_available_schemas("alice")} == {open_schema.schema_id}
        assert {s.schema_id for s in service.list_available_schemas("bob")} == {
            open_schema.schema_id, reviewers_only.schema_id
        }

    def test_probable_assign_users(self, service, publish, make_text_field, role_operator):
        schema = publish(
            (NoOperator(), FormDefinition(fields=[make_text_field("a")])),
            (role_operator, ReviewDefinition()),
        )
        review_flow = schema.flows[1].flow_id

        users = service.probable_assign_users(schema.schema_id, review_flow)
        assert [u.user_id for u in users] == ["bob", "carol"]
        assert service.probable_assign_users(schema.schema_id, schema.flows[0].flow_id) == []
        with pytest.raises(FlowNotFoundError):
            service.probable_assign_users(schema.schema_id, "nope")

    def test_list_and_count(self, service, publish, make_text_field):
        for _ in range(3):
            publish((NoOperator(), FormDefinition(fields=[make_text_field("a")])))
        assert service.count_schemas() == 3
        assert len(service.list_schemas(skip=1, limit=5)) == 2
