"""Form engine: block structure, conditional visibility and submission checks"""
from datetime import timedelta

import pytest

from ticketflow.domain.models import (
    FormDefinition, FieldDefinition, IfEqualDefine, IfEndDefine, StaticDefault,
    DynamicDefault, DynamicDefaultRef, SingleLineTextDefine, MultiLineTextDefine,
    SingleChoiceDefine, MultipleChoiceDefine, BoolDefine, ImageDefine, FileDefine,
    ChoiceOption, BlobRef
)
from ticketflow.domain.enums import FieldType, BlobKind, TextType
from ticketflow.domain.errors import FormStructureError, FieldErrors, InvalidSubmissionError
from ticketflow.engine.condition_evaluator import values_equal
from ticketflow.engine.field_rules import FIELD_RULES
from ticketflow.engine.form_engine import FormEngine, FormContext
from ticketflow.utils.time import utc_now


def if_equal(key, default, values):
    return FieldDefinition(key=key, define=IfEqualDefine(key=key, from_=StaticDefault(content=default), value=values))


def if_end(key):
    return FieldDefinition(key=key, define=IfEndDefine(key=key))


def field(key, define, required=True, editable=True):
    return FieldDefinition(key=key, required=required, editable=editable, define=define)


def consent_form():
    return FormDefinition(fields=[
        field("name", SingleLineTextDefine(max_texts=1)),
        if_equal("consent", False, [True]),
        field("consent_confirmed", BoolDefine()),
        if_end("consent"),
    ])


@pytest.fixture
def engine():
    return FormEngine()


# =============================================================================
# Structure
# =============================================================================

class TestStructure:
    def test_balanced_blocks_compile_to_tree(self, engine):
        form = FormDefinition(fields=[
            field("a", BoolDefine()),
            if_equal("a", False, [True]),
            field("b", BoolDefine()),
            if_equal("b", False, [True]),
            field("c", BoolDefine()),
            if_end("b"),
            if_end("a"),
        ])

        layout = engine.validate_structure(form)

        assert len(layout.blocks) == 3
        assert layout.blocks[2].parent == 1
        assert [(entry.field.key, entry.block) for entry in layout.fields] == [("a", 0), ("b", 1), ("c", 2)]

    def test_every_structural_problem_is_reported(self, engine):
        form = FormDefinition(fields=[
            field("x", BoolDefine()),
            field("x", BoolDefine()),
            if_end("orphan"),
            if_equal("k", None, [1]),
            if_equal("k", None, [2]),
            if_end("other"),
        ])

        with pytest.raises(FormStructureError) as exc_info:
            engine.validate_structure(form)

        types = [error["type"] for error in exc_info.value.details["errors"]]
        assert "DUPLICATE_FIELD_KEY" in types
        assert "UNMATCHED_IF_END" in types
        assert "NESTED_SAME_KEY" in types
        assert "MISMATCHED_IF_END" in types
        assert "UNCLOSED_BLOCK" in types

    def test_markers_are_not_answerable(self, engine):
        assert [f.key for f in engine.answerable_fields(consent_form())] == ["name", "consent_confirmed"]

    def test_every_answerable_type_has_a_rule(self):
        answerable = {t for t in FieldType if not t.is_marker}
        assert answerable == set(FIELD_RULES)


# =============================================================================
# Visibility
# =============================================================================

class TestVisibility:
    def test_static_default_drives_condition_when_unanswered(self, engine):
        visible = engine.visible_fields(consent_form(), {"name": "A"})
        assert [f.key for f in visible] == ["name"]

    def test_answer_overrides_default(self, engine):
        visible = engine.visible_fields(consent_form(), {"name": "A", "consent": True})
        assert [f.key for f in visible] == ["name", "consent_confirmed"]

    def test_hidden_parent_hides_children(self, engine):
        form = FormDefinition(fields=[
            if_equal("outer", "no", ["yes"]),
            if_equal("inner", "yes", ["yes"]),
            field("deep", BoolDefine()),
            if_end("inner"),
            if_end("outer"),
        ])
        assert engine.visible_fields(form, {"inner": "yes"}) == []
        assert [f.key for f in engine.visible_fields(form, {"outer": "yes"})] == ["deep"]

    def test_list_condition_values(self, engine):
        form = FormDefinition(fields=[
            if_equal("tags", [], [["a", "b"]]),
            field("why", SingleLineTextDefine(max_texts=10)),
            if_end("tags"),
        ])
        assert engine.visible_fields(form, {"tags": ["a", "b"]})
        assert not engine.visible_fields(form, {"tags": ["b", "a"]})

    def test_equality_is_exact(self):
        assert values_equal(1, 1)
        assert not values_equal(True, 1)
        assert not values_equal(0, False)
        assert not values_equal("1", 1)
        assert values_equal([1, "a"], [1, "a"])
        assert not values_equal([1], [True])

    def test_dynamic_default_uses_context(self, engine):
        ref = DynamicDefaultRef(form_id="f-prev", field_key="kind", value="internal")
        form = FormDefinition(fields=[
            FieldDefinition(key="kind", define=IfEqualDefine(key="kind", from_=DynamicDefault(content=ref), value=["external"])),
            field("company", SingleLineTextDefine(max_texts=50)),
            if_end("kind"),
        ])

        assert engine.visible_fields(form, {}) == []
        context = FormContext(answer_lookup=lambda r: "external")
        assert [f.key for f in engine.visible_fields(form, {}, context)] == ["company"]


# =============================================================================
# Submission
# =============================================================================

class TestSubmission:
    def test_consent_unanswered_is_valid(self, engine):
        assert engine.validate_submission(consent_form(), {"name": "A"}) == {"name": "A"}

    def test_consent_true_requires_the_bool(self, engine):
        with pytest.raises(FieldErrors) as exc_info:
            engine.validate_submission(consent_form(), {"name": "A", "consent": True})
        assert exc_info.value.fields["consent_confirmed"]["code"] == "required"

        answers = engine.validate_submission(
            consent_form(), {"name": "A", "consent": True, "consent_confirmed": False}
        )
        assert answers == {"name": "A", "consent": True, "consent_confirmed": False}

    def test_hidden_required_fields_are_dropped(self, engine):
        answers = engine.validate_submission(
            consent_form(), {"name": "A", "consent_confirmed": "garbage"}
        )
        assert "consent_confirmed" not in answers

    def test_too_many_choices_reported_with_other_errors(self, engine):
        options = [ChoiceOption(text=t, value=t) for t in ("r", "w", "x")]
        form = FormDefinition(fields=[
            field("name", SingleLineTextDefine(max_texts=3)),
            field("perms", MultipleChoiceDefine(options=options, max_options=2)),
        ])

        with pytest.raises(FieldErrors) as exc_info:
            engine.validate_submission(form, {"name": "too long", "perms": ["r", "w", "x"]})

        fields = exc_info.value.fields
        assert fields["perms"]["code"] == "too_many_choices"
        assert fields["name"]["code"] == "text_too_long"

    def test_text_rules(self, engine):
        form = FormDefinition(fields=[
            field("email", SingleLineTextDefine(max_texts=100, text_type=TextType.EMAIL)),
            field("notes", MultiLineTextDefine(max_texts=100, max_lines=2)),
            field("blank", SingleLineTextDefine(max_texts=10)),
        ])

        with pytest.raises(FieldErrors) as exc_info:
            engine.validate_submission(form, {"email": "nope", "notes": "a\nb\nc", "blank": "   "})

        fields = exc_info.value.fields
        assert fields["email"]["code"] == "invalid_format"
        assert fields["notes"]["code"] == "text_too_many_lines"
        assert fields["blank"]["code"] == "required"

    def test_choice_rules(self, engine):
        options = [ChoiceOption(text="One", value=1), ChoiceOption(text="Two", value=2)]
        form = FormDefinition(fields=[
            field("single", SingleChoiceDefine(options=options)),
            field("multi", MultipleChoiceDefine(options=options, max_options=2)),
        ])

        with pytest.raises(FieldErrors) as exc_info:
            engine.validate_submission(form, {"single": True, "multi": [1, 1]})
        assert exc_info.value.fields["single"]["code"] == "invalid_type"
        assert exc_info.value.fields["multi"]["code"] == "duplicate_choice"

        with pytest.raises(FieldErrors) as exc_info:
            engine.validate_submission(form, {"single": "1", "multi": [3]})
        assert exc_info.value.fields["single"]["code"] == "not_valid_choice"
        assert exc_info.value.fields["multi"]["code"] == "not_valid_choice"

    def test_non_editable_field_stores_default(self, engine):
        form = FormDefinition(fields=[
            field("source", SingleLineTextDefine(max_texts=20, default=StaticDefault(content="portal")), editable=False),
        ])
        assert engine.validate_submission(form, {"source": "hacked"}) == {"source": "portal"}

    def test_expired_form_rejects_submissions(self, engine):
        form = consent_form()
        form.expired_at = utc_now() - timedelta(minutes=1)
        with pytest.raises(InvalidSubmissionError):
            engine.validate_submission(form, {"name": "A"})


class TestBlobs:
    def _context(self, *blobs):
        registry = {blob.blob_id: blob for blob in blobs}
        return FormContext(blob_lookup=registry.get)

    def _blob(self, blob_id, kind, mime, size, width=None, height=None):
        return BlobRef(
            blob_id=blob_id, kind=kind, mime=mime, size=size,
            width=width, height=height, uploaded_by="alice", created_at=utc_now(),
        )

    def test_image_and_file_checks(self, engine):
        form = FormDefinition(fields=[
            field("avatar", ImageDefine(max_size=1000, max_width=100, mimes=["image/png"])),
            field("doc", FileDefine(max_size=10, mimes=["application/pdf"])),
            field("scan", FileDefine(max_size=1000)),
        ])
        context = self._context(
            self._blob("img1", BlobKind.IMAGE, "image/png", 500, width=200, height=50),
            self._blob("pdf1", BlobKind.FILE, "application/pdf", 20),
        )

        with pytest.raises(FieldErrors) as exc_info:
            engine.validate_submission(form, {"avatar": "img1.png", "doc": "pdf1", "scan": "img1"}, context)

        fields = exc_info.value.fields
        assert fields["avatar"]["code"] == "invalid_dimensions"
        assert fields["doc"]["code"] == "too_large"
        assert fields["scan"]["code"] == "not_uploaded"

    def test_valid_blob_reference(self, engine):
        form = FormDefinition(fields=[field("doc", FileDefine(max_size=100, mimes=["application/pdf"]))])
        context = self._context(self._blob("pdf1", BlobKind.FILE, "application/pdf", 20))
        assert engine.validate_submission(form, {"doc": "pdf1.pdf"}, context) == {"doc": "pdf1.pdf"}
