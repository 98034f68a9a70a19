"""
Pytest Configuration and Fixtures

Every test runs against a fresh in-memory mongomock database installed
in place of the real MongoDB handle.
"""

import pytest
import mongomock

from ticketflow.repositories import mongo_client
from ticketflow.repositories.schema_repo import clear_schema_cache
from ticketflow.domain.models import (
    SchemaDraft, FlowStepDraft, FormDefinition, ReviewDefinition,
    FieldDefinition, SingleLineTextDefine, BoolDefine, UserOperator,
    RoleOperator, NoOperator
)
from ticketflow.services.directory_service import DirectoryService
from ticketflow.services.schema_service import SchemaService


@pytest.fixture(autouse=True)
def test_db():
    """Provide an isolated database per test."""
    db = mongomock.MongoClient()["ticketflow_test"]
    mongo_client.set_database(db)
    clear_schema_cache()
    yield db
    mongo_client.set_database(None)
    clear_schema_cache()


@pytest.fixture
def directory(test_db):
    """
    Users alice (requester), bob and carol (reviewers), dave (inactive)
    and the role 'reviewers' = [bob, carol].
    """
    service = DirectoryService()
    for user_id, name, active in (
        ("alice", "Alice", True),
        ("bob", "Bob", True),
        ("carol", "Carol", True),
        ("dave", "Dave", False),
    ):
        service.create_user(display_name=name, user_id=user_id, active=active)
    service.create_role(name="Reviewers", member_ids=["bob", "carol"], role_id="reviewers")
    service.create_role(name="Nobody", member_ids=[], role_id="empty")
    return service


def text_field(key, required=True, max_texts=50, **define):
    return FieldDefinition(
        key=key,
        name_en=key.title(),
        required=required,
        define=SingleLineTextDefine(max_texts=max_texts, **define),
    )


def bool_field(key, required=True):
    return FieldDefinition(key=key, name_en=key.title(), required=required, define=BoolDefine())


@pytest.fixture
def make_text_field():
    return text_field


@pytest.fixture
def make_bool_field():
    return bool_field


@pytest.fixture
def publish(directory):
    """Publish a schema from (operator, module) pairs as 'alice'."""
    service = SchemaService()

    def _publish(*steps, manager_ids=None, actor_id="alice", title="Access request"):
        draft = SchemaDraft(
            title_en=title,
            manager_ids=manager_ids or [],
            flows=[
                FlowStepDraft(name_en=f"Step {i}", operator=operator, module=module)
                for i, (operator, module) in enumerate(steps)
            ],
        )
        return service.publish(draft, actor_id)

    return _publish


@pytest.fixture
def form_review_schema(publish):
    """Requester form, then a review by bob"""

    def _build(restarted=False):
        form = FormDefinition(fields=[text_field("reason")])
        review = ReviewDefinition(restarted=restarted)
        return publish(
            (NoOperator(), form),
            (UserOperator(user_id="bob"), review),
            manager_ids=["carol"],
        )

    return _build


@pytest.fixture
def role_operator():
    return RoleOperator(role_id="reviewers")
