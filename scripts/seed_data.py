"""
Seed Data Script - Creates a demo directory and an access-request schema
Run: python -m scripts.seed_data
"""
from ticketflow.repositories.mongo_client import get_collection, create_indexes
from ticketflow.domain.models import (
    SchemaDraft, FlowStepDraft, FormDefinition, ReviewDefinition, FieldDefinition,
    SingleLineTextDefine, MultiLineTextDefine, SingleChoiceDefine, BoolDefine,
    IfEqualDefine, IfEndDefine, StaticDefault, ChoiceOption, NoOperator, RoleOperator
)
from ticketflow.domain.enums import TextType
from ticketflow.services.directory_service import DirectoryService
from ticketflow.services.schema_service import SchemaService


def create_directory():
    """Create demo users and the it-reviewers role"""
    service = DirectoryService()
    for user_id, name in (("u-requester", "Rita Requester"), ("u-reviewer", "Rob Reviewer"), ("u-manager", "Mia Manager")):
        service.create_user(display_name=name, email=f"{user_id}@example.com", user_id=user_id)
    service.create_role(name="IT reviewers", member_ids=["u-reviewer"], role_id="it-reviewers")


def create_sample_schema():
    """Create a two-step VPN access schema: request form, then IT review"""
    form = FormDefinition(fields=[
        FieldDefinition(
            key="email", name_en="Work email", required=True,
            define=SingleLineTextDefine(max_texts=120, text_type=TextType.EMAIL),
        ),
        FieldDefinition(
            key="access", name_en="Access level", required=True,
            define=SingleChoiceDefine(options=[
                ChoiceOption(text="Read only", value="ro"),
                ChoiceOption(text="Read/write", value="rw"),
            ]),
        ),
        FieldDefinition(
            key="access",
            define=IfEqualDefine(key="access", from_=StaticDefault(content="ro"), value=["rw"]),
        ),
        FieldDefinition(
            key="justification", name_en="Justification", required=True,
            define=MultiLineTextDefine(max_texts=1000, max_lines=10),
        ),
        FieldDefinition(key="access", define=IfEndDefine(key="access")),
        FieldDefinition(key="accept_policy", name_en="I accept the VPN policy", required=True, define=BoolDefine()),
    ])

    draft = SchemaDraft(
        title_en="VPN access request",
        description_en="Request VPN access; read/write access needs a justification",
        manager_ids=["u-manager"],
        flows=[
            FlowStepDraft(name_en="Request", operator=NoOperator(), module=form),
            FlowStepDraft(
                name_en="IT review",
                operator=RoleOperator(role_id="it-reviewers"),
                module=ReviewDefinition(restarted=False),
            ),
        ],
    )
    return SchemaService().publish(draft, "u-manager")


def main():
    create_indexes()

    if get_collection("schemas").count_documents({}) > 0:
        print("Database already has data. Skipping seed.")
        return

    create_directory()
    schema = create_sample_schema()
    print(f"Seeded schema {schema.schema_id} ({schema.title_en})")


if __name__ == "__main__":
    main()
