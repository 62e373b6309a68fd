"""Demo catalog: coverage types, questions, a document rule and a demo policy holder.

Run ``python -m claim_intake.db.seed`` to populate the configured database.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from claim_intake.db.models import (
    CoverageTypeRow,
    PolicyCoverageRow,
    PolicyRow,
    QuestionRow,
    RuleRow,
    UserPolicyRow,
    UserProfileRow,
)

logger = logging.getLogger(__name__)

DEMO_POLICY_ID = "travel-plus"
DEMO_USER_ID = "demo-user"
DEMO_USER_NAME = "Asha Rao"

COVERAGE_TYPES: list[dict] = [
    {
        "id": "baggage_loss",
        "name": "Baggage Loss",
        "description": "Checked baggage lost, delayed or damaged by the carrier",
        "category": "travel",
    },
    {
        "id": "flight_cancellation",
        "name": "Flight Cancellation",
        "description": "Flights cancelled by the airline before departure",
        "category": "travel",
    },
]

QUESTIONS: list[dict] = [
    {
        "id": "bl_airline",
        "coverage_type_id": "baggage_loss",
        "question_text": "Which airline were you flying with?",
        "field_name": "airline",
        "order_index": 1,
    },
    {
        "id": "bl_flight_number",
        "coverage_type_id": "baggage_loss",
        "question_text": "What was your flight number?",
        "field_name": "flight_number",
        "help_text": "You can find it on your boarding pass, e.g. SA-204.",
        "order_index": 2,
    },
    {
        "id": "bl_tag",
        "coverage_type_id": "baggage_loss",
        "question_text": "What is the baggage tag number?",
        "field_name": "baggage_tag_number",
        "help_text": "It is printed on the sticker the airline attached to your boarding pass.",
        "order_index": 3,
    },
    {
        "id": "bl_reported",
        "coverage_type_id": "baggage_loss",
        "question_text": "When did you report the loss to the airline?",
        "field_type": "date",
        "field_name": "date_reported",
        "order_index": 4,
    },
    {
        "id": "bl_value",
        "coverage_type_id": "baggage_loss",
        "question_text": "What is the estimated value of the contents (USD)?",
        "field_type": "number",
        "field_name": "contents_value",
        "order_index": 5,
    },
    {
        "id": "fc_reason",
        "coverage_type_id": "flight_cancellation",
        "question_text": "Why was the flight cancelled?",
        "field_type": "select",
        "field_name": "cancellation_reason",
        "options": ["weather", "mechanical", "crew", "airline_decision", "other"],
        "order_index": 1,
    },
    {
        "id": "fc_notice",
        "coverage_type_id": "flight_cancellation",
        "question_text": "Did the airline give you more than 14 days notice?",
        "field_type": "select",
        "options": ["yes", "no"],
        "order_index": 2,
    },
]

RULES: list[dict] = [
    {
        "id": "bl_pir_required",
        "coverage_type_id": "baggage_loss",
        "name": "Baggage loss needs the airline's irregularity report",
        "priority": 10,
        "conditions": [],
        "actions": [{"type": "require_document", "documents": ["airline_pir"]}],
    },
    {
        "id": "fc_advance_notice",
        "coverage_type_id": "flight_cancellation",
        "name": "Cancellations announced more than 14 days ahead are not covered",
        "priority": 20,
        "conditions": [{"field": "fc_notice", "operator": "equals", "value": "yes"}],
        "actions": [
            {
                "type": "block_submission",
                "error_message": "Cancellations notified more than 14 days before departure are not covered.",
            }
        ],
    },
]

POLICY_COVERAGE: list[dict] = [
    {"coverage_type_id": "baggage_loss", "coverage_limit": 2000.0, "deductible": 50.0},
    {"coverage_type_id": "flight_cancellation", "coverage_limit": 1500.0, "deductible": 0.0},
]


def seed_demo_catalog(session_factory: sessionmaker) -> None:
    """Insert coverage types, questions, rules and the demo policy (idempotent)."""
    with session_factory() as session, session.begin():
        for item in COVERAGE_TYPES:
            session.merge(CoverageTypeRow(**item))
        for item in QUESTIONS:
            session.merge(QuestionRow(**item))
        for item in RULES:
            session.merge(RuleRow(**item))

        if session.get(PolicyRow, DEMO_POLICY_ID) is None:
            session.add(PolicyRow(id=DEMO_POLICY_ID, name="Travel Plus", coverage_items=[]))
            session.flush()
            for link in POLICY_COVERAGE:
                session.add(PolicyCoverageRow(policy_id=DEMO_POLICY_ID, **link))
    logger.info(
        "Seeded catalog: coverage_types=%d questions=%d rules=%d", len(COVERAGE_TYPES), len(QUESTIONS), len(RULES)
    )


def seed_demo_user(
    session_factory: sessionmaker,
    user_id: str = DEMO_USER_ID,
    full_name: str | None = DEMO_USER_NAME,
    policy_id: str = DEMO_POLICY_ID,
) -> None:
    """Give *user_id* a profile and an active policy (idempotent)."""
    with session_factory() as session, session.begin():
        session.merge(UserProfileRow(user_id=user_id, full_name=full_name))
        link = session.scalar(
            select(UserPolicyRow).where(UserPolicyRow.user_id == user_id, UserPolicyRow.policy_id == policy_id)
        )
        if link is None:
            session.add(UserPolicyRow(user_id=user_id, policy_id=policy_id, is_active=True))
        else:
            link.is_active = True
    logger.info("Seeded user: user_id=%s policy_id=%s", user_id, policy_id)


if __name__ == "__main__":
    from claim_intake.db.database import SessionLocal, init_db

    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")
    init_db()
    seed_demo_catalog(SessionLocal)
    seed_demo_user(SessionLocal)
