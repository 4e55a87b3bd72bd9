"""CardioCheck - Conversational heart disease risk assessment

Entry points:
- start_session / handle_message / end_session: the guided questionnaire
- calculate_risk: one-shot scoring of a complete patient mapping
- recalculate / amend_answer: re-score a session after correcting answers
- get_metrics: tracing summary for dashboards

Run ``python cardio_main.py`` for an interactive terminal chat.
"""
import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

from agents.intake_agent import IntakeAgent, IntakeReply
from agents.risk_agent import RiskAgent, RiskReport
from core.errors import ParseAmbiguous, SessionNotFound, ValidationError
from core.observability import get_metrics_summary
from models.fields import ALL_FIELDS, FIELDS, REQUIRED_FIELDS
from models.risk import PatientData
from services.session_service import InMemorySessionService, SessionStore
from tools.answer_parser import coerce_value

logger = logging.getLogger(__name__)


class CardioCheckSystem:
    """
    ORCHESTRATOR: the inbound contract of the assessment service.

    Phase 1 (INTAKE): IntakeAgent asks one question per turn until the record is complete
    Phase 2 (RISK): RiskAgent scores the frozen record with every applicable model
    Phase 3 (COACHING): CoachAgent explains the result, advice and population comparison

    Sessions live in the injected SessionStore; every collaborator can be
    replaced so tests never touch the network.
    """

    def __init__(self,
                 store: Optional[SessionStore] = None,
                 intake: Optional[IntakeAgent] = None,
                 risk_agent: Optional[RiskAgent] = None):
        self.store = store if store is not None else InMemorySessionService()
        self.risk_agent = risk_agent if risk_agent is not None else RiskAgent()
        self.intake = intake if intake is not None else IntakeAgent(self.store, risk_agent=self.risk_agent)

    # === Guided flow ===

    def start_session(self, session_id: Optional[str] = None) -> Dict[str, str]:
        reply = self.intake.start(session_id)
        return {"session_id": reply.session_id, "message": reply.message}

    async def handle_message(self, session_id: str, utterance: str) -> IntakeReply:
        """Raises SessionNotFound for unknown or evicted sessions."""
        return await self.intake.handle_message(session_id, utterance)

    def end_session(self, session_id: str) -> bool:
        """Forget a session; False when it was already gone."""
        return self.store.delete(session_id)

    # === Direct calculation ===

    async def calculate_risk(self, patient: Mapping[str, Any], include_comparison: bool = True) -> RiskReport:
        """Score a patient mapping (camelCase or snake_case keys).

        Raises:
            ValidationError: when age or gender is missing.
            InsufficientData: when no model could use the data.
        """
        data = PatientData.from_mapping(patient)
        missing = data.missing(REQUIRED_FIELDS)
        if missing:
            raise ValidationError(missing)
        return await self.risk_agent.assess(data, include_comparison=include_comparison)

    async def recalculate(self, session_id: str, include_comparison: bool = True) -> RiskReport:
        """Re-run the models on a session's current answers.

        Raises:
            SessionNotFound: for unknown session ids.
            ValidationError: when age or gender has not been answered.
        """
        async with self.intake.lock_for(session_id):
            session = self.intake.get_session(session_id)
            missing = session.record.snapshot().missing(REQUIRED_FIELDS)
            if missing:
                raise ValidationError(missing)
            report = await self.intake.calculate(session, include_comparison=include_comparison)
            session.touch()
            self.store.put(session)
            logger.info(f"[{session_id}] recalculated: {report.assessment.risk_percentage}%")
            return report

    async def amend_answer(self, session_id: str, field: str, value: Any) -> Dict[str, Any]:
        """Re-open a session's record and replace one answer.

        ``None`` records the field as declined. Returns the updated answers.

        Raises:
            SessionNotFound: for unknown session ids.
            KeyError: for unknown field names.
            ParseAmbiguous: when the value does not fit the field.
        """
        if field not in ALL_FIELDS:
            raise KeyError(f"Unknown field: {field}")

        async with self.intake.lock_for(session_id):
            session = self.intake.get_session(session_id)
            record = session.record
            record.reopen()

            if value is None:
                record.mark_unknown(field)
            else:
                if field in FIELDS:
                    cleaned = coerce_value(field, value)
                else:
                    cleaned = getattr(PatientData.from_mapping({field: value}), field, None)
                if cleaned is None:
                    raise ParseAmbiguous(field, str(value), "value does not fit the field")
                record.set_value(field, cleaned)

            session.touch()
            self.store.put(session)
            logger.info(f"[{session_id}] amended {field}")
            return record.to_dict()

    def get_metrics(self) -> dict:
        """Get observability metrics for this process."""
        return get_metrics_summary()


async def _chat(system: CardioCheckSystem):
    started = system.start_session()
    session_id = started["session_id"]
    print(f"CardioCheck: {started['message']}")

    while True:
        user_input = await asyncio.to_thread(input, "\nYou: ")
        if user_input.strip().lower() in ["exit", "quit"]:
            print("CardioCheck: Take care! Goodbye.")
            system.end_session(session_id)
            break
        try:
            reply = await system.handle_message(session_id, user_input)
        except SessionNotFound:
            print("CardioCheck: Your session has expired. Starting a new one.")
            started = system.start_session()
            session_id = started["session_id"]
            print(f"CardioCheck: {started['message']}")
            continue
        print(f"CardioCheck: {reply.message}")
        if reply.is_complete:
            print("\n(Type 'exit' to quit.)")

    await system.intake.drain()


def main():
    print("=== CardioCheck: Heart Disease Risk Assessment ===")
    print("Type 'exit' to quit.\n")
    try:
        asyncio.run(_chat(CardioCheckSystem()))
    except (KeyboardInterrupt, EOFError):
        print("\nCardioCheck: Goodbye.")


if __name__ == "__main__":
    main()
