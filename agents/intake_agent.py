"""IntakeAgent - Guided cardiovascular questionnaire

Design Decisions:
    1. One question at a time, in the fixed QUESTION_FLOW order
    2. Answers are parsed by an ordered list of attempts (blood-pressure pair,
       AI extraction, rule parser); the first attempt with an outcome wins
    3. "I don't know" is accepted for optional fields and stored as unknown;
       required fields (age, gender) are asked again
    4. Answers never advance on misunderstanding; the question is repeated
    5. Some answers open a short follow-up sub-flow whose replies are stored verbatim
    6. After the last question the user confirms the calculation, then is
       offered lowering advice and a population comparison

Every field update schedules a best-effort FHIR write in the background. Writes
for one session run in order; their outcome never reaches the conversation.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from dataclasses import dataclass
import asyncio
import logging
import weakref

from agents.coach_agent import CoachAgent
from agents.extraction_agent import ExtractionAgent
from agents.risk_agent import RiskAgent, RiskReport
from core.errors import InsufficientData, SessionNotFound
from core.observability import Tracer
from models.fields import FIELDS, FOLLOW_UPS, QUESTION_FLOW
from models.risk import PatientData, Recommendation, RiskAssessment
from models.session import ConversationSession, ConversationStage
from services.fhir_service import FhirService
from services.session_service import InMemorySessionService, SessionStore, new_session_id
from tools.answer_parser import ParseKind, ParseOutcome, is_affirmative, parse, parse_blood_pressure_pair
from tools.recommendations import generate_recommendations

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Hello! I'm here to help you assess your risk for heart disease. "
    "Let's start with a simple question: {prompt}"
)
CONFIRM_MESSAGE = (
    "Thank you! I have all the information I need. "
    "Would you like me to calculate your heart disease risk now? (yes/no)"
)
DEFERRAL_MESSAGE = (
    "Okay, I've saved your data. You can calculate your risk anytime by asking for a recalculation."
)
CLOSING_MESSAGE = "Thank you for completing the assessment! You can view detailed results anytime."
COMPLETED_MESSAGE = (
    "Your assessment is complete. You can view your detailed results or recalculate your risk anytime."
)
INSUFFICIENT_DATA_MESSAGE = (
    "I'm sorry, I couldn't calculate your risk with the information provided. "
    "Please make sure your age, gender and blood pressure are included, then try again."
)
REQUIRED_REPROMPT = (
    "I understand you might not be sure, but I need an estimate for your {label} "
    "to calculate your risk correctly. {prompt}"
)
UNPARSEABLE_REPROMPT = "I didn't quite catch that. {prompt}"

Attempt = Callable[[str, str], Awaitable[Optional[ParseOutcome]]]


@dataclass
class IntakeReply:
    """What the user sees after one turn."""
    session_id: str
    message: str
    stage: ConversationStage
    risk_assessment: Optional[RiskAssessment] = None
    recommendations: Optional[List[Recommendation]] = None

    @property
    def is_complete(self) -> bool:
        return self.stage is ConversationStage.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "message": self.message,
            "stage": self.stage.value,
            "is_complete": self.is_complete,
            "risk_assessment": self.risk_assessment.to_dict() if self.risk_assessment else None,
            "recommendations": (
                [r.to_dict() for r in self.recommendations] if self.recommendations is not None else None
            ),
        }


class IntakeAgent:
    """Conversation state machine for one or many independent sessions."""

    def __init__(self,
                 store: Optional[SessionStore] = None,
                 extractor: Optional[ExtractionAgent] = None,
                 risk_agent: Optional[RiskAgent] = None,
                 coach: Optional[CoachAgent] = None,
                 persistence: Optional[FhirService] = None):
        self.store = store if store is not None else InMemorySessionService()
        self.extractor = extractor if extractor is not None else ExtractionAgent()
        self.risk_agent = risk_agent if risk_agent is not None else RiskAgent()
        self.coach = coach if coach is not None else CoachAgent()
        self.persistence = persistence if persistence is not None else FhirService()

        self._attempts: List[Attempt] = [
            self._attempt_blood_pressure_pair,
            self._attempt_ai_extraction,
            self._attempt_rules,
        ]
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._pending: Set[asyncio.Task] = set()
        self._last_write: Dict[str, asyncio.Task] = {}

    # === Session lifecycle ===

    def start(self, session_id: Optional[str] = None) -> IntakeReply:
        """Create a session (replacing any with the same id) and ask the first question."""
        session = ConversationSession(session_id=session_id or new_session_id())
        message = WELCOME_MESSAGE.format(prompt=FIELDS[QUESTION_FLOW[0]].prompt)
        session.add_agent_message(message)
        self.store.put(session)
        logger.info(f"Started intake session {session.session_id}")
        return IntakeReply(session.session_id, message, session.stage)

    def get_session(self, session_id: str) -> ConversationSession:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def handle_message(self, session_id: str, utterance: str) -> IntakeReply:
        """Process one message. Messages for the same session run one at a time.

        Raises:
            SessionNotFound: for unknown or evicted session ids.
        """
        lock = self.lock_for(session_id)
        async with lock:
            session = self.get_session(session_id)
            reply = await self.handle(session, utterance)
            session.touch()
            self.store.put(session)
            return reply

    async def handle(self, session: ConversationSession, utterance: str) -> IntakeReply:
        utterance = utterance or ""
        session.add_user_message(utterance)

        with Tracer("IntakeTurn", utterance) as trace:
            trace.metadata["stage_before"] = session.stage.value
            handler = self._handlers()[session.stage]
            reply = await handler(session, utterance)
            trace.metadata["stage_after"] = session.stage.value

        session.add_agent_message(reply.message)
        logger.debug(f"[{session.session_id}] {trace.metadata['stage_before']} -> {session.stage.value}")
        return reply

    def _handlers(self):
        return {
            ConversationStage.COLLECTING_FIELD: self._on_field_answer,
            ConversationStage.IN_FOLLOW_UP: self._on_follow_up_answer,
            ConversationStage.AWAITING_CALCULATE_CONFIRMATION: self._on_calculate_confirmation,
            ConversationStage.AWAITING_LOWERING_ADVICE: self._on_lowering_advice,
            ConversationStage.AWAITING_COMPARISON_CONFIRMATION: self._on_comparison_confirmation,
            ConversationStage.COMPLETED: self._on_completed,
        }

    # === Parsing attempts ===

    async def _attempt_blood_pressure_pair(self, utterance: str, field_name: str) -> Optional[ParseOutcome]:
        if field_name not in ("systolic_bp", "diastolic_bp"):
            return None
        pair = parse_blood_pressure_pair(utterance)
        if pair is None:
            return None
        return ParseOutcome.found_many({"systolic_bp": pair[0], "diastolic_bp": pair[1]})

    async def _attempt_ai_extraction(self, utterance: str, field_name: str) -> Optional[ParseOutcome]:
        return await self.extractor.try_extract(utterance, field_name)

    async def _attempt_rules(self, utterance: str, field_name: str) -> Optional[ParseOutcome]:
        return parse(utterance, field_name)

    async def parse_answer(self, utterance: str, field_name: str) -> ParseOutcome:
        for attempt in self._attempts:
            outcome = await attempt(utterance, field_name)
            if outcome is not None:
                return outcome
        return ParseOutcome.unparseable()

    # === Stage handlers ===

    async def _on_field_answer(self, session: ConversationSession, utterance: str) -> IntakeReply:
        field_name = session.current_field
        spec = FIELDS[field_name]
        outcome = await self.parse_answer(utterance, field_name)

        if outcome.kind is ParseKind.UNPARSEABLE:
            return self._reply(session, UNPARSEABLE_REPROMPT.format(prompt=spec.prompt))

        if outcome.kind is ParseKind.UNKNOWN:
            if spec.required:
                return self._reply(session, REQUIRED_REPROMPT.format(label=spec.label, prompt=spec.prompt))
            session.record.mark_unknown(field_name)
            logger.debug(f"[{session.session_id}] {field_name} left unknown")
            self._schedule_persist(session)
            return self._advance(session)

        for name, value in outcome.values.items():
            session.record.set_value(name, value)
        self._schedule_persist(session)

        follow_up_id = spec.follow_up_for(outcome.value_for(field_name))
        if follow_up_id:
            session.stage = ConversationStage.IN_FOLLOW_UP
            session.follow_up_id = follow_up_id
            return self._reply(session, FOLLOW_UPS[follow_up_id].prompt)
        return self._advance(session)

    async def _on_follow_up_answer(self, session: ConversationSession, utterance: str) -> IntakeReply:
        follow_up = FOLLOW_UPS[session.follow_up_id]
        answer = utterance.strip()
        if not answer:
            return self._reply(session, follow_up.prompt)

        session.record.set_value(follow_up.target_field, answer)
        self._schedule_persist(session)

        if follow_up.next_id:
            session.follow_up_id = follow_up.next_id
            return self._reply(session, FOLLOW_UPS[follow_up.next_id].prompt)

        session.follow_up_id = None
        session.stage = ConversationStage.COLLECTING_FIELD
        return self._advance(session)

    async def _on_calculate_confirmation(self, session: ConversationSession, utterance: str) -> IntakeReply:
        if not is_affirmative(utterance):
            session.stage = ConversationStage.COMPLETED
            return self._reply(session, DEFERRAL_MESSAGE)

        try:
            report = await self.calculate(session)
        except InsufficientData as e:
            logger.info(f"[{session.session_id}] risk not computed: {e}")
            session.stage = ConversationStage.COMPLETED
            return self._reply(session, INSUFFICIENT_DATA_MESSAGE)

        session.stage = ConversationStage.AWAITING_LOWERING_ADVICE
        return self._reply(
            session,
            self.coach.risk_summary(report.assessment),
            report.assessment,
            report.recommendations,
        )

    async def _on_lowering_advice(self, session: ConversationSession, utterance: str) -> IntakeReply:
        patient = session.record.snapshot()
        assessment = session.risk_assessment
        recommendations = generate_recommendations(assessment, patient)
        session.stage = ConversationStage.AWAITING_COMPARISON_CONFIRMATION

        if is_affirmative(utterance):
            message = self.coach.lowering_advice(patient, recommendations)
        else:
            message = self.coach.comparison_question(patient)
        return self._reply(session, message, assessment, recommendations)

    async def _on_comparison_confirmation(self, session: ConversationSession, utterance: str) -> IntakeReply:
        patient = session.record.snapshot()
        assessment = session.risk_assessment
        session.stage = ConversationStage.COMPLETED

        if is_affirmative(utterance):
            message = self.coach.comparison_text(patient, assessment.population_comparison)
        else:
            message = CLOSING_MESSAGE
        return self._reply(session, message, assessment, generate_recommendations(assessment, patient))

    async def _on_completed(self, session: ConversationSession, utterance: str) -> IntakeReply:
        return self._reply(session, COMPLETED_MESSAGE, session.risk_assessment)

    # === Calculation ===

    async def calculate(self, session: ConversationSession, include_comparison: bool = True) -> RiskReport:
        """Freeze the record and score it.

        Raises:
            InsufficientData: when no model could use the record.
        """
        patient = session.record.freeze()
        report = await self.risk_agent.assess(patient, include_comparison=include_comparison)
        session.risk_assessment = report.assessment
        return report

    # === Helpers ===

    def _advance(self, session: ConversationSession) -> IntakeReply:
        """Move past the current field and any already-answered ones."""
        session.cursor += 1
        while session.cursor < len(QUESTION_FLOW) and session.record.is_answered(QUESTION_FLOW[session.cursor]):
            session.cursor += 1

        if session.cursor >= len(QUESTION_FLOW):
            session.stage = ConversationStage.AWAITING_CALCULATE_CONFIRMATION
            return self._reply(session, CONFIRM_MESSAGE)
        return self._reply(session, FIELDS[QUESTION_FLOW[session.cursor]].prompt)

    def _reply(self, session: ConversationSession, message: str,
               assessment: Optional[RiskAssessment] = None,
               recommendations: Optional[List[Recommendation]] = None) -> IntakeReply:
        return IntakeReply(session.session_id, message, session.stage, assessment, recommendations)

    def _schedule_persist(self, session: ConversationSession):
        """Queue a FHIR write that starts only after the session's previous one finished."""
        if not self.persistence.enabled:
            return
        session_id = session.session_id
        previous = self._last_write.get(session_id)
        task = asyncio.create_task(self._persist(session_id, session.record.snapshot(), previous))
        self._last_write[session_id] = task
        self._pending.add(task)
        task.add_done_callback(lambda t: self._write_done(session_id, t))

    def _write_done(self, session_id: str, task: asyncio.Task):
        self._pending.discard(task)
        if self._last_write.get(session_id) is task:
            del self._last_write[session_id]

    async def _persist(self, session_id: str, patient: PatientData,
                       previous: Optional[asyncio.Task] = None):
        if previous is not None:
            await asyncio.wait({previous})
        try:
            await self.persistence.save(session_id, patient)
        except Exception as e:
            logger.warning(f"[{session_id}] background FHIR save failed: {e}")

    async def drain(self):
        """Wait for outstanding background writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
