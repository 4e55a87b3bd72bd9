from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from core.errors import RecordFrozen
from models.fields import ALL_FIELDS, QUESTION_FLOW
from models.risk import PatientData, RiskAssessment


class AnswerState(Enum):
    """Three states of a collected attribute."""
    UNSET = "unset"        # not asked yet
    UNKNOWN = "unknown"    # asked, respondent declined / doesn't know
    PRESENT = "present"    # asked and answered


@dataclass(frozen=True)
class Answer:
    state: AnswerState = AnswerState.UNSET
    value: Any = None

    @property
    def is_answered(self) -> bool:
        return self.state is not AnswerState.UNSET


UNSET_ANSWER = Answer()
UNKNOWN_ANSWER = Answer(AnswerState.UNKNOWN)


class PatientRecord:
    """Mutable answers for one session.

    Created empty, filled in incrementally by the intake flow, and frozen when
    risk calculation starts. ``reopen()`` allows amending before recalculating.
    """

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._answers: Dict[str, Answer] = {}
        self._frozen = False
        for name, value in (values or {}).items():
            if value is None:
                self.mark_unknown(name)
            else:
                self.set_value(name, value)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_writable(self, name: str):
        if name not in ALL_FIELDS:
            raise KeyError(f"Unknown field: {name}")
        if self._frozen:
            raise RecordFrozen(name)

    def set_value(self, name: str, value: Any):
        self._check_writable(name)
        self._answers[name] = Answer(AnswerState.PRESENT, value)

    def mark_unknown(self, name: str):
        self._check_writable(name)
        self._answers[name] = UNKNOWN_ANSWER

    def answer(self, name: str) -> Answer:
        return self._answers.get(name, UNSET_ANSWER)

    def state(self, name: str) -> AnswerState:
        return self.answer(name).state

    def get(self, name: str, default: Any = None) -> Any:
        answer = self.answer(name)
        return answer.value if answer.state is AnswerState.PRESENT else default

    def is_answered(self, name: str) -> bool:
        return self.answer(name).is_answered

    def to_dict(self) -> Dict[str, Any]:
        """Answered fields only; declined fields map to None."""
        return {name: self._answers[name].value for name in ALL_FIELDS if name in self._answers}

    def snapshot(self) -> PatientData:
        return PatientData(**{name: self.get(name) for name in ALL_FIELDS})

    def freeze(self) -> PatientData:
        """Lock the record for calculation and return the read-only snapshot."""
        self._frozen = True
        return self.snapshot()

    def reopen(self):
        self._frozen = False


class ConversationStage(Enum):
    COLLECTING_FIELD = "collecting_field"
    IN_FOLLOW_UP = "in_follow_up"
    AWAITING_CALCULATE_CONFIRMATION = "awaiting_calculate_confirmation"
    AWAITING_LOWERING_ADVICE = "awaiting_lowering_advice"
    AWAITING_COMPARISON_CONFIRMATION = "awaiting_comparison_confirmation"
    COMPLETED = "completed"


@dataclass
class ConversationSession:
    """The flowing state of one guided assessment."""
    session_id: str
    record: PatientRecord = field(default_factory=PatientRecord)
    stage: ConversationStage = ConversationStage.COLLECTING_FIELD
    cursor: int = 0                         # index into QUESTION_FLOW
    follow_up_id: Optional[str] = None      # set only while IN_FOLLOW_UP
    risk_assessment: Optional[RiskAssessment] = None
    history: List[Dict[str, str]] = field(default_factory=list)  # [{"role": "user", "content": "..."}]
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def current_field(self) -> Optional[str]:
        if self.stage is not ConversationStage.COLLECTING_FIELD:
            return None
        if self.cursor >= len(QUESTION_FLOW):
            return None
        return QUESTION_FLOW[self.cursor]

    @property
    def awaiting_calculate_confirmation(self) -> bool:
        return self.stage is ConversationStage.AWAITING_CALCULATE_CONFIRMATION

    @property
    def awaiting_lowering_advice(self) -> bool:
        return self.stage is ConversationStage.AWAITING_LOWERING_ADVICE

    @property
    def awaiting_comparison_confirmation(self) -> bool:
        return self.stage is ConversationStage.AWAITING_COMPARISON_CONFIRMATION

    @property
    def is_complete(self) -> bool:
        return self.stage is ConversationStage.COMPLETED

    def touch(self):
        self.updated_at = datetime.now()

    def add_user_message(self, msg: str):
        self.history.append({"role": "user", "content": msg})

    def add_agent_message(self, msg: str):
        self.history.append({"role": "model", "content": msg})
