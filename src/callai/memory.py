import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from callai.signals import SignalExtractor
from callai.stages import Stage

logger = logging.getLogger(__name__)


class Sentiment(Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Outcome(Enum):
    SALE = "SALE"
    FOLLOW_UP = "FOLLOW_UP"
    NO_SALE = "NO_SALE"
    INCOMPLETE = "INCOMPLETE"


@dataclass
class Customer:
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass
class Message:
    role: str  # "customer" | "agent"
    text: str
    timestamp: float
    stage: Stage


@dataclass
class StageVisit:
    stage: Stage
    duration_ms: int
    turns_in_stage: int


@dataclass
class UtteranceSignals:
    """What a single customer utterance added to memory."""

    name: str = ""
    needs: list = field(default_factory=list)
    objections: list = field(default_factory=list)
    interests: list = field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL


def _add_unique(items: list, candidate: str) -> bool:
    """Append unless candidate is contained in, or contains, an existing entry."""
    if not candidate:
        return False
    if any(candidate in existing or existing in candidate for existing in items):
        return False
    items.append(candidate)
    return True


@dataclass
class ConversationMemory:
    call_id: str
    extractor: SignalExtractor = field(default_factory=SignalExtractor, repr=False)
    clock: Callable[[], float] = field(default=time.time, repr=False)

    customer: Customer = field(default_factory=Customer)

    current_stage: Stage = Stage.GREETING
    stage_turn_count: int = 0
    turn_count: int = 0

    needs: list = field(default_factory=list)
    objections: list = field(default_factory=list)
    interests: list = field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL

    messages: list = field(default_factory=list)
    stage_history: list = field(default_factory=list)

    outcome: Optional[Outcome] = None
    next_action: Optional[str] = None
    last_signals: UtteranceSignals = field(default_factory=UtteranceSignals)

    start_time: float = 0.0
    stage_start_time: float = 0.0

    def __post_init__(self):
        now = self.clock()
        if not self.start_time:
            self.start_time = now
        if not self.stage_start_time:
            self.stage_start_time = now

    def add_message(self, role: str, text: str) -> Message:
        message = Message(
            role=role,
            text=text,
            timestamp=self.clock(),
            stage=self.current_stage,
        )
        self.messages.append(message)
        self.turn_count += 1
        self.stage_turn_count += 1
        return message

    def record_utterance(self, text: str) -> UtteranceSignals:
        """Record a customer message and fold its signals into derived state."""
        self.add_message("customer", text)
        signals = UtteranceSignals()

        if not self.customer.name:
            name = self.extractor.extract_name(text)
            if name:
                self.customer.name = name
                signals.name = name
                logger.info("[%s] Name extracted: %s", self.current_stage.value, name)

        for need in self.extractor.needs(text):
            if _add_unique(self.needs, need):
                signals.needs.append(need)
        for objection in self.extractor.objections(text):
            if _add_unique(self.objections, objection):
                signals.objections.append(objection)
        for interest in self.extractor.interests(text):
            if _add_unique(self.interests, interest):
                signals.interests.append(interest)

        # Point-in-time: replaces the previous value, never blended.
        previous = self.sentiment
        self.sentiment = Sentiment(self.extractor.sentiment(text))
        signals.sentiment = self.sentiment
        if previous != self.sentiment:
            logger.info("Sentiment changed: %s -> %s", previous.value, self.sentiment.value)

        self.last_signals = signals
        return signals

    def record_reply(self, text: str) -> Message:
        return self.add_message("agent", text)

    def move_to_stage(self, stage: Stage) -> StageVisit:
        now = self.clock()
        visit = StageVisit(
            stage=self.current_stage,
            duration_ms=int((now - self.stage_start_time) * 1000),
            turns_in_stage=self.stage_turn_count,
        )
        self.stage_history.append(visit)
        logger.info("Stage transition: %s -> %s", self.current_stage.value, stage.value)
        self.current_stage = stage
        self.stage_turn_count = 0
        self.stage_start_time = now
        return visit

    def set_outcome(self, outcome: Outcome, next_action: Optional[str] = None) -> bool:
        """Set the call outcome. First write wins; later writes are ignored."""
        if self.outcome is not None:
            if outcome != self.outcome:
                logger.warning(
                    "Outcome already final (%s), ignoring %s", self.outcome.value, outcome.value,
                )
            return False
        self.outcome = outcome
        if next_action:
            self.next_action = next_action
        return True

    def recent_messages(self, limit: int = 6) -> list:
        return self.messages[-limit:] if limit > 0 else []

    def context_for_prompt(self, recent: int = 6) -> dict:
        return {
            "customer_name": self.customer.name,
            "needs": list(self.needs),
            "objections": list(self.objections),
            "interests": list(self.interests),
            "sentiment": self.sentiment.value,
            "recent_messages": self.recent_messages(recent),
            "current_stage": self.current_stage.value,
            "turn_count": self.turn_count,
            "stage_turn_count": self.stage_turn_count,
        }

    def duration_seconds(self) -> float:
        return self.clock() - self.start_time
