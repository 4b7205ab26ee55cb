import logging
from dataclasses import dataclass
from typing import Optional

from callai.keywords import contains_any
from callai.memory import ConversationMemory, Outcome, Sentiment
from callai.stages import FALLBACK_ORDER, Stage

logger = logging.getLogger(__name__)


@dataclass
class Transition:
    target: Stage
    outcome: Optional[Outcome] = None
    next_action: str = ""
    forced: bool = False


class ConversationFlowEngine:
    """Sales-stage state machine.

    Holds no state of its own: every decision is read off the memory it views.
    ``evaluate()`` is pure; ``apply()`` writes the transition into memory.
    """

    def __init__(self, memory: ConversationMemory):
        self.memory = memory

    @property
    def tables(self):
        return self.memory.extractor.tables

    @property
    def stage(self) -> Stage:
        return self.memory.current_stage

    def is_final(self) -> bool:
        return self.stage.is_terminal

    def evaluate(self, text: str) -> Optional[Transition]:
        if self.stage.is_terminal:
            return None

        max_turns = self.stage.definition.max_turns
        if max_turns is not None and self.memory.stage_turn_count >= max_turns:
            target = self.fallback_target()
            if target != self.stage:
                logger.info("[%s] Max turns reached (%d)", self.stage.value, max_turns)
                return Transition(target=target, forced=True)
            # A self-target is not progress; let the stage rule decide.

        handler = getattr(self, f"_from_{self.stage.value.lower()}", None)
        if handler is None:
            return None
        transition = handler(text.lower())
        if transition is not None and transition.target == self.stage:
            return None
        return transition

    def fallback_target(self) -> Stage:
        name = self.stage.value
        if name in FALLBACK_ORDER:
            index = FALLBACK_ORDER.index(name)
            if index < len(FALLBACK_ORDER) - 1:
                return Stage(FALLBACK_ORDER[index + 1])
        return Stage.SOFT_CLOSE

    def apply(self, transition: Transition) -> None:
        if transition.outcome is not None:
            self.memory.set_outcome(transition.outcome, transition.next_action or None)
        self.memory.move_to_stage(transition.target)
        declared = transition.target.definition.outcome
        if transition.target.is_terminal and declared and self.memory.outcome is None:
            self.memory.set_outcome(Outcome(declared))

    def process_transition(self, text: str) -> Optional[Transition]:
        """Evaluate and apply. Returns the applied transition, if any."""
        transition = self.evaluate(text)
        if transition is not None:
            self.apply(transition)
        return transition

    # ── Stage rules ──

    def _from_greeting(self, text: str) -> Optional[Transition]:
        if self.memory.customer.name:
            return Transition(Stage.RAPPORT_BUILDING)
        if contains_any(text, self.tables.greeting_phrases):
            return Transition(Stage.NAME_COLLECTION)
        if self.memory.stage_turn_count >= 2:
            return Transition(Stage.NAME_COLLECTION)
        return None

    def _from_name_collection(self, text: str) -> Optional[Transition]:
        if self.memory.customer.name or self.memory.stage_turn_count >= 2:
            return Transition(Stage.RAPPORT_BUILDING)
        return None

    def _from_rapport_building(self, text: str) -> Optional[Transition]:
        if self.memory.sentiment == Sentiment.NEGATIVE:
            return Transition(Stage.OBJECTION_HANDLING)
        return Transition(Stage.NEEDS_DISCOVERY)

    def _from_needs_discovery(self, text: str) -> Optional[Transition]:
        if self.memory.needs or self.memory.stage_turn_count >= 3:
            return Transition(Stage.SOLUTION_PITCH)
        return None

    def _from_solution_pitch(self, text: str) -> Optional[Transition]:
        if self.memory.last_signals.objections:
            return Transition(Stage.OBJECTION_HANDLING)
        if self.memory.sentiment == Sentiment.POSITIVE and self.memory.interests:
            return Transition(Stage.CLOSING)
        if self.memory.stage_turn_count >= 3:
            return Transition(Stage.CLOSING)
        return None

    def _from_objection_handling(self, text: str) -> Optional[Transition]:
        sentiment = self.memory.sentiment
        turns = self.memory.stage_turn_count
        if sentiment == Sentiment.POSITIVE:
            return Transition(Stage.SOLUTION_PITCH)
        if sentiment == Sentiment.NEGATIVE and turns >= 2:
            return Transition(Stage.SOFT_CLOSE)
        if sentiment == Sentiment.NEUTRAL and turns >= 1:
            return Transition(Stage.SOLUTION_PITCH)
        return None

    def _from_closing(self, text: str) -> Optional[Transition]:
        tables = self.tables
        if contains_any(text, tables.agreement_phrases) and not contains_any(text, tables.negation_words):
            return Transition(Stage.COMPLETED_SUCCESS, outcome=Outcome.SALE)
        if contains_any(text, tables.needs_time_phrases):
            return Transition(
                Stage.SOFT_CLOSE,
                outcome=Outcome.FOLLOW_UP,
                next_action=tables.follow_up_note,
            )
        if contains_any(text, tables.refusal_phrases):
            return Transition(Stage.COMPLETED_NO_SALE, outcome=Outcome.NO_SALE)
        if self.memory.stage_turn_count >= 2:
            return Transition(Stage.SOFT_CLOSE)
        return None

    def _from_soft_close(self, text: str) -> Optional[Transition]:
        return Transition(Stage.COMPLETED_FOLLOW_UP)
