from callai.memory import Outcome, Sentiment
from callai.stages import Stage
from callai.summary import (
    ai_summary,
    build_call_summary,
    completion_rate,
    format_duration,
    quality_score,
    quick_summary,
)


class TestFormatDuration:
    def test_seconds(self):
        assert format_duration(45) == "45s"

    def test_minutes(self):
        assert format_duration(125) == "2m 5s"


class TestQualityScore:
    def test_empty_call(self, memory):
        assert quality_score(memory, duration=5) == 10  # neutral sentiment only

    def test_perfect_call_is_capped(self, memory):
        memory.customer.name = "יוסי"
        memory.needs.append("אני צריך CRM")
        memory.objections.append("יקר")
        memory.sentiment = Sentiment.POSITIVE
        memory.outcome = Outcome.SALE
        assert quality_score(memory, duration=120) == 100

    def test_follow_up(self, memory):
        memory.customer.name = "יוסי"
        memory.outcome = Outcome.FOLLOW_UP
        memory.sentiment = Sentiment.NEGATIVE
        assert quality_score(memory, duration=400) == 50


class TestCompletionRate:
    def test_counts_main_stages_only(self, memory):
        for stage in (Stage.NAME_COLLECTION, Stage.RAPPORT_BUILDING, Stage.OBJECTION_HANDLING):
            memory.move_to_stage(stage)
        # Left GREETING, NAME_COLLECTION, RAPPORT_BUILDING; OBJECTION_HANDLING is current.
        assert completion_rate(memory) == 50


class TestSummaries:
    def test_ai_summary(self, memory):
        memory.customer.name = "יוסי"
        memory.needs.append("מערכת CRM")
        memory.objections.append("המחיר")
        memory.outcome = Outcome.FOLLOW_UP
        assert ai_summary(memory) == "יוסי called. Looking for: מערכת CRM. Raised concerns: המחיר יוסי requested follow-up."

    def test_ai_summary_defaults(self, memory):
        assert ai_summary(memory) == "The customer called. No specific needs identified. The customer ended the call."

    def test_quick_summary(self, memory):
        assert quick_summary(memory) == "Unknown | No needs identified | In progress"
        memory.customer.name = "דנה"
        memory.needs.append("צריך עזרה")
        memory.outcome = Outcome.SALE
        assert quick_summary(memory) == "דנה | צריך עזרה | SALE"


class TestBuildCallSummary:
    def test_payload(self, memory, clock):
        memory.record_reply("היי! נעים מאוד. איך קוראים לך?")
        memory.record_utterance("קוראים לי יוסי")
        clock.advance(65)
        memory.move_to_stage(Stage.RAPPORT_BUILDING)
        memory.set_outcome(Outcome.INCOMPLETE)

        summary = build_call_summary(memory)
        assert summary["callId"] == "CA123"
        assert summary["duration"] == 65
        assert summary["durationFormatted"] == "1m 5s"
        assert summary["customer"] == {"name": "יוסי", "phone": None, "email": None}
        assert summary["outcome"] == "INCOMPLETE"
        assert summary["totalTurns"] == 2
        assert summary["stagesCompleted"] == ["GREETING"]
        assert summary["timePerStage"] == {"GREETING": 65}
        assert summary["completionRate"] == 17
        assert [t["role"] for t in summary["transcript"]] == ["agent", "customer"]
        assert summary["transcript"][1]["stage"] == "GREETING"
        assert summary["aiSummary"].startswith("יוסי called.")
