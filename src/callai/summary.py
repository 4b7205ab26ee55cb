"""End-of-call summary payload for the analytics webhook."""

from datetime import datetime, timezone

from callai.memory import ConversationMemory, Outcome, Sentiment
from callai.stages import Stage

MAIN_STAGES = [
    Stage.GREETING,
    Stage.NAME_COLLECTION,
    Stage.RAPPORT_BUILDING,
    Stage.NEEDS_DISCOVERY,
    Stage.SOLUTION_PITCH,
    Stage.CLOSING,
]

OUTCOME_PHRASES = {
    Outcome.SALE: "agreed to move forward",
    Outcome.FOLLOW_UP: "requested follow-up",
    Outcome.NO_SALE: "declined the offer",
}


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def format_duration(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m {seconds % 60}s"


def quality_score(memory: ConversationMemory, duration: int) -> int:
    """0-100 heuristic of how well the call went."""
    score = 0
    if memory.customer.name:
        score += 20
    if memory.needs:
        score += 20
    if memory.sentiment == Sentiment.POSITIVE:
        score += 20
    elif memory.sentiment == Sentiment.NEUTRAL:
        score += 10
    if memory.outcome == Outcome.SALE:
        score += 40
    elif memory.outcome == Outcome.FOLLOW_UP:
        score += 30
    elif memory.outcome == Outcome.NO_SALE:
        score += 10
    if 30 <= duration <= 300:
        score += 10
    # Objections raised but the call ended positive.
    if memory.objections and memory.sentiment == Sentiment.POSITIVE:
        score += 10
    return min(100, score)


def completion_rate(memory: ConversationMemory) -> int:
    """Percent of the main stages the call passed through."""
    visited = {visit.stage for visit in memory.stage_history}
    completed = sum(1 for stage in MAIN_STAGES if stage in visited)
    return round(completed / len(MAIN_STAGES) * 100)


def ai_summary(memory: ConversationMemory) -> str:
    name = memory.customer.name or "The customer"
    outcome = OUTCOME_PHRASES.get(memory.outcome, "ended the call")
    needs = f"Looking for: {memory.needs[0]}" if memory.needs else "No specific needs identified"
    objections = f" Raised concerns: {memory.objections[0]}" if memory.objections else ""
    return f"{name} called. {needs}.{objections} {name} {outcome}."


def quick_summary(memory: ConversationMemory) -> str:
    name = memory.customer.name or "Unknown"
    need = memory.needs[0] if memory.needs else "No needs identified"
    outcome = memory.outcome.value if memory.outcome else "In progress"
    return f"{name} | {need} | {outcome}"


def build_call_summary(memory: ConversationMemory) -> dict:
    duration = round(memory.duration_seconds())
    time_per_stage = {}
    for visit in memory.stage_history:
        time_per_stage[visit.stage.value] = round(visit.duration_ms / 1000)

    return {
        "callId": memory.call_id,
        "duration": duration,
        "durationFormatted": format_duration(duration),
        "timestamp": _iso(memory.clock()),
        "customer": {
            "name": memory.customer.name or "Unknown",
            "phone": memory.customer.phone,
            "email": memory.customer.email,
        },
        "needs": list(memory.needs),
        "objections": list(memory.objections),
        "interests": list(memory.interests),
        "sentiment": memory.sentiment.value,
        "outcome": memory.outcome.value if memory.outcome else None,
        "nextAction": memory.next_action,
        "totalTurns": memory.turn_count,
        "stagesCompleted": [visit.stage.value for visit in memory.stage_history],
        "timePerStage": time_per_stage,
        "qualityScore": quality_score(memory, duration),
        "completionRate": completion_rate(memory),
        "transcript": [
            {
                "role": m.role,
                "text": m.text,
                "timestamp": _iso(m.timestamp),
                "stage": m.stage.value,
            }
            for m in memory.messages
        ],
        "aiSummary": ai_summary(memory),
    }
