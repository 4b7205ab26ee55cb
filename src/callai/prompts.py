from callai.memory import ConversationMemory
from callai.stages import Stage

PERSONA = """אתה {agent_name}, נציג מכירות וירטואלי דובר עברית בשיחת טלפון.

קול ואישיות
- חם, חברי, בטוח בעצמו. לא לוחץ ולא מתחנף.
- ענה בעברית בלבד, בקצרה: 2-3 משפטים לכל היותר.
- שאלה אחת בכל פעם.
- היה שיחתי, כאילו אתה מדבר בטלפון עם אדם.

כללים
1. לעולם אל תשאל שוב משהו שכבר ידוע.
2. אם הלקוח אמר את שמו, השתמש בו.
3. אם לא הבנת, בקש לחזור על הדברים. אל תסיים את השיחה.
4. אל תמציא מחירים, הבטחות או התחייבויות."""

SENTIMENT_LABELS = {
    "positive": "חיובי",
    "neutral": "ניטרלי",
    "negative": "שלילי",
}


def get_system_prompt(memory: ConversationMemory, agent_name: str = "דני") -> str:
    persona = PERSONA.format(agent_name=agent_name)
    stage = _stage_prompt(memory.current_stage)
    context = _build_context(memory)
    return "\n\n".join(part for part in (persona, context, stage) if part)


def build_messages(memory: ConversationMemory, user_text: str, agent_name: str = "דני", recent: int = 6) -> list[dict]:
    """Chat-completion messages: system prompt, recent history, then the new utterance."""
    messages = [{"role": "system", "content": get_system_prompt(memory, agent_name)}]
    history = memory.recent_messages(recent)
    # The just-recorded utterance is sent last on its own; drop it from history.
    if history and history[-1].role == "customer" and history[-1].text == user_text:
        history = history[:-1]
    for message in history:
        role = "user" if message.role == "customer" else "assistant"
        messages.append({"role": role, "content": message.text})
    messages.append({"role": "user", "content": user_text})
    return messages


def _stage_prompt(stage: Stage) -> str:
    definition = stage.definition
    lines = [
        f"## שלב נוכחי: {stage.value}",
        f"מטרה: {definition.goal}",
        f"פעולה: {definition.action}",
    ]
    if definition.expected_input:
        lines.append(f"תגובה צפויה מהלקוח: {definition.expected_input}")
    if stage.is_terminal:
        lines.append("זהו סוף השיחה. סיים בחום ובקצרה, בלי לפתוח נושא חדש.")
    return "\n".join(lines)


def _build_context(memory: ConversationMemory) -> str:
    parts = []
    if memory.customer.name:
        parts.append(f"שם הלקוח: {memory.customer.name}")
    if memory.needs:
        parts.append("צרכים: " + "; ".join(memory.needs))
    if memory.objections:
        parts.append("התנגדויות: " + "; ".join(memory.objections))
    if memory.interests:
        parts.append("תחומי עניין: " + "; ".join(memory.interests))
    parts.append(f"סנטימנט: {SENTIMENT_LABELS[memory.sentiment.value]}")
    parts.append(f"תור בשלב: {memory.stage_turn_count} (סה\"כ {memory.turn_count})")

    return "מידע ידוע:\n" + "\n".join(f"- {p}" for p in parts)
