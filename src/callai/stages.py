from dataclasses import dataclass
from enum import Enum
from typing import Optional

TERMINAL_STAGES = {
    "COMPLETED_SUCCESS", "COMPLETED_FOLLOW_UP", "COMPLETED_NO_SALE",
}

# Forced-progress order used when a stage hits its turn cap.
FALLBACK_ORDER = [
    "GREETING",
    "NAME_COLLECTION",
    "RAPPORT_BUILDING",
    "NEEDS_DISCOVERY",
    "SOLUTION_PITCH",
    "CLOSING",
    "SOFT_CLOSE",
]


class Stage(Enum):
    GREETING = "GREETING"
    NAME_COLLECTION = "NAME_COLLECTION"
    RAPPORT_BUILDING = "RAPPORT_BUILDING"
    NEEDS_DISCOVERY = "NEEDS_DISCOVERY"
    SOLUTION_PITCH = "SOLUTION_PITCH"
    OBJECTION_HANDLING = "OBJECTION_HANDLING"
    CLOSING = "CLOSING"
    SOFT_CLOSE = "SOFT_CLOSE"
    COMPLETED_SUCCESS = "COMPLETED_SUCCESS"
    COMPLETED_FOLLOW_UP = "COMPLETED_FOLLOW_UP"
    COMPLETED_NO_SALE = "COMPLETED_NO_SALE"

    @property
    def is_terminal(self) -> bool:
        return self.value in TERMINAL_STAGES

    @property
    def definition(self) -> "StageDefinition":
        return STAGE_DEFINITIONS[self]


@dataclass(frozen=True)
class StageDefinition:
    goal: str
    action: str
    expected_input: str = ""
    max_turns: Optional[int] = None
    # Outcome stamped on memory when a terminal stage is entered with none set.
    outcome: Optional[str] = None


STAGE_DEFINITIONS = {
    Stage.GREETING: StageDefinition(
        goal="קבל את תשומת הלב של הלקוח וצור אווירה חמה",
        action="אמור שלום, הצג את עצמך בקצרה, ושאל איך קוראים ללקוח",
        expected_input="הלו / שלום / שם",
        max_turns=2,
    ),
    Stage.NAME_COLLECTION: StageDefinition(
        goal="קבל את שם הלקוח",
        action='שאל בצורה ישירה וחמה: "איך קוראים לך?" או "מה שמך?"',
        expected_input="שם",
        max_turns=2,
    ),
    Stage.RAPPORT_BUILDING: StageDefinition(
        goal="צור קשר אישי וגרום ללקוח להרגיש בנוח",
        action="השתמש בשם הלקוח, הראה עניין אמיתי, שאל איך הוא מרגיש",
        expected_input="סטטוס רגשי / תגובה",
        max_turns=1,
    ),
    Stage.NEEDS_DISCOVERY: StageDefinition(
        goal="הבן מה הלקוח צריך ולמה הוא התקשר",
        action='שאל שאלות פתוחות: "מה הביא אותך להתקשר?", "ספר לי קצת על המצב שלך"',
        expected_input="צרכים / בעיות / מטרות",
        max_turns=3,
    ),
    Stage.SOLUTION_PITCH: StageDefinition(
        goal="הצג את הפתרון שמתאים לצרכים שזיהית",
        action="קשר בין הצרכים שהלקוח אמר לבין הפתרון שלך. השתמש בשם הלקוח",
        expected_input="שאלות / עניין / התנגדות",
        max_turns=3,
    ),
    Stage.OBJECTION_HANDLING: StageDefinition(
        goal="הבן את ההתנגדות, הראה אמפתיה, תן מענה",
        action="הקשב, אמת את התחושה של הלקוח, תן פתרון או הסבר",
        expected_input="התנגדות / חשש / שאלה",
        max_turns=2,
    ),
    Stage.CLOSING: StageDefinition(
        goal="הנע את הלקוח לפעולה ברורה",
        action='תן next step ברור: "אז מה נעשה? אני יכול לשלוח לך...", "בוא נקבע..."',
        expected_input="הסכמה / דחייה / בקשה לזמן",
        max_turns=2,
    ),
    Stage.SOFT_CLOSE: StageDefinition(
        goal="שמור על הקשר, השאר דלת פתוחה",
        action='הצע follow-up: "בסדר גמור! אשלח לך פרטים, תרגיש חופשי לחזור אליי"',
        expected_input="הסכמה / תודה",
        max_turns=1,
    ),
    Stage.COMPLETED_SUCCESS: StageDefinition(
        goal="סיום חיובי של השיחה",
        action="תודה, אשר את הפעולה הבאה, סיום חם",
        outcome="SALE",
    ),
    Stage.COMPLETED_FOLLOW_UP: StageDefinition(
        goal="סיום עם התחייבות ל-follow up",
        action="תודה, אשר את ה-follow up, סיום חם",
        outcome="FOLLOW_UP",
    ),
    Stage.COMPLETED_NO_SALE: StageDefinition(
        goal="סיום מכבד",
        action="תודה על הזמן, השאר דלת פתוחה לעתיד",
        outcome="NO_SALE",
    ),
}
