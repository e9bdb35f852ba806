"""
Bot Classifier

Matches user agents against the known crawler table, then against a
generic keyword pattern.
"""

from dataclasses import dataclass
from typing import Optional

from analytics_engine.constants.bots import BOT_CATEGORIES, BOT_SIGNATURES, GENERIC_BOT_PATTERN, BotCategory


@dataclass(frozen=True)
class BotClassification:
    is_robot: bool
    robot_name: Optional[str] = None
    robot_category: Optional[str] = None


HUMAN = BotClassification(is_robot=False)


class BotClassifier:
    """Classify a user agent as human or a named bot."""

    def __init__(self, signatures: tuple[tuple[str, str], ...] = BOT_SIGNATURES):
        self._signatures = tuple((fragment.lower(), name) for fragment, name in signatures)

    def detect_name(self, user_agent: Optional[str]) -> Optional[str]:
        if not user_agent:
            return None

        lowered = user_agent.lower()
        for fragment, name in self._signatures:
            if fragment in lowered:
                return name

        match = GENERIC_BOT_PATTERN.search(user_agent)
        if match:
            return match.group(1).lower().capitalize()
        return None

    @staticmethod
    def categorize(robot_name: Optional[str]) -> Optional[str]:
        if not robot_name:
            return None
        return BOT_CATEGORIES.get(robot_name, BotCategory.OTHER).value

    def classify(self, user_agent: Optional[str]) -> BotClassification:
        robot_name = self.detect_name(user_agent)
        if robot_name is None:
            return HUMAN
        return BotClassification(is_robot=True, robot_name=robot_name, robot_category=self.categorize(robot_name))


bot_classifier = BotClassifier()
