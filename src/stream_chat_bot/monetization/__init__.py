from .goal_tracker import GoalState, GoalTracker, GoalUpdate
from .spam_detector import DonationSpamDetector, DonationWindow, SpamCheckResult

__all__ = [
    "GoalState",
    "GoalTracker",
    "GoalUpdate",
    "DonationSpamDetector",
    "DonationWindow",
    "SpamCheckResult",
]
