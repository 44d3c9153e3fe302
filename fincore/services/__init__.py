# Lazy imports so importing one service doesn't pull in the others
def __getattr__(name):
    if name == "CategorizationService":
        from fincore.services.categorization import CategorizationService
        return CategorizationService
    elif name == "FeedbackRecorder":
        from fincore.services.feedback import FeedbackRecorder
        return FeedbackRecorder
    elif name == "MatchingEngine":
        from fincore.services.matching import MatchingEngine
        return MatchingEngine
    elif name == "Saga":
        from fincore.services.saga import Saga
        return Saga
    raise AttributeError(f"module 'fincore.services' has no attribute '{name}'")

__all__ = [
    "CategorizationService",
    "FeedbackRecorder",
    "MatchingEngine",
    "Saga",
]
