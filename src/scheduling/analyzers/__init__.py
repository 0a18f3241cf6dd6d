from .decision_engine import GroqDecisionEngine, RouterOutput, ExecutorOutput

__all__ = [
    'GroqDecisionEngine',
    'RouterOutput',
    'ExecutorOutput',
]
