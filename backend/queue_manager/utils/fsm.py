from __future__ import annotations
"""Simple finite state machine utility for enforcing allowed status transitions.

Usage:
    from queue_manager.utils.fsm import TransitionValidator
    TICKET_FSM = TransitionValidator({
        'waiting': {'serving', 'cancelled'},
        'serving': {'completed', 'no-show'},
        'completed': set(),
    })
    TICKET_FSM.assert_can_transition(current_status, target_status)

Raises 400 abort if invalid.
"""
from typing import Dict, Iterable, List, Set
from flask import abort

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            abort(400, description=f"Invalid {self.field_name} transition {current} -> {target}")
        return True

    def terminal_states(self) -> List[str]:
        return sorted(s for s, targets in self.graph.items() if not targets)

    def sources_of(self, target: str) -> Iterable[str]:
        return sorted(s for s, targets in self.graph.items() if target in targets)

__all__ = ['TransitionValidator']
