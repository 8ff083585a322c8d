"""Central enum-like definitions to avoid typos in permission/service strings.
Extend cautiously; never rename codes silently, clients may hold tokens carrying them.
"""
from __future__ import annotations
from typing import List, Dict

SERVICE_ACTIONS = {
    'QUEUE': ['JOIN', 'READ', 'MANAGE'],
    'RPT': ['READ'],
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

# Profile role -> permission codes
ROLE_PRESETS: Dict[str, List[str]] = {
    'customer': ['QUEUE.JOIN', 'QUEUE.READ'],
    'admin': ['QUEUE.JOIN', 'QUEUE.READ', 'QUEUE.MANAGE', 'RPT.READ'],
}

# Holding any of these marks an operator-only flow; denial ends the session
ADMIN_ONLY_PERMISSIONS = {'QUEUE.MANAGE', 'RPT.READ'}
