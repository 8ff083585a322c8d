from queue_manager.utils.fsm import TransitionValidator
from queue_manager.services.queue import TICKET_FSM
import pytest
from werkzeug.exceptions import BadRequest


def test_transition_validator_allows_valid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    assert fsm.assert_can_transition('A', 'B') is True


def test_transition_validator_blocks_invalid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    with pytest.raises(BadRequest) as exc:
        fsm.assert_can_transition('A', 'C')
    assert 'A -> C' in exc.value.description


def test_ticket_graph_terminals_and_sources():
    assert TICKET_FSM.terminal_states() == ['cancelled', 'completed', 'no-show']
    assert list(TICKET_FSM.sources_of('serving')) == ['waiting']
    assert list(TICKET_FSM.sources_of('completed')) == ['serving']
    for terminal in TICKET_FSM.terminal_states():
        for target in ('waiting', 'serving', 'completed', 'no-show', 'cancelled'):
            assert not TICKET_FSM.can_transition(terminal, target)
    # No skipping the serving slot
    assert not TICKET_FSM.can_transition('waiting', 'completed')
    assert not TICKET_FSM.can_transition('serving', 'cancelled')


def test_openapi_transitions_match_runtime(client):
    resp = client.get('/openapi.json')
    schema = resp.get_json()['components']['schemas']['QueueTicket']
    assert schema['x-transitions'] == ['waiting', 'serving', 'completed', 'no-show', 'cancelled']
    assert schema['x-transition-graph']['waiting'] == ['cancelled', 'serving']
    assert schema['x-transition-graph']['completed'] == []
