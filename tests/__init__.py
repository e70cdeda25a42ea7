from typing import Any, Optional, Iterable

from luxstory import dialog, state as st

def make_state(
        player_id:str="test_player",
        characters:Iterable[str]=("samuel", "maya"),
        node_id:str="samuel_intro",
        character_id:Optional[str]="samuel",
        **patterns:float) -> st.PlayerState:
    state = st.new_player_state(player_id, characters, node_id, character_id)
    if patterns:
        state = st.with_patterns(state, st.Patterns(**patterns))
    return state

def set_trust(state:st.PlayerState, character_id:str, trust:int) -> st.PlayerState:
    cs = st.get_character(state, character_id)
    return st.with_character(state, st.CharacterState(
        character_id, trust, cs.relationship, cs.knowledge_flags, cs.visited_unlocks, cs.history
    ))

def node_data(node_id:str, choices:Iterable[dict[str, Any]]=(), text:Optional[str]=None, **kwargs:Any) -> dict[str, Any]:
    data = {
        "node_id": node_id,
        "speaker": "Tester",
        "content": [{"variation_id": f'{node_id}_a', "text": text or f'this is {node_id}'}],
        "choices": list(choices),
    }
    data.update(kwargs)
    return data

def choice_data(choice_id:str, target:str, **kwargs:Any) -> dict[str, Any]:
    data = {"choice_id": choice_id, "text": f'go to {target}', "node_id": target}
    data.update(kwargs)
    return data

def make_graph(dialog_id:str, nodes:Iterable[dict[str, Any]], root_id:Optional[str]=None, character_id:Optional[str]=None) -> dialog.DialogGraph:
    nodes = list(nodes)
    data:dict[str, Any] = {
        "root_id": root_id or nodes[0]["node_id"],
        "title": f'{dialog_id} test graph',
        "nodes": nodes,
    }
    if character_id is not None:
        data["character_id"] = character_id
    return dialog.load_dialog_data(dialog_id, data)

def make_registry(*graphs:dialog.DialogGraph) -> dialog.GraphRegistry:
    return dialog.GraphRegistry(graphs)
