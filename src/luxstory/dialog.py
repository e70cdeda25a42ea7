""" Dialog graphs

Authored dialog lives in graphs of nodes keyed by node id, one graph per
character. Graphs are loaded once and never change afterward. Choices may
point at nodes in other graphs, the GraphRegistry resolves which graph owns a
node.
"""

import logging
import collections
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any, Optional

from luxstory import config, util, conditions, criteria_parser, state as st


class DialogContent:
    def __init__(self, variation_id:str, text:str, emotion:Optional[str]=None, condition:Optional[conditions.Condition]=None, weight:float=1.0) -> None:
        self.variation_id = variation_id
        self.text = text
        self.emotion = emotion
        self.condition = condition
        self.weight = weight

    def __repr__(self) -> str:
        return f'DialogContent({self.variation_id!r})'


class DialogChoice:
    def __init__(
            self,
            choice_id:str,
            text:str,
            node_id:str,
            visible:Optional[conditions.Condition]=None,
            enabled:Optional[conditions.Condition]=None,
            consequence:Optional[st.StateChange]=None,
            pattern:Optional[st.Pattern]=None,
            weight:float=0.,
            is_pattern_unlock:bool=False,
            preview:Optional[str]=None) -> None:
        self.choice_id = choice_id
        self.text = text
        # the node this choice leads to
        self.node_id = node_id
        self.visible = visible
        self.enabled = enabled
        self.consequence = consequence
        self.pattern = pattern
        self.weight = weight
        self.is_pattern_unlock = is_pattern_unlock
        self.preview = preview

    def __repr__(self) -> str:
        return f'DialogChoice({self.choice_id!r} -> {self.node_id!r})'


class DialogNode:
    def __init__(
            self,
            node_id:str,
            speaker:str,
            content:Sequence[DialogContent],
            choices:Sequence[DialogChoice],
            on_enter:Sequence[st.StateChange]=(),
            required_state:Optional[conditions.Condition]=None,
            tags:Iterable[str]=(),
            interrupt_target:Optional[str]=None) -> None:
        self.node_id = node_id
        self.speaker = speaker
        self.content = tuple(content)
        self.choices = tuple(choices)
        self.on_enter = tuple(on_enter)
        self.required_state = required_state
        self.tags = frozenset(tags)
        self.interrupt_target = interrupt_target

    def is_terminal(self, terminal_tags:Optional[Iterable[str]]=None) -> bool:
        """ terminal and session boundary nodes may legitimately offer no
        choices """
        if terminal_tags is None:
            terminal_tags = config.Settings.simulator.TERMINAL_TAGS
        return not self.tags.isdisjoint(terminal_tags)

    def targets(self) -> Iterator[str]:
        """ every node id this node refers to """
        for choice in self.choices:
            yield choice.node_id
        if self.interrupt_target is not None:
            yield self.interrupt_target

    def __repr__(self) -> str:
        return f'DialogNode({self.node_id!r})'


class DialogGraph:
    def __init__(self, dialog_id:str, root_id:str, nodes:Sequence[DialogNode], character_id:Optional[str]=None, title:str="") -> None:
        self.dialog_id = dialog_id
        self.root_id = root_id
        self.character_id = character_id if character_id is not None else dialog_id
        self.title = title
        self.nodes = {x.node_id:x for x in nodes}

    @property
    def metadata(self) -> Mapping[str, Any]:
        return {
            "title": self.title,
            "character_id": self.character_id,
            "total_nodes": len(self.nodes),
            "total_choices": sum(len(n.choices) for n in self.nodes.values()),
        }


class GraphRegistry:
    """ All dialog graphs available at runtime, read-only after loading. """

    def __init__(self, graphs:Iterable[DialogGraph]=()) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.graphs:dict[str, DialogGraph] = {}
        for graph in graphs:
            self.register(graph)

    def register(self, graph:DialogGraph) -> None:
        if graph.dialog_id in self.graphs:
            raise ValueError(f'graph {graph.dialog_id} already registered')
        self.graphs[graph.dialog_id] = graph
        self.logger.debug(f'registered {graph.dialog_id} with {len(graph.nodes)} nodes')

    def __iter__(self) -> Iterator[DialogGraph]:
        return iter(self.graphs.values())

    def __len__(self) -> int:
        return len(self.graphs)

    def find_owning_graph(self, node_id:str, state:Optional[st.PlayerState]=None) -> Optional[tuple[str, DialogGraph]]:
        """ finds the graph holding node_id, returning (character id, graph)

        The graph of the player's current character is searched first, so
        node ids that appear in several graphs resolve to the conversation the
        player is already in. Otherwise graphs are searched in registration
        order. """

        if state is not None and state.current_character_id is not None:
            for graph in self.graphs.values():
                if graph.character_id == state.current_character_id and node_id in graph.nodes:
                    if self.logger.isEnabledFor(logging.DEBUG):
                        others = [g.dialog_id for g in self.graphs.values() if g is not graph and node_id in g.nodes]
                        if others:
                            self.logger.debug(f'{node_id} is also in {others}, using {graph.dialog_id} of the current character')
                    return graph.character_id, graph

        for graph in self.graphs.values():
            if node_id in graph.nodes:
                return graph.character_id, graph
        return None

    def get_node(self, node_id:str, state:Optional[st.PlayerState]=None) -> Optional[DialogNode]:
        found = self.find_owning_graph(node_id, state)
        if found is None:
            return None
        return found[1].nodes[node_id]

    def __contains__(self, node_id:str) -> bool:
        return any(node_id in g.nodes for g in self.graphs.values())

    def node_ids(self) -> set[str]:
        return set(nid for g in self.graphs.values() for nid in g.nodes)

    def character_ids(self) -> list[str]:
        return list(collections.OrderedDict.fromkeys(g.character_id for g in self.graphs.values()))


def _condition(data:Mapping[str, Any], key:str) -> Optional[conditions.Condition]:
    if key not in data:
        return None
    return criteria_parser.parse_condition(data[key])

def load_dialog_content(content_data:Mapping[str, Any], node_id:str, index:int) -> DialogContent:
    if "text" not in content_data:
        raise ValueError(f'content {index} of {node_id} has no text')
    weight = content_data.get("weight", 1.0)
    if not util.is_finite_number(weight) or weight <= 0:
        raise ValueError(f'content {index} of {node_id} has bad weight {weight!r}')
    return DialogContent(
        content_data.get("variation_id", f'{node_id}_{index}'),
        content_data["text"],
        content_data.get("emotion"),
        _condition(content_data, "condition"),
        weight,
    )

def load_dialog_choice(choice_data:Mapping[str, Any], node_id:str, character_id:str) -> DialogChoice:
    for key in ("choice_id", "text", "node_id"):
        if key not in choice_data:
            raise ValueError(f'choice in {node_id} missing {key}')
    consequence = None
    if "consequence" in choice_data:
        consequence = st.load_state_change(choice_data["consequence"], character_id)
    return DialogChoice(
        choice_data["choice_id"],
        choice_data["text"],
        choice_data["node_id"],
        visible=_condition(choice_data, "visible"),
        enabled=_condition(choice_data, "enabled"),
        consequence=consequence,
        pattern=st.parse_pattern(choice_data["pattern"]) if "pattern" in choice_data else None,
        weight=choice_data.get("weight", 0.),
        preview=choice_data.get("preview"),
    )

def load_dialog_node(dialog_data:Mapping[str, Any], character_id:str) -> DialogNode:
    if "node_id" not in dialog_data:
        raise ValueError(f'node in {character_id} dialog missing node_id')
    node_id = dialog_data["node_id"]
    content = [load_dialog_content(x, node_id, i) for i, x in enumerate(dialog_data.get("content", []))]
    if not content:
        raise ValueError(f'node {node_id} has no content')

    choices = [load_dialog_choice(x, node_id, character_id) for x in dialog_data.get("choices", [])]
    choice_ids = [c.choice_id for c in choices]
    if len(choice_ids) != len(set(choice_ids)):
        raise ValueError(f'node {node_id} has duplicate choice ids')

    interrupt_target = None
    if "interrupt" in dialog_data:
        interrupt_target = dialog_data["interrupt"].get("target")

    return DialogNode(
        node_id,
        dialog_data.get("speaker", "Narrator"),
        content,
        choices,
        on_enter=[st.load_state_change(x, character_id) for x in dialog_data.get("on_enter", [])],
        required_state=_condition(dialog_data, "required_state"),
        tags=dialog_data.get("tags", []),
        interrupt_target=interrupt_target,
    )

def load_dialog_data(dialog_id:str, dialog_data:Mapping[str, Any]) -> DialogGraph:
    """ builds a graph from authored data, raising ValueError if malformed """
    if "root_id" not in dialog_data:
        raise ValueError(f'dialog {dialog_id} has no root_id')
    character_id = dialog_data.get("character_id", dialog_id)

    nodes = [load_dialog_node(x, character_id) for x in dialog_data.get("nodes", [])]
    node_ids = [n.node_id for n in nodes]
    if len(node_ids) != len(set(node_ids)):
        dupes = sorted(k for k, v in collections.Counter(node_ids).items() if v > 1)
        raise ValueError(f'dialog {dialog_id} has duplicate node ids {dupes}')
    if dialog_data["root_id"] not in node_ids:
        raise ValueError(f'dialog {dialog_id} root {dialog_data["root_id"]} is not a node')

    return DialogGraph(
        dialog_id,
        dialog_data["root_id"],
        nodes,
        character_id=character_id,
        title=dialog_data.get("title", ""),
    )

def load_dialog(dialog_id:str) -> DialogGraph:
    return load_dialog_data(dialog_id, config.Dialogs[dialog_id])

def load_registry(dialog_ids:Optional[Iterable[str]]=None) -> GraphRegistry:
    if dialog_ids is None:
        dialog_ids = list(config.Dialogs.keys())
    return GraphRegistry(load_dialog(x) for x in dialog_ids)
