""" Per-turn narrative navigation

The Navigator resolves a node id against the graph registry into what the
presentation layer shows (content, evaluated choices) and applies a chosen
edge to produce the next player state.

Navigation failures are returned as NavigationError values rather than raised,
so a host can show a recoverable error instead of ending the session.
"""

import enum
import logging
import dataclasses
from collections.abc import Callable, Mapping, Sequence
from typing import Optional, Union

from luxstory import config, util, conditions, dialog, identity, unlocks, trust as tr, state as st

class NavigationErrorCode(enum.Enum):
    MISSING_GRAPH = enum.auto()
    MISSING_NODE = enum.auto()
    REQUIRED_STATE = enum.auto()

class Severity(enum.Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

@dataclasses.dataclass(frozen=True)
class NavigationError:
    error_code:NavigationErrorCode
    node_id:str
    title:str
    message:str
    severity:Severity = Severity.ERROR
    # unmet requirements, for REQUIRED_STATE
    diagnostic:tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return False

@dataclasses.dataclass(frozen=True)
class EvaluatedChoice:
    choice:dialog.DialogChoice
    visible:bool
    enabled:bool
    # why the choice is hidden or disabled, empty when it's available
    reasons:tuple[str, ...] = ()

    @property
    def available(self) -> bool:
        return self.visible and self.enabled

@dataclasses.dataclass(frozen=True)
class Location:
    character_id:str
    graph:dialog.DialogGraph
    node:dialog.DialogNode

@dataclasses.dataclass(frozen=True)
class NavigationResult:
    node:dialog.DialogNode
    character_id:str
    content:dialog.DialogContent
    # content text and emotion after reflection
    text:str
    emotion:Optional[str]
    choices:tuple[EvaluatedChoice, ...]

    @property
    def success(self) -> bool:
        return True

    @property
    def enabled_choices(self) -> list[dialog.DialogChoice]:
        return [c.choice for c in self.choices if c.available]

@dataclasses.dataclass(frozen=True)
class ChoiceEffects:
    trust:Optional[tr.TrustChangeResult] = None
    pattern_gain:float = 0.
    unlocked_node_id:Optional[str] = None

@dataclasses.dataclass(frozen=True)
class Transition:
    state:st.PlayerState
    result:NavigationResult
    effects:Optional[ChoiceEffects] = None

# (text, emotion, patterns) -> (text, emotion)
Reflector = Callable[[str, Optional[str], st.Patterns], tuple[str, Optional[str]]]

def no_reflection(text:str, emotion:Optional[str], patterns:st.Patterns) -> tuple[str, Optional[str]]:
    return text, emotion

class Navigator:
    def __init__(
            self,
            registry:dialog.GraphRegistry,
            affinities:Optional[Mapping[str, tr.AffinityProfile]]=None,
            unlock_tables:Optional[Mapping[str, Sequence[unlocks.PatternUnlock]]]=None,
            reflector:Optional[Reflector]=None,
            momentum_strategy:Optional[tr.MomentumStrategy]=None,
            relationships:Optional[Sequence[tr.TrustRelationship]]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.registry = registry
        self.affinities = affinities if affinities is not None else tr.load_affinity_profiles()
        self.unlock_tables = unlock_tables if unlock_tables is not None else unlocks.load_unlock_tables()
        self.reflector = reflector or no_reflection
        self.momentum_strategy = momentum_strategy
        self.relationships = relationships if relationships is not None else tr.load_relationships()

    def locate(self, node_id:str, state:st.PlayerState) -> Union[Location, NavigationError]:
        found = self.registry.find_owning_graph(node_id, state)
        if found is None:
            return NavigationError(
                NavigationErrorCode.MISSING_GRAPH, node_id,
                "Navigation Error",
                f'Could not find node "{node_id}". Please restart.',
            )
        character_id, graph = found
        node = graph.nodes.get(node_id)
        if node is None:
            return NavigationError(
                NavigationErrorCode.MISSING_NODE, node_id,
                "Navigation Error",
                f'Node "{node_id}" not found in {graph.title or graph.dialog_id}. Please restart.',
            )
        return Location(character_id, graph, node)

    def check_required_state(self, location:Location, state:st.PlayerState) -> Optional[NavigationError]:
        node = location.node
        if conditions.evaluate(node.required_state, state, location.character_id):
            return None
        return NavigationError(
            NavigationErrorCode.REQUIRED_STATE, node.node_id,
            "Navigation Error",
            f'Navigation blocked at "{node.node_id}": required state not satisfied.',
            diagnostic=tuple(conditions.unmet_reasons(node.required_state, state, location.character_id)),
        )

    def select_content(self, node:dialog.DialogNode, state:st.PlayerState, character_id:Optional[str], recent_history:Sequence[str]=()) -> dialog.DialogContent:
        """ picks one content variation for node

        Variations whose condition fails are out. Variations whose id or text
        appears in the recent history are avoided if anything else is left. The
        weighted pick is seeded from the player, the node and how much history
        the character has, so the same state always sees the same variation.
        """

        candidates = [c for c in node.content if conditions.evaluate(c.condition, state, character_id)]
        if not candidates:
            # every variation is conditional and none hold, show the first
            candidates = [node.content[0]]

        window = config.Settings.navigation.REPEAT_WINDOW
        recent = set(recent_history[-window:]) if window > 0 else set()
        fresh = [c for c in candidates if c.variation_id not in recent and c.text not in recent]
        if fresh:
            candidates = fresh

        if len(candidates) == 1:
            return candidates[0]

        cs = state.character(character_id)
        seed = util.stable_hash(state.player_id, node.node_id, len(cs.history) if cs else 0)
        total = sum(c.weight for c in candidates)
        pick = (seed % 10000) / 10000 * total
        for c in candidates:
            pick -= c.weight
            if pick < 0:
                return c
        return candidates[-1]

    def evaluate_choices(self, node:dialog.DialogNode, state:st.PlayerState, character_id:str, include_hidden:bool=False) -> list[EvaluatedChoice]:
        """ evaluates node's choices against state

        Visible choices are ordered by descending weight, ties keeping their
        declared order. Open pattern unlocks for character_id follow them.
        Hidden choices are dropped unless include_hidden is set.
        """

        evaluated = []
        for choice in node.choices:
            visible = conditions.evaluate(choice.visible, state, character_id)
            if not visible:
                if include_hidden:
                    evaluated.append(EvaluatedChoice(choice, False, False, tuple(conditions.unmet_reasons(choice.visible, state, character_id))))
                continue
            enabled = conditions.evaluate(choice.enabled, state, character_id)
            reasons = () if enabled else tuple(conditions.unmet_reasons(choice.enabled, state, character_id))
            evaluated.append(EvaluatedChoice(choice, True, enabled, reasons))

        evaluated.sort(key=lambda c: -c.choice.weight)

        for choice in unlocks.unlock_choices(state, character_id, self.unlock_tables.get(character_id, ())):
            evaluated.append(EvaluatedChoice(choice, True, True))

        return evaluated

    def resolve_node(self, node_id:str, state:st.PlayerState, recent_history:Sequence[str]=(), enforce_required_state:bool=False) -> Union[NavigationResult, NavigationError]:
        """ resolves node_id into what to show for it under state

        Pure, state is not changed. on_enter effects are applied by
        enter_node, not here.
        """

        location = self.locate(node_id, state)
        if isinstance(location, NavigationError):
            self.logger.warning(f'{location.error_code.name}: {location.message}')
            return location

        if enforce_required_state:
            error = self.check_required_state(location, state)
            if error is not None:
                self.logger.warning(f'{error.error_code.name} at {node_id}: {"; ".join(error.diagnostic)}')
                return error

        node = location.node
        content = self.select_content(node, state, location.character_id, recent_history)
        text, emotion = self.reflector(content.text, content.emotion, state.patterns)

        return NavigationResult(
            node,
            location.character_id,
            content,
            text,
            emotion,
            tuple(self.evaluate_choices(node, state, location.character_id)),
        )

    def enter_node(self, state:st.PlayerState, node:dialog.DialogNode) -> st.PlayerState:
        return st.apply_state_changes(state, node.on_enter)

    def take_choice(self, state:st.PlayerState, choice:dialog.DialogChoice, character_id:Optional[str]=None, target_character_id:Optional[str]=None) -> tuple[st.PlayerState, ChoiceEffects]:
        """ applies choice's own effects and moves to its target

        This is everything up to, but not including, entering the target node.
        character_id is the character the choice was made with, defaulting to
        the current character.
        """

        if character_id is None:
            character_id = state.current_character_id
        source_node_id = state.current_node_id

        trust_result = None
        change = choice.consequence
        if change is not None:
            if change.trust_change is not None and change.character_id is not None:
                state, trust_result = tr.apply_trust_change(
                    state,
                    change.character_id,
                    change.trust_change,
                    choice_pattern=choice.pattern,
                    affinity=self.affinities.get(change.character_id),
                    strategy=self.momentum_strategy,
                    relationships=self.relationships,
                )
                change = dataclasses.replace(change, trust_change=None)
            state = st.apply_state_change(state, change)

        gain = 0.
        if choice.pattern is not None:
            state, gain = identity.apply_pattern_gain(state, choice.pattern)

        unlocked = None
        if choice.is_pattern_unlock and character_id is not None:
            state = st.mark_unlock_visited(state, character_id, choice.node_id)
            unlocked = choice.node_id

        if character_id is not None:
            state = st.record_history(state, character_id, source_node_id)

        if target_character_id is not None:
            state = tr.meet_character(state, target_character_id, self.relationships)
        state = st.move_to(state, choice.node_id, target_character_id)
        return state, ChoiceEffects(trust_result, gain, unlocked)

    def _arrive(self, state:st.PlayerState, location:Location, recent_history:Sequence[str], enforce_required_state:bool) -> Union[tuple[st.PlayerState, NavigationResult], NavigationError]:
        if enforce_required_state:
            error = self.check_required_state(location, state)
            if error is not None:
                self.logger.warning(f'{error.error_code.name} at {location.node.node_id}: {"; ".join(error.diagnostic)}')
                return error

        state = self.enter_node(state, location.node)
        result = self.resolve_node(location.node.node_id, state, recent_history)
        # the node was located a moment ago, it can't vanish
        assert isinstance(result, NavigationResult)
        return state, result

    def navigate_to(self, state:st.PlayerState, node_id:str, recent_history:Sequence[str]=(), enforce_required_state:bool=False) -> Union[Transition, NavigationError]:
        """ moves directly to node_id, e.g. at session start or on an
        interrupt, entering it """

        location = self.locate(node_id, state)
        if isinstance(location, NavigationError):
            self.logger.warning(f'{location.error_code.name}: {location.message}')
            return location

        arrived = self._arrive(st.move_to(state, node_id, location.character_id), location, recent_history, enforce_required_state)
        if isinstance(arrived, NavigationError):
            return arrived
        return Transition(*arrived)

    def apply_choice(self, state:st.PlayerState, choice:dialog.DialogChoice, recent_history:Sequence[str]=(), enforce_required_state:bool=False, character_id:Optional[str]=None) -> Union[Transition, NavigationError]:
        """
        Takes choice from the current node.

        Applies the choice's consequence (trust through the full trust
        pipeline), its pattern gain (with any identity bonus), records history
        and visited unlocks, moves to the target and applies the target's
        on_enter effects.

        Parameters
        ----------
        state : PlayerState
            the state the choice is made in, not modified
        choice : DialogChoice
            one of the choices evaluated for the current node
        recent_history : sequence of str
            recently shown variation ids or texts, to avoid repeats at the
            target
        enforce_required_state : bool
            refuse to enter a target whose required state isn't met
        character_id : str
            the character the choice was made with, defaults to the current
            character

        Returns
        -------
        out : Transition or NavigationError
            the new state and what to show for the target, or why the choice
            could not be taken in which case nothing was applied
        """

        location = self.locate(choice.node_id, state)
        if isinstance(location, NavigationError):
            self.logger.warning(f'{location.error_code.name} taking {choice.choice_id}: {location.message}')
            return location

        next_state, effects = self.take_choice(state, choice, character_id, location.character_id)
        arrived = self._arrive(next_state, location, recent_history, enforce_required_state)
        if isinstance(arrived, NavigationError):
            return arrived

        self.logger.debug(f'{state.player_id} took {choice.choice_id} to {choice.node_id}')
        return Transition(arrived[0], arrived[1], effects)
