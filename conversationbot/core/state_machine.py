"""Dialogue state machine."""
from typing import Callable, Dict, List, Optional, Tuple
from enum import Enum
import logging

from conversationbot.models.schemas import (
    Classification,
    DialogueState,
    InboundEvent,
    Reply,
    TransitionResult,
    UserSession
)

logger = logging.getLogger(__name__)


class Command(str, Enum):
    """Commands understood in every state."""
    START = "start"
    SHOW = "show"


class RegularCategory(str, Enum):
    """Fact categories offered on the main menu."""
    AGE = "Age"
    FAVOURITE_COLOUR = "Favourite colour"
    NUMBER_OF_SIBLINGS = "Number of siblings"


CUSTOM_CATEGORY_TEXT = "Something else..."
DONE_TEXT = "Done"

MAIN_KEYBOARD: List[List[str]] = [
    [RegularCategory.AGE.value, RegularCategory.FAVOURITE_COLOUR.value],
    [RegularCategory.NUMBER_OF_SIBLINGS.value, CUSTOM_CATEGORY_TEXT],
    [DONE_TEXT],
]

_COMMANDS = {command.value: command for command in Command}
_REGULAR_CATEGORIES = {category.value.lower() for category in RegularCategory}

Handler = Callable[[UserSession, str], Tuple[DialogueState, List[Reply]]]


def facts_to_string(facts: Dict[str, str]) -> str:
    """Render facts as ``category - value`` lines."""
    return "\n".join(f"{category} - {value}" for category, value in facts.items())


def command_name(text: str) -> str:
    """Extract ``start`` from ``/start@SomeBot arg``."""
    words = text.split(maxsplit=1)
    if not words:
        return ""
    return words[0].lstrip("/").split("@", 1)[0].lower()


def classify(text: str, is_command: bool = False, command: Optional[str] = None) -> Classification:
    """
    Map an inbound text to its classification.

    Args:
        text: Raw message text
        is_command: Whether the gateway flagged the text as a command
        command: Command name when the gateway already parsed it

    Returns:
        Classification of the text, independent of dialogue state
    """
    if is_command:
        name = (command or command_name(text)).lower()
        if name == Command.START.value:
            return Classification.START
        if name == Command.SHOW.value:
            return Classification.SHOW
        return Classification.UNKNOWN_COMMAND

    normalized = text.lower()
    if normalized == DONE_TEXT.lower():
        return Classification.DONE
    if normalized in _REGULAR_CATEGORIES:
        return Classification.REGULAR_CATEGORY
    if normalized == CUSTOM_CATEGORY_TEXT.lower():
        return Classification.CUSTOM_CATEGORY
    return Classification.OTHER


class StateTransition:
    """One row cell of the transition table."""

    def __init__(
        self,
        from_state: DialogueState,
        classification: Classification,
        handler: Handler,
        description: str = ""
    ):
        """
        Initialize state transition.

        Args:
            from_state: State the session is in
            classification: Classification of the inbound text
            handler: Mutates the session and returns the next state and replies
            description: Human-readable description
        """
        self.from_state = from_state
        self.classification = classification
        self.handler = handler
        self.description = description

    def execute(self, session: UserSession, text: str) -> List[Reply]:
        """Run the handler and move the session to its next state."""
        old_state = session.state
        new_state, replies = self.handler(session, text)
        session.state = new_state

        if old_state != new_state:
            session.touch()
            logger.info(f"State transition: {old_state.name} -> {new_state.name} ({self.description})")

        return replies


class DialogueStateMachine:
    """Explicit state x classification table for the guided dialogue."""

    def __init__(self):
        """Initialize state machine."""
        self.transitions: Dict[Tuple[DialogueState, Classification], StateTransition] = {}
        self._setup_transitions()
        self._check_exhaustive()

    def add_transition(self, transition: StateTransition):
        """Add a transition to the state machine."""
        key = (transition.from_state, transition.classification)
        if key in self.transitions:
            raise ValueError(f"Duplicate transition for {transition.from_state.name}/{transition.classification.value}")
        self.transitions[key] = transition

    def classify(self, event: InboundEvent) -> Classification:
        return classify(event.text, event.is_command, event.command)

    def handle(self, session: UserSession, event: InboundEvent) -> TransitionResult:
        """
        Apply one inbound event to a session.

        The session is mutated in place; the replies are returned for the
        caller to deliver.
        """
        classification = self.classify(event)
        previous_state = session.state
        transition = self.transitions[(previous_state, classification)]

        replies = transition.execute(session, event.text)

        return TransitionResult(
            classification=classification,
            previous_state=previous_state,
            state=session.state,
            replies=replies
        )

    def _check_exhaustive(self):
        """Every state must handle every classification."""
        missing = [
            f"{state.name}/{classification.value}"
            for state in DialogueState
            for classification in Classification
            if (state, classification) not in self.transitions
        ]
        if missing:
            raise KeyError(f"Transition table is missing: {', '.join(missing)}")

    # Handlers

    def _start(self, session: UserSession, text: str) -> Tuple[DialogueState, List[Reply]]:
        reply = "Hi! My name is Doctor Botter."
        if session.facts:
            reply += (
                f" You already told me your {', '.join(session.facts.keys())}. "
                "Why don't you tell me something more about yourself? "
                "Or change anything I already know."
            )
        else:
            reply += (
                " I will hold a more complex conversation with you. "
                "Why don't you tell me something about yourself?"
            )

        if session.pending_category is not None:
            session.pending_category = None
            session.touch()

        return DialogueState.CHOOSING, [Reply(text=reply, keyboard=MAIN_KEYBOARD)]

    def _show(self, session: UserSession, text: str) -> Tuple[DialogueState, List[Reply]]:
        if not session.facts:
            return session.state, [Reply(text="I don't know anything about you yet.")]
        return session.state, [Reply(text=facts_to_string(session.facts))]

    def _regular_choice(self, session: UserSession, text: str) -> Tuple[DialogueState, List[Reply]]:
        category = text.lower()
        session.pending_category = category
        session.touch()

        if category in session.facts:
            reply = f"Your {category}? I already know the following about that: {session.facts[category]}"
        else:
            reply = f"Your {category}? Yes, I would love to hear about that!"

        return DialogueState.TYPING_REPLY, [Reply(text=reply)]

    def _custom_choice(self, session: UserSession, text: str) -> Tuple[DialogueState, List[Reply]]:
        reply = 'Alright, please send me the category first, for example "Most impressive skill"'
        return DialogueState.TYPING_CATEGORY, [Reply(text=reply)]

    def _category_named(self, session: UserSession, text: str) -> Tuple[DialogueState, List[Reply]]:
        session.pending_category = text.lower()
        session.touch()
        reply = f"Your {session.pending_category}? Yes, I would love to hear about that!"
        return DialogueState.TYPING_REPLY, [Reply(text=reply)]

    def _received_information(self, session: UserSession, text: str) -> Tuple[DialogueState, List[Reply]]:
        category = session.pending_category
        if category:
            session.facts[category] = text.lower()
        else:
            logger.warning("Fact value received with no pending category, dropping it")
        session.pending_category = None
        session.touch()

        reply = (
            "Neat! Just so you know, this is what you already told me:\n"
            f"{facts_to_string(session.facts)}\n"
            "You can tell me more, or change your opinion on something."
        )
        return DialogueState.CHOOSING, [Reply(text=reply, keyboard=MAIN_KEYBOARD)]

    def _done(self, session: UserSession, text: str) -> Tuple[DialogueState, List[Reply]]:
        if session.pending_category is not None:
            session.pending_category = None
            session.touch()

        reply = f"I learned these facts about you:\n{facts_to_string(session.facts)}\nUntil next time!"
        return DialogueState.CHOOSING, [Reply(text=reply, remove_keyboard=True)]

    def _ignore(self, session: UserSession, text: str) -> Tuple[DialogueState, List[Reply]]:
        logger.debug(f"Ignored text in {session.state.name} state: {text}")
        return session.state, []

    def _setup_transitions(self):
        """Set up the dialogue transitions."""

        # Commands and "Done" behave the same in every state
        for state in DialogueState:
            self.add_transition(StateTransition(
                from_state=state,
                classification=Classification.START,
                handler=self._start,
                description="Greet and show the menu"
            ))
            self.add_transition(StateTransition(
                from_state=state,
                classification=Classification.SHOW,
                handler=self._show,
                description="List collected facts"
            ))
            self.add_transition(StateTransition(
                from_state=state,
                classification=Classification.DONE,
                handler=self._done,
                description="Summarize and return to the menu"
            ))
            self.add_transition(StateTransition(
                from_state=state,
                classification=Classification.UNKNOWN_COMMAND,
                handler=self._ignore,
                description="Unknown command"
            ))

        # CHOOSING
        self.add_transition(StateTransition(
            from_state=DialogueState.CHOOSING,
            classification=Classification.REGULAR_CATEGORY,
            handler=self._regular_choice,
            description="Menu category picked"
        ))
        self.add_transition(StateTransition(
            from_state=DialogueState.CHOOSING,
            classification=Classification.CUSTOM_CATEGORY,
            handler=self._custom_choice,
            description="Ask for a custom category"
        ))
        self.add_transition(StateTransition(
            from_state=DialogueState.CHOOSING,
            classification=Classification.OTHER,
            handler=self._ignore,
            description="Text outside the menu"
        ))

        # TYPING_CATEGORY
        self.add_transition(StateTransition(
            from_state=DialogueState.TYPING_CATEGORY,
            classification=Classification.REGULAR_CATEGORY,
            handler=self._regular_choice,
            description="Menu category picked instead of typing one"
        ))
        self.add_transition(StateTransition(
            from_state=DialogueState.TYPING_CATEGORY,
            classification=Classification.CUSTOM_CATEGORY,
            handler=self._custom_choice,
            description="Ask for a custom category again"
        ))
        self.add_transition(StateTransition(
            from_state=DialogueState.TYPING_CATEGORY,
            classification=Classification.OTHER,
            handler=self._category_named,
            description="Custom category named"
        ))

        # TYPING_REPLY: anything that is not a command or "Done" is the value
        for classification in (
            Classification.REGULAR_CATEGORY,
            Classification.CUSTOM_CATEGORY,
            Classification.OTHER
        ):
            self.add_transition(StateTransition(
                from_state=DialogueState.TYPING_REPLY,
                classification=classification,
                handler=self._received_information,
                description="Fact value received"
            ))


# Global state machine instance
dialogue_state_machine = DialogueStateMachine()
