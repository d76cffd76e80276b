"""
Companion prompt - the model input for one in-character reply.

The model is a plain text-completion model, so the prompt ends with the
companion's name as a speaker cue and the reply is the continuation.
"""

import re
from dataclasses import dataclass
from typing import Sequence, Tuple

COMPANION_PROMPT = """ONLY generate plain sentences without prefix of who is speaking. DO NOT use {name}: prefix.

{instructions}

Below are relevant details about {name}'s past and the conversation you are in.

{memory}

{user_message}
{name}:"""


@dataclass(frozen=True)
class PromptInputs:
    """Everything the companion prompt is built from."""

    name: str
    instructions: str
    user_message: str
    recalled_memory: Tuple[str, ...] = ()
    relevant_memory: Tuple[str, ...] = ()


def _strip_speaker_prefix(text: str, name: str) -> str:
    """Drop ``{name}:`` at the start of any line, so only the final cue has it."""
    pattern = re.compile(rf"^[ \t]*{re.escape(name)}[ \t]*:[ \t]*", re.MULTILINE)
    return pattern.sub("", text)


def compose_prompt(inputs: PromptInputs) -> str:
    """Build the model prompt. Pure and deterministic."""
    name = inputs.name.strip()

    sections = [*inputs.relevant_memory, *inputs.recalled_memory]
    memory = "\n".join(_strip_speaker_prefix(s, name) for s in sections if s.strip())

    return COMPANION_PROMPT.format(
        name=name,
        instructions=inputs.instructions,
        memory=memory,
        user_message=_strip_speaker_prefix(inputs.user_message, name),
    )


def compose(
    instructions: str,
    name: str,
    recalled_memory: Sequence[str],
    user_message: str,
    relevant_memory: Sequence[str] = (),
) -> str:
    """Convenience wrapper around ``compose_prompt``."""
    return compose_prompt(
        PromptInputs(
            name=name,
            instructions=instructions,
            user_message=user_message,
            recalled_memory=tuple(recalled_memory),
            relevant_memory=tuple(relevant_memory),
        )
    )
