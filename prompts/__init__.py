"""
Prompts module - model inputs for the companion.

Import prompts directly:
    from prompts import compose, SYSTEM_DIRECTIVE

Or import from specific modules:
    from prompts.companion import COMPANION_PROMPT
"""

from prompts.companion import COMPANION_PROMPT, PromptInputs, compose, compose_prompt
from prompts.system_frame import SYSTEM_DIRECTIVE

__all__ = [
    "COMPANION_PROMPT",
    "PromptInputs",
    "compose",
    "compose_prompt",
    "SYSTEM_DIRECTIVE",
]
