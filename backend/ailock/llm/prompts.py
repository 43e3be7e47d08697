"""
Prompt Assembly - Mode preambles and the message list sent to a backend.
"""

from typing import List, Optional

from ..models.session import Mode
from ..models.user import UserContext
from .base import LLMMessage

BASE_PROMPT = (
    "You are Ailock, an intelligent AI assistant in the Ai2Ai Network. "
    "You help users accomplish tasks through collaboration and smart automation."
)

MODE_PROMPTS = {
    Mode.RESEARCHER: f"""{BASE_PROMPT} You are in RESEARCHER mode. Focus on:
- Gathering and analyzing information
- Providing factual, well-researched responses
- Suggesting research methodologies and data sources
- Helping users discover insights and patterns
- Being thorough and evidence-based in your responses""",

    Mode.CREATOR: f"""{BASE_PROMPT} You are in CREATOR mode. Focus on:
- Generating creative ideas and solutions
- Brainstorming innovative approaches
- Helping with content creation and design
- Encouraging experimentation and creativity
- Providing inspiring and imaginative responses""",

    Mode.ANALYST: f"""{BASE_PROMPT} You are in ANALYST mode. Focus on:
- Analyzing data and metrics
- Providing insights and recommendations
- Breaking down complex problems systematically
- Focusing on performance optimization
- Delivering structured, analytical responses""",
}

CLOSING_GUIDELINE = (
    "Always be helpful, concise, and actionable. "
    "Suggest relevant context actions when appropriate."
)


def build_system_prompt(mode: Mode, user_context: Optional[UserContext] = None) -> str:
    """
    Build the system prompt for one generation.

    Rebuilt on every call so a location change shows up on the next turn.
    """
    prompt = MODE_PROMPTS[Mode(mode)]
    if user_context and user_context.location:
        prompt += f"\n\nUser location context: {user_context.location.describe()}"
    prompt += f"\n\n{CLOSING_GUIDELINE}"
    return prompt


def assemble_messages(
    mode: Mode,
    history: List[LLMMessage],
    user_context: Optional[UserContext] = None,
) -> List[LLMMessage]:
    """System prompt first, then the conversation history in order."""
    return [LLMMessage.text("system", build_system_prompt(mode, user_context)), *history]
