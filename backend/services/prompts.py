"""System directives and message builders for each stage."""
from typing import Dict, List

from models.artifacts import ArtifactPair
from models.conversation import Transcript
from services.artifact_parser import SENTINEL

GUIDANCE_SYSTEM_PROMPT = (
    "You are a professional AI assistant specializing in creating Telegram bots. "
    "Guide users to refine their bot requirements with clear, conversational questions "
    "about functionality, commands, and features. Ensure detailed requirements for "
    "generating Python code later. Do not generate code; produce a plan only, for a "
    "single-file script."
)

GENERATION_SYSTEM_PROMPT = f"""You are an expert Python developer specializing in Telegram bots. Generate a complete, production-ready Python script for a Telegram bot based on the conversation history, along with a requirements.txt file listing all dependencies.

Requirements:
1. Use python-telegram-bot
2. Include all necessary imports
3. Add comprehensive error handling
4. Include detailed comments
5. Add configuration variables
6. Implement all discussed features
7. Ensure modular, readable code
8. Include setup instructions as comments
9. Generate only a single file Python script, no external connections with other files, no env, no other folders, just the Python script
10. Make sure the generated code doesn't show errors when run, with proper commenting etc
11. Never wrap the code inside triple backticks; output must be plain Python code only
12. For the requirements.txt, list all necessary packages including versions if possible (e.g., python-telegram-bot==20.0)
13. Output format: First, the full Python code, then a separator '{SENTINEL}', then the contents of requirements.txt as plain text.

Output only the Python code with comments, followed by the separator and requirements.txt content."""

MODIFY_SYSTEM_PROMPT = f"""You are an expert Python developer. Update the provided Telegram bot code and requirements.txt based on the user's modification request while maintaining existing functionality.
Output format: First, the full updated Python code, then a separator '{SENTINEL}', then the updated contents of requirements.txt as plain text.
Never wrap the code inside triple backticks; output must be plain Python code only."""

DISCUSS_SYSTEM_PROMPT = (
    "You are a helpful AI assistant for discussing and explaining the generated Telegram bot code. "
    "Provide insights, explanations, or suggestions, but do not generate or modify code here. "
    "For code changes, suggest using the refine feature."
)

CONVERSATION_APOLOGY = "Sorry, I hit a snag after several tries. Please check your API key and try again."
DISCUSS_APOLOGY = "Sorry, I hit a snag after several tries. Please try again."
EMPTY_DISCUSS_REPLY = "No response from AI."


def build_guidance_messages(transcript: Transcript, content: str) -> List[Dict[str, str]]:
    """Guidance call: directive, every prior turn, then the new user message."""
    return (
        [{"role": "system", "content": GUIDANCE_SYSTEM_PROMPT}]
        + transcript.to_messages()
        + [{"role": "user", "content": content}]
    )


def build_generation_messages(conversation_context: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": GENERATION_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"Based on our conversation:\n\n{conversation_context}\n\n"
                "Generate a complete Telegram bot Python script with all discussed features "
                "and the requirements.txt."
            ),
        },
    ]


def build_modify_messages(current: ArtifactPair, request: str) -> List[Dict[str, str]]:
    """Modify call: the current pair and the change request in one user turn."""
    return [
        {"role": "system", "content": MODIFY_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"Current code:\n\n{current.source}\n\n"
                f"Current requirements.txt:\n\n{current.manifest}\n\n"
                f"Modification request: {request}\n\n"
                "Return the complete updated code and requirements.txt."
            ),
        },
    ]


def build_discuss_messages(
    discussion: Transcript,
    design_context: str,
    question: str
) -> List[Dict[str, str]]:
    """Discuss call: directive, prior side-channel turns, then the question with design context."""
    return (
        [{"role": "system", "content": DISCUSS_SYSTEM_PROMPT}]
        + discussion.to_messages()
        + [{
            "role": "user",
            "content": f"Conversation context from bot design: {design_context}\n\n{question}",
        }]
    )
