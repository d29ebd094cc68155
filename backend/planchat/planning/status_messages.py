"""Status message pools for planning chat phases."""

import math

STATUS_MESSAGES: dict[str, list[str]] = {
    "starting": [
        "Getting ready...",
        "Warming up...",
        "Preparing...",
        "Initializing...",
    ],
    "continuing": [
        "Continuing...",
        "Still here...",
        "Picking up where we left off...",
        "Back to it...",
    ],
    "reconnecting": [
        "Reconnecting...",
        "Getting back in sync...",
        "Resuming session...",
        "Restoring context...",
    ],
    "analyzing": [
        "Looking at your codebase...",
        "Understanding the structure...",
        "Reviewing patterns...",
        "Scanning files...",
    ],
    "thinking": [
        "Considering approaches...",
        "Formulating plan...",
        "Working on it...",
        "Almost there...",
    ],
    "cloning": [
        "Fetching repository...",
        "Cloning codebase...",
        "Downloading files...",
        "Getting source code...",
    ],
    "complete": [
        "All done!",
        "Ready!",
        "Here's what I found",
    ],
}


def get_status_message(phase: str, timestamp: float | None = None) -> str:
    """Get a status message for a phase.

    The pool entry is picked from the timestamp (milliseconds), so the same
    timestamp always yields the same message and the text rotates once per
    second as the timestamp advances.
    """
    messages = STATUS_MESSAGES.get(phase)
    if not messages:
        return phase[:1].upper() + phase[1:] + "..."

    index = math.floor(timestamp / 1000) % len(messages) if timestamp else 0
    return messages[index]


def should_enhance_message(phase: str, message: str | None) -> bool:
    """Check if the backend sent a bare phase label instead of real text."""
    if not message or not message.strip():
        return True
    return message.lower() == phase.lower()
