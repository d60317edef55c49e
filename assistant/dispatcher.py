"""
Conversational dispatcher.

One call to send_chat_turn() is one complete turn: user text -> model ->
(optional) local function calls -> model again -> reply. The caller owns the
history; a new list is returned every time and the input list is never
mutated, so an abandoned turn leaves nothing behind.
"""
import logging

from core.errors import ModelError, ValidationError, emergency_fallback_text, failure
from .functions import FUNCTION_DECLARATIONS, Toolbox

logger = logging.getLogger(__name__)

FEEDBACK_FIRST = "first"
FEEDBACK_ALL = "all"

MAX_MESSAGE_LENGTH = 4000
APOLOGY = "I'm sorry, I can't reach the Lifeline assistant right now. Please try again in a moment."
EMPTY_REPLY = "I'm not sure how to help with that. Could you rephrase?"


def clean_history(history):
    """Keep well-formed {"role", "content", "functionCalls"} turns only."""
    turns = []
    if not isinstance(history, (list, tuple)):
        return turns
    for turn in history:
        if not isinstance(turn, dict):
            continue
        role = turn.get("role")
        content = turn.get("content")
        calls = turn.get("functionCalls")
        if role not in ("user", "assistant") or not isinstance(content, str):
            continue
        turns.append({
            "role": role,
            "content": content,
            "functionCalls": calls if isinstance(calls, list) else [],
        })
    return turns


def to_contents(history):
    return [
        {"role": "model" if t["role"] == "assistant" else "user", "parts": [{"text": t["content"]}]}
        for t in history
        if t["content"]
    ]


class ConversationDispatcher:

    def __init__(self, model, toolbox=None, feedback=FEEDBACK_FIRST):
        if feedback not in (FEEDBACK_FIRST, FEEDBACK_ALL):
            raise ValueError(f"feedback must be 'first' or 'all', not {feedback!r}")
        self.model = model
        self.toolbox = toolbox or Toolbox()
        self.feedback = feedback

    def send_chat_turn(self, message, history=None):
        """
        -> {"success", "reply", "functionCalls", "history"[, "error", "fallback"]}
        """
        history = clean_history(history)

        message = message.strip() if isinstance(message, str) else ""
        if not message:
            result = failure(ValidationError("Message is required"))
            result.update({"reply": "", "functionCalls": [], "history": history})
            return result

        if len(message) > MAX_MESSAGE_LENGTH:
            logger.info("Chat message rejected: %d characters", len(message))
            result = failure(ValidationError(
                f"Message is longer than {MAX_MESSAGE_LENGTH} characters",
                details={"maxLength": MAX_MESSAGE_LENGTH},
            ))
            result.update({"reply": "", "functionCalls": [], "history": history})
            return result

        history = history + [{"role": "user", "content": message, "functionCalls": []}]
        contents = to_contents(history)
        calls = []

        try:
            reply = self.model.generate(contents, tools=FUNCTION_DECLARATIONS)

            if reply["functionCalls"]:
                for call in reply["functionCalls"]:
                    response = self.toolbox.execute(call["name"], call.get("args"))
                    calls.append({"name": call["name"], "args": call.get("args") or {}, "response": response})

                fed = calls[:1] if self.feedback == FEEDBACK_FIRST else calls
                if len(fed) < len(calls):
                    logger.info("Model asked for %d calls; feeding back the first only", len(calls))

                contents = contents + [
                    reply["content"],
                    {
                        "role": "user",
                        "parts": [
                            {"functionResponse": {"name": c["name"], "response": c["response"]}}
                            for c in fed
                        ],
                    },
                ]
                reply = self.model.generate(contents, tools=FUNCTION_DECLARATIONS)

            text = reply["text"] or EMPTY_REPLY

        except ModelError as e:
            logger.warning("Chat turn degraded: %s", e)
            text = f"{APOLOGY} {emergency_fallback_text()}"
            history = history + [{"role": "assistant", "content": text, "functionCalls": calls}]
            result = failure(e, emergency=True)
            result.update({"reply": text, "functionCalls": calls, "history": history})
            return result

        history = history + [{"role": "assistant", "content": text, "functionCalls": calls}]
        return {
            "success": True,
            "reply": text,
            "functionCalls": calls,
            "history": history,
        }
