import threading
import time
import uuid
from typing import Any, Callable, Dict, Iterator, List, Optional

from openai import OpenAI

from .llm import DEEP_REASONING_BUDGET, FAST_REASONING_BUDGET, make_client, reasoning_effort_for
from .models import ChatMessage
from .settings import get_api_key, get_chat_model, log


SYSTEM_INSTRUCTION = (
    "You are an expert software engineer and code security analyst. Help the user with their code, "
    "explain bugs, and suggest fixes. Be concise and professional."
)
GREETING = "Hi! I'm your CodeGuard AI assistant. Ask me anything about your code or security vulnerabilities."
OFFLINE_NOTICE = "API Key not configured. Chat is running in offline demo mode."
OFFLINE_REPLY = (
    "I am currently in offline mode because no API key was provided. In a real environment, "
    "I would analyze your request using the configured model."
)
APOLOGY = "Sorry, I encountered an error communicating with the assistant."


class ChatSession:
    """Multi-turn session against the chat completions endpoint.

    A turn is added to the history only once its reply has streamed in full,
    so a failed turn leaves the earlier ones untouched.
    """

    def __init__(self, client: OpenAI, model: str, system_instruction: str = SYSTEM_INSTRUCTION):
        self.client = client
        self.model = model
        self.history: List[Dict[str, str]] = [{"role": "system", "content": system_instruction}]

    def stream_reply(self, text: str, deep: bool = False) -> Iterator[str]:
        budget = DEEP_REASONING_BUDGET if deep else FAST_REASONING_BUDGET
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": self.history + [{"role": "user", "content": text}],
            "stream": True,
        }
        effort = reasoning_effort_for(self.model, budget)
        if effort:
            params["reasoning_effort"] = effort
        reply = ""
        for chunk in self.client.chat.completions.create(**params):
            if not chunk.choices:
                continue
            fragment = chunk.choices[0].delta.content
            if fragment:
                reply += fragment
                yield fragment
        self.history.append({"role": "user", "content": text})
        self.history.append({"role": "assistant", "content": reply})


def create_chat_session() -> Optional[ChatSession]:
    api_key = get_api_key()
    if not api_key:
        return None
    return ChatSession(make_client(api_key), get_chat_model())


def _new_id() -> str:
    return uuid.uuid4().hex


class Conversation:
    """The transcript shown in the floating chat panel.

    The session is created on the first ``open()``. Without one, every
    message gets the canned offline reply after ``offline_delay`` seconds.
    """

    def __init__(
        self,
        session_factory: Callable[[], Optional[ChatSession]] = create_chat_session,
        offline_delay: float = 1.0,
    ):
        self.session_factory = session_factory
        self.offline_delay = offline_delay
        self.session: Optional[ChatSession] = None
        self.opened = False
        self.busy = False
        self.messages: List[ChatMessage] = [ChatMessage(id="1", role="assistant", content=GREETING)]
        self._lock = threading.Lock()

    def open(self) -> None:
        with self._lock:
            if self.opened:
                return
            self.opened = True
            self.session = self.session_factory()
            if self.session is None:
                self.messages.append(ChatMessage(id="offline", role="assistant", content=OFFLINE_NOTICE))

    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [m.to_dict() for m in self.messages]

    def send(self, text: str, deep: bool = False) -> Iterator[Dict[str, Any]]:
        """Post a user turn and yield stream events for the reply.

        Events are ``start`` (with the assistant and user message ids), one ``delta``
        per fragment in arrival order, then ``done`` or ``replace`` when the
        in-progress reply was swapped for the apology.
        """
        text = (text or "").strip()
        self.open()
        with self._lock:
            if not text or self.busy:
                return
            self.busy = True
            question = ChatMessage(id=_new_id(), role="user", content=text)
            self.messages.append(question)
            reply = ChatMessage(id=_new_id(), role="assistant", content="", done=False)
            self.messages.append(reply)
        try:
            yield {"event": "start", "id": reply.id, "user_id": question.id}
            if self.session is None:
                time.sleep(self.offline_delay)
                reply.content = OFFLINE_REPLY
                yield {"event": "delta", "id": reply.id, "text": OFFLINE_REPLY}
                yield {"event": "done", "id": reply.id}
                return
            try:
                for fragment in self.session.stream_reply(text, deep=deep):
                    reply.content += fragment
                    yield {"event": "delta", "id": reply.id, "text": fragment}
            except Exception as e:
                log("chat", f"Chat error: {e}", always=True)
                reply.content = APOLOGY
                yield {"event": "replace", "id": reply.id, "text": APOLOGY}
                return
            yield {"event": "done", "id": reply.id}
        finally:
            reply.done = True
            self.busy = False
