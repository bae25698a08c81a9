import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool

from concierge.commands import (
    CART_MUTATIONS,
    DEFAULT_COMMANDS,
    CommandCatalog,
    CommandContext,
    CommandKind,
    CommandResult,
)
from concierge.intents import IntentParser
from concierge.llm import GeminiClient, LLMError, function_response_content, model_content, user_content
from concierge.prompts import EMPTY_MESSAGE_REPLY, HELP_TEXT, NOTHING_TO_SEARCH_REPLY, SYSTEM_PROMPT
from storefront.carts import CartKey
from storefront.config import CHAT_HISTORY_LIMIT, CHAT_SESSION_TTL_SECONDS, MAX_CHAT_SESSIONS, MAX_TOOL_ROUNDS
from storefront.schemas import ApiModel, UserOut
from storefront.services import Storefront

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return f"chat-{uuid.uuid4().hex[:16]}"


class ChatMessage(ApiModel):
    role: str
    content: str
    timestamp: datetime
    tools: List[str] = []


class Overlay(ApiModel):
    tool: str
    title: str
    query: Optional[str] = None
    products: List[Dict[str, Any]] = []


class Navigation(ApiModel):
    destination: str
    url: str
    label: str


class ChatReply(ApiModel):
    response: str
    session_id: str
    tool_results: List[CommandResult] = []
    overlay: Optional[Overlay] = None
    navigation: Optional[Navigation] = None
    cart_changed: bool = False
    mode: str
    timestamp: datetime


@dataclass
class ChatSession:
    id: str
    messages: List[ChatMessage] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    last_activity: datetime = field(default_factory=_now)


def route_results(results: List[CommandResult]) -> Tuple[Optional[Overlay], Optional[Navigation], bool]:
    """Decide what the UI should update, using each result's kind.

    The overlay only ever comes from display commands, so a cart result that
    arrives after a product list cannot replace it.
    """
    overlay = None
    navigation = None
    cart_changed = False
    for result in results:
        if not result.success:
            continue
        if result.kind is CommandKind.DISPLAY:
            overlay = Overlay(
                tool=result.tool,
                title=result.data.get("title") or "Products",
                query=result.data.get("query"),
                products=result.data.get("products", []),
            )
        elif result.kind is CommandKind.NAVIGATION:
            navigation = Navigation(
                destination=result.data["destination"],
                url=result.data["url"],
                label=result.data["label"],
            )
        elif result.kind is CommandKind.CART and result.tool in CART_MUTATIONS:
            cart_changed = True
    return overlay, navigation, cart_changed


class PharmacyAgent:
    """Chat assistant: Gemini function calling first, keyword rules as a fallback."""

    def __init__(
        self,
        storefront: Storefront,
        llm: Optional[GeminiClient] = None,
        commands: CommandCatalog = DEFAULT_COMMANDS,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
        history_limit: int = CHAT_HISTORY_LIMIT,
        session_ttl: int = CHAT_SESSION_TTL_SECONDS,
        max_sessions: int = MAX_CHAT_SESSIONS,
    ):
        self.storefront = storefront
        self.llm = llm or GeminiClient()
        self.commands = commands
        self.parser = IntentParser()
        self.max_tool_rounds = max_tool_rounds
        self.history_limit = history_limit
        self.session_ttl = timedelta(seconds=session_ttl)
        self.max_sessions = max_sessions
        self.sessions: Dict[str, ChatSession] = {}
        if not self.llm.enabled:
            logger.warning("No Gemini API key found, assistant will use keyword rules")

    # -- sessions --------------------------------------------------------

    def _evict_sessions(self):
        cutoff = _now() - self.session_ttl
        expired = [sid for sid, session in self.sessions.items() if session.last_activity < cutoff]
        for sid in expired:
            del self.sessions[sid]
        if expired:
            logger.info(f"Evicted {len(expired)} idle chat sessions")

    def get_session(self, session_id: str) -> ChatSession:
        self._evict_sessions()
        session = self.sessions.get(session_id)
        if session is None:
            while self.sessions and len(self.sessions) >= self.max_sessions:
                oldest = min(self.sessions.values(), key=lambda s: s.last_activity)
                del self.sessions[oldest.id]
                logger.info(f"Session limit reached, dropped chat session {oldest.id}")
            session = ChatSession(id=session_id)
            self.sessions[session_id] = session
            logger.info(f"Started chat session {session_id}")
        return session

    def history(self, session_id: str) -> List[ChatMessage]:
        self._evict_sessions()
        session = self.sessions.get(session_id)
        return list(session.messages) if session else []

    def context(self, session_id: str) -> Dict[str, Any]:
        self._evict_sessions()
        session = self.sessions.get(session_id)
        return dict(session.context) if session else {}

    def clear_session(self, session_id: str) -> bool:
        return self.sessions.pop(session_id, None) is not None

    def config(self) -> Dict[str, Any]:
        return {
            "llm": self.llm.config(),
            "mode": "gemini" if self.llm.enabled else "rules",
            "maxToolRounds": self.max_tool_rounds,
            "historyLimit": self.history_limit,
            "sessionTtlSeconds": int(self.session_ttl.total_seconds()),
            "maxSessions": self.max_sessions,
            "tools": self.commands.names,
            "activeSessions": len(self.sessions),
        }

    def _remember(self, session: ChatSession, role: str, content: str, tools: Optional[List[str]] = None):
        session.messages.append(ChatMessage(role=role, content=content, timestamp=_now(), tools=tools or []))
        if len(session.messages) > self.history_limit:
            del session.messages[: len(session.messages) - self.history_limit]
        session.last_activity = _now()

    # -- entry point -----------------------------------------------------

    async def process_message(
        self,
        session_id: str,
        message: str,
        user: Optional[UserOut] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> ChatReply:
        session = self.get_session(session_id)
        if context:
            session.context.update(context)
        if user is not None:
            session.context["username"] = user.username

        if not message or not message.strip():
            return ChatReply(response=EMPTY_MESSAGE_REPLY, session_id=session_id, mode="rules", timestamp=_now())

        cart_key = CartKey.for_user(user.id) if user else CartKey.for_session(session_id)
        ctx = CommandContext(storefront=self.storefront, cart_key=cart_key)
        results: List[CommandResult] = []
        mode = "rules"

        text = None
        if self.llm.enabled:
            try:
                text = await self._process_with_gemini(session, message, ctx, results)
                mode = "gemini"
            except LLMError as e:
                if results:
                    # commands already ran; replaying them through the rules would repeat cart changes
                    logger.error(f"Gemini failed after {len(results)} tool calls: {e}")
                    text = self._summarize(results)
                    mode = "gemini"
                else:
                    logger.error(f"Gemini processing failed, using fallback: {e}")
        if text is None:
            text = await self._process_with_rules(message, ctx, results)

        self._remember(session, "user", message)
        self._remember(session, "assistant", text, tools=[r.tool for r in results])

        overlay, navigation, cart_changed = route_results(results)
        return ChatReply(
            response=text,
            session_id=session_id,
            tool_results=results,
            overlay=overlay,
            navigation=navigation,
            cart_changed=cart_changed,
            mode=mode,
            timestamp=_now(),
        )

    async def _run(self, name: str, args: Dict[str, Any], ctx: CommandContext, results: List[CommandResult]) -> CommandResult:
        # storefront services are synchronous database code
        result = await run_in_threadpool(self.commands.execute, name, args, ctx)
        results.append(result)
        return result

    # -- Gemini ----------------------------------------------------------

    def _conversation(self, session: ChatSession, message: str) -> List[Dict[str, Any]]:
        contents = []
        for past in session.messages:
            if past.role == "user":
                contents.append(user_content(past.content))
            else:
                contents.append(model_content(past.content))
        prompt = message
        if session.context:
            details = ", ".join(f"{k}: {v}" for k, v in session.context.items())
            prompt = f"[Context: {details}]\n{message}"
        contents.append(user_content(prompt))
        return contents

    async def _process_with_gemini(
        self, session: ChatSession, message: str, ctx: CommandContext, results: List[CommandResult]
    ) -> str:
        contents = self._conversation(session, message)
        tools = self.commands.tools()

        for round_number in range(self.max_tool_rounds):
            turn = await self.llm.generate(contents, tools=tools, system_instruction=SYSTEM_PROMPT)
            if not turn.function_calls:
                if turn.text:
                    return turn.text
                return self._summarize(results) or "How else can I help you?"

            contents.append({"role": "model", "parts": turn.parts})
            responses = []
            for call in turn.function_calls:
                logger.info(f"Model called {call.name} (round {round_number + 1})")
                result = await self._run(call.name, call.args, ctx, results)
                responses.append({"name": call.name, "response": result.for_model()})
            contents.append(function_response_content(responses))

        logger.warning(f"Tool round limit ({self.max_tool_rounds}) reached for session {session.id}")
        return self._summarize(results) or "Sorry, I couldn't finish that request. Could you rephrase it?"

    @staticmethod
    def _summarize(results: List[CommandResult]) -> str:
        return "\n\n".join(result.message for result in results if result.message)

    # -- keyword fallback -------------------------------------------------

    async def _process_with_rules(self, message: str, ctx: CommandContext, results: List[CommandResult]) -> str:
        intent = self.parser.classify_intent(message)
        logger.info(f"Rule-based intent: {intent}")

        if intent == "help":
            return HELP_TEXT
        if intent == "cart_clear":
            return (await self._run("clear_cart", {}, ctx, results)).message
        if intent == "cart_view":
            return (await self._run("view_cart", {}, ctx, results)).message
        if intent == "store_info":
            return (await self._run("store_info", {}, ctx, results)).message
        if intent == "navigate":
            return (await self._run("navigate", await self._navigation_args(message), ctx, results)).message

        terms = self.parser.extract_search_terms(message, intent)
        if not terms:
            return HELP_TEXT if intent != "search" else NOTHING_TO_SEARCH_REPLY

        if intent == "cart_add":
            quantity = self.parser.extract_quantity(message)
            result = await self._run("add_to_cart", {"product": terms, "quantity": quantity}, ctx, results)
            if not result.success and "not found" in result.message.lower():
                # show what we do have instead
                search = await self._run("search_products", {"query": terms}, ctx, results)
                return f"{result.message}\n\n{search.message}"
            return result.message
        if intent == "cart_remove":
            return (await self._run("remove_from_cart", {"product": terms}, ctx, results)).message

        return (await self._run("search_products", {"query": terms}, ctx, results)).message

    async def _navigation_args(self, message: str) -> Dict[str, Any]:
        destination, target = self.parser.extract_destination(message)
        if destination is not None:
            return {"destination": destination, "target": target or None}
        if target:
            names = await run_in_threadpool(self.storefront.catalog.categories)
            categories = {c.lower(): c for c in names}
            if target in categories:
                return {"destination": "category", "target": categories[target]}
            return {"destination": "product", "target": target}
        return {"destination": "home"}
