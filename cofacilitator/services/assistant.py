import logging

from cofacilitator.clients import EngineClient
from cofacilitator.errors import QueryUpstreamError

logger = logging.getLogger(__name__)

APOLOGY = "Sorry, I encountered an error while processing your question."

USER = "user"
AI = "ai"


class ChatSession:
    """Question desk for one client session.

    ``messages`` is what the viewer sees (questions, answers, apologies).
    ``history`` is the context sent to the AI engine: every question, and
    every answer the engine actually produced.  Nothing is persisted.
    """

    def __init__(self, engine: EngineClient | None = None) -> None:
        self.engine = engine or EngineClient()
        self.messages: list[dict] = []
        self.history: list[dict] = []

    async def ask(self, question: str) -> str | None:
        """Send *question* with the prior history.  Returns the answer, or None for blank input.

        An engine failure is never raised: the apology is returned and shown
        instead, and history keeps only the question.
        """
        if not question.strip():
            return None

        context = list(self.history)
        turn = {"type": USER, "content": question}
        self.messages.append(turn)
        self.history.append(turn)

        try:
            answer = await self.engine.query(question, context)
        except QueryUpstreamError as exc:
            logger.warning("Error querying AI: %s", exc)
            self.messages.append({"type": AI, "content": APOLOGY})
            return APOLOGY

        reply = {"type": AI, "content": answer}
        self.messages.append(reply)
        self.history.append(reply)
        return answer

    def latest_answer(self) -> str | None:
        for message in reversed(self.messages):
            if message["type"] == AI:
                return message["content"]
        return None
