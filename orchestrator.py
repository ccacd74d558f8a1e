# orchestrator.py - retrieval-augmented answer for one chat message
import logging

from models import Role
from utils import trim_context_text

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "I'm sorry, I couldn't find that information in the knowledge base."
INTERNAL_ERROR_MESSAGE = (
    "I apologize, but I encountered an internal error while processing your request. "
    "Please try again shortly."
)

PROMPT_TEMPLATE = """ROLE / OBJECTIVE:
You are a helpful assistant that answers questions based only on documents the user is allowed to access.

Use only the documents given in the context below.
If the user asks about restricted content, deny politely.

If the answer cannot be found in the documents, reply with:
"{not_found}"

Answer in the same language as the question.
Keep replies short and clear.

History:
{history}

Context:
{context}

Question: {question}
"""

ROLE_LABELS = {
    Role.HUMAN: "Human",
    Role.ASSISTANT: "Assistant",
}


def format_history(messages):
    return "\n".join(f"{ROLE_LABELS[m.role]}: {m.content}" for m in messages)


def build_prompt(passages, history_window, question, max_context_chars=8000):
    context = trim_context_text("\n\n---\n\n".join(passages), max_chars=max_context_chars)
    return PROMPT_TEMPLATE.format(
        not_found=NOT_FOUND_MESSAGE,
        history=format_history(history_window) or "(no previous messages)",
        context=context,
        question=question,
    )


class RagOrchestrator:
    """Answers a chat message from the knowledge base and records the turn.

    The history store keeps more messages than the model ever sees; only the
    last ``context_history_count`` are put in the prompt.
    """

    def __init__(self, retriever, history, model, context_history_count=3,
                 top_k=5, max_context_chars=8000):
        self.retriever = retriever
        self.history = history
        self.model = model
        self.context_history_count = context_history_count
        self.top_k = top_k
        self.max_context_chars = max_context_chars

    def handle_chat(self, session_id, question):
        question = (question or "").strip()
        logger.info(f"📩 Incoming message from {session_id}: {question!r}")

        try:
            passages = self.retriever.retrieve(question, k=self.top_k)
            if not passages:
                logger.info(f"[RAG - {session_id}] No relevant documents found")
                answer = NOT_FOUND_MESSAGE
            else:
                window = self.history.get_recent_window(session_id, self.context_history_count)
                logger.debug(f"[RAG - {session_id}] Using {len(window)} history messages in prompt")
                prompt = build_prompt(passages, window, question, self.max_context_chars)
                answer = self.model.invoke(prompt)

            self.history.add_turn(session_id, question, answer)
        except Exception:
            logger.exception(f"❌ Error in handle_chat for {session_id}")
            return INTERNAL_ERROR_MESSAGE

        logger.info(f"🗣️ Answer for {session_id}: {answer!r}")
        return answer
