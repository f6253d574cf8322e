"""
ClearX shopping assistant.

Answers shopper questions from the current catalog only. The catalog is
injected into the system prompt on every call.
"""
import logging
from typing import Iterable, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from config import settings

log = logging.getLogger(__name__)

NOT_CONFIGURED_REPLY = (
    "I'm sorry, I cannot connect to the intelligence service right now. "
    "Please check your API configuration."
)
EMPTY_REPLY = "I'm having trouble thinking right now."
ERROR_REPLY = "Sorry, I encountered an error while searching."

SYSTEM_PROMPT_TEMPLATE = """\
You are ClearX Assistant, a helpful shopping guide for a unified commerce app in India.

The app has three verticals:
1. Deals Near Me (Hyperlocal clearance sales)
2. Rural Gold (Farm-to-table produce)
3. Makers Mart (Artisanal handcrafted goods)

Your Goal: Help users find products from the available inventory below.

Current Inventory:
{catalog}

Rules:
- Recommend items solely from the inventory list.
- If the user asks for something not in the list, suggest the closest alternative or explain you don't have it yet.
- Be polite, concise, and helpful.
- Use Indian formatting for currency (₹).
- If the user greets you, explain what ClearX does briefly.
"""


def build_catalog_context(products: Iterable[dict]) -> str:
    lines = []
    for p in products:
        lines.append(
            f"- {p.get('name')} ({p.get('category')}) by {p.get('storeName')}. "
            f"Price: ₹{p.get('price')}. Rating: {p.get('rating')}/5. Vertical: {p.get('vertical')}"
        )
    return "\n".join(lines)


def build_llm() -> Optional[BaseChatModel]:
    if not settings.openai_api_key:
        return None
    return ChatOpenAI(model=settings.assistant_model, api_key=settings.openai_api_key, max_retries=2)


def generate_assistant_response(prompt: str, products: Iterable[dict], llm: Optional[BaseChatModel] = None) -> str:
    llm = llm or build_llm()
    if llm is None:
        return NOT_CONFIGURED_REPLY

    system = SYSTEM_PROMPT_TEMPLATE.format(catalog=build_catalog_context(products))
    try:
        response = llm.invoke([SystemMessage(content=system), HumanMessage(content=prompt)])
    except Exception:
        log.exception("Assistant call failed")
        return ERROR_REPLY
    return response.content or EMPTY_REPLY
