"""AI Procurement Assistant — one conversational turn with agent-state updates.

Purpose:
  Sends the user's message, a text summary of the conversation's agent
  state and the last few messages to the text-generation model. The model
  answers with a reply plus an optional state update (workflow step, RFP
  draft fragment, conversation title).

Business Rules:
  - The state update is untrusted: only known keys survive, and the
    rfp_draft fragment is later merged through the draft reconciler
  - Unknown workflow steps are dropped
  - show_send_button is true only when the model says exactly true
  - Model unavailable or reply without "response" → apology text, no update

Called by: services/conversation_service.handle_user_message
Depends on: services/llm_service.py
"""

from typing import Any

from loguru import logger

from app.services.llm_service import llm_json

WORKFLOW_STEPS = (
    "initial",
    "collecting_requirements",
    "drafting_rfp",
    "reviewing_rfp",
    "selecting_vendors",
    "ready_to_send",
    "sent",
    "waiting_for_proposals",
    "comparing_proposals",
    "closed",
)

FALLBACK_RESPONSE = (
    "I apologize, but I encountered an issue processing your request. "
    "Please try rephrasing your message or try again in a moment."
)

RECENT_MESSAGE_LIMIT = 3

_STATE_ALIASES = {
    "conversationTitle": "conversation_title",
    "workflowStep": "workflow_step",
    "rfpDraft": "rfp_draft",
    "lastAction": "last_action",
    "missingFields": "missing_fields",
}

SYSTEM_PROMPT = """\
You are a procurement assistant. You help users create RFPs (Requests for \
Proposal) from natural language, send them to vendors, and compare vendor \
proposals.

Current agent state:
{state_summary}
{context}
Rules:
- Never ask the user for a title or description; derive them from the request.
- Only ask for procurement details: items with quantities/specifications, \
budget, deadline, delivery days, payment terms, warranty.
- Never mention the title or description in your reply text.
- When the user first describes a need, set conversation_title (3-4 words).
- Set show_send_button to true ONLY when the user explicitly confirms sending \
and the draft has a title, description and items.

RFP draft structure:
{{
  "title": "3-4 word title",
  "description": "description extracted from the conversation",
  "budget": number or null,
  "deadline": "ISO date or null",
  "requirements": {{
    "items": [{{"name": "...", "quantity": number, "specifications": "..."}}],
    "delivery_days": number or null,
    "payment_terms": "string or null",
    "warranty": "string or null",
    "other_requirements": ["..."]
  }},
  "missing_fields": ["..."]
}}

Workflow steps: {steps}. Use "ready_to_send" once the draft has a title, \
description and items.

Return JSON:
{{
  "response": "your reply to the user",
  "show_send_button": false,
  "state_update": {{
    "conversation_title": "...",
    "workflow_step": "...",
    "rfp_draft": {{...}},
    "last_action": "...",
    "missing_fields": [...]
  }} or null
}}"""


def _context_block(context: dict | None) -> str:
    if not context:
        return ""
    rfps = context.get("rfps") or []
    vendors = context.get("vendors") or []
    lines = [
        "",
        "System context:",
        f"- RFPs: {len(rfps)} available",
        f"- Vendors: {len(vendors)} in system",
    ]
    if rfps:
        lines.append("Recent RFPs: " + ", ".join(str(r.get("title")) for r in rfps[:3]))
    if vendors:
        lines.append("Available vendors: " + ", ".join(str(v.get("name")) for v in vendors[:5]))
    return "\n".join(lines) + "\n"


def sanitize_state_update(raw: Any) -> dict:
    """Keep the known agent-state keys with the right shapes; drop the rest."""
    if not isinstance(raw, dict):
        return {}
    data = {_STATE_ALIASES.get(k, k): v for k, v in raw.items()}
    update: dict[str, Any] = {}

    title = data.get("conversation_title")
    if isinstance(title, str) and title.strip():
        update["conversation_title"] = title.strip().strip("\"'")[:255]

    step = data.get("workflow_step")
    if step in WORKFLOW_STEPS:
        update["workflow_step"] = step
    elif step is not None:
        logger.debug("Dropping unknown workflow step: {!r}", step)

    draft = data.get("rfp_draft")
    if isinstance(draft, dict):
        update["rfp_draft"] = draft

    action = data.get("last_action")
    if isinstance(action, str) and action.strip():
        update["last_action"] = action.strip()

    missing = data.get("missing_fields")
    if isinstance(missing, list):
        update["missing_fields"] = [m for m in missing if isinstance(m, str)]

    return update


async def chat_with_agent_state(
    message: str,
    state_summary: str,
    recent_messages: list[dict] | None = None,
    context: dict | None = None,
) -> dict:
    """Run one conversational turn.

    Returns {"response": str, "state_update": dict, "show_send_button": bool}.
    """
    system = SYSTEM_PROMPT.format(
        state_summary=state_summary,
        context=_context_block(context),
        steps=", ".join(WORKFLOW_STEPS),
    )
    history = [
        {"role": m["role"], "content": m["content"]}
        for m in (recent_messages or [])[-RECENT_MESSAGE_LIMIT:]
        if m.get("role") in ("user", "assistant") and m.get("content")
    ]
    history.append({"role": "user", "content": message})

    parsed = await llm_json(history, system=system, max_tokens=1500, temperature=0.7)
    if not isinstance(parsed, dict) or not isinstance(parsed.get("response"), str):
        logger.warning("Assistant turn returned no usable reply")
        return {"response": FALLBACK_RESPONSE, "state_update": {}, "show_send_button": False}

    raw_update = parsed.get("state_update", parsed.get("stateUpdate"))
    show = parsed.get("show_send_button", parsed.get("showSendButton"))
    return {
        "response": parsed["response"],
        "state_update": sanitize_state_update(raw_update),
        "show_send_button": show is True,
    }
