"""Prompt assembly and post-processing of bot replies.

Builds the system prompt (base prompt, knowledge base block, escalation
protocol), describes the ``trigger_escalation`` tool and cleans up replies
where the model wrote the tool name as text instead of calling it.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

ESCALATION_TOOL_NAME = "trigger_escalation"

ESCALATION_TOOL = {
    "name": ESCALATION_TOOL_NAME,
    "description": (
        "Call this tool whenever the user asks for support, sales, human contact, "
        "or expresses frustration/anger. Also use this tool if you find contact details "
        "in the Context/Knowledge Base that answer the user's request."
    ),
}

DEFAULT_BRIDGE_TEXT = "I can connect you with our team for further assistance."

TOOL_LEAK_RE = re.compile(ESCALATION_TOOL_NAME, re.IGNORECASE)

_ESCALATION_PROTOCOL = [
    "Escalation Protocol (TOOL-BASED):",
    "- PRIMARY RULE: If the Knowledge Base context contains a relevant, direct answer to the user's question, you MUST answer using it. Do not escalate in that case.",
    "- You have access to a tool called `trigger_escalation`.",
    "- When the user asks about purchasing, pricing, contact information, speaking to sales, or needs human assistance, you MUST call the `trigger_escalation` tool.",
    "- When the user expresses frustration, anger, dissatisfaction, or repeatedly fails to get a satisfactory answer, you MUST call the `trigger_escalation` tool.",
    "- If (and only if) the user asks for contact details / human support and you find contact details (phone numbers, emails, WhatsApp numbers) in the Knowledge Base context, you MUST call the `trigger_escalation` tool instead of outputting them as plain text.",
    "- You are STRICTLY FORBIDDEN from outputting phone numbers, WhatsApp numbers, or email addresses in plain text, even if they exist in the Knowledge Base. ALWAYS use the `trigger_escalation` tool instead.",
    "- DO NOT write 'trigger_escalation' as text. Just call the tool function.",
    "- DO NOT say that buttons will appear. The UI is not your responsibility.",
    "- If you are going to say you will connect the user to Admin/CS/Sales (or suggest pressing buttons), you MUST call the `trigger_escalation` tool instead of writing that as plain text.",
    "- Before calling the tool, generate a short, polite bridge sentence (e.g., 'I can connect you with our team for further assistance.').",
    "- Do NOT make up contact information.",
]

def _escalation_contacts(escalation: Optional[Dict[str, Any]]) -> Tuple[str, str]:
    whatsapp_digits = re.sub(r"\D", "", (escalation or {}).get("whatsapp") or "")
    email = ((escalation or {}).get("email") or "").strip()
    return whatsapp_digits, email

def build_knowledge_base_block(context_block: str) -> str:
    if not context_block:
        return ""
    return (
        "\n\nRelevant Knowledge Base Information:\n"
        "-----------------------------------\n"
        f"{context_block}\n"
        "-----------------------------------\n"
        "Use the information above to answer the user's question if relevant."
    )

def build_escalation_prompt(escalation: Optional[Dict[str, Any]]) -> Optional[str]:
    """Escalation instructions, or None when escalation is off or has no contact"""
    if not escalation or not escalation.get("enabled"):
        return None
    whatsapp_digits, email = _escalation_contacts(escalation)
    if not whatsapp_digits and not email:
        return None
    return "\n".join(_ESCALATION_PROTOCOL)

def build_escalation_contact_section(escalation: Optional[Dict[str, Any]]) -> Optional[str]:
    if not escalation or not escalation.get("enabled"):
        return None
    whatsapp_digits, email = _escalation_contacts(escalation)
    if not whatsapp_digits and not email:
        return None

    lines = ["### Contact Us"]
    if whatsapp_digits:
        lines.append(f"[Chat WhatsApp](https://wa.me/{whatsapp_digits})")
    if email:
        lines.append(f"[Email Us](mailto:{email})")
    return "\n".join(lines)

def response_contains_escalation(text: str, escalation: Optional[Dict[str, Any]]) -> bool:
    whatsapp_digits, email = _escalation_contacts(escalation)
    has_whatsapp = f"https://wa.me/{whatsapp_digits}" in text if whatsapp_digits else True
    has_email = f"mailto:{email}" in text if email else True
    return has_whatsapp and has_email

def sanitize_tool_leak(text: str) -> Tuple[str, bool]:
    """Removes leaked tool names; returns (text, leaked)"""
    if not TOOL_LEAK_RE.search(text or ""):
        return text, False
    cleaned = TOOL_LEAK_RE.sub("", text)
    cleaned = re.sub(r"\s{2,}", " ", cleaned).strip()
    return cleaned, True

def stream_update_event(sent: str, current: str) -> Optional[Dict[str, str]]:
    """
    Evento que lleva al cliente del texto ya enviado al texto actual

    Un delta con solo la parte nueva si current extiende lo enviado; un
    replace con el texto completo si el saneado reescribió algo ya enviado.
    None si no hay cambios.
    """
    if current == sent:
        return None
    if current.startswith(sent):
        return {"type": "delta", "delta": current[len(sent):], "content": current}
    return {"type": "replace", "content": current}

def build_system_prompt(
    base_prompt: Optional[str],
    context_block: str,
    escalation: Optional[Dict[str, Any]],
) -> str:
    system_prompt = (base_prompt or "").strip() or DEFAULT_SYSTEM_PROMPT
    system_prompt += build_knowledge_base_block(context_block)
    escalation_prompt = build_escalation_prompt(escalation)
    if escalation_prompt:
        system_prompt = f"{system_prompt}\n\n{escalation_prompt}"
    return system_prompt

def escalation_tools(escalation: Optional[Dict[str, Any]]) -> Optional[List[Dict[str, str]]]:
    """The tool list for the provider call; only when the contact section can be built"""
    if build_escalation_contact_section(escalation):
        return [ESCALATION_TOOL]
    return None

def finalize_reply(
    text: str,
    tool_calls: List[str],
    escalation: Optional[Dict[str, Any]],
    leaked: bool = False,
) -> str:
    """
    Limpia la respuesta del modelo y añade la sección de contacto si procede

    La sección se añade cuando el modelo llamó a la herramienta de escalado
    (o escribió su nombre) y la respuesta todavía no contiene los enlaces.
    """
    text, leaked_now = sanitize_tool_leak(text or "")
    leaked = leaked or leaked_now
    called = ESCALATION_TOOL_NAME in tool_calls
    contact_section = build_escalation_contact_section(escalation)

    if (called or leaked) and contact_section and not response_contains_escalation(text, escalation):
        if len(text.strip()) < 5:
            text = DEFAULT_BRIDGE_TEXT
        text = f"{text}\n\n{contact_section}"

    return text
