"""
Assistant response generation.

Groq reads the matched emails and answers; without a key (or on failure) a
local summary is built from the same emails.
"""

from __future__ import annotations

import re
from collections import Counter

from pydantic import BaseModel

from flowsphere.assistant.intent import QueryType
from flowsphere.assistant.search import has_urgent_flag
from flowsphere.config import (
    ASSISTANT_CONTEXT_CONTENT_CHARS,
    ASSISTANT_CONTEXT_MAX_EMAILS,
    ASSISTANT_MAX_TOKENS,
    ASSISTANT_TEMPERATURE,
)
from flowsphere.llm import groq
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, time_block
from flowsphere.storage.models import Email, EmailCategory

logger = get_logger(__name__)

NO_EMAILS_FOUND = (
    "I searched through your inbox but couldn't find any emails matching your request. "
    "This could mean:\n\n"
    "- No emails exist in that category/timeframe\n"
    "- Your email accounts may not be synced yet\n"
    "- Try a broader search or different time range\n\n"
    "Would you like me to show all your recent emails instead?"
)

LOCAL_FALLBACK_FOOTER = (
    "\n\n---\n_Using local analysis (AI unavailable). Results may be less detailed._"
)

SYSTEM_PROMPT = """You are FlowSphere's intelligent AI Email Assistant. You are like a human personal assistant who actually reads and understands emails.

YOUR CAPABILITIES:
- Read and comprehend email content thoroughly
- Provide detailed, specific summaries (not just counts)
- Identify action items, deadlines, and important details
- Draft professional email replies
- Help compose new emails
- Prioritize urgent matters

YOUR STYLE:
- Be conversational and helpful, like a human assistant
- Provide SPECIFIC details from emails (names, dates, amounts, topics)
- Use bullet points for clarity
- Highlight urgent items prominently
- Be concise but thorough
- Never just say "I found X emails" - always provide actual content summaries

IMPORTANT: You have access to the FULL email content. Read it carefully and provide meaningful insights."""

_PROMPTS: dict[str, str] = {
    "summary": """User asked: "{query}"

I need you to READ these emails thoroughly and provide a DETAILED summary. Don't just count them - tell the user WHAT each important email is about.

Here are the emails to read and summarize:
{emails}

Please provide:
1. A clear overview of the main topics/themes
2. Specific details from important emails (who sent what, about what)
3. Any urgent items or deadlines mentioned
4. Action items if any

Remember: Be specific! Mention actual names, subjects, and content from the emails.""",
    "action": """User asked: "{query}"

Read these emails and identify ALL action items, tasks, requests, or things requiring the user's attention:
{emails}

For each action item found:
- What is the action needed?
- Who requested it?
- When is it due (if mentioned)?
- How urgent is it?

Be specific and thorough. The user is counting on you to not miss anything important.""",
    "question": """User asked: "{query}"

Here are relevant emails to search for the answer:
{emails}

Answer the user's question based on the actual email content. Be specific - quote relevant parts if helpful. If the answer isn't in the emails, say so clearly.""",
    "draft": """User asked: "{query}"

Based on these emails, draft a professional reply:
{emails}

Create a well-written, professional response that:
- Addresses the key points from the original email
- Is appropriately formal/informal based on the context
- Is clear and concise
- Includes any necessary action items or next steps

Format your response as:
TO: [recipient email]
SUBJECT: [reply subject]
BODY:
[The draft email content]""",
    "compose": """User asked: "{query}"

Help compose a new email based on their request. If they mentioned any context from existing emails:
{emails}

Create a professional email that:
- Addresses the user's intent clearly
- Is appropriately formatted
- Includes a clear subject line

Format your response as:
TO: [leave blank if not specified]
SUBJECT: [suggested subject]
BODY:
[The composed email content]""",
    "default": """User searched for: "{query}"

Here are the matching emails I found:
{emails}

Provide a helpful overview of what was found. Be specific about the content - mention actual subjects, senders, and key points from the emails. Don't just count them, summarize them meaningfully.""",
}

TOPIC_WORDS = [
    "meeting", "deadline", "urgent", "important", "asap", "payment", "invoice",
    "project", "report", "review", "approval", "confirm", "schedule", "update",
    "reminder", "action", "required", "please", "request",
]

ACTION_WORDS = [
    "action", "please", "required", "deadline", "asap", "urgent", "review",
    "approve", "confirm",
]

_DIVIDER = "-" * 40


class DraftEmail(BaseModel):
    to: str = ""
    subject: str = ""
    body: str = ""
    reply_to: Email | None = None


class GeneratedResponse(BaseModel):
    summary: str
    draft_email: DraftEmail | None = None


def prepare_email_content_for_ai(
    emails: list[Email], max_emails: int = ASSISTANT_CONTEXT_MAX_EMAILS
) -> str:
    """Render emails as numbered blocks with full (capped) content for the prompt."""
    if not emails:
        return "No emails found."

    blocks = []
    for i, email in enumerate(emails[:max_emails], start=1):
        category = (email.category.value if email.category else "uncategorized").upper()
        unread = "" if email.read else "[UNREAD] "
        content = email.content_text() or "No content available"
        if len(content) > ASSISTANT_CONTEXT_CONTENT_CHARS:
            content = content[:ASSISTANT_CONTEXT_CONTENT_CHARS] + "..."

        blocks.append(
            f"\n{_DIVIDER}\n"
            f"EMAIL #{i} {unread}[{category}]\n"
            f"{_DIVIDER}\n"
            f"Date: {email.timestamp.strftime('%a, %b %d, %I:%M %p')}\n"
            f"From: {email.sender.name or 'Unknown'} <{email.sender.email}>\n"
            f"Subject: {email.subject}\n\n"
            f"CONTENT:\n{content}\n"
        )
    return "\n".join(blocks)


def parse_draft(text: str) -> DraftEmail | None:
    """Pull TO:/SUBJECT:/BODY: out of an LLM draft; None without subject and body."""
    to_match = re.search(r"TO:\s*(.+)", text, re.I)
    subject_match = re.search(r"SUBJECT:\s*(.+)", text, re.I)
    body_match = re.search(r"BODY:\s*([\s\S]+)", text, re.I)
    if not subject_match or not body_match:
        return None
    return DraftEmail(
        to=to_match.group(1).strip() if to_match else "",
        subject=subject_match.group(1).strip(),
        body=body_match.group(1).strip(),
    )


def generate_ai_response(query: str, emails: list[Email], query_type: QueryType) -> GeneratedResponse:
    """
    Answer the query from the matched emails.

    Side Effects:
        - Calls the Groq API when configured
        - Emits assistant.response.* counters
    """
    if not groq.is_groq_configured():
        logger.info("Groq not configured, using local fallback")
        counter("assistant.response.local")
        return generate_local_fallback_response(query, emails, query_type)

    if not emails:
        return GeneratedResponse(summary=NO_EMAILS_FOUND)

    max_emails = ASSISTANT_CONTEXT_MAX_EMAILS if query_type == "summary" else 10
    template = _PROMPTS.get(query_type, _PROMPTS["default"])
    user_prompt = template.format(query=query, emails=prepare_email_content_for_ai(emails, max_emails))

    try:
        with time_block("assistant.llm.latency"):
            response = groq.groq_chat(
                [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=ASSISTANT_TEMPERATURE,
                max_tokens=ASSISTANT_MAX_TOKENS,
            )
    except Exception as e:
        logger.error("AI response generation failed, using local fallback: %s", e)
        counter("assistant.response.local")
        return generate_local_fallback_response(query, emails, query_type)

    counter("assistant.response.ai")
    draft = parse_draft(response) if query_type in ("draft", "compose") else None
    return GeneratedResponse(summary=response, draft_email=draft)


def _sender_label(email: Email) -> str:
    return email.sender.name or email.sender.email.split("@")[0]


def format_email_preview(email: Email, index: int) -> str:
    unread = " [UNREAD]" if not email.read else ""
    preview = (email.snippet or email.body)[:100]
    ellipsis = "..." if len(preview) >= 100 else ""
    return (
        f"{index + 1}. **{email.subject}**{unread}\n"
        f"   From: {_sender_label(email)} ({email.timestamp.strftime('%b %d')})\n"
        f"   {preview}{ellipsis}"
    )


def extract_topics(emails: list[Email]) -> list[str]:
    """Top five topic words by number of emails mentioning them."""
    counts: Counter[str] = Counter()
    for email in emails:
        text = f"{email.subject} {email.snippet}".lower()
        counts.update(word for word in TOPIC_WORDS if word in text)
    return [word for word, _ in counts.most_common(5)]


def _previews(emails: list[Email]) -> str:
    return "".join(format_email_preview(e, i) + "\n\n" for i, e in enumerate(emails))


def generate_local_fallback_response(
    query: str, emails: list[Email], query_type: str
) -> GeneratedResponse:
    total = len(emails)
    unread = [e for e in emails if not e.read]
    urgent = [e for e in emails if has_urgent_flag(e)]

    if query_type == "summary":
        summary = f"**Email Summary** ({total} emails found)\n\n"
        if urgent:
            summary += f"**Urgent Items ({len(urgent)}):**\n" + _previews(urgent[:3])
        if unread:
            summary += f"**Unread Messages ({len(unread)}):**\n" + _previews(unread[:5])
        topics = extract_topics(emails)
        if topics:
            summary += f"**Key Topics:** {', '.join(topics)}\n\n"

        by_category = Counter(e.category for e in emails)
        summary += (
            "**Breakdown:**\n"
            f"- Work: {by_category[EmailCategory.WORK]} | "
            f"Personal: {by_category[EmailCategory.PERSONAL]} | "
            f"Subscriptions: {by_category[EmailCategory.SUBSCRIPTION]}\n"
            f"- Urgent (flagged): {len(urgent)} | Unread: {len(unread)} of {total} total"
        )

    elif query_type == "action":
        summary = "**Action Items Found**\n\n"
        action_emails = [
            e for e in emails if any(w in f"{e.subject} {e.snippet}".lower() for w in ACTION_WORDS)
        ]
        if action_emails:
            summary += _previews(action_emails[:8])
        else:
            summary += "No obvious action items detected. Here are your most recent emails:\n\n"
            summary += _previews(emails[:5])

    elif query_type == "question":
        summary = f'**Search Results for: "{query}"**\n\nFound {total} relevant emails:\n\n'
        summary += _previews(emails[:8])

    elif query_type in ("draft", "compose"):
        if emails:
            target = emails[0]
            sender = _sender_label(target)
            body = (
                f"Hi {sender},\n\n"
                f'Thank you for your email regarding "{target.subject}".\n\n'
                "[Your response here]\n\n"
                "Best regards"
            )
            summary = (
                "**Draft Reply Suggestion**\n\n"
                f'Replying to: "{target.subject}" from {sender}\n\n---\n\n{body}'
            )
            # Drafts return without the fallback footer
            return GeneratedResponse(
                summary=summary,
                draft_email=DraftEmail(
                    to=target.sender.email, subject=f"Re: {target.subject}", body=body
                ),
            )
        summary = (
            "**New Email Draft**\n\n"
            "To: [recipient]\nSubject: [subject]\n\n[Your message here]\n\nBest regards"
        )

    else:
        summary = f"**Found {total} emails**\n\n"
        if unread:
            summary += f"**{len(unread)} unread:**\n" + _previews(unread[:5])
        else:
            summary += _previews(emails[:5])

    return GeneratedResponse(summary=summary + LOCAL_FALLBACK_FOOTER)


def generate_suggestions(query: str, emails: list[Email], query_type: str) -> list[str]:
    """Up to four follow-up prompts based on what the results contain."""
    suggestions: list[str] = []
    lower = query.lower()

    if emails:
        if any(not e.read for e in emails) and "unread" not in lower:
            suggestions.append("Summarize my unread emails")
        if any(has_urgent_flag(e) for e in emails) and "urgent" not in lower:
            suggestions.append("What urgent items need attention?")
        if any(e.category == EmailCategory.WORK for e in emails) and "work" not in lower:
            suggestions.append("Summarize work emails this week")
        if query_type != "draft":
            suggestions.append("Draft a reply to the first email")
        top_sender = emails[0].sender.name
        if top_sender and len(suggestions) < 4:
            suggestions.append(f"Show all emails from {top_sender}")

    if not suggestions:
        suggestions = [
            "What needs my attention today?",
            "Summarize this week's emails",
            "Any upcoming deadlines?",
        ]

    return suggestions[:4]
