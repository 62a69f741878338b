# FILE: contentgen/services/prompt_service.py
#
# System instructions sent alongside the user prompt. Kept as data so copy
# changes never touch the pipeline.

from __future__ import annotations

from datetime import date
from typing import List, Optional

OUTREACH_RULES = """IMPORTANT RULES - apply to every email you generate:
- NEVER mention the client's company name. Refer to them vaguely instead: "a client of mine", "a company I work with".
- NEVER include the client's website URL.
- The goal is to spark curiosity so the recipient replies to ask for details.
- Do NOT add a signature block, sign-off name or unsubscribe text. It is appended separately.

## Opening line - contrarian angle (MANDATORY)
- NEVER open with a generic compliment about the recipient's work. It reads as automated outreach.
- Open with a sharp, non-obvious observation that challenges a common assumption in the recipient's space.
- The angle MUST connect the recipient's mission with the reason the client's offering exists.
- Write like a peer sharing an uncomfortable truth, not a salesperson pitching."""

SEQUENCE_OUTPUT_RULES = """## Output
Always respond with the 3 emails as a JSON object with the keys "subject", "body", "followup1" and "followup2".
"body" is the first email; "followup1" and "followup2" are the follow-ups sent when there is no reply.
Never respond with commentary, questions or explanations, even if the input looks incomplete."""

SEQUENCE_JSON_SCHEMA = {
    "type": "object",
    "properties": {
        "subject": {"type": "string"},
        "body": {"type": "string"},
        "followup1": {"type": "string"},
        "followup2": {"type": "string"},
    },
    "required": ["subject", "body", "followup1", "followup2"],
    "additionalProperties": False,
}


def build_sequence_system_prompt(today: Optional[date] = None) -> str:
    today = today or date.today()
    return "\n\n".join([
        OUTREACH_RULES,
        SEQUENCE_OUTPUT_RULES,
        f"Today is {today.isoformat()}.",
    ])


def build_content_system_prompt(variables: Optional[List[str]] = None, include_footer: bool = False) -> str:
    parts: List[str] = [
        "You are an expert email copywriter. Generate email content based on the user's prompt.",
        "",
        "## Output Format",
        "You MUST output exactly this format:",
        "",
        "SUBJECT: [subject line]",
        "---",
        "[email body in plain text]",
        "",
        "Do NOT include anything before SUBJECT: or after the body.",
    ]

    if variables:
        parts += [
            "",
            "## Variables",
            "The following variables are filled in at send time. Insert them as {{variableName}} "
            "placeholders wherever they fit, in both the subject and the body:",
        ]
        parts += [f"- {{{{{v}}}}}" for v in variables]

    parts.append("")
    parts.append("## Footer")
    if include_footer:
        parts.append(
            "Include a footer at the end of the email body, separated by a blank line, "
            "with legal/unsubscribe text appropriate to the email."
        )
    else:
        parts.append("Do NOT include any footer, signature block, or unsubscribe text. It will be appended separately.")

    return "\n".join(parts)


def build_calendar_system_prompt() -> str:
    return "\n".join([
        "You are an expert copywriter. Generate compelling calendar event fields based on the user's prompt.",
        "",
        "## Output Format",
        "You MUST output valid JSON only, with no surrounding text or markdown code fences:",
        "",
        "{",
        '  "title": "Event title, concise and compelling",',
        '  "description": "Event description, engaging and informative, 2-4 sentences",',
        '  "location": "Location string, or null if not applicable"',
        "}",
        "",
        "Output ONLY the JSON object. No explanation, no markdown.",
    ])
