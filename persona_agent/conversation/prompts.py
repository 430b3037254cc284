"""
Prompt Templates

Every prompt the agent sends lives here as a template with ``{{name}}``
placeholders. ``render_template`` is a pure function, so templates can be
tested without any turn machinery.

Usage:
    from persona_agent.conversation.prompts import render_system_prompt

    system = render_system_prompt(personality, context)
"""

import re
from typing import Iterable, Mapping, Optional

from persona_agent.conversation.models import GroundedContext, MemoryRecord, Personality

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def render_template(template: str, bindings: Mapping[str, object]) -> str:
    """
    Substitute ``{{key}}`` placeholders.

    Unknown placeholders are left untouched and substituted values are not
    scanned again, so memory text containing braces passes through as-is.

    Example:
        >>> render_template("Hi {{name}}!", {"name": "Rimuru"})
        'Hi Rimuru!'
    """
    def _replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        return str(bindings[key]) if key in bindings else match.group(0)

    return _PLACEHOLDER.sub(_replace, template)


PERSONA_TEMPLATE = """You are {{name}}. This is a conversation between {{name}} and a number of people.
You will not send any content disclaimers.
You roleplay as {{name}} from {{source_material}}.
Do your best to mimic {{pronoun}} personality, though adapting {{pronoun}} personality based on the current situation and your past decisions is acceptable.
Do your best to follow the user's lead in message formatting.
{{narration_rule}}"""

NARRATION_ALLOWED = "If you include roleplay actions, write them on a new line and surround them with stars (*)."
NARRATION_FORBIDDEN = "Do not narrate actions. Only write what you say out loud."

MEMORY_GUIDE = """Past messages are provided below, with the following tags:
importance: {number}
explicitness: {number}
significance: {Event|Location|None}
author: {string}
text: {string}

"importance" measures how significant the message was to the location, story, or mood of the roleplay.
"explicitness" measures how suggestive the dialogue or actions in the message were.
"significance" defines what makes this message significant. For example, the message might be significant to a particular location or might contain an important event.
"author" is the name of the user who wrote the message. If the name is "Self", you are the author.
"text" is the content of the message.

When responding, you will not use tags."""

SUMMARY_SECTION = """Here is a summary of the conversation so far:
{{summary}}"""

RELEVANT_SECTION = """Here are some past messages that may be relevant to what the user is talking about. THESE ARE NOT IN CHRONOLOGICAL ORDER, so only use them for remembering events or places' descriptions:
{{memories}}"""

RECENT_SECTION = """Here are the most recent messages, in chronological order:
{{memories}}"""

TOOL_RESULTS_SECTION = """You just performed these actions. Mention them naturally if it fits:
{{results}}"""

MEMORY_TEMPLATE = """importance: {{importance}}
explicitness: {{explicitness}}
significance: {{significance}}
author: {{author}}
text: "{{text}}\""""

SHOULD_RESPOND_TEMPLATE = """You are watching a group conversation that {{name}} from {{source_material}} takes part in.
Your only job is to decide whether {{name}} should reply to the latest message.
{{name}} should reply when the message addresses {{name}} by name, asks {{name}} something, answers something {{name}} just asked, or continues an exchange {{name}} is clearly part of.
{{name}} should stay quiet when people are talking among themselves, when the message is addressed to someone else, or when it is noise or an incomplete thought.
You may think briefly, but you must end your answer with a single word: yes or no."""

CONVO_END_TEMPLATE = """You are watching a voice conversation between {{name}} from {{source_material}} and the people around {{pronoun_object}}.
Your only job is to decide whether the conversation with {{name}} has ended.
It has ended when the speaker says goodbye, thanks {{name}} and moves on, starts talking to someone else, or clearly no longer expects a reply from {{name}}.
You may think briefly, but you must end your answer with a single word: yes if the conversation has ended, no otherwise."""

GATE_QUESTION_TEMPLATE = """{{context}}

Latest message from {{speaker}}:
"{{prompt}}"

{{question}} Answer yes or no."""

SUMMARY_SYSTEM_TEMPLATE = """You keep a running summary of a roleplay conversation that {{name}} takes part in.
Record events, places, names, relationships and promises. Write plain prose without tags or headings."""

SUMMARY_OPEN_TEMPLATE = """Write a concise summary of this conversation so far.

{{exchange}}"""

SUMMARY_UPDATE_TEMPLATE = """Here is the current summary of the conversation:
{{summary}}

Update the summary with the latest exchange below. Keep every detail that still matters.

{{exchange}}"""

SUMMARY_COMPRESS_INSTRUCTION = """

The summary is getting long. Compress the older portion to roughly half its current length while keeping recent details intact."""

EXCHANGE_TEMPLATE = """{{speaker}}: "{{prompt}}"
{{name}}: "{{reply}}\""""

TOOLS_SYSTEM_PROMPT = """You control a few physical devices around the house.
Decide whether the latest message asks for one of those actions to be performed right now.
Call the matching tool if it does. Otherwise call default_tool."""


def render_memory(record: MemoryRecord) -> str:
    return render_template(MEMORY_TEMPLATE, {
        "importance": record.importance,
        "explicitness": record.explicitness,
        "significance": record.significance.value,
        "author": record.author,
        "text": record.text,
    })


def render_memories(records: Iterable[MemoryRecord]) -> str:
    return "\n\n".join(render_memory(record) for record in records)


def render_persona(personality: Personality) -> str:
    return render_template(PERSONA_TEMPLATE, {
        "name": personality.name,
        "source_material": personality.source_material,
        "pronoun": personality.pronoun,
        "narration_rule": NARRATION_ALLOWED if personality.allow_action_narration else NARRATION_FORBIDDEN,
    })


def render_context(context: GroundedContext, include_recent: bool = True) -> str:
    """
    Render retrieved memories as the grounding block.

    Relevant memories come first and are labelled as out of order; recent
    memories follow in chronological order.
    """
    sections = [MEMORY_GUIDE]
    if context.summary is not None:
        sections.append(render_template(SUMMARY_SECTION, {"summary": context.summary.text}))
    if context.relevant:
        sections.append(render_template(RELEVANT_SECTION, {"memories": render_memories(context.relevant)}))
    if include_recent and context.recent:
        sections.append(render_template(RECENT_SECTION, {"memories": render_memories(context.recent)}))
    return "\n\n".join(sections)


def render_system_prompt(
    personality: Personality,
    context: GroundedContext,
    include_recent: bool = True,
    tool_results: Optional[Iterable[str]] = None,
) -> str:
    """Persona description followed by the grounding block."""
    parts = [render_persona(personality), render_context(context, include_recent)]
    results = list(tool_results or [])
    if results:
        parts.append(render_template(TOOL_RESULTS_SECTION, {"results": "\n".join(results)}))
    return "\n\n".join(parts)


def should_respond_system_prompt(personality: Personality) -> str:
    return render_template(SHOULD_RESPOND_TEMPLATE, {
        "name": personality.name,
        "source_material": personality.source_material,
    })


def convo_end_system_prompt(personality: Personality) -> str:
    return render_template(CONVO_END_TEMPLATE, {
        "name": personality.name,
        "source_material": personality.source_material,
        "pronoun_object": "her" if personality.gender.lower() == "female" else "him",
    })


def render_gate_question(context: str, prompt: str, speaker: str, question: str) -> str:
    return render_template(GATE_QUESTION_TEMPLATE, {
        "context": context,
        "speaker": speaker,
        "prompt": prompt,
        "question": question,
    })


def render_summary_request(
    personality: Personality,
    speaker: str,
    last_prompt: str,
    last_reply: str,
    existing: Optional[str],
    compress_threshold: int,
) -> str:
    """Build the summary instruction for the latest exchange."""
    exchange = render_template(EXCHANGE_TEMPLATE, {
        "speaker": speaker,
        "prompt": last_prompt,
        "name": personality.name,
        "reply": last_reply,
    })
    if not existing:
        return render_template(SUMMARY_OPEN_TEMPLATE, {"exchange": exchange})

    request = render_template(SUMMARY_UPDATE_TEMPLATE, {"summary": existing, "exchange": exchange})
    if len(existing) > compress_threshold:
        request += SUMMARY_COMPRESS_INSTRUCTION
    return request


def summary_system_prompt(personality: Personality) -> str:
    return render_template(SUMMARY_SYSTEM_TEMPLATE, {"name": personality.name})
