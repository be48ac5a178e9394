"""
Assistant Intent Resolver
=========================
Interprets free-form teacher messages with a completion model.

Per turn, strictly in sequence:
  1. analysis call  -> JSON {intention, toolToUse, params, sentimentAnalysis, explanation}
  2. tool execution -> on success the tool's message is the reply
  3. on tool failure, a call asking for an empathetic explanation
Unparseable analysis falls back to a direct-answer call. Nothing here raises
to the caller.
"""

import json
import logging

from backend import config as app_config
from backend.errors import InterpretationError
from backend.services import completion_service
from backend.services.assistant_tools import TOOL_DEFINITIONS, TOOL_HANDLERS, execute_tool

logger = logging.getLogger(__name__)

INTENTIONS = [
    "get_attendance_stats", "get_today_attendance", "get_students_by_status",
    "mark_attendance", "mark_bulk_attendance", "add_student", "get_student_info",
    "general_question",
]

APOLOGY_REPLY = ("I apologize, but I encountered an error connecting to my knowledge base. "
                 "Please try again later.")
EMPTY_REPLY = ("I'm not quite sure how to help with that. "
               "Try asking about today's attendance, or type /help to see what I can do.")

ROUTING_RULES = """IMPORTANT RULES:
1. If the user mentions multiple student names like "Mark John and Mary as present" or "Mark John, Mary, and Sam as present", use the mark_bulk_attendance tool with included_student_names properly parsed.
2. If the user wants everyone marked except a few students ("Everyone is present except Sam"), use mark_bulk_attendance with mark_all=true and excluded_student_names.
3. If the user is asking about today's attendance or attendance for today, use get_today_attendance.
4. If the user is asking which students are present, absent, or late (e.g. "Who is present today?", "Which students are absent?", "Show me the late students"), use get_students_by_status with the matching status.
5. If the user seems to be asking a follow-up question related to previous information, consider the conversation context.
6. If the user is expressing frustration or confusion, acknowledge their feelings first before providing a solution.
7. Be warm, encouraging, and positive in your responses."""

ANALYSIS_FORMAT = """Reply with ONLY a JSON object like this:
{
  "intention": "%s",
  "toolToUse": "%s | none",
  "params": {
    "student_name": "name of student if applicable",
    "status": "present | absent | late (if marking attendance or filtering students)",
    "student_index": "optional student index (auto-generated if not provided)",
    "included_student_names": ["student1", "student2"],
    "excluded_student_names": ["student3"],
    "mark_all": false,
    "date": "specific date if not today (YYYY-MM-DD)"
  },
  "sentimentAnalysis": "neutral | confused | frustrated | happy | curious",
  "explanation": "Brief explanation of why this tool was chosen, considering context"
}
Only include the params the chosen tool needs."""


def _time_greeting(hour):
    if hour < 12:
        return "Good morning! It's a great time to take attendance for today."
    if hour < 17:
        return "Good afternoon! How is your class going today?"
    return "Good evening! Wrapping up for the day?"


def build_context(session):
    """Persona, date/time, roster size and the tool catalogue."""
    now = session.now()
    tools = "\n".join(f"- {t['name']}: {t['description']}" for t in TOOL_DEFINITIONS)
    return (
        'You are a friendly, helpful AI teaching assistant named "Edu" for a school attendance '
        f"management system. The current user is a teacher for Grade {session.grade} {session.class_name}.\n\n"
        f"{_time_greeting(now.hour)}\n\n"
        f"Current date: {session.current_date}\n"
        f"Current time: {now.strftime('%H:%M')}\n\n"
        f"Student count in class: {len(session.students)}\n\n"
        f"Available tools:\n{tools}"
    )


def format_history(history):
    return "\n".join(
        f"{'Teacher' if m['sender'] == 'user' else 'Assistant'}: {m['text']}" for m in history
    )


def build_analysis_prompt(context, utterance, conversation):
    return (
        f"{context}\n\nUser: {utterance}\n\n"
        f"Previous conversation context:\n{conversation}\n\n"
        "Analyze what the user is asking for. If they want to perform an action, identify which tool "
        "should be used and what parameters would be needed.\n\n"
        f"{ROUTING_RULES}\n\n"
        "For example:\n"
        '- "Who is present today?" -> get_students_by_status with status="present"\n'
        '- "Show me the absent students" -> get_students_by_status with status="absent"\n'
        '- "Mark Sunil and Sampath as late" -> mark_bulk_attendance with included_student_names=["Sunil", "Sampath"]\n\n'
        + ANALYSIS_FORMAT % (" | ".join(INTENTIONS), " | ".join(TOOL_HANDLERS))
    )


def build_direct_prompt(context, utterance, conversation, sentiment=None):
    mood = ""
    if sentiment and sentiment not in ("neutral", "happy"):
        mood = f"The teacher seems {sentiment}; acknowledge that first.\n"
    return (
        f"{context}\n\nUser: {utterance}\n\nPrevious messages: {conversation}\n\n{mood}"
        "Respond directly to the user's question in a friendly, helpful way. Include contextual "
        "information if relevant. Keep your response focused but with a warm, conversational tone."
    )


def build_failure_prompt(context, utterance, conversation, tool_name, reason):
    return (
        f"{context}\n\nUser: {utterance}\n\nPrevious messages: {conversation}\n\n"
        f"I tried to use the {tool_name} tool but it failed with error: {reason}. "
        "Please generate a helpful response that explains the issue in a friendly, empathetic way. "
        "Offer alternative suggestions if appropriate."
    )


def extract_json_object(text):
    """First balanced {...} substring of text, or None.

    Braces inside JSON string literals are ignored.
    """
    if not text:
        return None
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            ch = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:pos + 1]
        start = text.find("{", start + 1)
    return None


def parse_analysis(text):
    """Parse the analysis reply into a dict with toolToUse and params."""
    candidate = extract_json_object(text)
    if candidate is None:
        raise InterpretationError("No JSON object in analysis response")
    try:
        analysis = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise InterpretationError(f"Analysis response is not valid JSON: {e}") from e
    if not isinstance(analysis, dict):
        raise InterpretationError("Analysis response is not a JSON object")

    tool = analysis.get("toolToUse")
    analysis["toolToUse"] = tool.strip() if isinstance(tool, str) and tool.strip() else "none"
    if not isinstance(analysis.get("params"), dict):
        analysis["params"] = {}
    return analysis


def _reply(text):
    text = (text or "").strip()
    return text or EMPTY_REPLY


def resolve(session, utterance, history, complete=None):
    """Answer a free-form message, running at most one tool."""
    complete = complete or completion_service.complete
    try:
        context = build_context(session)
        conversation = format_history(history[-app_config.CONTEXT_MESSAGES:])

        analysis_text = complete(build_analysis_prompt(context, utterance, conversation))
        try:
            analysis = parse_analysis(analysis_text)
        except InterpretationError as e:
            logger.warning("Falling back to a direct answer: %s", e)
            return _reply(complete(build_direct_prompt(context, utterance, conversation)))

        tool_name = analysis["toolToUse"]
        if tool_name in TOOL_HANDLERS:
            logger.info("Intent %s -> tool %s (%s)", analysis.get("intention"), tool_name,
                        analysis.get("explanation", ""))
            result = execute_tool(session, tool_name, analysis["params"])
            if result["success"]:
                return result["message"]
            return _reply(complete(build_failure_prompt(
                context, utterance, conversation, tool_name, result["message"])))

        if tool_name != "none":
            logger.warning("Model suggested unknown tool %r; answering directly", tool_name)
        return _reply(complete(build_direct_prompt(
            context, utterance, conversation, analysis.get("sentimentAnalysis"))))
    except Exception as e:
        logger.error("Error with completion service: %s", e)
        return APOLOGY_REPLY
