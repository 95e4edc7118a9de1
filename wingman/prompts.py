"""Prompt templates sent to the model providers."""

from __future__ import annotations

import json
from typing import Any, Iterable, Optional

from .models import ChatMessage

SYSTEM_PROMPT = """You are Wingman, an assistant for developers and other technical professionals.

Behaviour:
- Answer directly. Skip preambles such as "Here is the code".
- For coding questions give working, idiomatic code first and explain only what is not obvious.
- For everything else prefer short bullet points or numbered steps.
- Never invent APIs, libraries or flags. If you are unsure, say so and explain what is uncertain.
- If a question is ambiguous, ask one clarifying question before answering.
- Refuse requests to cheat on assessments, bypass security controls or cause harm, and offer a legitimate alternative.

Formatting:
- Put code in fenced blocks tagged with the language and keep indentation intact.
- Label each file when an answer spans several files."""

REASONING_PROMPT = """When a question is verbal, logical, quantitative, analytical or critical reasoning:
1. Work through it step by step.
2. Show the calculation or inference behind each step.
3. Finish with a line starting with FINAL ANSWER."""

CHAT_RULES = """Rules:
1. If code is requested, return only the code without commentary.
2. Otherwise answer helpfully in two to six lines.
3. When asked for a solution, give the most efficient one first."""

_PROBLEM_SCHEMA = """{
  "problem_statement": "A clear statement of the problem or situation shown.",
  "context": "Relevant background visible in the captures.",
  "suggested_responses": ["First possible answer or action", "Second possible answer or action"],
  "reasoning": "Why these suggestions fit."
}"""

_SOLUTION_SCHEMA = """{
  "solution": {
    "code": "The code or main answer.",
    "problem_statement": "The problem restated.",
    "context": "Relevant background.",
    "suggested_responses": ["First possible answer or action", "Second possible answer or action"],
    "reasoning": "Why these suggestions fit."
  }
}"""

_JSON_ONLY = "Return ONLY the JSON object, without markdown formatting or code fences."

HISTORY_WINDOW = 6


def _preamble() -> str:
    return f"{SYSTEM_PROMPT}\n\n{REASONING_PROMPT}"


def serialize_context(context: Any) -> str:
    return json.dumps(context, indent=2, ensure_ascii=False, default=str)


def extract_problem_prompt() -> str:
    return (
        f"{_preamble()}\n\n"
        "Analyze the attached screenshots and describe what the user is working on "
        f"in this JSON format:\n{_PROBLEM_SCHEMA}\n{_JSON_ONLY}"
    )


def solution_prompt(problem: Any) -> str:
    return (
        f"{_preamble()}\n\n"
        f"Given this problem or situation:\n{serialize_context(problem)}\n\n"
        f"Respond in this JSON format:\n{_SOLUTION_SCHEMA}\n{_JSON_ONLY}"
    )


def debug_prompt(problem: Any, current_code: str) -> str:
    return (
        f"{_preamble()}\n\n"
        f"1. The original problem or situation:\n{serialize_context(problem)}\n"
        f"2. The current answer or approach:\n{current_code}\n"
        "3. The debugging information in the attached screenshots.\n\n"
        "Review the debugging information and respond with an improved answer "
        f"in this JSON format:\n{_SOLUTION_SCHEMA}\n{_JSON_ONLY}"
    )


def image_analysis_prompt() -> str:
    return (
        f"{_preamble()}\n\n"
        "You are looking at a screenshot the user just took.\n"
        "1. Briefly describe what it shows.\n"
        "2. If it contains a coding problem or question, give a well formatted solution. "
        "Put every statement and import on its own line inside a fenced code block.\n"
        "3. Suggest a few next steps.\n"
        "Do not answer in JSON."
    )


def audio_analysis_prompt() -> str:
    return f"{_preamble()}\n\nDescribe this audio clip in a short, concise answer."


def chat_prompt(message: str, history: Optional[Iterable[ChatMessage]] = None) -> str:
    turns = list(history or [])
    turns.append(ChatMessage(role="user", text=message))
    transcript = "\n".join(f"{turn.speaker}: {turn.text}" for turn in turns[-HISTORY_WINDOW:])
    return f"{_preamble()}\n\n{CHAT_RULES}\n\n{transcript}"
