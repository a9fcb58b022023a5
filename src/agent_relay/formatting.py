from __future__ import annotations

import json
from typing import Any

from agent_relay.collaborator.events import ToolUseBlock


def format_tool_use(tool_use: ToolUseBlock) -> str:
    return json.dumps(
        {
            "type": "tool_use",
            "name": tool_use.name,
            "id": tool_use.id,
            "input": tool_use.input,
        },
        indent=2,
        ensure_ascii=False,
    )


def _format_option(index: int, option: Any) -> str:
    if not isinstance(option, dict) or "label" not in option:
        return ""
    line = f"  {index}. {option['label']}"
    description = option.get("description")
    if description:
        line += f" - {description}"
    return line


def format_question(tool_input: Any) -> str:
    if isinstance(tool_input, str):
        return f"❓ Question: {tool_input}"

    questions = tool_input.get("questions") if isinstance(tool_input, dict) else None
    if isinstance(questions, list):
        sections: list[str] = []
        for idx, question in enumerate(questions, start=1):
            if not isinstance(question, dict) or "question" not in question:
                sections.append("")
                continue
            text = f"\n**Question {idx}**: {question['question']}\n"
            options = question.get("options")
            if isinstance(options, list):
                text += "\n".join(_format_option(i, opt) for i, opt in enumerate(options, start=1))
            sections.append(text)
        return "❓ Questions:\n" + "\n".join(sections)

    return f"❓ Question: {json.dumps(tool_input, indent=2, ensure_ascii=False)}"


def format_plan(tool_input: Any) -> str:
    if isinstance(tool_input, dict) and isinstance(tool_input.get("plan"), str):
        tool_input = tool_input["plan"]
    if isinstance(tool_input, str):
        return f"📋 Plan ready for approval:\n{tool_input}"
    return f"📋 Plan ready for approval:\n{json.dumps(tool_input, indent=2, ensure_ascii=False)}"


def extract_tool_result_text(content: Any) -> str:
    """Flatten a tool_result payload: plain string, text blocks, or JSON for anything else."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [
            str(block.get("text", ""))
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        if texts:
            return "\n".join(texts)
    return json.dumps(content, ensure_ascii=False)


def summarize_answers(answers: dict[str, str]) -> str:
    if not answers:
        return "Answers: (none)"
    lines = ["Answers:"]
    lines.extend(f"- {question}: {answer}" for question, answer in answers.items())
    return "\n".join(lines)
