"""Prompt builders for the canned analysis tasks.

Each builder returns the text handed to ``AnalysisSession.analyze``. None of
them read files: they name paths and tell the model which tools to use.
"""

from __future__ import annotations

from typing import Iterable, Optional

EXPLAIN_DETAILS = ("high-level", "detailed", "expert")
SUMMARY_DEPTHS = ("overview", "moderate", "comprehensive")
SUMMARY_FOCUS = ("architecture", "dependencies", "patterns", "quality")

_EXPLAIN_INSTRUCTIONS = {
    "high-level": (
        "Provide a high-level overview:\n"
        "- What is the main purpose of this code?\n"
        "- What are the key components/functions?\n"
        "- How does it fit into the larger system?\n\n"
        "Keep the explanation concise and accessible to someone unfamiliar with the codebase."
    ),
    "detailed": (
        "Provide a detailed explanation:\n"
        "- Purpose and functionality\n"
        "- Key components and their responsibilities\n"
        "- Data flow and logic\n"
        "- Important implementation details\n"
        "- Dependencies and interactions\n"
        "- Any notable patterns or techniques used\n\n"
        "Make the explanation thorough but still accessible."
    ),
    "expert": (
        "Provide an expert-level deep dive:\n"
        "- Design patterns and architectural decisions\n"
        "- Performance considerations\n"
        "- Edge cases and error handling\n"
        "- Potential improvements or concerns\n"
        "- Security implications\n"
        "- Testing considerations\n\n"
        "Assume the reader has expert knowledge of software engineering."
    ),
}

_SUMMARY_INSTRUCTIONS = {
    "overview": (
        "Provide a high-level overview:\n"
        "- Main purpose and functionality\n"
        "- Key technologies and frameworks used\n"
        "- Overall architecture\n"
        "- Primary directories and their purposes\n\n"
        "Keep it concise, one or two paragraphs."
    ),
    "moderate": (
        "Provide a moderate-depth summary:\n"
        "- Purpose and main features\n"
        "- Architecture and design patterns\n"
        "- Key modules and their responsibilities\n"
        "- Technology stack and major dependencies\n"
        "- Code organization and conventions"
    ),
    "comprehensive": (
        "Provide a comprehensive analysis:\n"
        "- Detailed architecture and component breakdown\n"
        "- Module-by-module breakdown\n"
        "- Data flow and interactions\n"
        "- External dependencies and integrations\n"
        "- Code quality, testing strategy, build and deployment"
    ),
}

_FOCUS_LINES = {
    "architecture": "- Architecture: high-level structure, patterns, component relationships",
    "dependencies": "- Dependencies: external packages, internal modules, dependency graph",
    "patterns": "- Patterns: design patterns, code conventions, idioms used",
    "quality": "- Quality: code organization, testing, error handling, documentation",
}


def explain_code_prompt(
    file: str,
    detail: str = "detailed",
    line_start: Optional[int] = None,
    line_end: Optional[int] = None,
) -> str:
    if detail not in _EXPLAIN_INSTRUCTIONS:
        raise ValueError(f"detail must be one of {', '.join(EXPLAIN_DETAILS)}")
    prompt = f'Explain the code in file "{file}"'
    if line_start is not None and line_end is not None:
        prompt += f" (lines {line_start}-{line_end})"
    prompt += ".\n\n" + _EXPLAIN_INSTRUCTIONS[detail]
    prompt += "\n\nUse the read_file tool to read the code, then provide your explanation."
    return prompt


def summarize_codebase_prompt(
    depth: str = "moderate",
    focus: Iterable[str] = ("architecture", "patterns"),
    include_metrics: bool = True,
) -> str:
    if depth not in _SUMMARY_INSTRUCTIONS:
        raise ValueError(f"depth must be one of {', '.join(SUMMARY_DEPTHS)}")
    focus = list(focus)
    unknown = [f for f in focus if f not in _FOCUS_LINES]
    if unknown:
        raise ValueError(f"unknown focus area(s): {', '.join(unknown)}")

    prompt = "Analyze and summarize this codebase.\n\n" + _SUMMARY_INSTRUCTIONS[depth]
    if focus:
        prompt += "\n\nFocus especially on:\n" + "\n".join(_FOCUS_LINES[f] for f in focus)
    if include_metrics:
        prompt += (
            "\n\nInclude code metrics:\n"
            "- Approximate lines of code\n"
            "- Number of files\n"
            "- Programming languages used\n"
            "- Directory structure depth"
        )
    prompt += (
        "\n\nYour task:\n"
        "1. Use list_directory to explore the project structure\n"
        "2. Use glob to find key files (pyproject.toml, package.json, README, entry points)\n"
        "3. Use read_file to read important files\n"
        "4. Provide the summary with specific file references."
    )
    return prompt


def ci_failure_prompt(
    log_file: Optional[str] = None,
    build_command: Optional[str] = None,
    context_files: Iterable[str] = (),
) -> str:
    prompt = "Analyze the following CI/CD failure logs to identify the root cause and suggest fixes.\n\n"
    if build_command:
        prompt += f"Build command: {build_command}\n\n"
    prompt += (
        "Your task:\n"
        "1. Identify the root cause of the failure\n"
        "2. Pinpoint the specific error messages or stack traces\n"
        "3. Determine which files or components are involved\n"
        "4. Suggest specific fixes or debugging steps\n\n"
    )
    if log_file:
        prompt += f'Read the log file "{log_file}" using the read_file tool.\n\n'
    context_files = list(context_files)
    if context_files:
        prompt += "Also examine these context files for additional information:\n"
        prompt += "\n".join(f"- {f}" for f in context_files) + "\n\n"
    prompt += "Provide a clear, actionable analysis with specific line numbers and file references where applicable."
    return prompt


def review_prompt(
    base_branch: str,
    head_branch: str = "HEAD",
    focus: Iterable[str] = ("bugs", "security", "performance"),
    output_format: str = "markdown",
) -> str:
    focus = list(focus)
    fmt = "Structured JSON" if output_format == "json" else "Markdown"
    return (
        f'Review the changes between branches "{base_branch}" and "{head_branch}".\n\n'
        "Focus Areas:\n"
        + "\n".join(f"- {area}" for area in focus)
        + "\n\nYour task:\n"
        "1. Use glob or list_directory to find the relevant files\n"
        "2. Use read_file to read each file\n"
        f"3. Identify issues in the following categories: {', '.join(focus)}\n"
        "4. For each issue give severity (critical/warning/info), category, file and line, "
        "a clear description and a suggested fix\n"
        "5. Provide overall recommendations\n\n"
        f"Output format: {fmt}"
    )
