from __future__ import annotations

import os
import re

JSON_ONLY = "Output ONLY valid JSON, no explanation or markdown."

EMPTY_OK = "Return empty extractions array if nothing significant. Quality over quantity."

EXTRACTION_ITEM_SCHEMA = """
    {
      "type": "%(types)s",
      "content": "Brief, actionable description",
      "importance": "high|medium|low"
    }
""".strip("\n")

ENRICHED_ITEM_SCHEMA = """
    {
      "type": "%(types)s",
      "content": "Brief, actionable description",
      "importance": "high|medium|low",
      "category": "%(category)s",
      "keywords": ["keyword1", "keyword2", "keyword3"],
      "applies_when": "When this applies"
    }
""".strip("\n")

SUMMARY_SCHEMA = """
  "summary": {
    "user_request": "What the user asked for",
    "assistant_response": "What was accomplished (1-2 sentences)",
    "files_modified": ["only files that were edited/written, not read"],
    "key_actions": ["significant action 1", "significant action 2"]
  },
""".strip("\n")

_DOC_SUFFIX = re.compile(r"\.(md|txt|markdown)$", re.IGNORECASE)


def file_stem(file_path: str) -> str:
    """``docs/ruby-style.md`` -> ``ruby-style``."""

    return _DOC_SUFFIX.sub("", os.path.basename(file_path))


def _output_format(item: str, *, with_summary: bool = False) -> str:
    summary = f"{SUMMARY_SCHEMA}\n" if with_summary else ""
    return f'## Output format (JSON only, no markdown):\n{{\n{summary}  "extractions": [\n{item}\n  ]\n}}'


def user_directions_prompt() -> str:
    item = EXTRACTION_ITEM_SCHEMA % {"types": "direction|preference|constraint"}
    return "\n\n".join(
        [
            "You are extracting durable directions and preferences from a user message "
            "to a coding assistant.",
            "## Extract ONLY:\n"
            '- **Directions**: explicit instructions that should persist ("always X", '
            '"never Y", "use X instead of Y")\n'
            "- **Preferences**: stated preferences about style, approach, or conventions\n"
            '- **Constraints**: limitations or requirements ("don\'t modify X", "must use Y")',
            "## Do NOT extract:\n"
            "- Questions or requests for information\n"
            "- Brainstorming or exploration without decisions\n"
            '- Acknowledgments ("yes", "ok", "continue", "sounds good")\n'
            "- One-time instructions for the current task only\n"
            "- Standard language or framework conventions any developer would know",
            "## Importance levels:\n"
            '- **high**: security requirements, architectural constraints, explicit "always/never" rules\n'
            "- **medium**: style preferences, approach choices, tool preferences\n"
            "- **low**: minor preferences, soft suggestions",
            _output_format(item),
            f"{EMPTY_OK}\n{JSON_ONLY}",
        ]
    )


def assistant_learnings_prompt(user_message: str) -> str:
    item = EXTRACTION_ITEM_SCHEMA % {"types": "learning|discovery|decision"}
    return "\n\n".join(
        [
            "You are extracting key information from a coding assistant response.",
            "## Extract from the assistant response:\n"
            "- **Learnings**: how the codebase works (architecture, patterns, how components connect)\n"
            "- **Discoveries**: specific technical facts (deprecated APIs, version requirements, gotchas)\n"
            "- **Decisions**: choices made between alternatives, with the rationale",
            "## Do NOT extract:\n"
            "- Standard programming knowledge any professional developer knows\n"
            '- Temporary states ("I\'m reading the file now", "Let me check...")\n'
            "- Speculative options that weren't chosen",
            "## Importance levels:\n"
            "- **high**: critical for understanding the codebase, or hard to reverse\n"
            "- **medium**: useful context for the current feature area\n"
            "- **low**: minor detail",
            "## Summary guidelines:\n"
            "- Keep descriptions to 1-2 sentences\n"
            "- Don't include diffs or full code blocks\n"
            "- Capture the final outcome of multi-step exchanges",
            _output_format(item, with_summary=True),
            f"{EMPTY_OK}\n{JSON_ONLY}",
            f"User message (for context):\n{user_message}",
        ]
    )


def guideline_prompt(file_path: str) -> str:
    stem = file_stem(file_path)
    item = ENRICHED_ITEM_SCHEMA % {"types": "guideline", "category": stem}
    return "\n\n".join(
        [
            f"This is a guideline file for coding conventions.\nFile: {os.path.basename(file_path)}",
            "## Extract actionable rules and patterns:\n"
            "- Code style rules\n- Testing patterns\n- Naming conventions\n- Architecture guidelines",
            "## Prioritize rules that:\n"
            "- Differ from common language/framework conventions\n"
            "- Are specific to this codebase or project",
            "## For conditional rules:\n"
            "Keep the full condition together as a single extraction rather than splitting it.",
            f'## Category:\nBased on the file name "{stem}", infer one category for all extractions.',
            "## Keywords:\n"
            f'Generate 3-5 searchable keywords per extraction, including "{stem}".',
            '## Applies when:\nDescribe when the rule applies (e.g. "Writing Python tests").',
            "## Importance levels:\n"
            "- **high**: differs significantly from defaults, security-related, architectural\n"
            "- **medium**: style preferences, testing patterns, naming conventions\n"
            "- **low**: minor preferences, edge case handling",
            _output_format(item),
            f"Focus on rules that are specific and actionable.\n{JSON_ONLY}",
        ]
    )


def implementation_plan_prompt(file_path: str) -> str:
    stem = file_stem(file_path)
    item = ENRICHED_ITEM_SCHEMA % {"types": "implementation_plan", "category": "project-name"}
    return "\n\n".join(
        [
            "This is an implementation plan for a multi-step development effort.\n"
            f"File: {os.path.basename(file_path)}",
            "## Extract key context:\n"
            "- Overall goal of the effort\n"
            "- Current progress (what is complete, the current focus, what's next)\n"
            "- Architectural decisions already made\n"
            "- Important constraints or requirements\n"
            "- Dependencies between steps",
            "## Prioritize information that:\n"
            "- Helps an agent understand where it is in the larger effort\n"
            "- Captures decisions that affect future work",
            f'## Category:\nUse the file stem "{stem}" or the plan title.',
            "## Keywords:\nGenerate 3-5 searchable keywords: project name, technologies, key concepts.",
            '## Applies when:\nDescribe when the context is relevant (e.g. "Working on the billing API").',
            "## Importance levels:\n"
            "- **high**: progress status, blocking dependencies, architectural decisions\n"
            "- **medium**: implementation details, design rationale\n"
            "- **low**: minor notes, future considerations",
            _output_format(item),
            f"Focus on context that helps maintain continuity across sessions.\n{JSON_ONLY}",
        ]
    )
