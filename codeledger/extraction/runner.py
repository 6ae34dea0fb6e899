from __future__ import annotations

import json
import logging
import os
import subprocess

from ..capture import SKIP_HOOKS_ENV

logger = logging.getLogger(__name__)


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        newline = cleaned.find("\n")
        cleaned = cleaned[newline + 1 :] if newline != -1 else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def extract_cli_result(output: str) -> str | None:
    """Unwrap the ``{"type": "result", "result": "..."}`` envelope of ``--output-format json``.

    Output that is not an envelope is treated as the answer itself.
    """

    output = output.strip()
    if not output:
        return None
    try:
        payload = json.loads(output)
    except json.JSONDecodeError:
        return strip_code_fences(output) or None
    if not isinstance(payload, dict) or "result" not in payload:
        return strip_code_fences(output) or None
    result = payload.get("result")
    if not isinstance(result, str) or not result.strip():
        return None
    return strip_code_fences(result) or None


class ClaudeRunner:
    """One-shot calls to the ``claude`` CLI in print mode."""

    def __init__(self, command: str = "claude", timeout_s: int = 60) -> None:
        self.command = command
        self.timeout_s = timeout_s

    def build_command(self, content: str, prompt: str) -> list[str]:
        full_prompt = f"{prompt}\n\nContent to analyze:\n{content}"
        return [self.command, "-p", "--output-format", "json", full_prompt]

    def run(self, content: str, prompt: str) -> str | None:
        if not content.strip() or not prompt.strip():
            return None
        env = dict(os.environ)
        # the child session would otherwise fire our hooks and extract recursively
        env[SKIP_HOOKS_ENV] = "1"
        try:
            result = subprocess.run(
                self.build_command(content, prompt),
                check=False,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                stdin=subprocess.DEVNULL,
                env=env,
            )
        except subprocess.TimeoutExpired:
            logger.warning("claude extraction timed out", extra={"timeout_s": self.timeout_s})
            return None
        except OSError as exc:
            logger.warning("claude extraction failed to start", exc_info=exc)
            return None
        if result.returncode != 0:
            logger.warning(
                "claude extraction returned non-zero",
                extra={"returncode": result.returncode, "stderr": (result.stderr or "")[:500]},
            )
            return None
        return extract_cli_result(result.stdout or "")
