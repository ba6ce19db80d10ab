"""Codex CLI engine adapter."""

from __future__ import annotations

import json
import shutil

from thunder.engines.base import EngineBase, EngineResult


class CodexEngine(EngineBase):
    name = "codex"

    def build_cmd(self, prompt: str, *, model: str = "") -> list[str]:
        codex = shutil.which("codex") or "codex"
        cmd = [
            codex,
            "--dangerously-bypass-approvals-and-sandbox",
            "exec",
            "--json",
        ]
        if model:
            cmd += ["--model", model]
        cmd.append(prompt)
        return cmd

    def parse_output(self, raw: str) -> EngineResult:
        result = EngineResult()
        messages: list[str] = []
        plain: list[str] = []

        for line in raw.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            try:
                obj = json.loads(stripped)
            except json.JSONDecodeError:
                plain.append(stripped)
                continue
            if not isinstance(obj, dict):
                continue

            item = obj.get("item")
            if isinstance(item, dict):
                text = self._extract_text(item)
                if item.get("type") == "agent_message" and text:
                    messages.append(text)
                elif item.get("type") == "error" and text and not result.error:
                    result.error = text

            usage = obj.get("usage")
            if isinstance(usage, dict):
                result.input_tokens += int(usage.get("input_tokens", 0) or 0)
                result.output_tokens += int(usage.get("output_tokens", 0) or 0)

        if messages:
            result.text = "\n\n".join(messages)
        elif plain:
            result.text = "\n".join(plain)
        return result

    @staticmethod
    def _extract_text(payload: dict[str, object]) -> str:
        text = payload.get("text")
        if isinstance(text, str) and text.strip():
            return text.strip()

        content = payload.get("content")
        if isinstance(content, list):
            parts = [
                part["text"]
                for part in content
                if isinstance(part, dict) and isinstance(part.get("text"), str)
            ]
            return "".join(parts).strip()
        return ""

    def check_available(self) -> str | None:
        if not shutil.which("codex"):
            return "Codex CLI not found. Make sure 'codex' is in your PATH."
        return None
