"""Prompt template library for numbered sentence translation.

Responsibilities:
- Centralize the system and user prompt wording sent to the generation service.
- Keep prompts deterministic for a given sentence list and target language.
"""

from __future__ import annotations


class PromptLibrary:
    """Build prompt strings for supported LLM tasks."""

    def translation_system_prompt(self) -> str:
        """Return deterministic system prompt for strict translation behavior."""

        return (
            "You are a professional literary translator. "
            "Return only numbered translated lines with no commentary."
        )

    def numbered_translation_prompt(
        self,
        numbered_lines: str,
        sentence_count: int,
        target_language: str,
        source_language: str | None = None,
    ) -> str:
        """Return the user prompt demanding one numbered translation per source line."""

        source_label = f"{source_language} " if source_language else ""
        return (
            f"Translate the following {source_label}text into {target_language}, "
            "sentence by sentence. Requirements:\n"
            f"1. Translate all {sentence_count} sentences, keeping their original order and count.\n"
            '2. Prefix every translated sentence with its number in the form "1. translation", '
            "one sentence per line.\n"
            "3. Keep the atmosphere and literary style of the original.\n"
            "4. Keep names and terminology accurate and consistent.\n"
            "5. Do not merge, split, skip, or add sentences.\n\n"
            "Source text:\n"
            f"{numbered_lines}\n\n"
            f"Begin the complete translation of all {sentence_count} sentences:"
        )

    def connection_check_prompt(self) -> str:
        """Return a minimal prompt used to verify credentials and model access."""

        return "Reply with the single word: ok"
