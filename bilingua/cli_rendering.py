"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
streamed sentence commits, session summaries, and stored-record display.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .errors import StageError
from .models.datatypes import (
    CommittedSentence,
    DisplayMode,
    SentencePair,
    SessionOutcome,
    SessionState,
    TranslationRecord,
)


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, StageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def echo_committed_sentences(sentences: tuple[CommittedSentence, ...], total: int) -> None:
    """Print newly committed sentences as `[k/N] text` rows."""

    for sentence in sentences:
        typer.echo(f"[{sentence.ordinal}/{total}] {sentence.text}")


def echo_session_summary(outcome: SessionOutcome) -> None:
    """Print final session state, persisted status, and any failure reason."""

    source = " (cached)" if outcome.from_cache else ""
    typer.echo(f"Chapter: {outcome.chapter_id}{source}")
    typer.echo(f"State: {outcome.state.value}")
    typer.echo(f"Status: {outcome.status.description}")
    typer.echo(f"Translated: {len(outcome.committed)}/{len(outcome.document)}")
    if outcome.state is SessionState.CANCELLED:
        if outcome.is_complete_translation:
            typer.echo("Translation cancelled after every sentence was committed; stored as completed.")
        else:
            typer.echo("Translation cancelled; committed sentences were kept.")
    if outcome.error:
        typer.secho(f"Error: {outcome.error}", fg=typer.colors.RED, err=True)


def echo_record_header(record: TranslationRecord) -> None:
    """Print stored record metadata."""

    typer.echo(f"Chapter: {record.chapter_id}")
    typer.echo(f"Status: {record.status.description}")
    typer.echo(
        f"Sentences: {len(record.translated_sentences)}/{len(record.original_sentences)} translated"
    )
    typer.echo(f"Updated: {record.updated_at.isoformat()}")


def echo_sentence_pairs(pairs: list[SentencePair], mode: DisplayMode) -> None:
    """Print sentence pairs in the requested display mode."""

    for index, pair in enumerate(pairs, start=1):
        if mode is DisplayMode.ORIGINAL:
            typer.echo(f"{index}. {pair.original}")
            continue
        translation = pair.translation if pair.is_complete else "(not translated)"
        if mode is DisplayMode.TRANSLATION:
            typer.echo(f"{index}. {translation}")
            continue
        typer.echo(f"{index}. {pair.original}")
        typer.echo(f"   {translation}")
