"""Command-line interface for Bilingua.

Responsibilities:
- Expose user-facing commands for chapter translation and stored-record access.
- Convert CLI arguments into `BilinguaConfig` runtime values and sessions.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import signal
import threading
from typing import Annotated, Iterator

import typer

from .cli_rendering import (
    echo_committed_sentences,
    echo_record_header,
    echo_sentence_pairs,
    echo_session_summary,
    exit_with_command_error,
)
from .cli_runtime import load_config, resolve_runtime_sources
from .config import BilinguaConfig, TranslatorRuntimeConfig
from .credentials import create_credential_store
from .errors import PersistenceError, StageError, TransportError
from .io.chapters import DirectoryChapterSource
from .io.store import JsonFileTranslationStore
from .llm.numbering import NumberingCodec
from .llm.translator import OpenAIStreamTranslator
from .models.datatypes import (
    DisplayMode,
    SessionOutcome,
    SessionState,
    TranslationStatus,
    build_sentence_pairs,
)
from .parsing import normalize_optional_string
from .pipeline.session import CancellationToken, TranslationSession
from .telemetry.logger import RunLogger
from .text.cleaners import TextCleaner
from .text.segmenter import Segmenter

app = typer.Typer(
    name="bilingua",
    no_args_is_help=True,
    help="Bilingua CLI: streamed sentence-aligned chapter translation.",
)


@contextmanager
def _cancel_on_interrupt(token: CancellationToken) -> Iterator[None]:
    """Turn Ctrl-C into a cooperative cancellation request while the block runs."""

    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handle_interrupt(signum: int, frame: object) -> None:
        typer.echo("Cancelling after the current delta...", err=True)
        token.cancel()

    previous_handler = signal.signal(signal.SIGINT, _handle_interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous_handler)


def _read_chapter_text(
    chapter_id: str,
    text_file: Path | None,
    chapters_dir: Path,
) -> str:
    """Read chapter text from an explicit file or the chapters directory."""

    try:
        if text_file is not None:
            raw_text = text_file.read_text(encoding="utf-8")
            if text_file.suffix.lower() in {".html", ".htm"}:
                return TextCleaner().clean(raw_text)
            return raw_text
        return DirectoryChapterSource(chapters_dir).load(chapter_id)
    except (OSError, ValueError) as exc:
        raise StageError(
            stage="chapter",
            detail=f"Could not read chapter `{chapter_id}`: {exc}",
            hint="Pass `--text <file>` or place `<chapter_id>.txt` in the chapters directory.",
        ) from exc


def _build_translator(
    config: BilinguaConfig,
    runtime: TranslatorRuntimeConfig,
) -> OpenAIStreamTranslator:
    """Create the streaming transport from resolved runtime values."""

    return OpenAIStreamTranslator(
        model=runtime.model,
        api_key=runtime.api_key,
        base_url=config.base_url,
        temperature=config.temperature,
        enable_thinking=config.enable_thinking,
        connect_timeout_seconds=config.connect_timeout_seconds,
        read_timeout_seconds=config.read_timeout_seconds,
        max_retries=config.max_retries,
    )


def _drive_session(session: TranslationSession) -> SessionOutcome:
    """Consume session events, printing each sentence once it is committed."""

    printed = 0
    try:
        for event in session.iter_events():
            total = len(session.document) if session.document is not None else 0
            echo_committed_sentences(event.committed[printed:], total)
            printed = event.committed_count
    except PersistenceError as exc:
        echo_session_summary(exc.outcome)
        raise StageError(
            stage="persist",
            detail=str(exc),
            hint="Check the store directory permissions; rerunning is safe.",
        ) from exc

    if session.outcome is None:
        raise StageError(stage="translate", detail="Session ended without an outcome.")
    return session.outcome


@app.command("translate")
def translate_command(
    chapter_id: Annotated[str, typer.Argument(help="Chapter identity used as the store key.")],
    text_file: Annotated[
        Path | None,
        typer.Option("--text", help="Chapter text file (`.txt` or `.html`)."),
    ] = None,
    chapters_dir: Annotated[
        Path | None,
        typer.Option("--chapters-dir", help="Directory with `<chapter_id>.txt|.html` files."),
    ] = None,
    store_dir: Annotated[
        Path | None,
        typer.Option("--store", help="Translation record directory (overrides config)."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file."),
    ] = None,
    model: Annotated[
        str | None, typer.Option("--model", help="Chat model id override.")
    ] = None,
    target_language: Annotated[
        str | None, typer.Option("--target-language", help="Target language override.")
    ] = None,
    api_key: Annotated[
        str | None,
        typer.Option(
            "--api-key",
            help="Provider API key override. Prefer `--prompt-api-key` to avoid shell history.",
        ),
    ] = None,
    prompt_api_key: Annotated[
        bool,
        typer.Option(
            "--prompt-api-key",
            help="Prompt for API key with hidden input (never echoed).",
        ),
    ] = False,
    store_api_key: Annotated[
        bool,
        typer.Option(
            "--store-api-key/--no-store-api-key",
            help="Persist a CLI-entered API key to secure credential storage.",
        ),
    ] = False,
    use_cache: Annotated[
        bool | None,
        typer.Option(
            "--cache/--no-cache",
            help="Reuse a stored completed translation of identical text.",
        ),
    ] = None,
    persist_progress: Annotated[
        bool | None,
        typer.Option(
            "--persist-progress/--no-persist-progress",
            help="Checkpoint committed sentences to the store while streaming.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Include per-delta debug logs."),
    ] = False,
) -> None:
    """Translate one chapter, printing sentences as soon as they are committed."""

    try:
        config = load_config(config_file)
        sources = resolve_runtime_sources(
            config=config,
            model=model,
            target_language=target_language,
            api_key=api_key,
            prompt_api_key=prompt_api_key,
            store_api_key=store_api_key,
            credential_store_factory=create_credential_store,
        )
        runtime = config.resolved_runtime(sources)
        text = _read_chapter_text(chapter_id, text_file, chapters_dir or config.chapters_dir)
        run_logger = RunLogger(verbose=verbose)
        run_logger.log_stage_event("config", "resolved", **runtime.as_metadata())
        token = CancellationToken()
        session = TranslationSession(
            chapter_id=chapter_id,
            text=text,
            transport=_build_translator(config, runtime),
            settings=config.session_settings(
                runtime,
                reuse_cached=use_cache,
                persist_progress=persist_progress,
            ),
            store=JsonFileTranslationStore(store_dir or config.store_dir),
            cancellation=token,
            run_logger=run_logger,
        )
        with _cancel_on_interrupt(token):
            outcome = _drive_session(session)
    except Exception as exc:
        exit_with_command_error("translate", exc)

    echo_session_summary(outcome)
    if len(outcome.document) == 0:
        typer.echo("No sentences found in chapter text; nothing was stored.")
        return
    if outcome.state is not SessionState.COMPLETE or not outcome.is_complete_translation:
        raise typer.Exit(code=1)


@app.command("segment")
def segment_command(
    text_file: Annotated[Path, typer.Argument(help="Text or HTML file to segment.")],
) -> None:
    """Print the numbered sentence units a chapter text segments into."""

    try:
        raw_text = text_file.read_text(encoding="utf-8")
    except OSError as exc:
        exit_with_command_error(
            "segment",
            StageError(stage="segment", detail=f"Could not read `{text_file}`: {exc}"),
        )
    if text_file.suffix.lower() in {".html", ".htm"}:
        raw_text = TextCleaner().clean(raw_text)

    document = Segmenter().segment(raw_text)
    if len(document) == 0:
        typer.echo("No sentences found.")
        return
    typer.echo(NumberingCodec.render_units(document.units))


@app.command("show")
def show_command(
    chapter_id: Annotated[str, typer.Argument(help="Chapter identity to display.")],
    mode: Annotated[
        DisplayMode | None,
        typer.Option("--mode", help="Display mode (defaults to config `display_mode`)."),
    ] = None,
    store_dir: Annotated[
        Path | None,
        typer.Option("--store", help="Translation record directory (overrides config)."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file."),
    ] = None,
) -> None:
    """Render a stored chapter translation."""

    try:
        config = load_config(config_file)
        store = JsonFileTranslationStore(store_dir or config.store_dir)
        record = store.load(chapter_id)
        if record is None:
            raise StageError(
                stage="store",
                detail=f"No stored translation for chapter `{chapter_id}`.",
                hint="Run `bilingua translate <chapter_id>` first.",
            )
    except Exception as exc:
        exit_with_command_error("show", exc)

    display_mode = mode if mode is not None else DisplayMode(config.display_mode)
    echo_record_header(record)
    echo_sentence_pairs(
        build_sentence_pairs(record.original_sentences, record.translated_sentences),
        display_mode,
    )


@app.command("clear")
def clear_command(
    chapter_id: Annotated[str, typer.Argument(help="Chapter identity to reset.")],
    store_dir: Annotated[
        Path | None,
        typer.Option("--store", help="Translation record directory (overrides config)."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file."),
    ] = None,
) -> None:
    """Reset a stored chapter translation to `not translated`."""

    try:
        config = load_config(config_file)
        JsonFileTranslationStore(store_dir or config.store_dir).clear(chapter_id)
    except Exception as exc:
        exit_with_command_error("clear", exc)

    typer.echo(f"Cleared stored translation for chapter `{chapter_id}`.")


@app.command("list-chapters")
def list_chapters_command(
    chapters_dir: Annotated[
        Path | None,
        typer.Option("--chapters-dir", help="Directory with chapter files (overrides config)."),
    ] = None,
    store_dir: Annotated[
        Path | None,
        typer.Option("--store", help="Translation record directory (overrides config)."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file."),
    ] = None,
) -> None:
    """List chapter files with their stored translation status."""

    try:
        config = load_config(config_file)
        source = DirectoryChapterSource(chapters_dir or config.chapters_dir)
        store = JsonFileTranslationStore(store_dir or config.store_dir)
        rows = []
        for chapter_id in source.list_chapters():
            record = store.load(chapter_id)
            status = record.status if record is not None else TranslationStatus.NOT_TRANSLATED
            rows.append((chapter_id, status.description))
    except Exception as exc:
        exit_with_command_error("list-chapters", exc)

    if not rows:
        typer.echo("No chapters found.")
        return
    for chapter_id, status_label in rows:
        typer.echo(f"{chapter_id}: {status_label}")


@app.command("check-connection")
def check_connection_command(
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file."),
    ] = None,
    model: Annotated[
        str | None, typer.Option("--model", help="Chat model id override.")
    ] = None,
    api_key: Annotated[
        str | None, typer.Option("--api-key", help="Provider API key override.")
    ] = None,
) -> None:
    """Verify credentials and model access with a tiny non-streaming request."""

    try:
        config = load_config(config_file)
        sources = resolve_runtime_sources(
            config=config,
            model=model,
            target_language=None,
            api_key=api_key,
            prompt_api_key=False,
            store_api_key=False,
            credential_store_factory=create_credential_store,
        )
        runtime = config.resolved_runtime(sources)
        try:
            reply = _build_translator(config, runtime).check_connection()
        except TransportError as exc:
            raise StageError(
                stage="transport",
                detail=str(exc),
                hint="Verify the API key, `base_url`, and model id.",
            ) from exc
    except Exception as exc:
        exit_with_command_error("check-connection", exc)

    typer.echo(f"Connection OK (model={runtime.model}): {reply.strip()}")


@app.command("credentials")
def credentials_command(
    set_api_key: Annotated[
        bool,
        typer.Option(
            "--set-api-key",
            help="Prompt for API key with hidden input and store it securely.",
        ),
    ] = False,
    clear_api_key: Annotated[
        bool,
        typer.Option(
            "--clear-api-key",
            help="Clear stored API key from secure credential storage.",
        ),
    ] = False,
) -> None:
    """Manage securely stored CLI credentials."""

    if set_api_key and clear_api_key:
        exit_with_command_error(
            "credentials",
            StageError(
                stage="credentials",
                detail="`--set-api-key` and `--clear-api-key` cannot be used together.",
                hint="Run one credentials action per command invocation.",
            ),
        )

    credential_store = create_credential_store()
    if set_api_key:
        prompted_api_key = normalize_optional_string(
            typer.prompt(
                "API key (hidden input)",
                default="",
                hide_input=True,
                show_default=False,
            )
        )
        if prompted_api_key is None:
            exit_with_command_error(
                "credentials",
                StageError(
                    stage="credentials",
                    detail="No API key entered.",
                    hint="Provide a non-empty API key when using `--set-api-key`.",
                ),
            )
        try:
            credential_store.set_api_key(prompted_api_key)
        except (RuntimeError, ValueError) as exc:
            exit_with_command_error(
                "credentials",
                StageError(
                    stage="credentials",
                    detail=f"Failed to store API key securely: {exc}",
                    hint="Install and configure a keyring backend and retry.",
                ),
            )
        typer.echo("API key stored in secure credential storage.")
        return

    if clear_api_key:
        removed = credential_store.clear_api_key()
        if removed:
            typer.echo("Stored API key cleared from secure credential storage.")
        else:
            typer.echo("No stored API key found in secure credential storage.")
        return

    availability = "available" if credential_store.is_available() else "unavailable"
    has_stored_key = credential_store.get_api_key() is not None
    status = "present" if has_stored_key else "not set"
    typer.echo(f"Secure credential storage: {availability}")
    typer.echo(f"Stored API key: {status}")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
