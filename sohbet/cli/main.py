"""CLI entry point for sohbet."""

import asyncio
import json
import sys
import threading
from pathlib import Path
from typing import Optional
import click
import structlog

from ..config.settings import settings
from ..core.session_controller import ConversationConfig, SessionController
from ..gateway import registry
from ..metrics.collector import MetricsCollector
from ..state.session_manager import SessionManager
from ..utils.logging import cleanup_old_logs, setup_logging
from .chat import ChatRepl
from .speech import SpeechUtility


logger = structlog.get_logger()


def validate_gateway(ctx, param, value):
    """Validate gateway selection."""
    if value is None:
        return value
    valid_gateways = registry.list_gateways()
    if value not in valid_gateways:
        raise click.BadParameter(
            f"Invalid gateway '{value}'. Available options: {', '.join(valid_gateways)}"
        )
    return value


def _configure(debug: bool, config: Optional[str]) -> None:
    if config:
        settings.config_file = Path(config)
        # Env vars still win over the file
        settings.reload()
    setup_logging(
        debug=debug,
        log_file=settings.logging.file_enabled,
        log_level=settings.logging.level,
        log_format=settings.logging.format,
        file_rotation_mb=settings.logging.file_rotation_mb,
        file_backup_count=settings.logging.file_backup_count,
    )
    if settings.logging.file_enabled:
        cleanup_old_logs(keep_days=settings.metrics.cleanup_interval_days)


def _gateway(name: Optional[str], mock: bool):
    if mock:
        return registry.get_gateway("mock")
    return registry.get_gateway(name or settings.gateway_name)


async def read_line() -> str:
    """Prompt for one line on a daemon thread without blocking the event loop."""
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def deliver(result: Optional[str], error: Optional[Exception]) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def prompt() -> None:
        try:
            line = click.prompt("", prompt_suffix="> ", default="", show_default=False)
        except Exception as e:
            loop.call_soon_threadsafe(deliver, None, e)
        else:
            loop.call_soon_threadsafe(deliver, line, None)

    threading.Thread(target=prompt, name="sohbet-prompt", daemon=True).start()
    return await future


async def run_chat(controller: SessionController) -> None:
    """Read lines until /quit or EOF, dispatching them to the controller."""
    repl = ChatRepl(controller)
    async with controller:
        while True:
            try:
                line = await read_line()
            except (click.Abort, EOFError):
                break
            if not await repl.handle_line(line):
                break


@click.command()
@click.option("--gateway", callback=validate_gateway, default=None, help="Inference gateway to use")
@click.option("--mock", is_flag=True, help="Use canned replies instead of the remote API")
@click.option("--config", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--typing-delay", type=float, default=None, help="Seconds the typing indicator stays up")
@click.option("--allow-overlap", is_flag=True, help="Allow recording while a reply is pending")
@click.option("--save/--no-save", default=True, help="Save the transcript when the chat ends")
@click.option("--no-metrics", is_flag=True, help="Disable metrics collection")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def chat(
    gateway: Optional[str],
    mock: bool,
    config: Optional[str],
    typing_delay: Optional[float],
    allow_overlap: bool,
    save: bool,
    no_metrics: bool,
    debug: bool,
):
    """Start an interactive chat session."""
    _configure(debug, config)

    issues = settings.validate()
    for issue in issues:
        click.echo(click.style(f"⚠️  {issue}", fg="yellow"))

    conversation_config = ConversationConfig.from_settings(
        settings,
        gateway=gateway,
        typing_delay=typing_delay,
        allow_overlap=allow_overlap or None,
        mock_mode=mock,
        save_transcript=save,
    )
    if no_metrics:
        conversation_config.enable_metrics = False

    controller = SessionController(conversation_config)

    click.echo(click.style("💬 Sohbet", fg="green", bold=True))
    click.echo(f"Gateway: {'mock' if mock else conversation_config.gateway}")
    if mock:
        click.echo(click.style("⚠️  Running in MOCK mode - no API calls will be made", fg="yellow"))
    click.echo("Type /help for commands, /quit to leave.\n")

    try:
        asyncio.run(run_chat(controller))
    except KeyboardInterrupt:
        click.echo("\n\nShutting down...")

    if controller.metrics_collector and controller.metrics_collector.current_session:
        summary = controller.metrics_collector.get_summary()
        controller.metrics_collector.save_metrics()
        click.echo("\n📊 Session Summary:")
        click.echo(f"Duration: {summary['session_duration_seconds']:.1f}s")
        click.echo(f"Messages sent: {summary['submissions']}")
        if summary["generation_latency_ms"]["samples"]:
            click.echo(f"Avg reply latency: {summary['generation_latency_ms']['avg']:.0f}ms")

    click.echo("\n👋 Hoşça kal!")


@click.command()
@click.argument("text")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the audio to this file")
@click.option("--play/--no-play", default=False, help="Play the audio through the speakers")
@click.option("--gateway", callback=validate_gateway, default=None, help="Inference gateway to use")
@click.option("--mock", is_flag=True, help="Use the offline gateway")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def speak(text: str, output: Optional[str], play: bool, gateway: Optional[str], mock: bool, debug: bool):
    """Convert TEXT to speech."""
    setup_logging(debug=debug, log_file=False)
    utility = SpeechUtility(_gateway(gateway, mock))

    try:
        payload = asyncio.run(utility.synthesize(text, Path(output) if output else None))
    except Exception as e:
        logger.error("Speech synthesis failed", error=str(e))
        click.echo(click.style(f"❌ Error: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(f"🔊 {len(payload.data)} bytes ({payload.content_type}) in {utility.metrics['synthesis_ms']:.0f}ms")
    if output:
        click.echo(f"Saved to {output}")
    if play:
        try:
            utility.play(payload)
        except Exception as e:
            logger.error("Playback failed", error=str(e))
            click.echo(click.style(f"❌ Playback error: {e}", fg="red"), err=True)
            sys.exit(1)


@click.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--gateway", callback=validate_gateway, default=None, help="Inference gateway to use")
@click.option("--mock", is_flag=True, help="Use the offline gateway")
@click.option("--json", "json_output", is_flag=True, help="Output result as JSON")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def transcribe(audio_file: str, gateway: Optional[str], mock: bool, json_output: bool, debug: bool):
    """Transcribe AUDIO_FILE to text."""
    setup_logging(debug=debug, log_file=False)
    utility = SpeechUtility(_gateway(gateway, mock))

    try:
        text = asyncio.run(utility.transcribe(Path(audio_file)))
    except Exception as e:
        logger.error("Transcription failed", error=str(e))
        click.echo(click.style(f"❌ Error: {e}", fg="red"), err=True)
        sys.exit(1)

    if json_output:
        click.echo(json.dumps({
            "text": text,
            "transcription_ms": utility.metrics["transcription_ms"],
        }, ensure_ascii=False))
    else:
        click.echo(text)


@click.command()
def gateways():
    """List available gateways."""
    click.echo("🔌 Available Gateways")
    click.echo("-" * 50)
    for name in registry.list_gateways():
        marker = " (default)" if name == settings.gateway_name else ""
        click.echo(f"  - {name}{marker}")


@click.command()
@click.option("--show", "session_id", help="Print the transcript of one session")
def history(session_id: Optional[str]):
    """List saved chat sessions."""
    manager = SessionManager()

    if session_id:
        session = manager.load_session(session_id)
        if session is None:
            click.echo(click.style(f"❌ Session {session_id} not found", fg="red"))
            return
        for message in session.transcript:
            speaker = "Siz" if message.is_user else "Bot"
            click.echo(f"{speaker}: {message.text}")
        return

    sessions = manager.list_sessions()
    if not sessions:
        click.echo("No saved sessions.")
        return

    click.echo("📝 Saved sessions:")
    click.echo("-" * 60)
    for entry in sessions:
        click.echo(f"ID: {entry['id']}")
        click.echo(f"Created: {entry.get('created_at') or 'Unknown'}")
        click.echo(f"Messages: {entry['message_count']}")
        first = entry.get("first_message")
        if first:
            click.echo(f"First: {first[:60]}{'...' if len(first) > 60 else ''}")
        click.echo("-" * 60)


@click.command()
@click.option("--days", "-d", default=7, help="Number of days to include in report")
@click.option("--format", type=click.Choice(["text", "json"]), default="text", help="Output format")
def metrics(days: int, format: str):
    """View latency and error metrics."""
    report = MetricsCollector().generate_report(days=days)

    if format == "json":
        click.echo(json.dumps(report, indent=2))
        return

    click.echo("📊 Metrics Report")
    click.echo(f"Last {days} days")
    click.echo("-" * 50)

    if report["total_sessions"] == 0:
        click.echo("No data available for the specified period.")
        return

    click.echo(f"Sessions: {report['total_sessions']}")
    click.echo(f"Messages: {report['submissions']}")
    click.echo(f"Corrections: {report['corrections']}")
    click.echo(f"Voice inputs: {report['voice_inputs']}")
    click.echo(f"Error Rate: {report['error_rate']:.2%}")
    click.echo()

    for name, key in (("Generation", "generation_latency_ms"), ("Transcription", "transcription_latency_ms")):
        stats = report[key]
        if stats["samples"] > 0:
            click.echo(f"{name} Latency:")
            click.echo(f"  Average: {stats['avg']:.1f}ms")
            click.echo(f"  P95: {stats['p95']:.1f}ms")
            click.echo(f"  Samples: {stats['samples']}")
        else:
            click.echo(f"{name} Latency: No data")


cli = click.Group(help="Chat with hosted language and speech models.")
cli.add_command(chat)
cli.add_command(speak)
cli.add_command(transcribe)
cli.add_command(gateways)
cli.add_command(history)
cli.add_command(metrics)


if __name__ == "__main__":
    cli()
