"""Interactive terminal front-end for a chat session."""

from typing import Any, Callable
import click
import structlog

from ..core.session_controller import SessionController, SessionStatus
from ..state.transcript import Message


logger = structlog.get_logger()

EMOJIS = {
    "smile": "😊",
    "laugh": "😂",
    "heart": "❤️",
    "thumbsup": "👍",
    "wave": "👋",
    "think": "🤔",
    "party": "🎉",
    "sad": "😢",
}

HELP_TEXT = """Commands:
  <text>          append to the draft and send it
  /send           send the current draft
  /fix [text]     ask for a grammar correction (defaults to the draft)
  /rec            start or stop voice recording
  /emoji <name>   add an emoji to the draft ({names})
  /draft          show the current draft
  /status         show session status
  /help           show this help
  /quit           leave the chat"""


class ChatRepl:
    """Maps terminal lines onto controller operations and renders events."""

    def __init__(self, controller: SessionController, echo: Callable[[str], None] = click.echo):
        self.controller = controller
        self.echo = echo
        controller.add_listener(self.on_event)

    def on_event(self, event: str, value: Any) -> None:
        if event == "message":
            self.render_message(value)
        elif event == "typing" and value:
            self.echo(click.style("  bot yazıyor...", dim=True))
        elif event == "status" and value is SessionStatus.RECORDING:
            self.echo(click.style("  ● kayıt (type /rec to stop)", fg="red"))

    def render_message(self, message: Message) -> None:
        if message.is_user:
            self.echo(click.style(f"Siz: {message.text}", fg="blue"))
        else:
            self.echo(click.style(f"Bot: {message.text}", fg="green"))

    async def handle_line(self, line: str) -> bool:
        """Process one input line. Returns False when the user wants to leave."""
        stripped = line.strip()
        if not stripped.startswith("/"):
            self.controller.set_draft(self.controller.draft + line)
            await self.controller.submit()
            return True

        command, _, argument = stripped.partition(" ")
        argument = argument.strip()

        if command in ("/quit", "/exit"):
            return False
        elif command == "/help":
            self.echo(HELP_TEXT.format(names=", ".join(EMOJIS)))
        elif command == "/send":
            if not await self.controller.submit():
                self.echo(click.style("Nothing to send.", fg="yellow"))
        elif command == "/fix":
            if not await self.controller.request_correction(argument or None):
                self.echo(click.style("Nothing to correct.", fg="yellow"))
        elif command == "/rec":
            await self._toggle_recording()
        elif command == "/emoji":
            glyph = EMOJIS.get(argument)
            if glyph is None:
                self.echo(click.style(f"Unknown emoji '{argument}'. Options: {', '.join(EMOJIS)}", fg="yellow"))
            else:
                self.controller.insert_emoji(glyph)
                self.echo(f"Draft: {self.controller.draft}")
        elif command == "/draft":
            self.echo(f"Draft: {self.controller.draft or '(empty)'}")
        elif command == "/status":
            status = self.controller.get_status()
            self.echo(f"Status: {status['status']} | Messages: {status['message_count']}")
        else:
            self.echo(click.style(f"Unknown command {command}. Type /help.", fg="yellow"))

        return True

    async def _toggle_recording(self) -> None:
        if not self.controller.is_recording:
            if not await self.controller.start_voice_capture():
                self.echo(click.style("Recording could not start.", fg="red"))
            return

        task = await self.controller.stop_voice_capture()
        if task is not None:
            self.echo(click.style("  ses çözümleniyor...", dim=True))
            await self.controller.wait_for_transcriptions()
