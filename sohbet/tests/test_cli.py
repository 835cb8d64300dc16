"""Tests for the command line interface and the chat REPL."""

import asyncio
import json
import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import click
import pytest
import soundfile as sf
from click.testing import CliRunner

from sohbet.cli.chat import ChatRepl
from sohbet.cli import main
from sohbet.cli.main import cli, read_line
from sohbet.cli.speech import SpeechUtility
from sohbet.config.settings import Settings
from sohbet.gateway.base import AudioPayload
from sohbet.metrics.collector import MetricsCollector
from sohbet.state.session_manager import SessionManager
from sohbet.state.transcript import Message, Sender


class TestCommands:
    """Test the click commands."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_gateways(self):
        result = self.runner.invoke(cli, ["gateways"])

        assert result.exit_code == 0
        assert "huggingface" in result.output
        assert "mock" in result.output

    def test_invalid_gateway(self):
        result = self.runner.invoke(cli, ["speak", "Merhaba", "--gateway", "nope"])

        assert result.exit_code != 0
        assert "Invalid gateway 'nope'" in result.output

    def test_speak_mock_writes_file(self):
        with self.runner.isolated_filesystem():
            result = self.runner.invoke(cli, ["speak", "Merhaba dünya", "--mock", "-o", "out/hello.wav"])

            assert result.exit_code == 0
            assert "Saved to out/hello.wav" in result.output
            assert "audio/wav" in result.output
            info = sf.info("out/hello.wav")
            assert info.samplerate == 16000
            assert info.frames == 3200

    def test_speak_gateway_failure_exits_nonzero(self):
        with patch("sohbet.cli.speech.SpeechUtility.synthesize", side_effect=RuntimeError("offline")):
            result = self.runner.invoke(cli, ["speak", "Merhaba", "--mock"])

        assert result.exit_code == 1
        assert "offline" in result.output

    def test_speak_playback_failure_exits_nonzero(self):
        with patch("sohbet.cli.speech.SpeechUtility.play", side_effect=RuntimeError("No available audio device")):
            result = self.runner.invoke(cli, ["speak", "Merhaba", "--mock", "--play"])

        assert result.exit_code == 1
        assert "Playback error: No available audio device" in result.output

    def test_transcribe_empty_file(self):
        with self.runner.isolated_filesystem():
            Path("empty.wav").write_bytes(b"")
            result = self.runner.invoke(cli, ["transcribe", "empty.wav", "--mock"])

        assert result.exit_code == 1
        assert "Audio file is empty" in result.output

    def test_transcribe_mock_json(self):
        with self.runner.isolated_filesystem():
            Path("clip.wav").write_bytes(b"RIFF")
            result = self.runner.invoke(cli, ["transcribe", "clip.wav", "--mock", "--json"])

            assert result.exit_code == 0
            line = [l for l in result.output.splitlines() if l.startswith("{\"text\"")][0]
            data = json.loads(line)
            assert data["text"] == "Hello, how are you today?"
            assert "transcription_ms" in data

    def test_history_lists_and_shows_sessions(self, tmp_path):
        manager = SessionManager(str(tmp_path))
        session = manager.create_session()
        session.transcript.append(Message("Hello", Sender.USER))
        session.transcript.append(Message("Hi there!", Sender.BOT))
        manager.save_session(session)

        with patch("sohbet.cli.main.SessionManager", return_value=manager):
            listing = self.runner.invoke(cli, ["history"])
            shown = self.runner.invoke(cli, ["history", "--show", session.id])
            missing = self.runner.invoke(cli, ["history", "--show", "session_missing"])

        assert listing.exit_code == 0
        assert session.id in listing.output
        assert "Messages: 2" in listing.output
        assert "Siz: Hello" in shown.output
        assert "Bot: Hi there!" in shown.output
        assert "not found" in missing.output

    def test_history_empty(self, tmp_path):
        with patch("sohbet.cli.main.SessionManager", return_value=SessionManager(str(tmp_path))):
            result = self.runner.invoke(cli, ["history"])

        assert "No saved sessions." in result.output

    def test_metrics_report(self, tmp_path):
        collector = MetricsCollector(tmp_path)
        collector.start_session("s1")
        collector.record_submission()
        collector.record_generation_latency(150.0)
        collector.save_metrics()

        with patch("sohbet.cli.main.MetricsCollector", return_value=collector):
            text = self.runner.invoke(cli, ["metrics"])
            as_json = self.runner.invoke(cli, ["metrics", "--format", "json"])

        assert text.exit_code == 0
        assert "Sessions: 1" in text.output
        assert "Average: 150.0ms" in text.output
        assert json.loads(as_json.output)["submissions"] == 1

    def test_metrics_empty(self, tmp_path):
        with patch("sohbet.cli.main.MetricsCollector", return_value=MetricsCollector(tmp_path)):
            result = self.runner.invoke(cli, ["metrics"])

        assert "No data available" in result.output

    def test_chat_mock_session(self):
        with self.runner.isolated_filesystem():
            result = self.runner.invoke(
                cli,
                ["chat", "--mock", "--typing-delay", "0", "--no-save", "--no-metrics"],
                input="Hello\n/quit\n",
            )

        assert result.exit_code == 0
        assert "MOCK mode" in result.output
        assert "Siz: Hello" in result.output
        assert "Bot: Merhaba! Size nasıl yardımcı olabilirim?" in result.output


class TestChatRepl:
    """Test line handling in the interactive chat."""

    @pytest.fixture
    def lines(self):
        return []

    @pytest.fixture
    def repl(self, controller, lines):
        return ChatRepl(controller, echo=lines.append)

    @pytest.mark.asyncio
    async def test_plain_text_is_sent(self, repl, controller, lines):
        assert await repl.handle_line("Hello") is True

        assert [m.text for m in controller.transcript] == ["Hello", "Hi there!"]
        assert any("Siz: Hello" in line for line in lines)
        assert any("Bot: Hi there!" in line for line in lines)
        assert any("bot yazıyor" in line for line in lines)

    @pytest.mark.asyncio
    async def test_text_is_appended_to_draft(self, repl, controller, gateway):
        await repl.handle_line("/emoji wave")
        await repl.handle_line(" Merhaba")

        assert gateway.prompts == ["👋 Merhaba"]

    @pytest.mark.asyncio
    async def test_emoji_and_draft(self, repl, controller, lines):
        await repl.handle_line("/emoji smile")
        await repl.handle_line("/draft")

        assert controller.draft == "😊"
        assert lines[-1] == "Draft: 😊"

    @pytest.mark.asyncio
    async def test_unknown_emoji(self, repl, controller, lines):
        await repl.handle_line("/emoji unicorn")

        assert controller.draft == ""
        assert "Unknown emoji 'unicorn'" in lines[-1]

    @pytest.mark.asyncio
    async def test_fix_command(self, repl, controller):
        await repl.handle_line("/fix He go school")

        assert controller.transcript[0].text == 'Correction for "He go school": Hi there!'

    @pytest.mark.asyncio
    async def test_send_empty_draft(self, repl, lines):
        await repl.handle_line("/send")

        assert "Nothing to send." in lines[-1]

    @pytest.mark.asyncio
    async def test_record_round_trip(self, repl, controller, recorder, lines):
        await repl.handle_line("/rec")
        assert controller.is_recording is True
        assert any("kayıt" in line for line in lines)

        await repl.handle_line("/rec")

        assert recorder.stop_calls == 1
        assert [m.text for m in controller.transcript] == ["Merhaba dünya", "Hi there!"]

    @pytest.mark.asyncio
    async def test_record_failure_reported(self, config, gateway, failing_recorder, lines):
        from sohbet.core.session_controller import SessionController

        controller = SessionController(config, gateway=gateway, recorder=failing_recorder)
        repl = ChatRepl(controller, echo=lines.append)

        await repl.handle_line("/rec")

        assert "Recording could not start." in lines[-1]

    @pytest.mark.asyncio
    async def test_status_help_and_unknown(self, repl, lines):
        await repl.handle_line("/status")
        assert lines[-1] == "Status: idle | Messages: 0"

        await repl.handle_line("/help")
        assert "/fix [text]" in lines[-1]

        await repl.handle_line("/bogus")
        assert "Unknown command /bogus" in lines[-1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["/quit", "/exit"])
    async def test_quit(self, repl, command):
        assert await repl.handle_line(command) is False


class TestConfigure:
    """Test settings loading through --config."""

    def test_env_overrides_config_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TYPING_DELAY", raising=False)
        monkeypatch.delenv("SOHBET_GATEWAY", raising=False)
        monkeypatch.delenv("ALLOW_OVERLAP", raising=False)
        fresh = Settings()
        monkeypatch.setattr(main, "settings", fresh)
        monkeypatch.setattr(main, "setup_logging", MagicMock())
        monkeypatch.setattr(main, "cleanup_old_logs", MagicMock())

        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "gateway_name": "mock",
            "conversation": {"typing_delay": 2.0, "allow_overlap": True},
        }))
        monkeypatch.setenv("TYPING_DELAY", "0.5")

        main._configure(False, str(config_file))

        assert fresh.conversation.typing_delay == 0.5
        assert fresh.conversation.allow_overlap is True
        assert fresh.gateway_name == "mock"


class TestReadLine:
    """Test the non-blocking prompt."""

    @pytest.mark.asyncio
    async def test_returns_prompted_line(self):
        with patch("sohbet.cli.main.click.prompt", return_value="Merhaba"):
            assert await read_line() == "Merhaba"

    @pytest.mark.asyncio
    async def test_abort_is_raised_in_caller(self):
        with patch("sohbet.cli.main.click.prompt", side_effect=click.Abort()):
            with pytest.raises(click.Abort):
                await read_line()

    @pytest.mark.asyncio
    async def test_cancelled_read_leaves_daemon_thread(self):
        started = threading.Event()
        unblock = threading.Event()
        daemon_flags = []

        def blocking_prompt(*args, **kwargs):
            daemon_flags.append(threading.current_thread().daemon)
            started.set()
            unblock.wait(5)
            return "late"

        with patch("sohbet.cli.main.click.prompt", side_effect=blocking_prompt):
            task = asyncio.create_task(read_line())
            await asyncio.to_thread(started.wait, 5)

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            unblock.set()
            await asyncio.sleep(0.05)

        assert daemon_flags == [True]


class TestSpeechUtility:
    """Test audio playback."""

    def test_play_always_quits_mixer(self):
        pygame = MagicMock()
        pygame.mixer.music.load.side_effect = RuntimeError("Unknown WAVE format")

        with patch.dict(sys.modules, {"pygame": pygame}):
            with pytest.raises(RuntimeError):
                SpeechUtility.play(AudioPayload(data=b"not audio"))

        pygame.mixer.init.assert_called_once()
        pygame.mixer.quit.assert_called_once()

    def test_play_waits_until_done(self):
        pygame = MagicMock()
        pygame.mixer.music.get_busy.side_effect = [True, False]

        with patch.dict(sys.modules, {"pygame": pygame}), patch("sohbet.cli.speech.time.sleep"):
            SpeechUtility.play(AudioPayload(data=b"RIFF"))

        pygame.mixer.music.play.assert_called_once()
        pygame.mixer.quit.assert_called_once()
