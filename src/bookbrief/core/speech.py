"""Speech playback for summaries.

``SpeechEngine`` is the playback service: it owns the single process-wide
utterance slot and reports its voice catalog asynchronously.
``SubprocessSpeechEngine`` drives a local synthesizer (espeak-ng, espeak or
macOS ``say``). ``SpeechController`` owns the play/stop lifecycle for one
displayed summary.
"""

from __future__ import annotations

import asyncio
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

import structlog

log = structlog.get_logger()

SPEECH_COMMANDS = ("espeak-ng", "espeak", "say")
BASE_WPM = 175
INTERRUPTED = "interrupted"

_SAY_VOICE_RE = re.compile(r"^(?P<name>.+?)\s{2,}(?P<lang>[A-Za-z]{2,3}[_-][A-Za-z0-9]+)\s")


class SpeechState(str, Enum):
    UNAVAILABLE = "unavailable"
    VOICES_LOADING = "voices-loading"
    IDLE = "idle"
    SPEAKING = "speaking"


@dataclass(frozen=True)
class Voice:
    name: str
    language: str = ""
    identifier: str = ""


@dataclass
class Utterance:
    text: str
    rate: float = 1.0
    pitch: float = 1.0
    voice: Voice | None = None
    on_start: Callable[[], None] | None = None
    on_end: Callable[[], None] | None = None
    on_error: Callable[[str], None] | None = None

    def emit_start(self) -> None:
        if self.on_start:
            self.on_start()

    def emit_end(self) -> None:
        if self.on_end:
            self.on_end()

    def emit_error(self, error: str) -> None:
        if self.on_error:
            self.on_error(error)


class SpeechEngine:
    """Playback service interface.

    At most one utterance is in flight per engine: ``speak`` cancels the
    current one, and ``cancel`` reports ``"interrupted"`` to the cancelled
    utterance's error callback.
    """

    available = False

    def __init__(self) -> None:
        self._voices: list[Voice] = []
        self._listeners: list[Callable[[list[Voice]], None]] = []

    def start(self) -> None:
        """Begin loading the voice catalog, if the engine needs to."""

    def get_voices(self) -> list[Voice]:
        return list(self._voices)

    def add_voices_listener(self, listener: Callable[[list[Voice]], None]) -> None:
        self._listeners.append(listener)

    def remove_voices_listener(self, listener: Callable[[list[Voice]], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _set_voices(self, voices: list[Voice]) -> None:
        self._voices = list(voices)
        for listener in list(self._listeners):
            listener(self.get_voices())

    def speak(self, utterance: Utterance) -> None:
        raise NotImplementedError

    def cancel(self) -> None:
        raise NotImplementedError


def find_speech_command(preferred: str = "") -> str | None:
    names = [preferred] if preferred else list(SPEECH_COMMANDS)
    for name in names:
        path = shutil.which(name)
        if path:
            return path
    return None


def parse_espeak_voices(output: str) -> list[Voice]:
    """Parse ``espeak --voices`` output (header line, then one voice per line)."""
    voices = []
    for line in output.splitlines()[1:]:
        fields = line.split()
        if len(fields) >= 5:
            voices.append(Voice(name=fields[3], language=fields[1], identifier=fields[1]))
    return voices


def parse_say_voices(output: str) -> list[Voice]:
    """Parse ``say -v ?`` output, e.g. ``Martha   en_GB    # Hello...``."""
    voices = []
    for line in output.splitlines():
        match = _SAY_VOICE_RE.match(line)
        if match:
            name = match.group("name").strip()
            voices.append(Voice(name=name, language=match.group("lang"), identifier=name))
    return voices


class SubprocessSpeechEngine(SpeechEngine):
    """Speaks through a command-line synthesizer run as an asyncio subprocess."""

    def __init__(self, command: str | None = None) -> None:
        super().__init__()
        self.command = command if command is not None else find_speech_command()
        self.available = bool(self.command)
        self._task: asyncio.Task | None = None
        self._current: Utterance | None = None
        self._loader: asyncio.Task | None = None

    @property
    def is_say(self) -> bool:
        return bool(self.command) and Path(self.command).name == "say"

    def start(self) -> None:
        if self.available and self._loader is None:
            self._loader = asyncio.get_running_loop().create_task(self._load_voices())

    async def _load_voices(self) -> None:
        argv = [self.command, "-v", "?"] if self.is_say else [self.command, "--voices"]
        voices: list[Voice] = []
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            stdout, _ = await proc.communicate()
            output = stdout.decode("utf-8", errors="replace")
            voices = parse_say_voices(output) if self.is_say else parse_espeak_voices(output)
        except OSError as e:
            log.warning("speech_voices_failed", command=self.command, error=str(e))

        if not voices:
            # Engine default still works without a catalog.
            voices = [Voice(name="default")]
        log.debug("speech_voices_loaded", command=self.command, count=len(voices))
        self._set_voices(voices)

    def build_argv(self, utterance: Utterance) -> list[str]:
        wpm = str(round(BASE_WPM * utterance.rate))
        if self.is_say:
            argv = [self.command, "-r", wpm, "-f", "-"]
            if utterance.voice and utterance.voice.identifier:
                argv += ["-v", utterance.voice.identifier]
            return argv

        pitch = str(max(0, min(99, round(50 * utterance.pitch))))
        argv = [self.command, "-s", wpm, "-p", pitch, "--stdin"]
        if utterance.voice and utterance.voice.identifier:
            argv += ["-v", utterance.voice.identifier]
        return argv

    def speak(self, utterance: Utterance) -> None:
        self.cancel()
        self._current = utterance
        self._task = asyncio.get_running_loop().create_task(self._run(utterance))

    async def _run(self, utterance: Utterance) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_argv(utterance),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self._finish(utterance)
            utterance.emit_error(str(e))
            return

        utterance.emit_start()
        try:
            _, stderr = await proc.communicate(utterance.text.encode("utf-8"))
        except asyncio.CancelledError:
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()
            raise

        self._finish(utterance)
        if proc.returncode == 0:
            utterance.emit_end()
        else:
            error = stderr.decode("utf-8", errors="replace").strip()
            utterance.emit_error(error or f"exit status {proc.returncode}")

    def _finish(self, utterance: Utterance) -> None:
        if self._current is utterance:
            self._current = None
            self._task = None

    def cancel(self) -> None:
        task, current = self._task, self._current
        self._task = None
        self._current = None
        if task is not None and not task.done():
            task.cancel()
        if current is not None:
            current.emit_error(INTERRUPTED)


_default_engine: SpeechEngine | None = None


def default_engine(command: str = "") -> SpeechEngine:
    """Return the process-wide speech engine, creating it on first use."""
    global _default_engine
    if _default_engine is None:
        _default_engine = SubprocessSpeechEngine(find_speech_command(command) or "")
    return _default_engine


class SpeechController:
    """Play/stop state machine for the summary currently on screen.

    Use as an async context manager: entering attaches to the engine and
    starts voice loading; leaving always cancels outstanding speech.
    """

    def __init__(
        self,
        engine: SpeechEngine,
        preferred_voice: str = "Martha",
        rate: float = 1.0,
        pitch: float = 1.0,
    ) -> None:
        self.engine = engine
        self.preferred_voice = preferred_voice
        self.rate = rate
        self.pitch = pitch
        self.state = SpeechState.VOICES_LOADING
        self._utterance: Utterance | None = None
        self._attached = False
        self._ready = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def speaking(self) -> bool:
        return self.state is SpeechState.SPEAKING

    @property
    def available(self) -> bool:
        return self.state is not SpeechState.UNAVAILABLE

    def attach(self) -> None:
        if self._attached or self.state is SpeechState.UNAVAILABLE:
            return
        if not self.engine.available:
            self.state = SpeechState.UNAVAILABLE
            self._ready.set()
            log.info("speech_unavailable")
            return

        self.engine.add_voices_listener(self._on_voices_changed)
        self._attached = True
        self.engine.start()
        self._on_voices_changed(self.engine.get_voices())

    def _on_voices_changed(self, voices: list[Voice]) -> None:
        if voices and self.state is SpeechState.VOICES_LOADING:
            self.state = SpeechState.IDLE
            self._ready.set()
            log.debug("speech_ready", voices=len(voices))

    def select_voice(self, voices: list[Voice]) -> Voice | None:
        """Pick the first voice whose name contains the preferred name."""
        if not self.preferred_voice:
            return None
        wanted = self.preferred_voice.casefold()
        for voice in voices:
            if wanted in voice.name.casefold():
                return voice
        return None

    def play(self, text: str) -> bool:
        """Speak ``text``, interrupting anything already playing."""
        if self.state not in (SpeechState.IDLE, SpeechState.SPEAKING) or not text:
            log.debug("speech_play_ignored", state=self.state.value, has_text=bool(text))
            return False

        self.engine.cancel()
        utterance = Utterance(
            text=text,
            rate=self.rate,
            pitch=self.pitch,
            voice=self.select_voice(self.engine.get_voices()),
        )
        utterance.on_start = lambda: self._on_start(utterance)
        utterance.on_end = lambda: self._on_finished(utterance)
        utterance.on_error = lambda error: self._on_finished(utterance, error)

        self._utterance = utterance
        self.state = SpeechState.SPEAKING
        self._idle.clear()
        self.engine.speak(utterance)
        return True

    def toggle(self, text: str) -> bool:
        """Play button: stops while speaking, otherwise starts playback."""
        if self.speaking:
            self.stop()
            return False
        return self.play(text)

    def stop(self) -> None:
        if not self.speaking:
            return
        self._utterance = None
        self.engine.cancel()
        self._set_idle()

    def _on_start(self, utterance: Utterance) -> None:
        if utterance is self._utterance:
            log.debug("speech_started", voice=utterance.voice.name if utterance.voice else None)

    def _on_finished(self, utterance: Utterance, error: str | None = None) -> None:
        if utterance is not self._utterance:
            return
        if error and error != INTERRUPTED:
            log.warning("speech_error", error=error)
        self._utterance = None
        self._set_idle()

    def _set_idle(self) -> None:
        if self.state is SpeechState.SPEAKING:
            self.state = SpeechState.IDLE
        self._idle.set()

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until voices are loaded. False if unavailable or timed out."""
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self.state is not SpeechState.UNAVAILABLE

    async def wait_idle(self) -> None:
        await self._idle.wait()

    def close(self) -> None:
        if self.engine.available:
            self.engine.cancel()
        if self._attached:
            self.engine.remove_voices_listener(self._on_voices_changed)
            self._attached = False
        self._utterance = None
        self._set_idle()

    async def __aenter__(self) -> SpeechController:
        self.attach()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()
