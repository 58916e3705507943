from __future__ import annotations

import logging
import math
import wave
from pathlib import Path
from threading import Event, Lock, Thread
from typing import Optional

try:
    import winsound
except ImportError:  # pragma: no cover - non-Windows fallback
    winsound = None  # type: ignore

try:  # Optional local TTS for spoken notifications
    import pyttsx3
except ImportError:  # pragma: no cover - optional
    pyttsx3 = None  # type: ignore

logger = logging.getLogger(__name__)

# high-low-high-low, (frequency Hz, seconds)
ALARM_PATTERN = ((800.0, 0.3), (600.0, 0.3), (800.0, 0.3), (600.0, 0.3))
TONE_GAP_SECONDS = 0.1
REPEAT_INTERVAL_SECONDS = 2.0
SAMPLE_RATE = 24000


def clamp_volume(volume: float) -> float:
    return max(0.0, min(1.0, float(volume)))


def render_pattern(volume: float = 0.3, sample_rate: int = SAMPLE_RATE) -> bytes:
    """16-bit mono PCM for one pass of ALARM_PATTERN."""
    amplitude = 32767 * clamp_volume(volume)
    gap = b"\x00\x00" * int(TONE_GAP_SECONDS * sample_rate)
    pcm = bytearray()
    for freq, seconds in ALARM_PATTERN:
        count = int(seconds * sample_rate)
        for i in range(count):
            # fade out each tone so it does not click
            sample = amplitude * (1.0 - i / count) * math.sin(2 * math.pi * freq * i / sample_rate)
            pcm += int(sample).to_bytes(2, byteorder="little", signed=True)
        pcm += gap
    return bytes(pcm)


def ensure_alarm_sound(path: Path, volume: float = 0.3) -> Path:
    path = Path(path)
    if path.exists():
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "w") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(SAMPLE_RATE)
        wav.writeframes(render_pattern(volume))
    logger.info("Generated default alarm sound at %s", path)
    return path


class AlarmSoundPlayer:
    """Loops the alarm pattern until stopped. Starting twice is a no-op.

    Each loop owns its stop event, so a thread left over from a previous
    loop exits even when a new loop starts right after `stop_loop`.
    """

    repeat_interval = REPEAT_INTERVAL_SECONDS

    def __init__(self, sound_path: Path, volume: float = 0.3):
        self.sound_path = Path(sound_path)
        self.volume = clamp_volume(volume)
        self._stop_event: Optional[Event] = None
        self._ring_thread: Optional[Thread] = None

    @property
    def is_playing(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def set_volume(self, volume: float) -> None:
        self.volume = clamp_volume(volume)
        if winsound and self.sound_path.exists():
            # regenerated with the new level on the next start
            try:
                self.sound_path.unlink()
            except OSError:
                logger.warning("Could not remove %s, volume applies after restart", self.sound_path)

    def start_loop(self) -> None:
        if self.is_playing:
            return
        if winsound:
            ensure_alarm_sound(self.sound_path, self.volume)
        stop_event = Event()
        self._stop_event = stop_event
        self._ring_thread = Thread(target=self._ring, args=(stop_event,), name="alarm-ring", daemon=True)
        self._ring_thread.start()

    def stop_loop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        self._stop_event = None
        self._ring_thread = None
        if winsound:
            try:
                winsound.PlaySound(None, winsound.SND_PURGE)
            except RuntimeError:
                logger.debug("winsound purge failed")

    def _ring(self, stop_event: Event) -> None:
        while not stop_event.is_set():
            self._play_once(stop_event)
            stop_event.wait(self.repeat_interval)

    def _play_once(self, stop_event: Event) -> None:  # pragma: no cover - platform audio
        if not winsound:
            logger.info("Alarm ringing...")
            return
        try:
            winsound.PlaySound(str(self.sound_path), winsound.SND_FILENAME)
        except RuntimeError:
            logger.warning("winsound.PlaySound failed, beeping instead")
            for freq, seconds in ALARM_PATTERN:
                if stop_event.is_set():
                    return
                winsound.Beep(int(freq), int(seconds * 1000))


class LocalSpeaker:
    """Reads alarm titles aloud through pyttsx3; does nothing when it is not installed."""

    def __init__(self, rate: int = 185):
        self._lock = Lock()
        self._engine = None
        if pyttsx3 is None:
            logger.info("pyttsx3 not installed, spoken notifications disabled")
            return
        self._engine = pyttsx3.init()
        self._engine.setProperty("rate", rate)

    @property
    def available(self) -> bool:
        return self._engine is not None

    def speak_async(self, text: str) -> bool:
        if self._engine is None:
            return False
        Thread(target=self._speak, args=(text,), name="alarm-speech", daemon=True).start()
        return True

    def _speak(self, text: str) -> None:
        with self._lock:
            try:
                self._engine.say(text)
                self._engine.runAndWait()
            except Exception:  # pragma: no cover - engine runtime errors
                logger.error("pyttsx3 failed to speak %r", text, exc_info=True)
