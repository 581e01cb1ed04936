"""
Alarm Sound Tool
Attention signal played while a dose alarm is active
"""

import io
import logging
import math
import struct
import wave
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from config import scheduling_config
from exceptions import PresentationFailure


logger = logging.getLogger(__name__)


# Receives rendered audio and whether it should loop
AudioSink = Callable[[bytes, bool], None]


class SoundSource(str, Enum):
    """Which source is producing the attention signal"""
    PRIMARY = "primary"
    FALLBACK = "fallback"
    SILENT = "silent"


class SoundBackend(ABC):
    """A playable sound source"""

    name: str = "backend"

    @abstractmethod
    def start(self) -> None:
        """Start looping playback. Raises PresentationFailure if it cannot."""

    @abstractmethod
    def stop(self) -> None:
        """Stop playback"""


class AssetSoundBackend(SoundBackend):
    """Plays the bundled alarm asset from disk"""

    name = "asset"

    def __init__(self, path: Optional[str], sink: AudioSink):
        self.path = Path(path) if path else None
        self.sink = sink
        self._data: Optional[bytes] = None

    def _load(self) -> bytes:
        if self._data is None:
            if self.path is None:
                raise PresentationFailure("No alarm asset configured")
            try:
                self._data = self.path.read_bytes()
            except OSError as e:
                raise PresentationFailure(f"Alarm asset unavailable: {self.path}") from e
            if not self._data:
                raise PresentationFailure(f"Alarm asset is empty: {self.path}")
        return self._data

    def start(self) -> None:
        self.sink(self._load(), True)

    def stop(self) -> None:
        self.sink(b"", False)


class ToneGenerator(SoundBackend):
    """
    Built-in siren: a sine sweep from 440 Hz to 880 Hz over half a second
    with the gain decaying from 0.1 to 0.01 over one second, rendered as
    16-bit mono PCM WAV.
    """

    name = "tone"

    def __init__(
        self,
        sink: AudioSink,
        sample_rate: int = scheduling_config.FALLBACK_TONE_SAMPLE_RATE,
        start_hz: float = scheduling_config.FALLBACK_TONE_START_HZ,
        end_hz: float = scheduling_config.FALLBACK_TONE_END_HZ,
        sweep_seconds: float = scheduling_config.FALLBACK_TONE_SWEEP_SECONDS,
        duration_seconds: float = scheduling_config.FALLBACK_TONE_DURATION_SECONDS,
        start_gain: float = scheduling_config.FALLBACK_TONE_START_GAIN,
        end_gain: float = scheduling_config.FALLBACK_TONE_END_GAIN
    ):
        self.sink = sink
        self.sample_rate = sample_rate
        self.start_hz = start_hz
        self.end_hz = end_hz
        self.sweep_seconds = sweep_seconds
        self.duration_seconds = duration_seconds
        self.start_gain = start_gain
        self.end_gain = end_gain
        self._rendered: Optional[bytes] = None

    def _exponential(self, start: float, end: float, t: float, span: float) -> float:
        if t >= span:
            return end
        return start * (end / start) ** (t / span)

    def render_samples(self) -> list:
        """Render the siren as signed 16-bit sample values"""
        total = int(self.sample_rate * self.duration_seconds)
        samples = []
        phase = 0.0
        for i in range(total):
            t = i / self.sample_rate
            frequency = self._exponential(self.start_hz, self.end_hz, t, self.sweep_seconds)
            gain = self._exponential(self.start_gain, self.end_gain, t, self.duration_seconds)
            samples.append(int(32767 * gain * math.sin(phase)))
            phase += 2 * math.pi * frequency / self.sample_rate
        return samples

    def render_wav(self) -> bytes:
        """Render the siren as a WAV file"""
        if self._rendered is None:
            samples = self.render_samples()
            buffer = io.BytesIO()
            with wave.open(buffer, "wb") as wav:
                wav.setnchannels(1)
                wav.setsampwidth(2)
                wav.setframerate(self.sample_rate)
                wav.writeframes(struct.pack(f"<{len(samples)}h", *samples))
            self._rendered = buffer.getvalue()
        return self._rendered

    def start(self) -> None:
        try:
            data = self.render_wav()
        except (ValueError, OverflowError, struct.error) as e:
            raise PresentationFailure("Fallback tone could not be rendered") from e
        self.sink(data, True)

    def stop(self) -> None:
        self.sink(b"", False)


class AlarmSound:
    """
    Attention signal for the active alarm.

    Playback requires a one-time opt-in (environments that block unsolicited
    audio need a user gesture) and the audio preference being on. Until the
    opt-in happens the signal stays silent and banner_visible is True so the
    client can offer the activation gesture. A failing primary source falls
    back to the tone generator; if that fails too the alarm stays silent.
    Failures are logged and never raised.
    """

    def __init__(
        self,
        primary: SoundBackend,
        fallback: SoundBackend,
        opted_in: bool = False,
        enabled: bool = True
    ):
        self.primary = primary
        self.fallback = fallback
        self.opted_in = opted_in
        self.enabled = enabled
        self.source: Optional[SoundSource] = None

    @property
    def is_playing(self) -> bool:
        return self.source in (SoundSource.PRIMARY, SoundSource.FALLBACK)

    @property
    def banner_visible(self) -> bool:
        return not self.opted_in

    def opt_in(self) -> None:
        """Record the activation gesture"""
        self.opted_in = True
        self.enabled = True
        logger.info("Alarm audio activated")

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if not enabled and self.is_playing:
            self.stop()

    def start(self) -> SoundSource:
        """Start the signal for a newly active alarm"""
        if self.is_playing:
            return self.source

        if not (self.opted_in and self.enabled):
            self.source = SoundSource.SILENT
            return self.source

        try:
            self.primary.start()
            self.source = SoundSource.PRIMARY
            return self.source
        except Exception as e:  # sound must never block delivery
            logger.warning(f"Primary alarm sound failed, using fallback tone: {e}")

        try:
            self.fallback.start()
            self.source = SoundSource.FALLBACK
        except Exception as e:
            logger.error(f"Fallback tone failed, alarm will be silent: {e}")
            self.source = SoundSource.SILENT

        return self.source

    def stop(self) -> None:
        """Stop the signal when the alarm leaves the active state"""
        backend = {
            SoundSource.PRIMARY: self.primary,
            SoundSource.FALLBACK: self.fallback,
        }.get(self.source)
        self.source = None

        if backend is None:
            return
        try:
            backend.stop()
        except Exception as e:
            logger.warning(f"Stopping alarm sound failed: {e}")
