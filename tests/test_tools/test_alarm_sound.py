"""
Tests for Alarm Sound Tool
Tests the attention signal: opt-in gating, fallback tone and silent degradation
"""

import io
import wave
import pytest
from unittest.mock import MagicMock

from tools.alarm_sound import (
    AlarmSound,
    AssetSoundBackend,
    SoundBackend,
    SoundSource,
    ToneGenerator,
)
from exceptions import PresentationFailure


# =============================================================================
# Test Fixtures
# =============================================================================

class RecordingSink:
    """Audio sink that remembers what it was handed"""

    def __init__(self):
        self.calls = []

    def __call__(self, data: bytes, loop: bool) -> None:
        self.calls.append((data, loop))

    @property
    def last(self):
        return self.calls[-1] if self.calls else None


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def asset_path(tmp_path):
    path = tmp_path / "alarm.wav"
    path.write_bytes(b"RIFF-fake-asset")
    return path


def failing_backend(name: str = "broken") -> SoundBackend:
    backend = MagicMock(spec=SoundBackend)
    backend.name = name
    backend.start.side_effect = PresentationFailure(f"{name} unavailable")
    return backend


# =============================================================================
# Test Backends
# =============================================================================

class TestAssetSoundBackend:
    """Tests for the bundled asset backend"""

    def test_plays_asset_bytes_looping(self, asset_path, sink):
        AssetSoundBackend(str(asset_path), sink).start()
        assert sink.last == (b"RIFF-fake-asset", True)

    def test_stop_clears_sink(self, asset_path, sink):
        backend = AssetSoundBackend(str(asset_path), sink)
        backend.start()
        backend.stop()
        assert sink.last == (b"", False)

    def test_missing_asset_raises(self, tmp_path, sink):
        with pytest.raises(PresentationFailure):
            AssetSoundBackend(str(tmp_path / "missing.wav"), sink).start()
        assert sink.calls == []

    def test_empty_asset_raises(self, tmp_path, sink):
        path = tmp_path / "empty.wav"
        path.write_bytes(b"")
        with pytest.raises(PresentationFailure):
            AssetSoundBackend(str(path), sink).start()

    def test_unconfigured_asset_raises(self, sink):
        with pytest.raises(PresentationFailure):
            AssetSoundBackend(None, sink).start()


class TestToneGenerator:
    """Tests for the built-in fallback siren"""

    def test_renders_one_second_of_mono_pcm(self, sink):
        generator = ToneGenerator(sink)
        with wave.open(io.BytesIO(generator.render_wav()), "rb") as wav:
            assert wav.getnchannels() == 1
            assert wav.getsampwidth() == 2
            assert wav.getframerate() == 8000
            assert wav.getnframes() == 8000

    def test_gain_decays(self, sink):
        """Test the tail is much quieter than the head"""
        samples = ToneGenerator(sink).render_samples()
        head = max(abs(s) for s in samples[:800])
        tail = max(abs(s) for s in samples[-800:])
        assert head <= int(32767 * 0.1) + 1
        assert tail < head / 3

    def test_start_sends_looping_wav(self, sink):
        generator = ToneGenerator(sink)
        generator.start()
        data, loop = sink.last
        assert data.startswith(b"RIFF")
        assert loop is True

    def test_render_is_cached(self, sink):
        generator = ToneGenerator(sink)
        assert generator.render_wav() is generator.render_wav()


# =============================================================================
# Test AlarmSound
# =============================================================================

class TestAlarmSound:
    """Tests for opt-in gating and fallback order"""

    def test_silent_without_opt_in(self, asset_path, sink):
        """Test the tone never starts before the activation gesture"""
        sound = AlarmSound(AssetSoundBackend(str(asset_path), sink), ToneGenerator(sink))

        assert sound.start() == SoundSource.SILENT
        assert sound.banner_visible is True
        assert sound.is_playing is False
        assert sink.calls == []

    def test_plays_primary_after_opt_in(self, asset_path, sink):
        sound = AlarmSound(AssetSoundBackend(str(asset_path), sink), ToneGenerator(sink))
        sound.opt_in()

        assert sound.start() == SoundSource.PRIMARY
        assert sound.banner_visible is False
        assert sound.is_playing is True

    def test_falls_back_to_tone(self, tmp_path, sink):
        """Test a missing asset falls back to the tone generator"""
        sound = AlarmSound(
            AssetSoundBackend(str(tmp_path / "missing.wav"), sink),
            ToneGenerator(sink),
            opted_in=True
        )

        assert sound.start() == SoundSource.FALLBACK
        assert sink.last[0].startswith(b"RIFF")

    def test_both_failing_is_silent(self):
        """Test sound failures never raise"""
        sound = AlarmSound(failing_backend("asset"), failing_backend("tone"), opted_in=True)

        assert sound.start() == SoundSource.SILENT
        assert sound.is_playing is False
        sound.stop()

    def test_unexpected_backend_error_is_contained(self, sink):
        primary = MagicMock(spec=SoundBackend)
        primary.start.side_effect = RuntimeError("device busy")
        sound = AlarmSound(primary, ToneGenerator(sink), opted_in=True)

        assert sound.start() == SoundSource.FALLBACK

    def test_disabled_preference_stays_silent(self, asset_path, sink):
        sound = AlarmSound(
            AssetSoundBackend(str(asset_path), sink),
            ToneGenerator(sink),
            opted_in=True,
            enabled=False
        )
        assert sound.start() == SoundSource.SILENT

    def test_disabling_stops_playback(self, asset_path, sink):
        sound = AlarmSound(AssetSoundBackend(str(asset_path), sink), ToneGenerator(sink), opted_in=True)
        sound.start()

        sound.set_enabled(False)

        assert sound.is_playing is False
        assert sink.last == (b"", False)

    def test_stop_uses_active_backend(self):
        primary = MagicMock(spec=SoundBackend)
        fallback = MagicMock(spec=SoundBackend)
        sound = AlarmSound(primary, fallback, opted_in=True)

        sound.start()
        sound.stop()

        primary.stop.assert_called_once()
        fallback.stop.assert_not_called()
        assert sound.source is None

    def test_start_twice_keeps_playing_source(self):
        primary = MagicMock(spec=SoundBackend)
        sound = AlarmSound(primary, MagicMock(spec=SoundBackend), opted_in=True)

        sound.start()
        sound.start()

        primary.start.assert_called_once()
