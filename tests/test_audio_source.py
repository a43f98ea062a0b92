"""Unit tests for the sounddevice-backed microphone source.

sounddevice is replaced by a fake module, so no PortAudio and no hardware
are needed.
"""

from __future__ import annotations

import sys
import types

import numpy as np
import pytest

from decibel_meter.audio_source import (
    MIN_BUFFER_FRAMES,
    AudioConfig,
    FrameRead,
    NullAudioSource,
    SoundDeviceSource,
    buffer_geometry,
    create_audio_source,
    list_input_devices,
)
from decibel_meter.errors import InitializationFailed, PermissionDenied


# =============================================================================
# Fake sounddevice
# =============================================================================

class FakePortAudioError(Exception):
    pass


class FakeInputStream:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.started = 0
        self.stopped = 0
        self.closed = 0
        self.read_error = None
        self.start_error = None
        self.overflow = False
        self.amplitude = 1000
        FakeInputStream.instances.append(self)

    def start(self):
        if self.start_error is not None:
            raise self.start_error
        self.started += 1

    def stop(self):
        self.stopped += 1

    def close(self):
        self.closed += 1

    def read(self, frames):
        if self.read_error is not None:
            raise self.read_error
        return np.full((frames, 1), self.amplitude, dtype=np.int16), self.overflow


@pytest.fixture
def fake_sd(monkeypatch):
    FakeInputStream.instances = []
    module = types.ModuleType("sounddevice")
    module.PortAudioError = FakePortAudioError
    module.InputStream = FakeInputStream
    module.low_latency = 0.01
    module.devices = [
        {"name": "Speakers", "max_input_channels": 0, "default_samplerate": 48000.0},
        {"name": "USB Mic", "max_input_channels": 1, "default_samplerate": 44100.0},
        {"name": "Webcam Mic", "max_input_channels": 2, "default_samplerate": 16000.0},
    ]
    module.query_error = None

    def query_devices(device=None, kind=None):
        if module.query_error is not None:
            raise module.query_error
        if kind == "input":
            return {"name": "USB Mic", "default_low_input_latency": module.low_latency}
        return module.devices

    module.query_devices = query_devices
    monkeypatch.setitem(sys.modules, "sounddevice", module)
    return module


# =============================================================================
# Buffer geometry
# =============================================================================

class TestBufferGeometry:

    def test_doubles_device_minimum(self):
        cfg = AudioConfig(sample_rate=44100, buffer_multiplier=2)
        buffer_bytes, frame_samples = buffer_geometry(cfg, 441)

        assert buffer_bytes == 441 * 2 * 2
        assert frame_samples == buffer_bytes // 2

    def test_floor_when_device_reports_zero(self):
        buffer_bytes, frame_samples = buffer_geometry(AudioConfig(), 0)
        assert buffer_bytes == MIN_BUFFER_FRAMES * 2 * 2
        assert frame_samples == MIN_BUFFER_FRAMES * 2

    def test_multiplier_never_below_one(self):
        buffer_bytes, _ = buffer_geometry(AudioConfig(buffer_multiplier=0), 1000)
        assert buffer_bytes == 1000 * 2


# =============================================================================
# SoundDeviceSource
# =============================================================================

class TestSoundDeviceSource:

    def test_open_configures_stream(self, fake_sd):
        source = SoundDeviceSource(AudioConfig())
        source.open()

        stream = FakeInputStream.instances[-1]
        assert stream.started == 1
        assert stream.kwargs["samplerate"] == 44100
        assert stream.kwargs["channels"] == 1
        assert stream.kwargs["dtype"] == "int16"
        # 441 frames minimum x2 -> 882 frames of capacity
        assert stream.kwargs["latency"] == pytest.approx(882 / 44100)
        assert source.buffer_bytes == 1764
        assert source.frame_size == 882
        assert source.is_open

    def test_open_twice_keeps_one_stream(self, fake_sd):
        source = SoundDeviceSource()
        source.open()
        source.open()
        assert len(FakeInputStream.instances) == 1

    def test_close_is_idempotent(self, fake_sd):
        source = SoundDeviceSource()
        source.open()
        source.close()
        source.close()

        stream = FakeInputStream.instances[-1]
        assert stream.stopped == 1
        assert stream.closed == 1
        assert not source.is_open

    def test_close_without_open(self, fake_sd):
        SoundDeviceSource().close()

    def test_context_manager_releases_device(self, fake_sd):
        with SoundDeviceSource() as source:
            assert source.is_open
        assert FakeInputStream.instances[-1].closed == 1

    def test_read_frame(self, fake_sd):
        source = SoundDeviceSource()
        source.open()

        result = source.read_frame(source.frame_size)

        assert result.ok
        assert result.count == 882
        assert result.samples.dtype == np.int16
        assert result.samples.ndim == 1
        assert int(result.samples[0]) == 1000

    def test_read_never_exceeds_frame_size(self, fake_sd):
        source = SoundDeviceSource()
        source.open()
        assert source.read_frame(100_000).count == source.frame_size
        assert source.read_frame(10).count == 10

    def test_read_error_is_a_value(self, fake_sd):
        source = SoundDeviceSource()
        source.open()
        FakeInputStream.instances[-1].read_error = FakePortAudioError("Input overflowed")

        result = source.read_frame(source.frame_size)

        assert not result.ok
        assert result.count < 0
        assert "Input overflowed" in result.error

    def test_read_when_closed_is_a_value(self, fake_sd):
        result = SoundDeviceSource().read_frame(512)
        assert not result.ok
        assert result.error

    def test_overflow_is_counted(self, fake_sd):
        source = SoundDeviceSource()
        source.open()
        FakeInputStream.instances[-1].overflow = True

        result = source.read_frame(64)

        assert result.ok
        assert result.overflowed
        assert source.overflows == 1

    @pytest.mark.parametrize("cfg", [AudioConfig(channels=2), AudioConfig(bits_per_sample=8)])
    def test_unsupported_format(self, fake_sd, cfg):
        with pytest.raises(InitializationFailed):
            SoundDeviceSource(cfg).open()
        assert FakeInputStream.instances == []

    def test_device_missing(self, fake_sd):
        fake_sd.query_error = FakePortAudioError("No input device")
        with pytest.raises(InitializationFailed, match="No input device"):
            SoundDeviceSource().open()

    def test_failed_start_closes_stream(self, fake_sd, monkeypatch):
        original_init = FakeInputStream.__init__

        def busy_init(self, **kwargs):
            original_init(self, **kwargs)
            self.start_error = FakePortAudioError("Device unavailable")

        monkeypatch.setattr(FakeInputStream, "__init__", busy_init)
        source = SoundDeviceSource()

        with pytest.raises(InitializationFailed, match="Device unavailable"):
            source.open()

        assert FakeInputStream.instances[-1].closed == 1
        assert not source.is_open

    def test_os_permission_error(self, fake_sd):
        fake_sd.query_error = PermissionError("microphone access denied")
        with pytest.raises(PermissionDenied):
            SoundDeviceSource().open()

    def test_missing_backend(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "sounddevice", None)
        with pytest.raises(InitializationFailed, match="sounddevice"):
            SoundDeviceSource().open()


# =============================================================================
# Helpers
# =============================================================================

class TestHelpers:

    def test_factory_builds_sounddevice_source(self, fake_sd):
        source = create_audio_source(AudioConfig(device=3))
        assert isinstance(source, SoundDeviceSource)
        assert source.cfg.device == 3

    def test_factory_falls_back_without_sounddevice(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "sounddevice", None)

        source = create_audio_source(AudioConfig())

        assert isinstance(source, NullAudioSource)
        with pytest.raises(InitializationFailed, match="sounddevice"):
            source.open()
        source.close()

    def test_list_input_devices(self, fake_sd):
        assert list_input_devices() == [(1, "USB Mic", 44100.0), (2, "Webcam Mic", 16000.0)]

    def test_null_source(self):
        source = NullAudioSource("sem áudio")
        with pytest.raises(InitializationFailed, match="sem áudio"):
            source.open()
        assert not source.read_frame(10).ok
        source.close()

    def test_failed_frame_defaults(self):
        result = FrameRead.failed("")
        assert result.count == -1
        assert result.error
