from __future__ import annotations

import asyncio
import base64

import numpy as np
import pytest

try:
    import sounddevice as sd
except OSError:  # PortAudio missing on the host
    pytest.skip("PortAudio library not available", allow_module_level=True)

from companion_client.audio import playback
from companion_client.audio.capture import CaptureConfig, ClipRecorder
from companion_client.audio.playback import AudioPlayer
from companion_client.audio.transcoder import encode_wav
from companion_client.errors import CaptureError, PlaybackError
from companion_client.services.schemas import AudioTask, DisplayText
from companion_client.state.app_state import ConversationStore


def wav_base64(frames: int = 160) -> str:
    return base64.b64encode(encode_wav(np.zeros(frames, dtype=np.int16), 16_000).data).decode("ascii")


@pytest.fixture
def fake_device(monkeypatch):
    calls: list[tuple] = []
    monkeypatch.setattr(playback.sd, "play", lambda data, samplerate, device=None: calls.append(("play", data.shape, samplerate)))
    monkeypatch.setattr(playback.sd, "wait", lambda: calls.append(("wait",)))
    monkeypatch.setattr(playback.sd, "stop", lambda: calls.append(("stop",)))
    return calls


@pytest.mark.asyncio
async def test_play_updates_caption_and_plays(fake_device) -> None:
    conversation = ConversationStore()
    expressions: list[list] = []
    player = AudioPlayer(conversation, on_expressions=expressions.append)
    task = AudioTask(audio_base64=wav_base64(), display_text=DisplayText(text="Hello"), expressions=[2])

    await player.play(task)

    assert conversation.caption == "Hello"
    assert conversation.response == "Hello"
    assert [(m.role, m.content) for m in conversation.messages] == [("ai", "Hello")]
    assert expressions == [[2]]
    assert fake_device == [("play", (160, 1), 16_000), ("wait",)]


@pytest.mark.asyncio
async def test_forwarded_text_is_not_appended(fake_device) -> None:
    conversation = ConversationStore()
    player = AudioPlayer(conversation)
    await player.play(AudioTask(display_text=DisplayText(text="relay"), forwarded=True))
    assert conversation.caption == "relay"
    assert conversation.messages == []
    assert fake_device == []


@pytest.mark.asyncio
async def test_undecodable_audio_raises(fake_device) -> None:
    player = AudioPlayer(ConversationStore())
    with pytest.raises(PlaybackError):
        await player.play(AudioTask(audio_base64="!!not-base64!!"))
    with pytest.raises(PlaybackError):
        await player.play(AudioTask(audio_base64=base64.b64encode(b"garbage").decode()))


def test_stop_halts_device(fake_device) -> None:
    player = AudioPlayer(ConversationStore())
    player.stop()
    assert fake_device == [("stop",)]


@pytest.mark.asyncio
async def test_recorder_returns_int16_clip(monkeypatch) -> None:
    def fake_rec(frames, samplerate, channels, dtype, device=None):
        return np.ones((frames, channels), dtype=dtype)

    monkeypatch.setattr(sd, "rec", fake_rec)
    monkeypatch.setattr(sd, "wait", lambda: None)
    recorder = ClipRecorder(CaptureConfig(sample_rate=8_000))
    clip = await recorder.record(0.5)
    assert clip.shape == (4_000, 1)
    assert clip.dtype == np.int16


@pytest.mark.asyncio
async def test_recorder_maps_device_errors(monkeypatch) -> None:
    def failing_rec(*args, **kwargs):
        raise sd.PortAudioError("no default input device")

    monkeypatch.setattr(sd, "rec", failing_rec)
    recorder = ClipRecorder()
    with pytest.raises(CaptureError):
        await recorder.record(0.1)
    with pytest.raises(CaptureError):
        await recorder.record(0)


@pytest.mark.asyncio
async def test_unknown_input_device_keeps_poll_loop_alive(monkeypatch) -> None:
    from companion_client.runtime.microphone import MicController
    from companion_client.runtime.wake_word import PollTranscribeStrategy
    from companion_client.state.ai_state import AiStateMachine

    attempts: list[int] = []

    def missing_device(*args, **kwargs):
        attempts.append(1)
        raise ValueError("No input device matching 'usb-mic'")

    monkeypatch.setattr(sd, "rec", missing_device)
    recorder = ClipRecorder(CaptureConfig(device_name="usb-mic"))
    with pytest.raises(CaptureError):
        await recorder.record(0.1)

    class NeverCalled:
        async def transcribe(self, clip) -> str:
            raise AssertionError("no clip was recorded")

    poll = PollTranscribeStrategy(
        recorder=recorder,
        transcriber=NeverCalled(),
        mic=MicController(AiStateMachine()),
        wake_phrases=["你好，小薇"],
        activate=lambda: None,
        clip_seconds=0.1,
        retry_delay=0.005,
    )
    poll.start()
    for _ in range(100):
        if len(attempts) >= 4:
            break
        await asyncio.sleep(0.01)
    assert len(attempts) >= 4
    assert poll.running
    await poll.close()
