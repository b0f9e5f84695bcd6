import numpy as np
import pytest

from conftest import audio_seconds, engine_loader

from asr_server.backend.runtime.hooks import DecodeHooks
from asr_server.errors import ErrorCode, STTError
from asr_server.model.bundle import load_bundle
from asr_server.model.session import DecoderFactory, DecoderSession, SessionState


def test_feed_before_start_is_rejected(bundle):
    """Feeding an idle session raises SESSION_NOT_ACTIVE."""
    session = DecoderSession(bundle)

    with pytest.raises(STTError) as exc:
        session.feed_chunk(audio_seconds(0.1), 16000)

    assert exc.value.code == ErrorCode.SESSION_NOT_ACTIVE


def test_get_results_before_start_is_rejected(bundle):
    """Test get results before start is rejected."""
    session = DecoderSession(bundle)

    with pytest.raises(STTError) as exc:
        session.get_results(1, False)

    assert exc.value.code == ErrorCode.SESSION_NOT_ACTIVE
    assert session.state is SessionState.IDLE


def test_full_utterance_lifecycle(bundle, fake_engine):
    """Test start, feed and finalize return the session to idle."""
    session = DecoderSession(bundle)
    session.start("sess-1")
    assert session.state is SessionState.ACTIVE
    assert session.session_id == "sess-1"

    session.feed_chunk(audio_seconds(0.5), 16000)
    session.feed_chunk(audio_seconds(0.5), 16000)
    results = session.get_results(2, False)

    assert [alt.transcript for alt in results] == ["hello world", "hello foo"]
    assert session.state is SessionState.IDLE
    assert session.session_id is None
    search = fake_engine.searches[-1]
    assert search.advance_calls == 2
    assert search.finalized is True
    assert fake_engine.pipelines[-1].finished is True


def test_empty_audio_yields_no_alternatives(bundle, caplog):
    """Test a session with no decoded frames returns an empty list."""
    session = DecoderSession(bundle)
    session.start("sess-empty")

    with caplog.at_level("WARNING"):
        results = session.get_results(1, True)

    assert results == []
    assert "decoded no frames" in caplog.text
    assert session.state is SessionState.IDLE


def test_sub_frame_audio_yields_no_alternatives(bundle):
    """Test audio shorter than one frame behaves like empty audio."""
    session = DecoderSession(bundle)
    session.start("sess-short")
    session.feed_chunk(np.ones(10, dtype=np.float32), 16000)

    assert session.get_results(1, False) == []


def test_lattice_failure_is_reported_and_session_freed(bundle, fake_engine):
    """Test lattice extraction errors surface as STTError and free the session."""
    fake_engine.lattice_error = RuntimeError("determinization failed")
    session = DecoderSession(bundle)
    session.start("sess-fail")
    session.feed_chunk(audio_seconds(0.2), 16000)

    with pytest.raises(STTError) as exc:
        session.get_results(1, False)

    assert exc.value.code == ErrorCode.LATTICE_EXTRACTION_FAILED
    assert "determinization failed" in str(exc.value)
    assert session.state is SessionState.IDLE


def test_invalid_options_are_rejected(bundle):
    """Test non-positive n_best and sample rates are rejected."""
    session = DecoderSession(bundle)
    session.start("sess-opts")

    with pytest.raises(STTError) as exc:
        session.get_results(0, False)
    assert exc.value.code == ErrorCode.DECODE_OPTION_INVALID

    with pytest.raises(STTError) as exc:
        session.feed_chunk(audio_seconds(0.1), 0)
    assert exc.value.code == ErrorCode.SAMPLE_RATE_INVALID
    assert session.state is SessionState.ACTIVE


def test_bidi_results_leave_session_active(bundle, fake_engine):
    """Test interim retrieval keeps decoding open until the final call."""
    session = DecoderSession(bundle)
    session.start("sess-bidi")
    session.feed_chunk(audio_seconds(0.3), 16000)

    interim = session.get_results(1, False, bidi_streaming=True)
    assert [alt.transcript for alt in interim] == ["hello world"]
    assert session.state is SessionState.ACTIVE
    assert fake_engine.lattices[-1].final is False

    session.feed_chunk(audio_seconds(0.3), 16000)
    final = session.get_results(1, False)
    assert [alt.transcript for alt in final] == ["hello world"]
    assert session.state is SessionState.IDLE
    assert fake_engine.lattices[-1].final is True
    assert fake_engine.lattices[-1].audio.shape[0] == 2 * 4800


def test_start_discards_previous_utterance(bundle, fake_engine):
    """Test restarting mid-utterance drops the buffered audio."""
    session = DecoderSession(bundle)
    session.start("first")
    session.feed_chunk(audio_seconds(1.0), 16000)
    session.start("second")
    session.feed_chunk(audio_seconds(0.1), 16000)
    session.get_results(1, False)

    assert fake_engine.lattices[-1].audio.shape[0] == 1600


def test_adaptation_state_carries_over_between_utterances(bundle, fake_engine):
    """Test speaker adaptation persists across utterances of one session."""
    session = DecoderSession(bundle)
    for sid in ("u1", "u2"):
        session.start(sid)
        session.feed_chunk(audio_seconds(0.5), 16000)
        session.get_results(1, False)

    first, second = fake_engine.pipelines
    assert first.adaptation_state is second.adaptation_state
    assert session.adaptation_state.updates == 2
    assert session.adaptation_state.frames == 2 * (8000 // 160)


def test_bidi_retrieval_does_not_update_adaptation(bundle):
    """Test interim snapshots leave the adaptation state untouched."""
    session = DecoderSession(bundle)
    session.start("bidi")
    session.feed_chunk(audio_seconds(0.5), 16000)
    session.get_results(1, False, bidi_streaming=True)

    assert session.adaptation_state.updates == 0


def test_silence_weighting_updates_ivector_weights(model_spec, fake_engine):
    """Test active silence weighting feeds delta weights to the i-vector."""
    fake_engine.silence_active = True
    bundle = load_bundle(model_spec, backend=engine_loader(fake_engine))
    session = DecoderSession(bundle)
    session.start("silence")
    session.feed_chunk(audio_seconds(0.1), 16000)

    ivector = fake_engine.pipelines[-1].ivector_feature()
    assert ivector.weight_updates == [[(9, 0.5)]]
    assert fake_engine.silence_weightings[-1].tracebacks == [fake_engine.searches[-1]]


def test_silence_weighting_skipped_without_ivector(model_spec, fake_engine):
    """Test weighting is skipped when the pipeline has no i-vector feature."""
    fake_engine.silence_active = True
    fake_engine.use_ivector = False
    bundle = load_bundle(model_spec, backend=engine_loader(fake_engine))
    session = DecoderSession(bundle)
    session.start("no-ivector")
    session.feed_chunk(audio_seconds(0.1), 16000)

    assert fake_engine.silence_weightings[-1].tracebacks == []


def test_hooks_receive_stage_timings(bundle):
    """Test decode stages and result counts reach the hooks."""
    stages = []
    counts = []
    hooks = DecodeHooks(
        on_stage=lambda stage, sid, elapsed: stages.append((stage, sid)),
        on_results=counts.append,
    )
    session = DecoderFactory(bundle, hooks=hooks).produce()
    session.start("hooked")
    session.feed_chunk(audio_seconds(0.2), 16000)
    session.get_results(1, False)

    names = [stage for stage, _ in stages]
    assert names[0] == "start_decoding"
    assert "accept_waveform" in names
    assert "advance_decoding" in names
    assert "finalize_decoding" in names
    assert "get_lattice" in names
    assert names[-1] == "synthesize"
    assert all(sid == "hooked" for _, sid in stages)
    assert counts == [1]


def test_factory_produces_independent_sessions(bundle, fake_engine):
    """Test each produced session owns its own adaptation state."""
    factory = DecoderFactory(bundle)
    first = factory()
    second = factory()

    assert first is not second
    assert first.adaptation_state is not second.adaptation_state
    assert first.bundle is second.bundle


def test_feed_rejects_multichannel_samples(bundle, fake_engine):
    """A 2-D chunk raises AUDIO_INVALID before reaching the pipeline."""
    session = DecoderSession(bundle)
    session.start("stereo")

    with pytest.raises(STTError) as exc:
        session.feed_chunk(np.zeros((800, 2), dtype=np.float32), 16000)

    assert exc.value.code == ErrorCode.AUDIO_INVALID
    assert fake_engine.pipelines[-1].chunks == []
    assert session.state is SessionState.ACTIVE
