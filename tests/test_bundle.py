import pytest

from conftest import FakeEngine, engine_loader, write_model_dir

from asr_server.config.loader import ModelSpec
from asr_server.errors import ErrorCode, STTError
from asr_server.model.bundle import (
    SymbolTable,
    expand_relative_path,
    load_bundle,
    read_kaldi_config,
)


def test_load_bundle_reads_model_directory(model_spec, model_dir, fake_engine):
    """Test load bundle reads model directory."""
    bundle = load_bundle(model_spec, backend=engine_loader(fake_engine))

    assert bundle.model_id == "test:en"
    assert bundle.model_dir == model_dir
    assert bundle.engine is fake_engine
    assert bundle.word_level_enabled is True
    assert len(bundle.symbols) == 4
    assert bundle.feature_config.mfcc_options == {
        "use-energy": "false",
        "sample-frequency": "16000",
    }


def test_ivector_paths_resolve_against_model_dir(model_spec, model_dir, fake_engine):
    """Test relative i-vector resource paths are anchored at the model directory."""
    bundle = load_bundle(model_spec, backend=engine_loader(fake_engine))
    options = bundle.feature_config.ivector_options

    assert options["splice-config"] == str(model_dir / "conf/splice.conf")
    assert options["cmvn-config"] == str(model_dir / "conf/online_cmvn.conf")
    assert options["lda-matrix"] == str(model_dir / "ivector_extractor/final.mat")
    assert options["global-cmvn-stats"] == str(
        model_dir / "ivector_extractor/global_cmvn.stats"
    )
    assert options["ivector-extractor"] == str(model_dir / "ivector_extractor/final.ie")
    assert options["diag-ubm"] == "/abs/final.dubm"
    assert options["num-gselect"] == "5"


def test_missing_directory_is_fatal(tmp_path, fake_engine):
    """Test missing directory is fatal."""
    spec = ModelSpec(path=str(tmp_path / "absent"))

    with pytest.raises(STTError) as exc:
        load_bundle(spec, backend=engine_loader(fake_engine))

    assert exc.value.code == ErrorCode.MODEL_FILE_MISSING


@pytest.mark.parametrize(
    "relative",
    ["final.mdl", "HCLG.fst", "words.txt", "conf/mfcc.conf", "conf/ivector_extractor.conf"],
)
def test_missing_required_file_is_fatal(model_spec, model_dir, fake_engine, relative):
    """Test every required file is checked before the engine loads."""
    (model_dir / relative).unlink()
    calls = []

    def loader(*args):
        calls.append(args)
        return fake_engine

    with pytest.raises(STTError) as exc:
        load_bundle(model_spec, backend=loader)

    assert exc.value.code == ErrorCode.MODEL_FILE_MISSING
    assert relative.split("/")[-1] in str(exc.value)
    assert calls == []


def test_missing_word_boundary_disables_word_level(tmp_path, fake_engine, caplog):
    """Test a missing word boundary file is a warning, not an error."""
    model_dir = write_model_dir(tmp_path / "m", word_boundary=False)

    with caplog.at_level("WARNING"):
        bundle = load_bundle(ModelSpec(path=str(model_dir)), backend=engine_loader(fake_engine))

    assert bundle.word_level_enabled is False
    assert "Disabling word level features" in caplog.text


def test_malformed_symbol_table_fails_load(model_spec, model_dir, fake_engine):
    """Test malformed symbol table fails load."""
    (model_dir / "words.txt").write_text("hello\n", encoding="utf-8")

    with pytest.raises(STTError) as exc:
        load_bundle(model_spec, backend=engine_loader(fake_engine))

    assert exc.value.code == ErrorCode.MODEL_LOAD_FAILED


def test_engine_failure_is_wrapped(model_spec):
    """Test engine loader errors become MODEL_LOAD_FAILED."""

    def loader(spec, model_dir, feature_config):
        raise OSError("cannot read final.mdl")

    with pytest.raises(STTError) as exc:
        load_bundle(model_spec, backend=loader)

    assert exc.value.code == ErrorCode.MODEL_LOAD_FAILED
    assert "cannot read final.mdl" in str(exc.value)


def test_engine_receives_spec_and_feature_config(model_spec, model_dir):
    """Test engine receives spec and feature config."""
    seen = {}

    def loader(spec, path, feature_config):
        seen.update(spec=spec, path=path, feature_config=feature_config)
        return FakeEngine()

    load_bundle(model_spec, backend=loader)

    assert seen["spec"] is model_spec
    assert seen["path"] == str(model_dir)
    assert seen["feature_config"].mfcc_conf_path == str(model_dir / "conf" / "mfcc.conf")


def test_close_releases_engine(bundle, fake_engine):
    """Test close releases engine."""
    bundle.close()

    assert fake_engine.closed is True


def test_symbol_table_lookups(tmp_path):
    """Test symbol table lookups."""
    path = tmp_path / "words.txt"
    path.write_text("<eps> 0\nhello 1\n\nworld 2\n", encoding="utf-8")

    table = SymbolTable.read_text(path)

    assert table.find(1) == "hello"
    assert table.find(42) == ""
    assert table.find_id("world") == 2
    assert table.find_id("missing") is None
    assert 2 in table
    assert len(table) == 3


def test_symbol_table_rejects_bad_id(tmp_path):
    """Test symbol table rejects bad id."""
    path = tmp_path / "words.txt"
    path.write_text("hello one\n", encoding="utf-8")

    with pytest.raises(ValueError):
        SymbolTable.read_text(path)


def test_read_kaldi_config(tmp_path):
    """Test comments, blank lines and bare flags in option files."""
    path = tmp_path / "opts.conf"
    path.write_text(
        "# header\n\n--sample-frequency=8000 # narrowband\n--verbose\n",
        encoding="utf-8",
    )

    assert read_kaldi_config(path) == {"sample-frequency": "8000", "verbose": "true"}


def test_read_kaldi_config_rejects_non_option(tmp_path):
    """Test read kaldi config rejects non option."""
    path = tmp_path / "opts.conf"
    path.write_text("sample-frequency=8000\n", encoding="utf-8")

    with pytest.raises(ValueError):
        read_kaldi_config(path)


def test_expand_relative_path(tmp_path):
    """Test expand relative path."""
    assert expand_relative_path("a/b", tmp_path) == str(tmp_path / "a/b")
    assert expand_relative_path("/x/y", tmp_path) == "/x/y"
    assert expand_relative_path("", tmp_path) == ""
