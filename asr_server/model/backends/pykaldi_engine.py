"""pykaldi implementation of the decoding engine capabilities (nnet3 + i-vectors)."""

import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
from kaldi.decoder import LatticeFasterDecoderOptions
from kaldi.fstext import read_fst_kaldi, shortestpath
from kaldi.fstext import utils as fst_utils
from kaldi.hmm import TransitionModel
from kaldi.lat.align import WordBoundaryInfo, WordBoundaryInfoNewOpts, word_align_lattice
from kaldi.lat.functions import top_sort_compact_lattice_if_needed
from kaldi.lat.sausages import MinimumBayesRisk, MinimumBayesRiskOptions
from kaldi.matrix import Vector
from kaldi.nnet3 import (
    AmNnetSimple,
    CollapseModelConfig,
    DecodableNnetSimpleLoopedInfo,
    NnetSimpleLoopedComputationOptions,
    collapse_model,
    set_batchnorm_test_mode,
    set_dropout_test_mode,
)
from kaldi.online2 import (
    OnlineIvectorExtractionConfig,
    OnlineIvectorExtractorAdaptationState,
    OnlineNnet2FeaturePipeline,
    OnlineNnet2FeaturePipelineInfo,
    OnlineSilenceWeighting,
    SingleUtteranceNnet3Decoder,
)
from kaldi.util.io import xopen
from kaldi.util.options import ParseOptions

from asr_server.config.default import (
    GRAPH_FILENAME,
    MODEL_FILENAME,
    WORD_BOUNDARY_FILENAME,
)
from asr_server.model.backends.base import (
    FeatureConfig,
    IvectorFeature,
    LinearPath,
    MbrOneBest,
)

LOGGER = logging.getLogger("asr_server.engine.kaldi")

# ivector_extractor.conf option name -> OnlineIvectorExtractionConfig field.
_IVECTOR_PATH_FIELDS = {
    "lda-matrix": "lda_mat_rxfilename",
    "global-cmvn-stats": "global_cmvn_stats_rxfilename",
    "diag-ubm": "diag_ubm_rxfilename",
    "ivector-extractor": "ivector_extractor_rxfilename",
    "cmvn-config": "cmvn_config_rxfilename",
    "splice-config": "splice_config_rxfilename",
}


def _read_options(options: Any, conf_path: str) -> Any:
    po = ParseOptions("")
    options.register(po)
    po.read_config_file(conf_path)
    return options


class KaldiFeaturePipeline:
    def __init__(self, info: OnlineNnet2FeaturePipelineInfo, adaptation_state: Any):
        self._pipeline = OnlineNnet2FeaturePipeline(info)
        self._pipeline.set_adaptation_state(adaptation_state)

    @property
    def native(self) -> OnlineNnet2FeaturePipeline:
        return self._pipeline

    def accept_waveform(self, sample_rate: float, samples: np.ndarray) -> None:
        self._pipeline.accept_waveform(float(sample_rate), Vector(samples))

    def num_frames_ready(self) -> int:
        return self._pipeline.num_frames_ready()

    def input_finished(self) -> None:
        self._pipeline.input_finished()

    def ivector_feature(self) -> Optional[IvectorFeature]:
        feature = self._pipeline.ivector_feature()
        if feature is None:
            return None
        return _IvectorFeatureAdapter(feature)

    def get_adaptation_state(self, state: Any) -> None:
        self._pipeline.get_adaptation_state(state)


class _IvectorFeatureAdapter:
    def __init__(self, feature: Any) -> None:
        self._feature = feature

    def update_frame_weights(self, delta_weights: Sequence[Tuple[int, float]]) -> None:
        self._feature.update_frame_weights(list(delta_weights))


class KaldiSearch:
    def __init__(self, engine: "KaldiEngine", pipeline: KaldiFeaturePipeline) -> None:
        self._decoder = SingleUtteranceNnet3Decoder(
            engine.decoder_opts,
            engine.trans_model,
            engine.decodable_info,
            engine.decode_fst,
            pipeline.native,
        )

    def advance_decoding(self) -> None:
        self._decoder.advance_decoding()

    def num_frames_decoded(self) -> int:
        return self._decoder.num_frames_decoded()

    def finalize_decoding(self) -> None:
        self._decoder.finalize_decoding()

    def get_lattice(self, end_of_utterance: bool) -> Any:
        return self._decoder.get_lattice(end_of_utterance)

    def traceback_source(self) -> Any:
        return self._decoder.get_decoder()


class KaldiSilenceWeighting:
    def __init__(self, engine: "KaldiEngine") -> None:
        self._weighting = OnlineSilenceWeighting(
            engine.trans_model,
            engine.feature_info.silence_weighting_config,
            engine.spec.frame_subsampling_factor,
        )

    def active(self) -> bool:
        return self._weighting.active()

    def compute_current_traceback(self, traceback_source: Any) -> None:
        self._weighting.compute_current_traceback(traceback_source)

    def get_delta_weights(self, num_frames_ready: int) -> List[Tuple[int, float]]:
        return list(self._weighting.get_delta_weights(num_frames_ready))


class KaldiEngine:
    """Acoustic model, transition model, graph and feature info for one model dir."""

    def __init__(self, spec: Any, model_dir: str, feature_config: FeatureConfig):
        self.spec = spec
        root = Path(model_dir)

        self.decoder_opts = LatticeFasterDecoderOptions()
        self.decoder_opts.beam = spec.beam
        self.decoder_opts.lattice_beam = spec.lattice_beam
        self.decoder_opts.min_active = spec.min_active
        self.decoder_opts.max_active = spec.max_active

        decodable_opts = NnetSimpleLoopedComputationOptions()
        decodable_opts.acoustic_scale = spec.acoustic_scale
        decodable_opts.frame_subsampling_factor = spec.frame_subsampling_factor

        self.trans_model = TransitionModel()
        self.am_nnet = AmNnetSimple()
        with xopen(str(root / MODEL_FILENAME)) as ki:
            self.trans_model.read(ki.stream(), ki.binary)
            self.am_nnet.read(ki.stream(), ki.binary)
        nnet = self.am_nnet.get_nnet()
        set_batchnorm_test_mode(True, nnet)
        set_dropout_test_mode(True, nnet)
        collapse_model(CollapseModelConfig(), nnet)

        self.decode_fst = read_fst_kaldi(str(root / GRAPH_FILENAME))

        boundary_path = root / WORD_BOUNDARY_FILENAME
        self.wb_info: Optional[WordBoundaryInfo] = None
        if boundary_path.exists():
            self.wb_info = WordBoundaryInfo.from_file(
                WordBoundaryInfoNewOpts(), str(boundary_path)
            )

        self.feature_info = OnlineNnet2FeaturePipelineInfo()
        self.feature_info.feature_type = "mfcc"
        _read_options(self.feature_info.mfcc_opts, feature_config.mfcc_conf_path)
        self.feature_info.use_ivectors = True
        ivector_opts = _read_options(
            OnlineIvectorExtractionConfig(), feature_config.ivector_conf_path
        )
        for option, attr in _IVECTOR_PATH_FIELDS.items():
            resolved = feature_config.ivector_options.get(option)
            if resolved:
                setattr(ivector_opts, attr, resolved)
        self.feature_info.ivector_extractor_info.init(ivector_opts)
        self.feature_info.silence_weighting_config.silence_weight = spec.silence_weight

        self.decodable_info = DecodableNnetSimpleLoopedInfo.from_am(
            decodable_opts, self.am_nnet
        )

    def new_adaptation_state(self) -> Any:
        return OnlineIvectorExtractorAdaptationState.from_info(
            self.feature_info.ivector_extractor_info
        )

    def new_silence_weighting(self) -> Optional[KaldiSilenceWeighting]:
        return KaldiSilenceWeighting(self)

    def new_feature_pipeline(self, adaptation_state: Any) -> KaldiFeaturePipeline:
        return KaldiFeaturePipeline(self.feature_info, adaptation_state)

    def new_search(self, feature_pipeline: KaldiFeaturePipeline) -> KaldiSearch:
        return KaldiSearch(self, feature_pipeline)

    def num_states(self, lattice: Any) -> int:
        return lattice.num_states()

    def nbest_paths(self, lattice: Any, n_best: int) -> List[LinearPath]:
        lat = fst_utils.convert_compact_lattice_to_lattice(lattice)
        nbest_lat = shortestpath(lat, nshortest=n_best)
        paths: List[LinearPath] = []
        for path in fst_utils.convert_nbest_to_list(nbest_lat):
            _, word_ids, weight = fst_utils.get_linear_symbol_sequence(path)
            paths.append(
                LinearPath(
                    word_ids=tuple(word_ids),
                    lm_score=float(weight.value1),
                    am_score=float(weight.value2),
                )
            )
        return paths

    def word_align(self, lattice: Any, max_states: int) -> Tuple[bool, Optional[Any]]:
        if self.wb_info is None:
            return False, None
        ok, aligned = word_align_lattice(
            lattice, self.trans_model, self.wb_info, max_states
        )
        if aligned.start() == -1:  # kNoStateId
            return ok, None
        top_sort_compact_lattice_if_needed(aligned)
        return ok, aligned

    def mbr_one_best(self, aligned_lattice: Any, acoustic_scale: float) -> MbrOneBest:
        fst_utils.scale_compact_lattice(
            fst_utils.lattice_scale(1.0, acoustic_scale), aligned_lattice
        )
        mbr_opts = MinimumBayesRiskOptions()
        mbr_opts.decode_mbr = False
        mbr = MinimumBayesRisk(aligned_lattice, mbr_opts)
        return MbrOneBest(
            word_ids=tuple(mbr.get_one_best()),
            confidences=tuple(float(c) for c in mbr.get_one_best_confidences()),
            frame_spans=tuple(
                (float(start), float(end)) for start, end in mbr.get_one_best_times()
            ),
        )

    def close(self) -> None:
        LOGGER.debug("Releasing kaldi engine resources for %s", self.spec.path)


def load_kaldi_engine(
    spec: Any, model_dir: str, feature_config: FeatureConfig
) -> KaldiEngine:
    return KaldiEngine(spec, model_dir, feature_config)


__all__ = ["KaldiEngine", "load_kaldi_engine"]
