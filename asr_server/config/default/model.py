"""Default values and helpers for model-related configuration."""

DEFAULT_MODEL_NAME = "default"
DEFAULT_LANGUAGE_CODE = "en"
DEFAULT_MODEL_BACKEND = "kaldi"
DEFAULT_N_DECODERS = 1
DEFAULT_BEAM = 13.0
DEFAULT_LATTICE_BEAM = 6.0
DEFAULT_MIN_ACTIVE = 200
DEFAULT_MAX_ACTIVE = 7000
DEFAULT_ACOUSTIC_SCALE = 1.0
DEFAULT_FRAME_SUBSAMPLING_FACTOR = 3
DEFAULT_SILENCE_WEIGHT = 1.0

# Model directory layout.
MODEL_FILENAME = "final.mdl"
GRAPH_FILENAME = "HCLG.fst"
WORDS_FILENAME = "words.txt"
WORD_BOUNDARY_FILENAME = "word_boundary.int"
CONF_DIRNAME = "conf"
MFCC_CONF_FILENAME = "mfcc.conf"
IVECTOR_CONF_FILENAME = "ivector_extractor.conf"

# i-vector extractor options whose values are file paths.
IVECTOR_PATH_OPTIONS = (
    "lda-matrix",
    "global-cmvn-stats",
    "diag-ubm",
    "ivector-extractor",
    "cmvn-config",
    "splice-config",
)

# Keys accepted in a ``models`` entry, mapped onto ModelSpec fields.
MODEL_SECTION_MAP = {
    "name": "name",
    "language_code": "language_code",
    "path": "path",
    "backend": "backend",
    "n_decoders": "n_decoders",
    "pool_size": "n_decoders",
    "beam": "beam",
    "lattice_beam": "lattice_beam",
    "min_active": "min_active",
    "max_active": "max_active",
    "acoustic_scale": "acoustic_scale",
    "frame_subsampling_factor": "frame_subsampling_factor",
    "silence_weight": "silence_weight",
}


__all__ = [
    "DEFAULT_MODEL_NAME",
    "DEFAULT_LANGUAGE_CODE",
    "DEFAULT_MODEL_BACKEND",
    "DEFAULT_N_DECODERS",
    "DEFAULT_BEAM",
    "DEFAULT_LATTICE_BEAM",
    "DEFAULT_MIN_ACTIVE",
    "DEFAULT_MAX_ACTIVE",
    "DEFAULT_ACOUSTIC_SCALE",
    "DEFAULT_FRAME_SUBSAMPLING_FACTOR",
    "DEFAULT_SILENCE_WEIGHT",
    "MODEL_FILENAME",
    "GRAPH_FILENAME",
    "WORDS_FILENAME",
    "WORD_BOUNDARY_FILENAME",
    "CONF_DIRNAME",
    "MFCC_CONF_FILENAME",
    "IVECTOR_CONF_FILENAME",
    "IVECTOR_PATH_OPTIONS",
    "MODEL_SECTION_MAP",
]
