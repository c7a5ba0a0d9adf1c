from ._version import __version__
from .errors import (
    WaveformError,
    EmptySourceError,
    BufferAllocationError,
    NoSampleDataError,
    DecodeError,
)
from .models import (
    SilenceRange,
    SilenceState,
    AnalysisJob,
    JobKind,
    JobStatus,
)
from .audio import AudioSource, SoundFileSource, ArraySource, open_source
from .waveform import WaveformData, downsample_peak, resample
from .extractor import PeakExtractor
from .silence import SilenceDetector
from .cache import WaveformCache, default_cache_dir
from .timeline import TimelineViewport, choose_major_step, format_time_label
from .worker import AnalysisWorker
from .config import (
    default_config,
    merge_configs,
    validate_config,
    validate_config_fields,
    validate_param_values,
    validate_structured_config,
    build_structured_defaults,
    flatten_structured_config,
    load_preset,
    save_preset,
    ConfigError,
    ConfigFieldError,
    ParamSpec,
    EXTRACTION_PARAMS,
    SILENCE_PARAMS,
    CACHE_PARAMS,
)
from .events import EventBus

__all__ = [
    "__version__",
    "WaveformError",
    "EmptySourceError",
    "BufferAllocationError",
    "NoSampleDataError",
    "DecodeError",
    "SilenceRange",
    "SilenceState",
    "AnalysisJob",
    "JobKind",
    "JobStatus",
    "AudioSource",
    "SoundFileSource",
    "ArraySource",
    "open_source",
    "WaveformData",
    "downsample_peak",
    "resample",
    "PeakExtractor",
    "SilenceDetector",
    "WaveformCache",
    "default_cache_dir",
    "TimelineViewport",
    "choose_major_step",
    "format_time_label",
    "AnalysisWorker",
    "default_config",
    "merge_configs",
    "validate_config",
    "validate_config_fields",
    "validate_param_values",
    "validate_structured_config",
    "build_structured_defaults",
    "flatten_structured_config",
    "load_preset",
    "save_preset",
    "ConfigError",
    "ConfigFieldError",
    "ParamSpec",
    "EXTRACTION_PARAMS",
    "SILENCE_PARAMS",
    "CACHE_PARAMS",
    "EventBus",
]
