"""
Engine configuration for DRIFT retrieval.

One immutable `DriftConfig` per engine. Values are validated eagerly; updates
go through `apply_update`, which returns a new validated config or raises.
Nothing is ever clamped into range.
"""

from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from numbers import Real
from typing import Any, Dict

from .errors import ConfigurationError


class TraversalDirection(str, Enum):
    FORWARD = "forward"
    BACKWARD = "backward"
    BIDIRECTIONAL = "bidirectional"

    @property
    def follows_outgoing(self) -> bool:
        return self in (TraversalDirection.FORWARD, TraversalDirection.BIDIRECTIONAL)

    @property
    def follows_incoming(self) -> bool:
        return self in (TraversalDirection.BACKWARD, TraversalDirection.BIDIRECTIONAL)


class InferenceStrategy(str, Enum):
    SEMANTIC = "semantic"
    SIMILARITY = "similarity"
    STRUCTURAL = "structural"


def coerce_enum(enum_cls, field_name: str, value: Any):
    """Turn a string (or enum member) into `enum_cls`, or raise ConfigurationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(repr(m.value) for m in enum_cls)
        raise ConfigurationError(field_name, value, f"must be one of {allowed}")


def _check_positive_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(name, value, "must be an integer")
    if value <= 0:
        raise ConfigurationError(name, value, "must be positive")


def _check_unit_interval(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ConfigurationError(name, value, "must be a number")
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(name, value, "must be between 0 and 1")


def _check_bool(name: str, value: Any) -> None:
    if not isinstance(value, bool):
        raise ConfigurationError(name, value, "must be a boolean")


def _parse_setting(name: str, raw: Any, kind: type):
    """Parse an environment value as `kind`; failures name the variable."""
    if isinstance(raw, kind) and not isinstance(raw, bool):
        return raw
    try:
        return kind(str(raw).strip())
    except ValueError:
        expected = "an integer" if kind is int else "a number"
        raise ConfigurationError(name, raw, f"must be {expected}") from None


def _load_settings(settings):
    if settings is None:
        from shared.config import get_settings

        settings = get_settings()
    return settings


def inference_cache_size_from_settings(settings=None) -> int:
    """Inference cache capacity from `INFERENCE_CACHE_SIZE`."""
    settings = _load_settings(settings)
    size = _parse_setting("INFERENCE_CACHE_SIZE", settings.INFERENCE_CACHE_SIZE, int)
    _check_positive_int("INFERENCE_CACHE_SIZE", size)
    return size


@dataclass(frozen=True)
class DriftConfig:
    """Retrieval configuration, validated on construction."""

    entry_point_count: int = 3
    max_traversal_depth: int = 3
    traversal_direction: TraversalDirection = TraversalDirection.BIDIRECTIONAL
    top_k_paths: int = 5
    min_path_score: float = 0.3
    use_inference: bool = True
    inference_strategy: InferenceStrategy = InferenceStrategy.SEMANTIC
    max_inferences: int = 10
    inference_confidence_threshold: float = 0.5
    use_inference_cache: bool = True
    include_provenance: bool = False

    def __post_init__(self):
        # Frozen dataclass: enum coercion has to bypass __setattr__
        object.__setattr__(
            self,
            "traversal_direction",
            coerce_enum(TraversalDirection, "traversal_direction", self.traversal_direction),
        )
        object.__setattr__(
            self,
            "inference_strategy",
            coerce_enum(InferenceStrategy, "inference_strategy", self.inference_strategy),
        )

        _check_positive_int("entry_point_count", self.entry_point_count)
        _check_positive_int("max_traversal_depth", self.max_traversal_depth)
        _check_positive_int("top_k_paths", self.top_k_paths)
        _check_positive_int("max_inferences", self.max_inferences)
        _check_unit_interval("min_path_score", self.min_path_score)
        _check_unit_interval(
            "inference_confidence_threshold", self.inference_confidence_threshold
        )
        _check_bool("use_inference", self.use_inference)
        _check_bool("use_inference_cache", self.use_inference_cache)
        _check_bool("include_provenance", self.include_provenance)

    def apply_update(self, **updates: Any) -> "DriftConfig":
        """
        Overlay `updates` on this config and validate the result.

        Returns a new config; `self` is untouched. Unknown field names and
        invalid values raise ConfigurationError, so there is no partial
        application.
        """
        known = {f.name for f in fields(self)}
        for name, value in updates.items():
            if name not in known:
                raise ConfigurationError(name, value, "unknown configuration field")
        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["traversal_direction"] = self.traversal_direction.value
        data["inference_strategy"] = self.inference_strategy.value
        return data

    @classmethod
    def from_settings(cls, settings=None) -> "DriftConfig":
        """Build a config from environment-backed process settings."""
        settings = _load_settings(settings)

        return cls(
            entry_point_count=_parse_setting(
                "DRIFT_ENTRY_POINT_COUNT", settings.DRIFT_ENTRY_POINT_COUNT, int
            ),
            max_traversal_depth=_parse_setting(
                "DRIFT_MAX_TRAVERSAL_DEPTH", settings.DRIFT_MAX_TRAVERSAL_DEPTH, int
            ),
            traversal_direction=settings.DRIFT_TRAVERSAL_DIRECTION,
            top_k_paths=_parse_setting("DRIFT_TOP_K_PATHS", settings.DRIFT_TOP_K_PATHS, int),
            min_path_score=_parse_setting(
                "DRIFT_MIN_PATH_SCORE", settings.DRIFT_MIN_PATH_SCORE, float
            ),
            use_inference=settings.DRIFT_USE_INFERENCE,
            inference_strategy=settings.DRIFT_INFERENCE_STRATEGY,
        )
