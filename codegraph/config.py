"""
Configuration — loads engine settings from .codegraph.yaml, environment
variables, and built-in defaults (priority: env > YAML > defaults).
"""

import os

import yaml

from .parser import DEFAULT_EXCLUDE_DIRS, DEFAULT_EXTENSIONS


_DEFAULTS = {
    "vector_dimensions": 100,
    "similarity_threshold": 0.7,
    "query_min_similarity": 0.3,
    "query_max_results": 20,
    "max_suggestions": 5,
    "max_workers": 4,
    "show_progress": False,
    "extensions": sorted(DEFAULT_EXTENSIONS),
    "exclude_dirs": sorted(DEFAULT_EXCLUDE_DIRS),
}

# Config file search locations
_CONFIG_FILENAMES = [".codegraph.yaml", ".codegraph.yml"]


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    search_dirs = [os.getcwd(), os.path.expanduser("~")]
    for d in search_dirs:
        for name in _CONFIG_FILENAMES:
            path = os.path.join(d, name)
            if os.path.isfile(path):
                return path
    return None


def _load_yaml(path: str) -> dict:
    """Load YAML file, returns empty dict on failure."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


def _as_list(value, default: list[str]) -> list[str]:
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return list(default)


class EngineConfig:
    """Engine configuration.

    Settings are resolved in priority order:
    1. Environment variables (``CODEGRAPH_*``)
    2. .codegraph.yaml config file
    3. Built-in defaults
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}

        # Helper: env var > yaml > default
        def _get(env_key: str, yaml_key: str, default, cast=str):
            env_val = os.getenv(env_key)
            if env_val is not None:
                return cast(env_val)
            yaml_val = yd.get(yaml_key)
            if yaml_val is not None:
                return cast(yaml_val)
            return default

        def _get_bool(env_key: str, yaml_key: str, default: bool) -> bool:
            env_val = os.getenv(env_key)
            if env_val is not None:
                return env_val.lower() == "true"
            yaml_val = yd.get(yaml_key)
            if yaml_val is not None:
                return bool(yaml_val)
            return default

        self.VECTOR_DIMENSIONS = _get("CODEGRAPH_VECTOR_DIMENSIONS", "vector_dimensions",
                                      _DEFAULTS["vector_dimensions"], cast=int)
        self.SIMILARITY_THRESHOLD = _get("CODEGRAPH_SIMILARITY_THRESHOLD",
                                         "similarity_threshold",
                                         _DEFAULTS["similarity_threshold"], cast=float)
        self.QUERY_MIN_SIMILARITY = _get("CODEGRAPH_QUERY_MIN_SIMILARITY",
                                         "query_min_similarity",
                                         _DEFAULTS["query_min_similarity"], cast=float)
        self.QUERY_MAX_RESULTS = _get("CODEGRAPH_QUERY_MAX_RESULTS", "query_max_results",
                                      _DEFAULTS["query_max_results"], cast=int)
        self.MAX_SUGGESTIONS = _get("CODEGRAPH_MAX_SUGGESTIONS", "max_suggestions",
                                    _DEFAULTS["max_suggestions"], cast=int)
        self.MAX_WORKERS = _get("CODEGRAPH_MAX_WORKERS", "max_workers",
                                _DEFAULTS["max_workers"], cast=int)
        self.SHOW_PROGRESS = _get_bool("CODEGRAPH_SHOW_PROGRESS", "show_progress",
                                       _DEFAULTS["show_progress"])

        # Discovery filters
        env_ext = os.getenv("CODEGRAPH_EXTENSIONS")
        self.EXTENSIONS: frozenset[str] = frozenset(
            e.lower() for e in _as_list(
                env_ext if env_ext is not None else yd.get("extensions"),
                _DEFAULTS["extensions"],
            )
        )
        env_excl = os.getenv("CODEGRAPH_EXCLUDE_DIRS")
        self.EXCLUDE_DIRS: frozenset[str] = frozenset(_as_list(
            env_excl if env_excl is not None else yd.get("exclude_dirs"),
            _DEFAULTS["exclude_dirs"],
        ))

        if self.VECTOR_DIMENSIONS < 1:
            self.VECTOR_DIMENSIONS = _DEFAULTS["vector_dimensions"]
        if self.MAX_WORKERS < 1:
            self.MAX_WORKERS = 1

    @classmethod
    def load(cls, config_path: str | None = None) -> "EngineConfig":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)
