import os

from dotenv import find_dotenv, load_dotenv

from expense_categorizer.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

_CONFIG_FILE_PATH: str | None = None
_EXTERNAL_ENV_KEYS: set[str] = set()

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "DATA_DIR",
    "STORAGE_BACKEND",
    "CORRECTION_RETENTION",
    "RETRAIN_EVERY",
    "RETRAIN_WINDOW",
    "RULE_PRUNING",
    "PRUNE_ACCURACY_FLOOR",
    "PRUNE_MIN_USAGE",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

STORAGE_BACKENDS = ("file", "sqlite", "memory")


def _search_dirs() -> list[str]:
    """Directories searched for ``.env`` and ``config.yaml``, most specific first."""
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return [config_dir]
    cwd = os.getcwd()
    return [os.path.join(cwd, "config"), cwd]


def _find_file(filename: str) -> str | None:
    for directory in _search_dirs():
        candidate = os.path.join(directory, filename)
        if os.path.exists(candidate):
            return candidate
    return None


def _unquote_value(raw_value: str) -> str:
    if len(raw_value) >= 2 and raw_value[0] == raw_value[-1] and raw_value[0] in "\"'":
        return raw_value[1:-1]
    return raw_value


def read_config_file(path: str | None) -> dict[str, str]:
    """Read flat ``KEY: value`` lines; comments and blank values are skipped."""
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            entry = line.split(" #", 1)[0].strip()
            if not entry or entry.startswith("#") or ":" not in entry:
                continue
            key, _, raw_value = entry.partition(":")
            value = _unquote_value(raw_value.strip())
            if key.strip() and value:
                values[key.strip()] = value
    return values


def load_environment() -> None:
    """Fill the process environment from ``.env`` then ``config.yaml``; real env vars win."""
    global _CONFIG_FILE_PATH, _EXTERNAL_ENV_KEYS

    dotenv_path = _find_file(".env") or find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)
    _EXTERNAL_ENV_KEYS = set(os.environ)

    _CONFIG_FILE_PATH = _find_file(CONFIG_FILENAME)
    file_values = read_config_file(_CONFIG_FILE_PATH)
    for key in _CONFIG_KEYS:
        if key in file_values:
            os.environ.setdefault(key, file_values[key])


def is_env_override(name: str) -> bool:
    return name in _EXTERNAL_ENV_KEYS


def ensure_dir(path: str | None) -> None:
    if path and path not in {".", "./"}:
        os.makedirs(path, exist_ok=True)


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_float(
    name: str,
    default: float = 0.0,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if (min_value is not None and value < min_value) or (max_value is not None and value > max_value):
        logger.warning("[ENV] %s='%s' out of range, using default %s.", name, raw, default)
        return default
    return value


def get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if not raw:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
    return default


def get_storage_backend() -> str:
    backend = os.getenv("STORAGE_BACKEND", "file").strip().lower()
    if backend not in STORAGE_BACKENDS:
        logger.warning("[ENV] Unknown STORAGE_BACKEND='%s', using 'file'.", backend)
        return "file"
    return backend


def log_environment() -> None:
    logger.info("[ENV] Configured environment (config file: %s).", _CONFIG_FILE_PATH or "<none>")
    for key in _CONFIG_KEYS:
        raw_value = os.getenv(key)
        value = "<unset>" if raw_value is None else raw_value.replace("\n", "\\n")
        source = "env" if is_env_override(key) else "config"
        logger.info("[ENV] %s=%s (%s)", key, value, source if raw_value is not None else "default")


load_environment()

DATA_DIR = os.getenv("DATA_DIR", ".")

ensure_dir(DATA_DIR)
