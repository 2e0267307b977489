# config/base.py
import os

DEFAULT_AUTO_LINK_TIERS = ("exact_code", "brand_model", "fuzzy")
DEFAULT_GENERATION_DEPENDENTS = (
    "engine_variants.generation_id",
    "vehicle_appearances.generation_id",
    "safety_ratings.generation_id",
)
DEFAULT_MODEL_DEPENDENTS = ("generations.model_id",)
# What a merge does when original and duplicate both own a row in a one-per-parent table
UNIQUE_CONFLICT_POLICIES = ("keep_original", "fail")
DEFAULT_UNIQUE_CONFLICT_POLICY = "keep_original"


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_name_list(value, *, lowercase=True):
    """
    Parse a comma-separated list while keeping order and removing duplicates.

    Returns:
        tuple[str, ...]: Normalized identifiers.
    """
    if not value:
        return ()

    seen = set()
    names = []
    for raw_item in value.split(","):
        item = raw_item.strip()
        if lowercase:
            item = item.lower()
        if not item or item in seen:
            continue
        seen.add(item)
        names.append(item)
    return tuple(names)


def _parse_positive_int(value, *, default, minimum=1, maximum=100_000):
    """Parse an integer setting, falling back to ``default`` when invalid or out of bounds."""
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if number < minimum or number > maximum:
        return default
    return number


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Resolver batch jobs
    CATALOG_LINK_BATCH_SIZE = _parse_positive_int(os.environ.get("CATALOG_LINK_BATCH_SIZE"), default=500)
    CATALOG_CLEANUP_BATCH_SIZE = _parse_positive_int(os.environ.get("CATALOG_CLEANUP_BATCH_SIZE"), default=500)
    CATALOG_AUTO_LINK_TIERS = (
        _parse_name_list(os.environ.get("CATALOG_AUTO_LINK_TIERS", "")) or DEFAULT_AUTO_LINK_TIERS
    )
    CATALOG_GENERATION_DEPENDENTS = (
        _parse_name_list(os.environ.get("CATALOG_GENERATION_DEPENDENTS", "")) or DEFAULT_GENERATION_DEPENDENTS
    )
    CATALOG_MODEL_DEPENDENTS = (
        _parse_name_list(os.environ.get("CATALOG_MODEL_DEPENDENTS", "")) or DEFAULT_MODEL_DEPENDENTS
    )
    CATALOG_UNIQUE_CONFLICT_POLICY = (
        os.environ.get("CATALOG_UNIQUE_CONFLICT_POLICY", DEFAULT_UNIQUE_CONFLICT_POLICY).strip().lower()
        or DEFAULT_UNIQUE_CONFLICT_POLICY
    )

    # Operator overrides for the alias and chassis grammar tables (JSON or YAML)
    CATALOG_ALIAS_PROFILE_PATH = os.environ.get("CATALOG_ALIAS_PROFILE_PATH")
    CATALOG_CODE_GRAMMAR_PATH = os.environ.get("CATALOG_CODE_GRAMMAR_PATH")

    # Number of fuzzy suggestions attached to each unresolved mention (0 disables)
    CATALOG_REVIEW_SUGGESTIONS = _parse_positive_int(
        os.environ.get("CATALOG_REVIEW_SUGGESTIONS"),
        default=3,
        minimum=0,
        maximum=25,
    )
    CATALOG_SUGGESTION_MIN_SCORE = _parse_positive_int(
        os.environ.get("CATALOG_SUGGESTION_MIN_SCORE"),
        default=60,
        minimum=0,
        maximum=100,
    )

    SQLITE_FOREIGN_KEYS = _coerce_bool(os.environ.get("SQLITE_FOREIGN_KEYS"), default=True)


class DevelopmentConfig(Config):
    DEBUG = True
    # Get the project root directory (parent of config directory)
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # Use absolute path for SQLite - Windows needs forward slashes in URI
    db_path = os.path.join(instance_path, "catalog_dev.db")
    db_path_normalized = db_path.replace("\\", "/")
    db_uri = f"sqlite:///{db_path_normalized}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"  # In-memory database for testing
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }
    CATALOG_LINK_BATCH_SIZE = 500
    CATALOG_CLEANUP_BATCH_SIZE = 500
    CATALOG_AUTO_LINK_TIERS = DEFAULT_AUTO_LINK_TIERS
    CATALOG_GENERATION_DEPENDENTS = DEFAULT_GENERATION_DEPENDENTS
    CATALOG_MODEL_DEPENDENTS = DEFAULT_MODEL_DEPENDENTS
    CATALOG_UNIQUE_CONFLICT_POLICY = DEFAULT_UNIQUE_CONFLICT_POLICY
    CATALOG_ALIAS_PROFILE_PATH = None
    CATALOG_CODE_GRAMMAR_PATH = None
    CATALOG_REVIEW_SUGGESTIONS = 3


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
    # Fuzzy matches need a human in production
    CATALOG_AUTO_LINK_TIERS = (
        _parse_name_list(os.environ.get("CATALOG_AUTO_LINK_TIERS", "")) or ("exact_code", "brand_model")
    )
