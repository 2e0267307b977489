# config/validation.py

"""
Environment variable validation for the catalog resolver.
Validates required environment variables at startup.
"""

import os
import sys
from pathlib import Path
from typing import List, Tuple

from .base import DEFAULT_AUTO_LINK_TIERS, UNIQUE_CONFLICT_POLICIES, _parse_name_list


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []

    # Only validate in production
    if flask_env != "production":
        return True, []

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        errors.append(
            "DATABASE_URL is required in production. "
            "Set it to your PostgreSQL connection string."
        )

    tiers = _parse_name_list(os.environ.get("CATALOG_AUTO_LINK_TIERS", ""))
    unknown_tiers = [tier for tier in tiers if tier not in DEFAULT_AUTO_LINK_TIERS]
    if unknown_tiers:
        errors.append(
            "CATALOG_AUTO_LINK_TIERS contains unknown tiers: "
            + ", ".join(unknown_tiers)
            + f". Valid tiers are {', '.join(DEFAULT_AUTO_LINK_TIERS)}."
        )

    policy = os.environ.get("CATALOG_UNIQUE_CONFLICT_POLICY", "").strip().lower()
    if policy and policy not in UNIQUE_CONFLICT_POLICIES:
        errors.append(
            f"CATALOG_UNIQUE_CONFLICT_POLICY must be one of {', '.join(UNIQUE_CONFLICT_POLICIES)}, got '{policy}'."
        )

    for key in ("CATALOG_ALIAS_PROFILE_PATH", "CATALOG_CODE_GRAMMAR_PATH"):
        raw_path = os.environ.get(key)
        if raw_path and not Path(raw_path).exists():
            errors.append(f"{key} points to {raw_path}, which does not exist.")

    for key in ("CATALOG_GENERATION_DEPENDENTS", "CATALOG_MODEL_DEPENDENTS"):
        for item in _parse_name_list(os.environ.get(key, "")):
            table, _, column = item.partition(".")
            if not table or not column:
                errors.append(f"{key} entry '{item}' must look like 'table.column'.")

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.

    Args:
        flask_env: Flask environment (development, production, testing)
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
