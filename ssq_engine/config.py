"""
SSQ Engine Configuration
========================

Reads config/config.ini (with fallbacks for every option) and the process
environment. A .env file at the project root is loaded when present.
"""

import configparser
import os
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger

from ssq_engine.models import FeatureWeights

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
DEFAULT_CONFIG_PATH = os.path.join("config", "config.ini")

load_dotenv(os.path.join(PROJECT_ROOT, '.env'))

_config_cache: Optional[configparser.ConfigParser] = None


def _candidate_paths(config_path: Optional[str]) -> List[str]:
    paths = []
    env_path = os.getenv("SSQ_CONFIG_PATH")
    if config_path:
        paths.append(config_path)
    if env_path:
        paths.append(env_path)
    paths.append(os.path.join(PROJECT_ROOT, DEFAULT_CONFIG_PATH))
    paths.append(os.path.join(os.getcwd(), DEFAULT_CONFIG_PATH))
    return paths


def load_config(config_path: Optional[str] = None, reload: bool = False) -> configparser.ConfigParser:
    """
    Load the engine configuration.

    Args:
        config_path: Explicit path to an ini file, tried first
        reload: Ignore the cached parser

    Returns:
        ConfigParser; empty (all getters fall back to defaults) when no file is found
    """
    global _config_cache
    if _config_cache is not None and not reload and config_path is None:
        return _config_cache

    config = configparser.ConfigParser()
    paths_to_try = _candidate_paths(config_path)
    for path in paths_to_try:
        if os.path.exists(path):
            try:
                config.read(path)
                logger.debug(f"Configuration loaded from: {path}")
                break
            except configparser.Error as e:
                logger.error(f"Error reading config file {path}: {e}")
    else:
        logger.warning(f"Config file not found, using defaults. Tried paths: {paths_to_try}")

    if config_path is None:
        _config_cache = config
    return config


def get_db_path(config: Optional[configparser.ConfigParser] = None) -> str:
    """Database file used by the winning tracker; SSQ_DB_PATH overrides the config."""
    env_path = os.getenv("SSQ_DB_PATH")
    if env_path:
        db_path = env_path
    else:
        config = config or load_config()
        db_file = config.get("paths", "database_file", fallback="data/ssq_engine.db")
        db_path = db_file if os.path.isabs(db_file) else os.path.join(PROJECT_ROOT, db_file)

    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return db_path


def get_min_periods(config: Optional[configparser.ConfigParser] = None) -> int:
    config = config or load_config()
    return config.getint("analysis", "min_periods", fallback=10)


def get_feature_weights(config: Optional[configparser.ConfigParser] = None) -> FeatureWeights:
    """ML feature weights from [ml] weight_*; used until the tracker has a better profile."""
    config = config or load_config()
    defaults = FeatureWeights()
    return FeatureWeights(**{
        name: config.getfloat("ml", f"weight_{name}", fallback=getattr(defaults, name))
        for name in FeatureWeights.FIELDS
    })


def get_reasoning_provider(config: Optional[configparser.ConfigParser] = None) -> str:
    """'gemini' or 'deepseek'; REASONING_PROVIDER overrides the config."""
    config = config or load_config()
    provider = os.getenv("REASONING_PROVIDER") or config.get("ai", "provider", fallback="gemini")
    return provider.strip().lower()
