#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Configuration loading for pairwise alignment.

A YAML file may carry a `pairwise:` section (PairwiseOptions fields) and a
`ransac:` section (RansacOptions fields). The file can be named explicitly or
through the RELPOSE_CONFIG environment variable.

Date: 2026-10-18
"""

import os
import logging
import yaml
from dataclasses import fields
from typing import Any, Dict, Optional

from relpose.core.pairwise import PairwiseOptions
from relpose.core.ransac import RansacOptions

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "RELPOSE_CONFIG"


def get_config_path(custom_path: Optional[str] = None) -> Optional[str]:
    """Get configuration file path.

    Args:
        custom_path: Optional explicit path

    Returns:
        Absolute path to the configuration file, or None if none is configured
    """
    config_path = custom_path or os.environ.get(CONFIG_ENV_VAR)

    if not config_path:
        return None

    return os.path.abspath(config_path)


def load_config(config_path: str) -> Dict:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary (empty for an empty file)
    """
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")

    return config


def _section_kwargs(config: Dict, section: str, allowed: set) -> Dict[str, Any]:
    values = config.get(section) or {}
    if not isinstance(values, dict):
        raise ValueError(f"Configuration section '{section}' must be a mapping")

    kwargs = {}
    for key, value in values.items():
        if key not in allowed:
            logger.warning(f"Ignoring unknown {section} option: {key}")
            continue
        kwargs[key] = value

    return kwargs


def options_from_config(config: Optional[Dict] = None) -> PairwiseOptions:
    """Build PairwiseOptions from a configuration dictionary.

    Args:
        config: Configuration dictionary as returned by load_config

    Returns:
        Pairwise options, with defaults for every missing key
    """
    config = config or {}

    ransac_fields = {f.name for f in fields(RansacOptions)}
    pairwise_fields = {f.name for f in fields(PairwiseOptions)} - {"ransac"}

    ransac = RansacOptions(**_section_kwargs(config, "ransac", ransac_fields))
    return PairwiseOptions(ransac=ransac, **_section_kwargs(config, "pairwise", pairwise_fields))
