"""
fulfillment_config -- engine configuration.

    EngineConfig                 frozen settings dataclass
    load_config(path)            YAML file -> EngineConfig
    DEFAULT_CONFIG_PATH          the shipped defaults.yaml

Sits above ``fulfillment_kernel`` and below ``fulfillment_services``; the
kernel, engines and modules never import from this package.
"""

from pathlib import Path

from fulfillment_config.loader import compute_checksum, load_config, load_yaml_file
from fulfillment_config.schema import EngineConfig

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "EngineConfig",
    "compute_checksum",
    "load_config",
    "load_yaml_file",
]
