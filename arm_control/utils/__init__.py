"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - YAML / JSON file loading (fs)
    - Unified logging (logging_config)

No module in utils/ may import from upper layers (hardware, teaching, ...).

Convenience imports:
    from arm_control.utils import fs
    from arm_control.utils.logging_config import setup_logging, push_context
"""

from . import fs
from . import logging_config
