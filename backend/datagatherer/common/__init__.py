from __future__ import annotations
# Re-export common things for convenience
from .utils import epoch_ms, is_blank, is_truthy, safe_mkdir, load_yaml
from .headers import norm_header, header_properties

__all__ = []
