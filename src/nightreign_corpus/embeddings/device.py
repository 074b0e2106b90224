"""
Embedding Device Selection

Resolves whether embedding inference runs on CPU or a CUDA GPU.

Resolution Order
----------------
1. ``EMBEDDING_DEVICE`` (``cpu`` | ``cuda``): explicit override
2. ``USE_GPU`` (true | false)
3. Auto-detect: use CUDA when available

A GPU request is a hint. When CUDA is unavailable the resolved device is CPU
and a warning is logged; nothing raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Literal, Optional

from ..config import settings

logger = logging.getLogger("corpus.device")

DeviceType = Literal["cpu", "cuda"]


@dataclass(frozen=True)
class DeviceConfig:
    device: DeviceType
    gpu_requested: bool
    gpu_available: bool


_cached_config: Optional[DeviceConfig] = None
_config_lock = RLock()


def cuda_available() -> bool:
    """
    Probe for a usable CUDA device.

    torch is imported lazily so that importing this module stays cheap.
    """
    try:
        import torch
    except ImportError:
        logger.debug("torch not importable, assuming no CUDA")
        return False
    return bool(torch.cuda.is_available())


def resolve_device_config(
    embedding_device: Optional[str],
    use_gpu: Optional[bool],
    gpu_available: bool,
) -> DeviceConfig:
    """Apply the resolution order to explicit inputs (no environment access)."""
    requested = (embedding_device or "").strip().lower()

    if requested == "cuda":
        gpu_requested = True
    elif requested == "cpu":
        gpu_requested = False
    elif use_gpu is not None:
        gpu_requested = use_gpu
    else:
        gpu_requested = gpu_available

    device: DeviceType = "cuda" if gpu_requested and gpu_available else "cpu"
    if gpu_requested and not gpu_available:
        logger.warning("GPU requested for embeddings but CUDA is unavailable, using CPU")

    return DeviceConfig(device=device, gpu_requested=gpu_requested, gpu_available=gpu_available)


def get_device_config() -> DeviceConfig:
    """Resolve (once) and return the process-wide device configuration."""
    global _cached_config
    with _config_lock:
        if _cached_config is None:
            _cached_config = resolve_device_config(
                settings.embedding_device,
                settings.use_gpu,
                cuda_available(),
            )
            logger.info(
                "Embedding device: %s (gpu requested=%s, available=%s)",
                _cached_config.device,
                _cached_config.gpu_requested,
                _cached_config.gpu_available,
            )
        return _cached_config


def reset_device_config() -> None:
    """Forget the cached configuration so the next lookup re-resolves it."""
    global _cached_config
    with _config_lock:
        _cached_config = None
