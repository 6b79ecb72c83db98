"""Execution device resolution for the local inference backends."""

from __future__ import annotations

import logging
from typing import Literal, cast

Device = Literal["cpu", "cuda", "mps"]
logger = logging.getLogger(__name__)

_KNOWN_DEVICES = {"auto", "cpu", "cuda", "mps"}


def select_device(device: str | None, *, mps_allowed: bool) -> Device:
    """Select an execution device.

    `None` and ``"auto"`` probe torch in the order CUDA, MPS (only when
    ``mps_allowed``), CPU.
    """
    requested = device.lower() if isinstance(device, str) else None

    if requested is not None and requested not in _KNOWN_DEVICES:
        raise ValueError("device must be one of: auto, cpu, cuda, mps")

    if requested in {"cpu", "cuda"}:
        return cast(Device, requested)

    if requested == "mps":
        if not mps_allowed:
            raise ValueError("MPS is not supported for this model.")
        return "mps"

    import torch

    if torch.cuda.is_available():
        return "cuda"
    if mps_allowed and torch.backends.mps.is_available():
        return "mps"
    return "cpu"


def resolve_device(component: str, device: str | None, *, mps_allowed: bool) -> Device:
    """Select a device for `component` and log the decision."""
    resolved = select_device(device, mps_allowed=mps_allowed)
    logger.info(
        "%s will run on device=%s (requested=%s)",
        component,
        resolved,
        device.lower() if isinstance(device, str) else "auto",
    )
    return resolved
