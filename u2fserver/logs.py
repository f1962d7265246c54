"""Structured event logging shared by the U2F server and relying party."""

from __future__ import annotations

import json
import logging
from typing import Mapping, Tuple


def _truncate(value: str, limit: int = 64) -> str:
    if len(value) <= limit:
        return value
    half = limit // 2
    return f"{value[:half]}…{value[-half:]}"


def build_payload(req: str, **fields: object) -> dict[str, object]:
    payload: dict[str, object] = {"request_id": req}
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, str):
            payload[key] = _truncate(value)
        else:
            payload[key] = value
    return payload


class EventLogger:
    """Emit ``[component: Stage]: Event`` records followed by a JSON payload.

    Unknown stages fall back to their title-cased name and unknown events to
    the raw event key. String fields longer than 64 characters are shortened
    and ``None`` fields are dropped.
    """

    def __init__(
        self,
        logger: logging.Logger,
        component: str,
        stage_labels: Mapping[str, str],
        event_labels: Mapping[Tuple[str, str], str],
    ) -> None:
        self.logger = logger
        self.component = component
        self.stage_labels = stage_labels
        self.event_labels = event_labels

    def __call__(
        self, stage: str, event: str, req: str, level: int = logging.INFO, **fields: object
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        stage_label = self.stage_labels.get(stage, stage.title())
        event_label = self.event_labels.get((stage, event), event)
        payload = json.dumps(build_payload(req, **fields), indent=2, sort_keys=True)
        self.logger.log(level, f"[{self.component}: {stage_label}]: {event_label}\n{payload}")
