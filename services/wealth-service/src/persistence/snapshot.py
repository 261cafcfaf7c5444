"""Encoding of the persisted {form, analysis} snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from analysis_schema import AnalysisPayloadModel
from wealth_model import AnalysisResult, InputRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    form: InputRecord
    analysis: Optional[AnalysisResult] = None


def encode_snapshot(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "form": snapshot.form.to_mapping(),
        "analysis": snapshot.analysis.to_mapping() if snapshot.analysis is not None else None,
    }


def decode_snapshot(payload: Any) -> Snapshot | None:
    """
    Rebuild a Snapshot from its stored form.

    Returns None when the payload has no usable form. An analysis that no longer
    validates is dropped while the form is kept.
    """
    if not isinstance(payload, Mapping):
        logger.warning({"event": "snapshot_decode_skipped", "reason": "payload_not_mapping"})
        return None

    form_payload = payload.get("form")
    if not isinstance(form_payload, Mapping):
        logger.warning({"event": "snapshot_decode_skipped", "reason": "form_missing"})
        return None

    analysis: AnalysisResult | None = None
    analysis_payload = payload.get("analysis")
    if analysis_payload is not None:
        try:
            analysis = AnalysisPayloadModel.model_validate(analysis_payload).to_result()
        except ValidationError as exc:
            logger.warning(
                {
                    "event": "snapshot_analysis_dropped",
                    "error_count": exc.error_count(),
                }
            )

    return Snapshot(form=InputRecord.from_mapping(form_payload), analysis=analysis)
