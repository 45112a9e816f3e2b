"""Orchestration constants shared across the SDK.

Stage order and progress weights define the state machine; the remaining
values tune model calls and the collecting-stage completion policy.

Several constants can be overridden via environment variables so that
deployments can adjust timeouts and policies without code changes.
"""

import os

from heysme_db.models.enums import Stage

# Fixed forward order of the state machine.  Index order is the ordering
# used for every forward/backward comparison.
STAGE_ORDER: list[Stage] = [
    Stage.COLLECTING,
    Stage.CONFIRMING,
    Stage.GENERATING,
    Stage.READY,
]

INITIAL_STAGE = Stage.COLLECTING
TERMINAL_STAGE = Stage.READY

# Progress percentage reported while a session sits in each stage.
# Must be non-decreasing along STAGE_ORDER.
STAGE_WEIGHTS: dict[Stage, int] = {
    Stage.COLLECTING: 0,
    Stage.CONFIRMING: 40,
    Stage.GENERATING: 70,
    Stage.READY: 100,
}

# Upper bound (seconds) for a single model call, or for a whole streamed
# call.  Overridable via MODEL_TIMEOUT_SECONDS.
MODEL_TIMEOUT_SECONDS = float(os.getenv("MODEL_TIMEOUT_SECONDS", "60"))

# Retries after the first attempt for retryable provider failures.
MODEL_MAX_RETRIES = int(os.getenv("MODEL_MAX_RETRIES", "2"))

# Base delay for exponential back-off between retries.
MODEL_RETRY_BACKOFF_SECONDS = float(os.getenv("MODEL_RETRY_BACKOFF_SECONDS", "0.5"))

# Token cap passed to the gateway for every call (None = provider default).
MODEL_MAX_TOKENS: int | None = (
    int(os.environ["MODEL_MAX_TOKENS"]) if os.getenv("MODEL_MAX_TOKENS") else None
)

# Fields that, once all present in collectedData, complete the collecting
# stage even if the model has not declared the information sufficient.
COLLECTING_REQUIRED_FIELDS: list[str] = [
    f.strip()
    for f in os.getenv("COLLECTING_REQUIRED_FIELDS", "role").split(",")
    if f.strip()
]

# Key under which the generating stage stores its artifact.
ARTIFACT_FIELD = "artifact"
