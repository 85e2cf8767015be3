# engine.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait, ALL_COMPLETED
from datetime import datetime, UTC
from typing import Any, Callable, Dict, Optional

from multi_engine_dashboard.errors import (
    ConfigurationError,
    PersistenceError,
    ValidationError,
)
from multi_engine_dashboard.llm_client import ProviderGateway, TextResponse, validate_request
from multi_engine_dashboard.models import Failure, Outcome, Success

logger = logging.getLogger(__name__)


def result_metadata(response: TextResponse) -> Dict[str, Any]:
    """
    Metadata stored next to a persisted response.
    """
    tokens = None
    if response.input_tokens is not None and response.output_tokens is not None:
        tokens = response.input_tokens + response.output_tokens

    return {
        "model": response.model,
        "input_tokens": response.input_tokens,
        "output_tokens": response.output_tokens,
        "tokens": tokens,
        # milliseconds
        "latency": None if response.latency is None else int(round(response.latency * 1000)),
        "timestamp": datetime.now(UTC).isoformat(),
    }


# =========================
# FanOutEngine
# =========================

class FanOutEngine:
    """
    Send one prompt to every configured engine at once.

    - One worker per engine; every call is submitted before any is awaited
    - Each engine ends in its own Success/Failure; nothing is cancelled
    - Successful responses are persisted best-effort
    - No UI dependencies, no global state
    """

    def __init__(
        self,
        *,
        gateways: Dict[str, ProviderGateway],
        result_service: Any = None,
        max_workers: Optional[int] = None,
        on_outcome: Optional[Callable[[str, Outcome], None]] = None,
    ):
        if not gateways:
            raise ValueError("FanOutEngine requires at least one gateway")

        self.gateways = dict(gateways)
        self.result_service = result_service
        self.max_workers = max_workers or len(self.gateways)
        self.on_outcome = on_outcome

    # -------------------------
    # Internal helpers
    # -------------------------

    @staticmethod
    def _validate(prompt: Any, step_id: Any) -> None:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Prompt is required and must be a string")
        validate_request(prompt, step_id)

    def _persist(self, engine: str, prompt: str, step_id: int, text: str, metadata: Dict[str, Any]) -> None:
        if self.result_service is None:
            return
        try:
            self.result_service.save_result(step_id, prompt, engine, text, metadata)
        except Exception as e:
            # logged only: a failed write never turns a Success into a Failure
            err = PersistenceError(f"Failed to save {engine} result for step {step_id}: {e}")
            logger.exception(err.message)

    def _notify(self, engine: str, outcome: Outcome) -> None:
        if not self.on_outcome:
            return
        try:
            self.on_outcome(engine, outcome)
        except Exception:
            logger.exception("on_outcome callback failed for %s", engine)

    def _run_one(self, engine: str, prompt: str, step_id: int) -> Outcome:
        """
        Worker body: never raises, always returns an Outcome.
        """
        gateway = self.gateways[engine]
        try:
            response = gateway.generate(prompt, step_id)
        except ConfigurationError as e:
            logger.error("%s is not configured: %s", engine, e.message)
            outcome: Outcome = Failure(error=e.message, kind="configuration")
        except Exception as e:
            logger.warning("%s failed for step %s: %s", engine, step_id, e)
            outcome = Failure(
                error=str(e) or f"Failed to generate response from {engine}",
                kind="provider",
            )
        else:
            metadata = result_metadata(response)
            self._persist(engine, prompt, step_id, response.text, metadata)
            outcome = Success(text=response.text, metadata=metadata)

        self._notify(engine, outcome)
        return outcome

    # -------------------------
    # Public API
    # -------------------------

    def submit(self, prompt: str, step_id: int) -> Dict[str, Outcome]:
        """
        Fan `prompt` out to every engine and wait until all have settled.

        Returns {engine: Success | Failure} with one entry per gateway,
        in gateway order. Raises ValidationError before any call is made
        if the prompt is blank or the step id is missing.
        """
        self._validate(prompt, step_id)

        logger.info("Fan-out to %s for step %s", list(self.gateways), step_id)

        with ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="fanout",
        ) as executor:
            futures = {
                engine: executor.submit(self._run_one, engine, prompt, step_id)
                for engine in self.gateways
            }
            wait(futures.values(), return_when=ALL_COMPLETED)

        outcomes: Dict[str, Outcome] = {}
        for engine, future in futures.items():
            try:
                outcomes[engine] = future.result()
            except Exception as e:
                # _run_one does not raise; guard against callback/runtime bugs
                logger.exception("Worker for %s crashed", engine)
                outcomes[engine] = Failure(error=str(e), kind="provider")

        succeeded = sum(1 for o in outcomes.values() if o.ok)
        logger.info(
            "Fan-out finished for step %s: %d/%d succeeded",
            step_id,
            succeeded,
            len(outcomes),
        )
        return outcomes

    def submit_one(self, engine: str, prompt: str, step_id: int) -> Success:
        """
        Call a single engine. Unlike submit(), errors are raised:
        ValidationError, ConfigurationError or ProviderError.
        """
        self._validate(prompt, step_id)

        gateway = self.gateways.get(engine)
        if gateway is None:
            raise ValidationError(f"Unknown engine '{engine}'")

        response = gateway.generate(prompt, step_id)
        metadata = result_metadata(response)
        self._persist(engine, prompt, step_id, response.text, metadata)
        return Success(text=response.text, metadata=metadata)
