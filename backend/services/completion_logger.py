"""JSON Lines audit log of completion requests."""
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, TextIO

logger = logging.getLogger(__name__)


class CompletionLogger:
    """
    Appends one JSON object per logical completion request.

    Entries carry request metadata only: purpose, model, outcome, attempts,
    token counts and latency. Message content and credentials are never
    written.
    """

    def __init__(self, log_file_path: str = "logs/completions.jsonl"):
        self.log_file_path = Path(log_file_path)
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        self._file: Optional[TextIO] = open(self.log_file_path, "a", encoding="utf-8")
        self._lock = threading.Lock()
        logger.info(f"CompletionLogger writing to {self.log_file_path}")

    def log_completion(
        self,
        purpose: str,
        model_used: str,
        outcome: str,
        attempts: int,
        latency_ms: int,
        tokens_input: int = 0,
        tokens_output: int = 0,
        prompt_tokens_estimate: int = 0,
        error_code: Optional[str] = None
    ) -> None:
        """
        Record the result of one logical completion request.

        Args:
            purpose: Stage that issued the request (conversation, generation, modify, discuss)
            model_used: Model identifier sent to the completion service
            outcome: "success" or "exhausted"
            attempts: Number of attempts made, including the successful one
            latency_ms: Wall-clock time across all attempts and backoff delays
            tokens_input: Prompt tokens reported by the service
            tokens_output: Completion tokens reported by the service
            prompt_tokens_estimate: Local tiktoken estimate of the prompt size
            error_code: Code of the last failure, if any
        """
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "purpose": purpose,
            "model_used": model_used,
            "outcome": outcome,
            "attempts": attempts,
            "latency_ms": latency_ms,
            "tokens_input": tokens_input,
            "tokens_output": tokens_output,
            "prompt_tokens_estimate": prompt_tokens_estimate,
            "error_code": error_code,
        }

        with self._lock:
            if self._file is None:
                logger.warning("CompletionLogger is closed; dropping entry")
                return
            self._file.write(json.dumps(entry) + "\n")
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
