"""Pipeline runner utilities for CLI commands.

Provides the input loading, output naming and run logging shared by the
``reconcile`` and ``flatten`` commands.
"""
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


def load_json(path: str | Path) -> Any:
    """Read a JSON input file."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    with open(file_path, encoding="utf-8") as f:
        return json.load(f)


class PipelineRunner:
    """Output naming and run logging for one CLI invocation."""

    def __init__(
        self,
        input_path: str,
        output_path: str = "",
        output_dir: str = "outputs",
        output_prefix: str = "output",
    ):
        self.input_path = Path(input_path)
        self.output_dir = output_dir
        self.output_prefix = output_prefix

        if not self.input_path.exists():
            raise FileNotFoundError(f"Input file not found: {input_path}")

        self.run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]
        self.output_file = self.resolve_output(output_path, output_prefix)

    def resolve_output(self, output_path: str = "", prefix: Optional[str] = None) -> Path:
        """Explicit path if given, else a uniquely named file in output_dir."""
        if output_path:
            return Path(output_path)
        out_dir_path = Path(self.output_dir)
        out_dir_path.mkdir(parents=True, exist_ok=True)
        return out_dir_path / f"{prefix or self.output_prefix}_{self.input_path.stem}_{self.run_id}.json"

    def log_plan(self, steps: list[str]) -> None:
        """Log the pipeline plan."""
        logger.info("[plan] %s", steps[0] if steps else "Pipeline")
        for step in steps[1:]:
            logger.info("[plan] - %s", step)

    def log_run(self, **kwargs) -> None:
        """Log run parameters."""
        params = " ".join(f"{k}={v}" for k, v in kwargs.items())
        logger.info("[run] input=%s output=%s %s", str(self.input_path), str(self.output_file), params)

    def log_step(self, step_name: str, **kwargs) -> None:
        """Log a pipeline step with optional metrics."""
        if kwargs:
            metrics = " ".join(f"{k}={v}" for k, v in kwargs.items())
            logger.info("[%s] %s", step_name, metrics)
        else:
            logger.info("[%s] started", step_name)

    def write_output(self, payload: Any, output_file: Optional[Path] = None) -> Path:
        """Write payload as JSON; defaults to the run's output file."""
        target = output_file or self.output_file
        text = json.dumps(payload, indent=2)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        logger.info("[output] wrote=%s", str(target))
        return target
