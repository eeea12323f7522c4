"""
Verification Reports

One JSON report per verification attempt, addressable by verification id.
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

from .errors import ReportError

if TYPE_CHECKING:
    from .verification.records import VerificationRecord

logger = logging.getLogger(__name__)


class ReportStore:
    """Writes and reads verification reports under a directory"""

    PREFIX = "verification-"

    def __init__(self, report_path: Path):
        self.report_path = Path(report_path)

    def path_for(self, verification_id: str) -> Path:
        return self.report_path / f"{self.PREFIX}{verification_id}.json"

    def save(self, record: "VerificationRecord") -> Path:
        """
        Persist a sealed record.

        The report is written to a temporary file and moved into place so a
        reader never sees a partial report.
        """
        report = {
            "timestamp": datetime.now().isoformat(),
            **record.to_dict(),
        }
        target = self.path_for(record.id)

        tmp_name = None
        try:
            self.report_path.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.report_path, suffix=".tmp")
            with os.fdopen(fd, "w") as f:
                json.dump(report, f, indent=2, default=str)
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ReportError(f"Could not write report {target}: {e}") from e

        logger.debug(f"Verification report written: {target}")
        return target

    def load(self, verification_id: str) -> Dict[str, Any]:
        path = self.path_for(verification_id)
        try:
            with open(path, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise ReportError(f"Could not read report {path}: {e}") from e

    def list_ids(self) -> List[str]:
        if not self.report_path.is_dir():
            return []
        return sorted(
            p.stem[len(self.PREFIX):]
            for p in self.report_path.glob(f"{self.PREFIX}*.json")
        )
