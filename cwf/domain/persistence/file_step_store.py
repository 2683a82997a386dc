import json
import shutil
from pathlib import Path
from typing import Any

from cwf.domain.constants import (
    DEFAULT_STORAGE_ROOT,
    WORKFLOW_FILENAME,
    WORKFLOW_TEMP_SUFFIX,
    WORKFLOWS_DIRNAME,
)
from cwf.domain.models.workflow import Workflow
from cwf.domain.persistence.step_store import DocumentStepStore


class FileStepStore(DocumentStepStore):
    """Persists each workflow as workflows/<id>/workflow.json under a root."""

    def __init__(self, storage_root: Path | None = None):
        """
        Initialize the file store.

        Args:
            storage_root: Root data directory (default: .cwf/data)
        """
        super().__init__()
        self.workflows_root = (storage_root or DEFAULT_STORAGE_ROOT) / WORKFLOWS_DIRNAME
        self.workflows_root.mkdir(parents=True, exist_ok=True)

    def _workflow_file(self, workflow_id: str) -> Path:
        return self.workflows_root / workflow_id / WORKFLOW_FILENAME

    def _load(self, workflow_id: str) -> Workflow | None:
        workflow_file = self._workflow_file(workflow_id)
        if not workflow_file.exists():
            return None

        with open(workflow_file, "r", encoding="utf-8") as f:
            data = json.load(f)

        return self._deserialize(data)

    def _save(self, workflow: Workflow) -> None:
        workflow_dir = self.workflows_root / workflow.id
        workflow_dir.mkdir(parents=True, exist_ok=True)

        workflow_file = workflow_dir / WORKFLOW_FILENAME
        temp_file = workflow_file.with_suffix(WORKFLOW_TEMP_SUFFIX)

        # Write atomically - write to temp, then rename
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(workflow.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

        temp_file.replace(workflow_file)

    def _remove(self, workflow_id: str) -> bool:
        workflow_dir = self.workflows_root / workflow_id
        if not workflow_dir.exists():
            return False
        shutil.rmtree(workflow_dir)
        return True

    def _all(self) -> list[Workflow]:
        if not self.workflows_root.exists():
            return []

        workflows = []
        for workflow_dir in sorted(self.workflows_root.iterdir()):
            if workflow_dir.is_dir() and (workflow_dir / WORKFLOW_FILENAME).exists():
                workflow = self._load(workflow_dir.name)
                if workflow is not None:
                    workflows.append(workflow)
        return workflows

    def _deserialize(self, data: dict[str, Any]) -> Workflow:
        """
        Convert JSON dict to Workflow.

        Raises:
            ValueError: If data is invalid
        """
        try:
            return Workflow.model_validate(data)
        except Exception as e:
            raise ValueError(f"Invalid workflow data: {e}") from e
