"""Integration test fixtures.

These fixtures build the lifecycle manager through `build_lifecycle`, so
workflows and messages are written to real files under a temp directory.
"""

from pathlib import Path

import pytest

from cwf.application.bootstrap import build_lifecycle
from cwf.application.config_models import EngineSettings
from cwf.application.lifecycle import WorkflowLifecycleManager

KNOWLEDGE_YAML = """\
snippets:
  - content: Acme Corp builds industrial widgets for the press release audience
    source: company-overview
    scope: organization
    org_id: acme
  - content: "Press office for Acme widgets: press@acme.com"
    source: contacts
    scope: organization
    org_id: acme
  - content: "Widgets payroll export, employee SSN 123-45-6789"
    source: hr-export
    scope: organization
    org_id: acme
  - content: Globex widgets are built by a different company
    source: competitor
    scope: organization
    org_id: globex
profiles:
  - user_id: u1
    org_id: acme
    organization: Acme Corp
    tone: confident
"""


@pytest.fixture
def settings(tmp_path: Path, storage_root: Path) -> EngineSettings:
    knowledge = tmp_path / "knowledge.yml"
    knowledge.write_text(KNOWLEDGE_YAML, encoding="utf-8")
    return EngineSettings(
        storage_root=storage_root,
        knowledge_file=knowledge,
        retry={"attempts": 2, "delay_seconds": 0},
    )


@pytest.fixture
def engine(settings, provider, emitter) -> WorkflowLifecycleManager:
    return build_lifecycle(settings, emitter=emitter, provider=provider)
