"""Content Workflow Engine: conversational, dependency-ordered content workflows."""

__version__ = "0.1.0"
