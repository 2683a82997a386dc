from pathlib import Path

# Storage
DEFAULT_STORAGE_ROOT = Path(".cwf/data")
WORKFLOWS_DIRNAME = "workflows"
THREADS_DIRNAME = "threads"
WORKFLOW_FILENAME = "workflow.json"
WORKFLOW_TEMP_SUFFIX = ".json.tmp"
MESSAGES_FILENAME = "messages.jsonl"
TURN_LEDGER_FILENAME = "turns.json"

# Templates
IDLE_TEMPLATE_NAME = "Base Workflow"
INFORMATION_COLLECTION_STEP = "Information Collection"
ASSET_GENERATION_STEP = "Asset Generation"
ASSET_REVIEW_STEP = "Asset Review"
WORKFLOW_SELECTION_STEP = "Workflow Selection"
THREAD_TITLE_STEP = "Auto Generate Thread Title"

# Selection sentinel returned by the workflow-selection dialog
SELECTION_CANCELLED = "cancelled"

# Retrieval bounds
DEFAULT_GLOBAL_SNIPPET_LIMIT = 5
DEFAULT_ORGANIZATION_SNIPPET_LIMIT = 5
DEFAULT_HISTORY_LIMIT = 10

# Adapter retry: one retry after a short fixed delay
DEFAULT_RETRY_ATTEMPTS = 2
DEFAULT_RETRY_DELAY_SECONDS = 0.5

# Title derivation
MAX_TITLE_LENGTH = 60

RETRY_MESSAGE = (
    "Sorry, I ran into a temporary problem generating a response. "
    "Please try again."
)
