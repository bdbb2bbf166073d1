"""Post-call transcripts and the tool invocations found in them."""

from claritycall.modules.transcripts.extractor import extract, extract_task_requests
from claritycall.modules.transcripts.models import (
    Conversation,
    CreateTaskParams,
    PostCallWebhook,
    ToolInvocation,
)
from claritycall.modules.transcripts.signature import verify_signature

__all__ = [
    "Conversation",
    "CreateTaskParams",
    "PostCallWebhook",
    "ToolInvocation",
    "extract",
    "extract_task_requests",
    "verify_signature",
]
