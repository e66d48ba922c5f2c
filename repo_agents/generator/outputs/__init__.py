"""
Output handlers, one per operation name in the closed output vocabulary.

Usage:
    from repo_agents.generator.outputs import get_output_handler

    handler = get_output_handler("add-label")
    script = handler.validation_script(config, RuntimeContext())
"""

from __future__ import annotations

from typing import Dict

from repo_agents.parser.schema import OUTPUT_NAMES

from .base import OutputHandler, RuntimeContext
from .comments import AddCommentHandler, AddReactionHandler, LockConversationHandler
from .discussions import CreateDiscussionHandler
from .issues import (
    AssignIssueHandler,
    CloseIssueHandler,
    ConvertToDiscussionHandler,
    CreateIssueHandler,
    EditIssueHandler,
    PinIssueHandler,
    ReopenIssueHandler,
    SetMilestoneHandler,
)
from .labels import AddLabelHandler, RemoveLabelHandler
from .pull_requests import (
    ApprovePrHandler,
    ClosePrHandler,
    CreatePrHandler,
    MergePrHandler,
    RequestReviewHandler,
)
from .repository import (
    CreateBranchHandler,
    CreateReleaseHandler,
    DeleteBranchHandler,
    TriggerWorkflowHandler,
    UpdateFileHandler,
)

HANDLERS: Dict[str, OutputHandler] = {
    handler.name: handler
    for handler in (
        AddCommentHandler(),
        AddLabelHandler(),
        RemoveLabelHandler(),
        CreateIssueHandler(),
        CreateDiscussionHandler(),
        CreatePrHandler(),
        UpdateFileHandler(),
        CloseIssueHandler(),
        ClosePrHandler(),
        AssignIssueHandler(),
        RequestReviewHandler(),
        MergePrHandler(),
        ApprovePrHandler(),
        CreateReleaseHandler(),
        DeleteBranchHandler(),
        LockConversationHandler(),
        PinIssueHandler(),
        ConvertToDiscussionHandler(),
        EditIssueHandler(),
        ReopenIssueHandler(),
        SetMilestoneHandler(),
        TriggerWorkflowHandler(),
        AddReactionHandler(),
        CreateBranchHandler(),
    )
}

# Every name the schema accepts must have a handler, and nothing else may.
if set(HANDLERS) != set(OUTPUT_NAMES):
    raise RuntimeError(f"Output handlers out of sync with schema: {sorted(set(HANDLERS) ^ set(OUTPUT_NAMES))}")


def get_output_handler(name: str) -> OutputHandler:
    """Look up the handler for an output name.

    Raises:
        ValueError: For a name outside the closed output set.
    """
    try:
        return HANDLERS[name]
    except KeyError:
        raise ValueError(f"Unknown output type: {name}") from None


__all__ = [
    "HANDLERS",
    "OutputHandler",
    "RuntimeContext",
    "get_output_handler",
]
