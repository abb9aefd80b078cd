"""Workflow definitions module."""

from workflows.declaration_workflow import (
    DeclarationWorkflow,
    DeclarationWorkflowInput,
    TASK_QUEUE_DEFAULT,
    batch_transactions,
)

__all__ = [
    "DeclarationWorkflow",
    "DeclarationWorkflowInput",
    "TASK_QUEUE_DEFAULT",
    "batch_transactions",
]
