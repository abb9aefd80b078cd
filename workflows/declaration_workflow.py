"""Declaration Workflow for compiling a JPK_V7M declaration.

Accepts a serialized declaration request and coordinates validation, the
per-batch row fan-out, assembly, business-rule checks and rendering.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Tuple

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.declaration import (
        prepare_declaration,
        build_rows,
        assemble_declaration_activity,
        check_declaration,
        render_declaration,
        PrepareDeclarationInput,
        BuildRowsInput,
        AssembleDeclarationInput,
        CheckDeclarationInput,
        RenderDeclarationInput,
    )


# =============================================================================
# Task Queues
# =============================================================================

TASK_QUEUE_DEFAULT = "jpk-default"


@dataclass
class DeclarationWorkflowInput:
    """Input for Declaration Workflow.

    Attributes:
        request: Serialized DeclarationRequest (subject, period, transactions, options)
        batch_size: Documents per build_rows activity; falls back to the configured size
    """
    request: dict
    batch_size: Optional[int] = None


def batch_transactions(transactions: List[dict], batch_size: int, start_ordinal: int = 1) -> List[Tuple[int, List[dict]]]:
    """Split documents into (first ordinal, batch) pairs, preserving order."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [
        (start_ordinal + i, transactions[i:i + batch_size])
        for i in range(0, len(transactions), batch_size)
    ]


@workflow.defn
class DeclarationWorkflow:
    """Workflow for compiling one subject's monthly declaration.

    1. Validate the request (fatal input errors end the run here)
    2. Build rows per batch, both sections in parallel
    3. Assemble control totals and the summary
    4. Run business-rule checks
    5. Render the XML document
    """

    def __init__(self):
        self.stage = "PREPARE"

    @workflow.query
    def current_stage(self) -> str:
        return self.stage

    @workflow.run
    async def run(self, input: DeclarationWorkflowInput) -> dict:
        """Execute declaration workflow.

        Returns:
            dict with declaration_id, filename, xml, validation, diagnostics and summary
        """
        # Input errors are raised non-retryable by the activities; this covers transient failures
        activity_options = {
            "start_to_close_timeout": timedelta(minutes=2),
            "retry_policy": RetryPolicy(
                maximum_attempts=3,
                initial_interval=timedelta(seconds=1),
                backoff_coefficient=2.0,
            ),
            "task_queue": TASK_QUEUE_DEFAULT,
        }

        prepared = await workflow.execute_activity(
            prepare_declaration,
            PrepareDeclarationInput(request=input.request),
            **activity_options,
        )
        workflow.logger.info(
            f"Declaration {prepared.declaration_id}: {len(prepared.sale_transactions)} sale, "
            f"{len(prepared.purchase_transactions)} purchase documents"
        )

        # Fan-out: one activity per batch; ordinals are fixed before any batch runs
        self.stage = "BUILD_ROWS"
        batch_size = input.batch_size or prepared.batch_size
        sale_batches = batch_transactions(prepared.sale_transactions, batch_size)
        purchase_batches = batch_transactions(prepared.purchase_transactions, batch_size)

        def build(section: str, start: int, batch: List[dict]):
            return workflow.execute_activity(
                build_rows,
                BuildRowsInput(
                    section=section,
                    transactions=batch,
                    start_ordinal=start,
                    schema_version=prepared.schema_version,
                    tolerance=prepared.tolerance,
                ),
                **activity_options,
            )

        results = await asyncio.gather(
            *[build("sale", s, b) for s, b in sale_batches],
            *[build("purchase", s, b) for s, b in purchase_batches],
        )
        sale_results = results[:len(sale_batches)]
        purchase_results = results[len(sale_batches):]

        sale_rows = [row for r in sale_results for row in r.rows]
        purchase_rows = [row for r in purchase_results for row in r.rows]
        diagnostics = [d for r in results for d in r.diagnostics]
        if diagnostics:
            workflow.logger.info(f"{len(diagnostics)} row diagnostics")

        # Fan-in
        self.stage = "ASSEMBLE"
        generated_at = prepared.generated_at or workflow.now().replace(microsecond=0).isoformat()
        assembled = await workflow.execute_activity(
            assemble_declaration_activity,
            AssembleDeclarationInput(
                subject=prepared.subject,
                period=prepared.period,
                schema_version=prepared.schema_version,
                purpose=prepared.purpose,
                generated_at=generated_at,
                sale_rows=sale_rows,
                purchase_rows=purchase_rows,
                system_name=prepared.system_name,
                tax_office_code=prepared.tax_office_code,
                correction_reason=prepared.correction_reason,
            ),
            **activity_options,
        )

        self.stage = "CHECK"
        validation = await workflow.execute_activity(
            check_declaration,
            CheckDeclarationInput(declaration=assembled.declaration, tolerance=prepared.tolerance),
            **activity_options,
        )
        if not validation.is_valid:
            workflow.logger.warning(
                f"Declaration {assembled.declaration_id} has blocking check failures"
            )

        self.stage = "RENDER"
        rendered = await workflow.execute_activity(
            render_declaration,
            RenderDeclarationInput(declaration=assembled.declaration),
            **activity_options,
        )

        self.stage = "COMPLETED"
        workflow.logger.info(f"Declaration {assembled.declaration_id} rendered as {rendered.filename}")

        return {
            "declaration_id": assembled.declaration_id,
            "filename": rendered.filename,
            "xml": rendered.xml,
            "sale_rows": assembled.sale_row_count,
            "purchase_rows": assembled.purchase_row_count,
            "summary": assembled.declaration["summary"],
            "validation": {
                "status": validation.status,
                "is_valid": validation.is_valid,
                "checks": validation.checks,
                "metrics": validation.metrics,
            },
            "diagnostics": diagnostics,
        }
