#!/usr/bin/env python3
"""Programmatic usage example.

This drives the desk directly instead of through the CLI:

* load settings from `.env`
* create a small approval template
* launch an instance, submit it and approve it
* print the resulting history

State is kept in memory unless `--state-path` is given.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from workflow_desk.config import DeskSettings
from workflow_desk.logging import configure_logging
from workflow_desk.storage import JsonFileStore, MemoryStore
from workflow_desk.workflow import Desk
from workflow_desk.workflow.models import (
    CreateTemplateRequest,
    StepDraft,
    TransitionDraft,
    WorkflowActionRequest,
)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one approval workflow end to end.")
    parser.add_argument("--state-path", default=None, help="Persist state in this directory")
    parser.add_argument("--amount", type=float, default=250.0, help="Requested amount")
    return parser.parse_args(argv)


def _request() -> CreateTemplateRequest:
    return CreateTemplateRequest(
        name="Equipment Request",
        description="Small equipment purchases approved by a manager",
        category="purchasing",
        tags=["standard"],
        steps=[
            StepDraft(
                key="request",
                name="Request Equipment",
                allowed_roles=["submitter"],
                transitions=[
                    TransitionDraft(action="submit", target_step_key="review", label="Submit")
                ],
            ),
            StepDraft(
                key="review",
                name="Manager Review",
                allowed_roles=["manager"],
                transitions=[
                    TransitionDraft(action="approve", target_step_key="done", label="Approve"),
                    TransitionDraft(
                        action="reject",
                        target_step_key="done",
                        label="Reject",
                        requires_comment=True,
                    ),
                ],
            ),
            StepDraft(key="done", name="Closed", is_terminal=True),
        ],
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = DeskSettings()
    configure_logging(settings.log_level)

    store = JsonFileStore(Path(args.state_path)) if args.state_path else MemoryStore()
    desk = Desk.open(store)

    created = desk.templates.create_template(_request())
    if created.template is None:
        for issue in created.validation.errors:
            print(f"{issue.field}: {issue.message}")
        return 1
    template = created.template

    launched = desk.engine.launch_workflow(template.id, {"amount": args.amount}, "ana")
    if launched.instance is None:
        print(launched.error)
        return 1
    instance_id = launched.instance.id

    desk.engine.submit_workflow(instance_id, performed_by="ana")
    approve = template.steps[1].transitions[0]
    result = desk.engine.execute_transition(
        WorkflowActionRequest(instance_id=instance_id, transition_id=approve.id, performed_by="bo")
    )
    print(f"{result.message} -> {result.new_status.value}")

    instance = desk.engine.get_instance(instance_id)
    if instance is not None:
        for entry in instance.history:
            print(f"  {entry.from_step_name} -> {entry.to_step_name} ({entry.action})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
