"""CLI entrypoint for the workflow desk.

Exit codes:
- 0: success
- 1: unexpected failure
- 2: configuration error
- 3: the requested action was refused (missing item, illegal transition, ...)
- 4: a template failed validation
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from workflow_desk import __version__
from workflow_desk.config import DeskSettings
from workflow_desk.errors import NotFoundError
from workflow_desk.logging import configure_logging
from workflow_desk.storage import open_store
from workflow_desk.workflow import Desk
from workflow_desk.workflow.models import (
    InstanceSearchCriteria,
    TemplateSearchCriteria,
    WorkflowActionRequest,
    WorkflowActionResult,
    WorkflowStatus,
)
from workflow_desk.workflow.validation import get_validation_summary, validate_template

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_REFUSED = 3
EXIT_INVALID = 4


def _json_object(value: str) -> dict[str, Any]:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise argparse.ArgumentTypeError("expected a JSON object")
    return parsed


def _parse_tags(value: str | None) -> list[str] | None:
    if value is None:
        return None
    tags = [p.strip() for p in value.split(",") if p.strip()]
    return tags or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow-desk",
        description="Local-first workflow engine: templates, instances and approvals",
    )
    parser.add_argument("--version", action="version", version=f"workflow-desk {__version__}")
    parser.add_argument(
        "--state-path",
        default=None,
        help="Directory for persisted state (overrides WORKFLOW_DESK_STATE_PATH)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("seed", help="Create the sample templates if no template exists")

    templates = subparsers.add_parser("templates", help="List or search templates")
    templates.add_argument("--query", default=None, help="Text to look for in name/description")
    templates.add_argument("--category", default=None)
    templates.add_argument("--tags", default=None, help="Comma-separated tags (any match)")
    templates.add_argument(
        "--sort-by",
        default=None,
        choices=["name", "usage_count", "created_at", "last_modified_at"],
    )
    templates.add_argument("--desc", action="store_true", help="Sort descending")

    show_template = subparsers.add_parser("show-template", help="Print a template as JSON")
    show_template.add_argument("template_id", type=int)

    check_template = subparsers.add_parser(
        "validate-template", help="Validate a stored template and report problems"
    )
    check_template.add_argument("template_id", type=int)

    launch = subparsers.add_parser("launch", help="Start a workflow from a template")
    launch.add_argument("template_id", type=int)
    launch.add_argument("--data", type=_json_object, default=None, help="Initial data (JSON)")
    launch.add_argument("--by", dest="performed_by", default=None, help="Initiator")

    transition = subparsers.add_parser("transition", help="Fire a transition on an instance")
    transition.add_argument("instance_id", type=int)
    transition.add_argument("transition_id")
    transition.add_argument("--by", dest="performed_by", default=None)
    transition.add_argument("--comment", default=None)
    transition.add_argument("--data", type=_json_object, default=None, help="Data to merge (JSON)")

    submit = subparsers.add_parser("submit", help="Submit a draft instance")
    submit.add_argument("instance_id", type=int)
    submit.add_argument("--by", dest="performed_by", default=None)
    submit.add_argument("--comment", default=None)

    cancel = subparsers.add_parser("cancel", help="Cancel a running instance")
    cancel.add_argument("instance_id", type=int)
    cancel.add_argument("--by", dest="performed_by", default=None)
    cancel.add_argument("--comment", default=None)

    revert = subparsers.add_parser(
        "revert", help="Move an instance back to where a history entry started"
    )
    revert.add_argument("instance_id", type=int)
    revert.add_argument("history_id")
    revert.add_argument("--by", dest="performed_by", default=None)
    revert.add_argument("--comment", default=None)

    instances = subparsers.add_parser("instances", help="List or search instances")
    instances.add_argument(
        "--status",
        action="append",
        choices=[s.value for s in WorkflowStatus],
        default=None,
        help="Repeat to match several statuses",
    )
    instances.add_argument("--template-id", type=int, default=None)
    instances.add_argument("--initiated-by", default=None)
    instances.add_argument("--assignee", default=None)
    instances.add_argument("--category", default=None)
    instances.add_argument(
        "--sort-by", default=None, choices=["created_at", "last_modified_at", "status"]
    )

    show_instance = subparsers.add_parser(
        "show-instance", help="Print an instance as JSON with its available transitions"
    )
    show_instance.add_argument("instance_id", type=int)

    analytics = subparsers.add_parser("analytics", help="Print usage statistics as JSON")
    analytics.add_argument(
        "--template-id", type=int, default=None, help="Statistics for one template"
    )

    subparsers.add_parser("categories", help="List template categories")

    tags = subparsers.add_parser("tags", help="List tags with their usage counts")
    tags.add_argument("--popular", action="store_true", help="Only tags in use, most used first")

    return parser


def _report(result: WorkflowActionResult) -> int:
    if not result.success:
        print(f"{result.message} ({', '.join(result.errors)})", file=sys.stderr)
        return EXIT_REFUSED
    print(
        f"Instance #{result.instance_id}: {result.message} "
        f"(status={result.new_status.value}, step={result.new_step_id})"
    )
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = DeskSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return EXIT_CONFIG

    if args.state_path:
        settings = settings.model_copy(update={"state_path": Path(args.state_path)})

    configure_logging(settings.numeric_log_level)

    try:
        store = open_store(settings)
        auto_seed = settings.seed_samples and args.command != "seed"
        desk = Desk.open(store, seed=auto_seed)

        if args.command == "seed":
            created = desk.seeder.initialize_sample_templates()
            if created:
                print(f"Created {created} sample templates")
            else:
                print("Templates already exist; nothing to seed")
            return EXIT_OK

        if args.command == "templates":
            criteria = TemplateSearchCriteria(
                query=args.query,
                category=args.category,
                tags=_parse_tags(args.tags),
                sort_by=args.sort_by,
                sort_order="desc" if args.desc else "asc",
            )
            for t in desk.templates.search_templates(criteria):
                print(
                    f"#{t.id} {t.name} [{t.category}] steps={len(t.steps)} used={t.usage_count}"
                )
            return EXIT_OK

        if args.command == "show-template":
            template = desk.templates.require_template(args.template_id)
            print(template.model_dump_json(indent=2))
            return EXIT_OK

        if args.command == "validate-template":
            template = desk.templates.require_template(args.template_id)
            validation = validate_template(template)
            print(get_validation_summary(validation))
            for issue in validation.errors:
                print(f"error   {issue.field}: {issue.message} [{issue.code}]")
            for issue in validation.warnings:
                print(f"warning {issue.field}: {issue.message} [{issue.code}]")
            return EXIT_OK if validation.is_valid else EXIT_INVALID

        if args.command == "launch":
            launched = desk.engine.launch_workflow(
                args.template_id, initial_data=args.data, initiated_by=args.performed_by
            )
            if launched.instance is None:
                print(f"{launched.error} ({launched.code})", file=sys.stderr)
                return EXIT_REFUSED
            instance = launched.instance
            print(
                f"Launched instance #{instance.id} of '{instance.template_name}' "
                f"at step '{instance.current_step_name}'"
            )
            return EXIT_OK

        if args.command == "transition":
            return _report(
                desk.engine.execute_transition(
                    WorkflowActionRequest(
                        instance_id=args.instance_id,
                        transition_id=args.transition_id,
                        performed_by=args.performed_by,
                        comment=args.comment,
                        update_data=args.data,
                    )
                )
            )

        if args.command == "submit":
            return _report(
                desk.engine.submit_workflow(args.instance_id, args.performed_by, args.comment)
            )

        if args.command == "cancel":
            return _report(
                desk.engine.cancel_workflow(args.instance_id, args.performed_by, args.comment)
            )

        if args.command == "revert":
            return _report(
                desk.engine.revert_to_history(
                    args.instance_id, args.history_id, args.performed_by, args.comment
                )
            )

        if args.command == "instances":
            criteria = InstanceSearchCriteria(
                status=[WorkflowStatus(s) for s in args.status] if args.status else None,
                template_id=args.template_id,
                initiated_by=args.initiated_by,
                current_assignee=args.assignee,
                category=args.category,
                sort_by=args.sort_by,
            )
            for i in desk.engine.search_instances(criteria):
                print(
                    f"#{i.id} {i.template_name} step='{i.current_step_name}' "
                    f"status={i.status.value} assignees={','.join(i.current_assignees) or '-'}"
                )
            return EXIT_OK

        if args.command == "show-instance":
            instance = desk.engine.require_instance(args.instance_id)
            print(instance.model_dump_json(indent=2))
            available = desk.engine.get_available_transitions(args.instance_id)
            if available:
                print("Available transitions:")
                for t in available:
                    print(f"  {t.id}  {t.label} ({t.action})")
            return EXIT_OK

        if args.command == "analytics":
            if args.template_id is not None:
                stats = desk.analytics.get_template_statistics(args.template_id)
                print(stats.model_dump_json(indent=2))
            else:
                print(desk.analytics.get_workflow_analytics().model_dump_json(indent=2))
            return EXIT_OK

        if args.command == "categories":
            for c in desk.taxonomy.get_all_categories():
                print(f"{c.id}\t{c.name}")
            return EXIT_OK

        if args.command == "tags":
            listed = desk.taxonomy.get_popular_tags() if args.popular else desk.taxonomy.get_all_tags()
            for tag in listed:
                print(f"{tag.name}\t{tag.usage_count}")
            return EXIT_OK

        logger.error("Unknown command", extra={"command": args.command})
        return EXIT_CONFIG

    except NotFoundError as e:
        logger.warning(str(e))
        print(str(e), file=sys.stderr)
        return EXIT_REFUSED

    except Exception:
        logger.exception("Command failed")
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
