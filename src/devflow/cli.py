"""Command-line interface for devflow."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Optional

from .config import AppConfig, load_config
from .interaction import InteractionRequest
from .utils.logging import set_verbose
from .workflow import DevFlowWorkflow

MENU_DEPLOY = "Deploy a project"
MENU_MANAGE = "Manage deployments"
MENU_MERGE = "Merge branch into dev and sit"
MENU_BRANCHES = "Show branches"
MENU_QUIT = "Quit"


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    workdir: Optional[str]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devflow",
        description="Trigger remote deploy pipelines and merge branches into dev/sit.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )
    parser.add_argument(
        "--workdir",
        type=str,
        default=None,
        help="Git working directory for merge commands (default: current directory).",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy_parser = subparsers.add_parser(
        "deploy", help="Pick a project and start its deploy pipeline"
    )
    deploy_parser.add_argument(
        "--keyword", "-k", type=str, default=None,
        help="Filter the project search by keyword",
    )
    deploy_parser.add_argument(
        "--no-wait", action="store_true",
        help="Return right after the pipeline starts instead of following it",
    )

    subparsers.add_parser(
        "merge", help="Merge a branch into dev, then dev into sit, and push both"
    )
    subparsers.add_parser(
        "branches", help="Show the current branch and all local/remote branches"
    )
    subparsers.add_parser(
        "interactive", help="Menu loop; deployments stay tracked between actions"
    )

    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    config = load_config(args.config)
    return CLIContext(config=config, workdir=args.workdir)


def follow_deployments(workflow: DevFlowWorkflow) -> None:
    """Wait for tracked pipelines; Ctrl-C opens the deployment manager."""
    deploy = workflow.deploy
    while deploy.registry.has_pending():
        try:
            if not deploy.wait_until_idle():
                return
        except KeyboardInterrupt:
            deploy.manage_deployments()


def run_interactive(workflow: DevFlowWorkflow) -> int:
    handler = workflow.interaction_handler
    options = [MENU_DEPLOY, MENU_MANAGE, MENU_MERGE, MENU_BRANCHES, MENU_QUIT]
    while True:
        response = handler.ask(InteractionRequest(question="What do you want to do?", options=options))
        if response.cancelled or response.value == MENU_QUIT:
            return 0
        if response.value == MENU_DEPLOY:
            workflow.deploy.run_deploy_flow()
        elif response.value == MENU_MANAGE:
            workflow.deploy.manage_deployments()
        elif response.value == MENU_MERGE:
            workflow.merge.auto_merge_branch()
        elif response.value == MENU_BRANCHES:
            workflow.merge.show_branch_info()


def dispatch_command(args: argparse.Namespace) -> int:
    context = _build_context(args)

    with DevFlowWorkflow(config=context.config, workdir=context.workdir) as workflow:
        if args.command == "deploy":
            if not workflow.deploy.run_deploy_flow(args.keyword):
                return 1
            if not args.no_wait:
                follow_deployments(workflow)
            return 0

        if args.command == "merge":
            return 0 if workflow.merge.auto_merge_branch() else 1

        if args.command == "branches":
            workflow.merge.show_branch_info()
            return 0

        if args.command == "interactive":
            return run_interactive(workflow)

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    set_verbose(args.verbose)
    return dispatch_command(args)
