"""
CLI for k3sprovider - declarative Kubernetes Deployments from resources.yaml.

Commands:
    validate    Validate resources.yaml schema
    render      Print the Deployment manifests (no cluster access)
    plan        Show what apply would change
    apply       Create, update or replace resources to match resources.yaml
    show        Print the stored state as flat attributes
    destroy     Delete managed resources
    import      Adopt an existing Deployment into the state
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml
from kubernetes import client
from kubernetes.client.rest import ApiException

from .provider import Provider, ProviderError
from .resource_deployment import build_deployment
from .schema import DEFAULT_CONFIG_FILE, load_config, validate_config
from .state import DEFAULT_STATE_FILE, StateStore
from .structures import flatmap
from .types import Plan, PlanAction, ProviderFile, ResourceConfig

logger = logging.getLogger(__name__)

_PLAN_SYMBOLS = {
    PlanAction.CREATE: "+",
    PlanAction.UPDATE: "~",
    PlanAction.REPLACE: "-/+",
    PlanAction.DELETE: "-",
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="k3sprovider",
        description="Manage Kubernetes Deployments declaratively",
    )
    parser.add_argument(
        "-f", "--file",
        default=DEFAULT_CONFIG_FILE,
        help=f"Path to {DEFAULT_CONFIG_FILE} (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--state",
        default=DEFAULT_STATE_FILE,
        help=f"Path to state file (default: {DEFAULT_STATE_FILE})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser(
        "validate",
        help=f"Validate {DEFAULT_CONFIG_FILE} schema",
    )

    render_parser = subparsers.add_parser(
        "render",
        help="Print Deployment manifests without contacting the cluster",
    )
    render_parser.add_argument(
        "address",
        nargs="?",
        help="Resource address, e.g. kubernetes_deployment.web (default: all)",
    )
    render_parser.add_argument(
        "--format",
        choices=["yaml", "json"],
        default="yaml",
        help="Output format (default: yaml)",
    )

    subparsers.add_parser(
        "plan",
        help="Show what apply would change",
    )

    apply_parser = subparsers.add_parser(
        "apply",
        help=f"Converge the cluster on {DEFAULT_CONFIG_FILE}",
    )
    apply_parser.add_argument(
        "--wait",
        action="store_true",
        help="Wait for rollouts to finish",
    )

    show_parser = subparsers.add_parser(
        "show",
        help="Print stored state as flat attributes",
    )
    show_parser.add_argument(
        "address",
        nargs="?",
        help="Resource address (default: all)",
    )
    show_parser.add_argument(
        "--json",
        action="store_true",
        help="Output state documents as JSON",
    )

    destroy_parser = subparsers.add_parser(
        "destroy",
        help="Delete managed resources",
    )
    destroy_parser.add_argument(
        "address",
        nargs="?",
        help="Resource address (default: all)",
    )

    import_parser = subparsers.add_parser(
        "import",
        help="Adopt an existing Deployment",
    )
    import_parser.add_argument(
        "address",
        help="Resource address, e.g. kubernetes_deployment.web",
    )
    import_parser.add_argument(
        "id",
        help="Deployment id as namespace/name",
    )

    return parser


def get_provider(config: ProviderFile) -> Provider:
    """Build a configured provider for the loaded resources.yaml."""
    return Provider().configure(config.provider)


def _resource_type(address: str) -> str:
    type_name, _, name = address.partition(".")
    if not name:
        raise ValueError(f"Invalid resource address {address!r}, expected <type>.<name>")
    return type_name


def refresh(provider: Provider, store: StateStore) -> None:
    """Re-read every stored resource, dropping those deleted out of band."""
    for address in store.addresses():
        state = store.get(address)
        resource = provider.resource(_resource_type(address))
        current = resource.read(state["id"])
        if current is None:
            logger.info(f"{address} no longer exists, removing from state")
            store.remove(address)
        else:
            store.put(address, current)


def build_plans(
    provider: Provider,
    config: ProviderFile,
    store: StateStore,
) -> List[Tuple[str, Plan, Optional[ResourceConfig]]]:
    """Plan every configured resource plus stored resources no longer configured."""
    plans = []
    for rc in config.resources:
        resource = provider.resource(rc.type)
        plans.append((rc.address, resource.plan(rc.config, store.get(rc.address)), rc))

    configured = {rc.address for rc in config.resources}
    for address in store.addresses():
        if address not in configured:
            resource = provider.resource(_resource_type(address))
            plans.append((address, resource.plan(None, store.get(address)), None))

    return plans


def print_plans(plans: List[Tuple[str, Plan, Optional[ResourceConfig]]]) -> int:
    """Print plans; returns the number of resources with changes."""
    changed = 0
    for address, plan, _ in plans:
        if not plan.has_changes:
            continue
        changed += 1
        print(f"  {_PLAN_SYMBOLS[plan.action]} {address} ({plan.action.value})")
        for change in plan.changes:
            print(f"      {change}")

    if changed == 0:
        print("No changes. Infrastructure is up-to-date.")
    else:
        print(f"Plan: {changed} to change.")
    return changed


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle validate command."""
    config_path = Path(args.file)
    if not config_path.exists():
        print(f"Error: {DEFAULT_CONFIG_FILE} not found at {args.file}", file=sys.stderr)
        return 1

    with open(config_path) as f:
        data = yaml.safe_load(f)

    errors = validate_config(data)
    if errors:
        print("Validation errors:", file=sys.stderr)
        for error in errors:
            print(f"  - {error}", file=sys.stderr)
        return 1

    print(f"✓ {args.file} is valid")

    config = load_config(args.file, validate=False)
    print(f"  Found {len(config.resources)} resources")
    for rc in config.resources:
        print(f"    - {rc.address}")

    return 0


def cmd_render(args: argparse.Namespace) -> int:
    """Handle render command."""
    config = load_config(args.file)

    resources = config.resources
    if args.address:
        rc = config.get_resource(args.address)
        if rc is None:
            print(f"Error: Resource '{args.address}' not found in {args.file}", file=sys.stderr)
            return 1
        resources = [rc]

    with client.ApiClient() as serializer:
        manifests = [
            serializer.sanitize_for_serialization(build_deployment(rc.config))
            for rc in resources
        ]

    if args.format == "json":
        print(json.dumps(manifests, indent=2))
    else:
        docs = [yaml.dump(m, default_flow_style=False, sort_keys=False) for m in manifests]
        print("---\n" + "---\n".join(docs), end="")

    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Handle plan command."""
    config = load_config(args.file)
    store = StateStore(args.state)
    provider = get_provider(config)

    refresh(provider, store)
    print_plans(build_plans(provider, config, store))
    return 0


def cmd_apply(args: argparse.Namespace) -> int:
    """Handle apply command."""
    config = load_config(args.file)
    store = StateStore(args.state)
    provider = get_provider(config)

    refresh(provider, store)
    plans = build_plans(provider, config, store)
    if print_plans(plans) == 0:
        return 0

    for address, plan, rc in plans:
        if not plan.has_changes:
            continue
        resource = provider.resource(_resource_type(address))
        resource_config = dict(rc.config) if rc else None
        if resource_config is not None and args.wait:
            resource_config["wait_for_rollout"] = True

        state = resource.apply(plan, resource_config)
        if state is None:
            store.remove(address)
            print(f"{address}: Destruction complete")
        else:
            store.put(address, state)
            print(f"{address}: {plan.action.value.capitalize()} complete [id={state['id']}]")

    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Handle show command."""
    store = StateStore(args.state)

    addresses = [args.address] if args.address else store.addresses()
    states: Dict[str, dict] = {}
    for address in addresses:
        state = store.get(address)
        if state is None:
            print(f"Error: Resource '{address}' not found in state", file=sys.stderr)
            return 1
        states[address] = state

    if args.json:
        print(json.dumps(states, indent=2, sort_keys=True))
        return 0

    if not states:
        print("No resources in state")
        return 0

    for address, state in states.items():
        print(f"{address}:")
        for key, value in sorted(flatmap(state).items()):
            print(f"  {key} = {value}")

    return 0


def cmd_destroy(args: argparse.Namespace) -> int:
    """Handle destroy command."""
    config = load_config(args.file)
    store = StateStore(args.state)
    provider = get_provider(config)

    addresses = [args.address] if args.address else store.addresses()
    for address in addresses:
        state = store.get(address)
        if state is None:
            print(f"Error: Resource '{address}' not found in state", file=sys.stderr)
            return 1
        provider.resource(_resource_type(address)).delete(state["id"])
        store.remove(address)
        print(f"{address}: Destruction complete")

    print(f"Destroyed {len(addresses)} resources")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Handle import command."""
    config = load_config(args.file)
    store = StateStore(args.state)

    if store.get(args.address) is not None:
        print(f"Error: Resource '{args.address}' is already managed", file=sys.stderr)
        return 1

    provider = get_provider(config)
    resource = provider.resource(_resource_type(args.address))
    state = resource.import_state(args.id)
    store.put(args.address, state)
    print(f"{args.address}: Import complete [id={state['id']}]")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "validate": cmd_validate,
        "render": cmd_render,
        "plan": cmd_plan,
        "apply": cmd_apply,
        "show": cmd_show,
        "destroy": cmd_destroy,
        "import": cmd_import,
    }

    handler = commands.get(args.command)
    if not handler:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except ApiException as e:
        print(f"Error: Kubernetes API error {e.status}: {e.reason}", file=sys.stderr)
    except (FileNotFoundError, ValueError, ProviderError, TimeoutError) as e:
        print(f"Error: {e}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
